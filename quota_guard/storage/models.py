"""
Data models for storage layer.

Defines the per-account quota record and its stored representation.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def iso_marker(timestamp_ms: int) -> str:
    """Format a millisecond timestamp as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class QuotaRecord:
    """Usage state of a single account.

    Records are immutable; the ledger derives a new record for every
    transition and hands it to the repository for persistence.
    """
    start: int
    count: int = 0
    extended_quota: int = 0
    original_month_start: Optional[int] = None
    extended_at: Optional[str] = None

    def __post_init__(self):
        """Validate counters are non-negative."""
        if self.count < 0:
            raise ValueError("count cannot be negative")
        if self.extended_quota < 0:
            raise ValueError("extended_quota cannot be negative")

    @classmethod
    def fresh(cls, now: int) -> "QuotaRecord":
        """Default record for an account that has never been seen."""
        return cls(start=now)

    @property
    def is_extended(self) -> bool:
        return self.extended_quota > 0

    def to_dict(self) -> Dict[str, Any]:
        """Stored representation, keyed the way ``quota_data.json`` expects."""
        data: Dict[str, Any] = {
            "start": self.start,
            "count": self.count,
            "extendedQuota": self.extended_quota,
            "originalMonthStart": self.original_month_start,
        }
        if self.extended_at is not None:
            data["extendedAt"] = self.extended_at
        return data
