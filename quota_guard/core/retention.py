"""
Record retention policy.

Quota records are never removed by normal accounting, so the store grows
with every distinct account. This policy makes eviction an explicit,
opt-in operator decision.
"""

from dataclasses import dataclass
from typing import Optional

from quota_guard.storage.models import QuotaRecord

from .limits import BASE_LIMIT, WINDOW_MS


MS_PER_DAY = 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class RetentionPolicy:
    """Eviction rule for idle records.

    ``max_idle_ms=None`` keeps every record forever.
    """
    max_idle_ms: Optional[int] = None

    def __post_init__(self):
        if self.max_idle_ms is not None and self.max_idle_ms <= 0:
            raise ValueError("max_idle_ms must be > 0")

    @classmethod
    def from_days(cls, days: Optional[float]) -> "RetentionPolicy":
        if days is None:
            return cls()
        return cls(max_idle_ms=int(days * MS_PER_DAY))

    @property
    def keeps_forever(self) -> bool:
        return self.max_idle_ms is None

    def should_evict(self, record: QuotaRecord, now: int) -> bool:
        """True when dropping the record cannot hand out fresh quota.

        ``start`` only moves on a window reset, so age alone says nothing
        about activity. A record is evicted only when it is past the idle
        limit and is equivalent to the default: nothing consumed yet, or
        a window the next consume would reset anyway. Records with an
        active extension hold purchased allowance and are never evicted.
        """
        if self.max_idle_ms is None or record.is_extended:
            return False
        age = now - record.start
        if age < self.max_idle_ms:
            return False
        if record.count == 0:
            return True
        return age >= WINDOW_MS and record.count >= BASE_LIMIT
