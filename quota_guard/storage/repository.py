"""
Repository pattern for data access.

Handles record (de)serialization, corrupt-record healing and the
explicit policy applied when the backing store fails.
"""

import json
import logging
import math
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .backends import JsonFileBackend, StorageBackend
from .models import QuotaRecord


logger = logging.getLogger(__name__)

KEY_PREFIX = "quota:"


class FailurePolicy(Enum):
    """What to do when the backing store cannot be read or written."""
    FAIL_OPEN = "fail_open"      # Log and carry on as if the store were empty/unchanged
    FAIL_CLOSED = "fail_closed"  # Raise StorageError


class StorageError(RuntimeError):
    """Raised for store I/O failures under FailurePolicy.FAIL_CLOSED."""


def record_key(account_id: str) -> str:
    """Namespaced store key for an account."""
    return KEY_PREFIX + str(account_id)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def parse_record(raw: Any) -> Optional[QuotaRecord]:
    """Decode a stored record, returning None when it is unusable.

    ``start`` and ``count`` must be non-negative numbers; anything else
    makes the whole record unusable. Optional fields degrade on their own:
    a bad ``extendedQuota`` becomes 0, a bad ``originalMonthStart`` is
    dropped, and an extended record without an anchor is anchored at its
    own ``start``.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return None
    if not isinstance(raw, dict):
        return None

    start = raw.get("start")
    count = raw.get("count")
    if not _is_number(start) or not _is_number(count) or start < 0 or count < 0:
        return None

    extended_quota = raw.get("extendedQuota")
    if not _is_number(extended_quota) or extended_quota < 0:
        extended_quota = 0

    original_month_start = raw.get("originalMonthStart")
    if not _is_number(original_month_start):
        original_month_start = None
    if extended_quota > 0 and original_month_start is None:
        original_month_start = int(start)

    extended_at = raw.get("extendedAt")
    if extended_at is not None and not isinstance(extended_at, str):
        extended_at = str(extended_at)

    return QuotaRecord(
        start=int(start),
        count=int(count),
        extended_quota=int(extended_quota),
        original_month_start=int(original_month_start) if original_month_start is not None else None,
        extended_at=extended_at
    )


class QuotaRepository:
    """Persistence port used by the quota ledger.

    Every operation loads the whole store and, for writes, saves the whole
    store back. Callers must serialize read-modify-write cycles through ``lock``,
    which is shared by every repository pointing at the same store.
    """

    def __init__(
        self,
        backend: Optional[StorageBackend] = None,
        failure_policy: FailurePolicy = FailurePolicy.FAIL_OPEN
    ):
        """Initialize the repository.

        Args:
            backend: Storage backend (defaults to ``quota_data.json``)
            failure_policy: Behaviour on backend I/O errors
        """
        self.backend = backend or JsonFileBackend()
        self.failure_policy = failure_policy

    @property
    def lock(self):
        """Store-wide lock shared by every repository on the same store."""
        return self.backend.lock

    def load_all(self) -> Dict[str, Any]:
        """Load every stored record.

        Returns:
            Mapping of store key to serialized record; empty when the store
            is unreadable and the policy is fail-open

        Raises:
            StorageError: If the store is unreadable under fail-closed
        """
        try:
            return self.backend.load_all()
        except Exception as e:
            if self.failure_policy is FailurePolicy.FAIL_CLOSED:
                raise StorageError(f"Failed to load quota store {self.backend.describe()}: {e}") from e
            logger.error("Error loading quota store %s: %s", self.backend.describe(), e)
            return {}

    def save_all(self, data: Dict[str, Any]) -> None:
        """Persist every record, replacing the previous store contents.

        Raises:
            StorageError: If the store is unwritable under fail-closed
        """
        try:
            self.backend.save_all(data)
        except Exception as e:
            if self.failure_policy is FailurePolicy.FAIL_CLOSED:
                raise StorageError(f"Failed to save quota store {self.backend.describe()}: {e}") from e
            logger.error("Error saving quota store %s: %s", self.backend.describe(), e)

    def read_record(self, account_id: str, now: int) -> QuotaRecord:
        """Return the stored record for an account, or a fresh default.

        Corrupt records are healed to the default and never raise.
        """
        raw = self.load_all().get(record_key(account_id))
        if raw is None:
            return QuotaRecord.fresh(now)
        record = parse_record(raw)
        if record is None:
            logger.warning("Discarding malformed quota record for %s", account_id)
            return QuotaRecord.fresh(now)
        return record

    def write_record(self, account_id: str, record: QuotaRecord) -> None:
        """Store one record, keeping every other record in the store."""
        data = self.load_all()
        data[record_key(account_id)] = json.dumps(record.to_dict())
        self.save_all(data)

    def iter_records(self) -> List[Tuple[str, QuotaRecord]]:
        """All parseable records as ``(account_id, record)`` pairs."""
        records = []
        for key, raw in self.load_all().items():
            if not key.startswith(KEY_PREFIX):
                continue
            record = parse_record(raw)
            if record is not None:
                records.append((key[len(KEY_PREFIX):], record))
        return records

    def delete_records(self, account_ids: Iterable[str]) -> int:
        """Remove records for the given accounts.

        Returns:
            Number of records actually removed
        """
        data = self.load_all()
        removed = 0
        for account_id in account_ids:
            if data.pop(record_key(account_id), None) is not None:
                removed += 1
        if removed:
            self.save_all(data)
        return removed

    def count_records(self) -> int:
        return sum(1 for key in self.load_all() if key.startswith(KEY_PREFIX))

