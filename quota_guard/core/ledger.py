"""
Quota ledger state machine.

Owns every transition of a per-account QuotaRecord.

States:
1. Normal (extended_quota == 0) - the window resets only once it has
   elapsed AND the base limit has been reached
2. Extended (extended_quota > 0) - usage accumulates until the extended
   ceiling is hit, then the extension rolls over back to Normal

Consumption is never refused here; enforcing the ceiling is up to the
caller.
"""

import logging
from dataclasses import replace
from typing import Callable, Optional

from .limits import BASE_LIMIT, DEFAULT_GRANT_AMOUNT, WINDOW_MS
from .retention import RetentionPolicy
from quota_guard.storage.models import QuotaRecord, iso_marker, now_ms
from quota_guard.storage.repository import QuotaRepository


logger = logging.getLogger(__name__)

def apply_consume(record: QuotaRecord, now: int) -> QuotaRecord:
    """Return the record after consuming one unit at ``now``."""
    if not record.is_extended:
        if now - record.start >= WINDOW_MS and record.count >= BASE_LIMIT:
            record = replace(record, start=now, count=0)
        return replace(record, count=record.count + 1)

    record = replace(record, count=record.count + 1)
    if record.count < BASE_LIMIT + record.extended_quota:
        return record

    anchor = record.original_month_start
    if anchor is None:
        anchor = record.start
    windows_elapsed = (now - anchor) // WINDOW_MS
    if windows_elapsed >= 1:
        logger.info("Multiple windows elapsed, resetting immediately")
        start = now
    else:
        logger.info("Same window, resuming from original start")
        start = anchor
    return replace(
        record,
        start=start,
        count=0,
        extended_quota=0,
        original_month_start=None
    )


def apply_grant(record: QuotaRecord, amount: int, now: int) -> QuotaRecord:
    """Return the record after adding ``amount`` to its extension."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValueError(f"grant amount must be a positive integer, got {amount!r}")
    anchor = record.original_month_start
    if anchor is None:
        anchor = record.start
    return replace(
        record,
        extended_quota=record.extended_quota + amount,
        extended_at=iso_marker(now),
        original_month_start=anchor
    )


class QuotaLedger:
    """Reads and mutates quota records through a repository.

    Every read-modify-write cycle holds the store-wide lock from the
    repository: the whole store is loaded and saved, so two interleaved
    writers for different accounts, even through separate ledgers, would
    otherwise lose each other's update.
    """

    def __init__(
        self,
        repository: QuotaRepository,
        clock: Callable[[], int] = now_ms,
        retention: Optional[RetentionPolicy] = None
    ):
        """Initialize the ledger.

        Args:
            repository: Persistence port for quota records
            clock: Source of the current time in ms since the epoch
            retention: Eviction policy applied by ``prune`` (keep forever by default)
        """
        self.repository = repository
        self.clock = clock
        self.retention = retention or RetentionPolicy()

    def _now(self, now: Optional[int]) -> int:
        return self.clock() if now is None else now

    def peek(self, account_id: str, now: Optional[int] = None) -> QuotaRecord:
        """Current record, or the implicit default. Never writes."""
        return self.repository.read_record(account_id, self._now(now))

    def consume(self, account_id: str, now: Optional[int] = None) -> QuotaRecord:
        """Consume one unit for an account and persist the result.

        Args:
            account_id: Account to charge
            now: Override for the current time in ms

        Returns:
            The record as persisted
        """
        now = self._now(now)
        with self.repository.lock:
            record = apply_consume(self.repository.read_record(account_id, now), now)
            self.repository.write_record(account_id, record)
        logger.debug("Consumed 1 unit for %s (count=%d)", account_id, record.count)
        return record

    def grant(
        self,
        account_id: str,
        amount: int = DEFAULT_GRANT_AMOUNT,
        now: Optional[int] = None
    ) -> QuotaRecord:
        """Extend an account's ceiling by ``amount`` and persist the result.

        Grants are additive and not idempotent: applying the same grant
        twice doubles the extension.

        Args:
            account_id: Account to extend
            amount: Positive number of extra units
            now: Override for the current time in ms

        Returns:
            The record as persisted

        Raises:
            ValueError: If amount is not a positive integer
        """
        now = self._now(now)
        with self.repository.lock:
            record = apply_grant(self.repository.read_record(account_id, now), amount, now)
            self.repository.write_record(account_id, record)
        logger.info(
            "Extended quota for %s by %d (extended_quota=%d)",
            account_id, amount, record.extended_quota
        )
        return record

    def prune(self, now: Optional[int] = None) -> int:
        """Delete records the retention policy marks for eviction.

        Returns:
            Number of records removed
        """
        if self.retention.keeps_forever:
            return 0
        now = self._now(now)
        with self.repository.lock:
            stale = [
                account_id
                for account_id, record in self.repository.iter_records()
                if self.retention.should_evict(record, now)
            ]
            removed = self.repository.delete_records(stale)
        if removed:
            logger.info("Pruned %d idle quota records", removed)
        return removed

    def count_accounts(self) -> int:
        return self.repository.count_records()
