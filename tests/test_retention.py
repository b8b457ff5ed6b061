"""
Tests for the record retention policy.
"""

import pytest

from quota_guard.core.limits import BASE_LIMIT, WINDOW_MS
from quota_guard.core.retention import MS_PER_DAY, RetentionPolicy
from quota_guard.storage.models import QuotaRecord

NOW = 1_700_000_000_000


class TestRetentionPolicy:
    """Test eviction decisions."""

    def test_default_keeps_forever(self):
        policy = RetentionPolicy()
        assert policy.keeps_forever
        assert not policy.should_evict(QuotaRecord(start=0, count=1), NOW)

    def test_from_days(self):
        assert RetentionPolicy.from_days(None).keeps_forever
        assert RetentionPolicy.from_days(1.5).max_idle_ms == int(1.5 * MS_PER_DAY)

    def test_idle_record_evicted(self):
        policy = RetentionPolicy(max_idle_ms=1000)
        assert policy.should_evict(QuotaRecord(start=NOW - 1000), NOW)
        assert not policy.should_evict(QuotaRecord(start=NOW - 999), NOW)

    def test_old_start_with_usage_kept(self):
        """An old window start alone does not make a consuming account idle."""
        policy = RetentionPolicy.from_days(400)
        record = QuotaRecord(start=NOW - 401 * MS_PER_DAY, count=40)
        assert not policy.should_evict(record, NOW)

    def test_unfinished_expired_window_kept(self):
        """Below the limit the window never resets, so the usage must survive."""
        policy = RetentionPolicy(max_idle_ms=1000)
        record = QuotaRecord(start=NOW - WINDOW_MS, count=BASE_LIMIT - 1)
        assert not policy.should_evict(record, NOW)

    def test_expired_window_at_limit_evicted(self):
        """The next consume would reset this record, so dropping it changes nothing."""
        policy = RetentionPolicy(max_idle_ms=1000)
        record = QuotaRecord(start=NOW - WINDOW_MS, count=BASE_LIMIT)
        assert policy.should_evict(record, NOW)

    def test_extended_record_never_evicted(self):
        policy = RetentionPolicy(max_idle_ms=1)
        record = QuotaRecord(start=0, extended_quota=5, original_month_start=0)
        assert not policy.should_evict(record, NOW)

    def test_non_positive_limit_rejected(self):
        with pytest.raises(ValueError):
            RetentionPolicy(max_idle_ms=0)
