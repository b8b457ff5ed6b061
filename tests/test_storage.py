"""
Unit tests for storage layer.

Tests record healing, failure policies and the file-backed stores.
"""

import json
import os
import tempfile

import pytest

from quota_guard.storage.backends import (
    JsonFileBackend,
    MemoryBackend,
    SqliteBackend,
    StorageBackend
)
from quota_guard.storage.db import get_connection
from quota_guard.storage.models import QuotaRecord, iso_marker
from quota_guard.storage.repository import (
    FailurePolicy,
    QuotaRepository,
    StorageError,
    parse_record,
    record_key
)

NOW = 1_700_000_000_000


class FailingBackend(StorageBackend):
    """Backend whose every I/O operation fails."""

    def __init__(self):
        self.save_attempts = 0

    def initialize(self):
        raise OSError("disk unavailable")

    def load_all(self):
        raise OSError("disk unavailable")

    def save_all(self, data):
        self.save_attempts += 1
        raise OSError("disk unavailable")


class FlakyLoadBackend(MemoryBackend):
    """In-memory backend whose next ``fail_loads`` loads fail."""

    def __init__(self, initial=None, fail_loads=1):
        super().__init__(initial)
        self.fail_loads = fail_loads

    def load_all(self):
        if self.fail_loads:
            self.fail_loads -= 1
            raise OSError("transient read error")
        return super().load_all()


class TestQuotaRecord:
    """Test the record model."""

    def test_negative_counters_rejected(self):
        with pytest.raises(ValueError):
            QuotaRecord(start=NOW, count=-1)
        with pytest.raises(ValueError):
            QuotaRecord(start=NOW, extended_quota=-1)

    def test_stored_keys(self):
        """Stored form uses the camelCase keys of quota_data.json."""
        record = QuotaRecord(
            start=NOW, count=3, extended_quota=100,
            original_month_start=NOW - 1, extended_at="2023-11-14T22:13:20.000Z"
        )
        assert record.to_dict() == {
            "start": NOW,
            "count": 3,
            "extendedQuota": 100,
            "originalMonthStart": NOW - 1,
            "extendedAt": "2023-11-14T22:13:20.000Z",
        }

    def test_iso_marker_format(self):
        assert iso_marker(0) == "1970-01-01T00:00:00.000Z"
        assert iso_marker(1_500) == "1970-01-01T00:00:01.500Z"


class TestParseRecord:
    """Test decoding and healing of stored records."""

    def test_parses_json_text(self):
        record = parse_record('{"start": 5, "count": 2}')
        assert record == QuotaRecord(start=5, count=2)

    def test_accepts_decoded_object(self):
        record = parse_record({"start": 5, "count": 2, "extendedQuota": 10, "originalMonthStart": 4})
        assert record.extended_quota == 10
        assert record.original_month_start == 4

    @pytest.mark.parametrize("raw", [
        "",
        "not json",
        "[1, 2]",
        '"just a string"',
        '{"count": 1}',
        '{"start": "yesterday", "count": 1}',
        '{"start": 1, "count": -3}',
        '{"start": 1, "count": true}',
        '{"start": NaN, "count": 1}',
        '{"start": -5, "count": 1}',
    ])
    def test_unusable_records_return_none(self, raw):
        assert parse_record(raw) is None

    def test_bad_optional_fields_degrade(self):
        record = parse_record('{"start": 5, "count": 2, "extendedQuota": "lots", "originalMonthStart": "x"}')
        assert record.extended_quota == 0
        assert record.original_month_start is None

    def test_extension_without_anchor_is_anchored_at_start(self):
        record = parse_record('{"start": 5, "count": 2, "extendedQuota": 10, "originalMonthStart": null}')
        assert record.original_month_start == 5


class TestRepository:
    """Test the persistence port."""

    def test_missing_record_is_fresh(self):
        repo = QuotaRepository(MemoryBackend())
        assert repo.read_record("acct", NOW) == QuotaRecord(start=NOW)

    def test_corrupt_record_healed_silently(self):
        backend = MemoryBackend({record_key("acct"): "{broken"})
        repo = QuotaRepository(backend)
        assert repo.read_record("acct", NOW) == QuotaRecord(start=NOW)
        assert backend.save_count == 0

    def test_write_keeps_other_records(self):
        backend = MemoryBackend()
        repo = QuotaRepository(backend)
        repo.write_record("a", QuotaRecord(start=1, count=1))
        repo.write_record("b", QuotaRecord(start=2, count=2))
        assert set(backend.load_all()) == {"quota:a", "quota:b"}
        assert repo.read_record("a", NOW).count == 1

    def test_iter_and_delete_records(self):
        backend = MemoryBackend({"other:key": "x"})
        repo = QuotaRepository(backend)
        repo.write_record("a", QuotaRecord(start=1))
        repo.write_record("b", QuotaRecord(start=2))
        assert sorted(account for account, _ in repo.iter_records()) == ["a", "b"]
        assert repo.count_records() == 2
        assert repo.delete_records(["a", "missing"]) == 1
        assert repo.count_records() == 1
        assert "other:key" in backend.load_all()

    def test_fail_open_read_returns_default(self):
        repo = QuotaRepository(FailingBackend(), FailurePolicy.FAIL_OPEN)
        assert repo.read_record("acct", NOW) == QuotaRecord(start=NOW)

    def test_fail_open_write_is_swallowed(self):
        backend = FailingBackend()
        repo = QuotaRepository(backend, FailurePolicy.FAIL_OPEN)
        repo.write_record("acct", QuotaRecord(start=NOW))
        assert backend.save_attempts == 1

    def test_fail_open_write_after_failed_load_drops_other_records(self):
        """Under fail-open a failed load is treated as an empty store."""
        backend = FlakyLoadBackend(
            {record_key("a"): json.dumps(QuotaRecord(start=1, count=7).to_dict())}
        )
        repo = QuotaRepository(backend, FailurePolicy.FAIL_OPEN)
        repo.write_record("b", QuotaRecord(start=2, count=1))
        assert set(backend.load_all()) == {record_key("b")}
        assert repo.read_record("a", NOW) == QuotaRecord(start=NOW)

    def test_fail_closed_write_after_failed_load_keeps_store(self):
        initial = {record_key("a"): json.dumps(QuotaRecord(start=1, count=7).to_dict())}
        backend = FlakyLoadBackend(initial)
        repo = QuotaRepository(backend, FailurePolicy.FAIL_CLOSED)
        with pytest.raises(StorageError):
            repo.write_record("b", QuotaRecord(start=2, count=1))
        assert backend.save_count == 0
        assert backend.load_all() == initial

    def test_fail_closed_raises(self):
        repo = QuotaRepository(FailingBackend(), FailurePolicy.FAIL_CLOSED)
        with pytest.raises(StorageError):
            repo.read_record("acct", NOW)
        with pytest.raises(StorageError):
            repo.save_all({})


class TestJsonFileBackend:
    """Test the JSON file store."""

    def test_missing_file_loads_empty(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            backend = JsonFileBackend(os.path.join(temp_dir, "quota_data.json"))
            assert backend.load_all() == {}

    def test_round_trip_across_instances(self):
        """Records persist across repository instances."""
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "quota_data.json")
            QuotaRepository(JsonFileBackend(path)).write_record(
                "acct", QuotaRecord(start=NOW, count=4)
            )
            record = QuotaRepository(JsonFileBackend(path)).read_record("acct", NOW + 1)
            assert record == QuotaRecord(start=NOW, count=4)
            assert [f for f in os.listdir(temp_dir)] == ["quota_data.json"]

    def test_reads_legacy_file_format(self):
        """Values stored as JSON text inside the document are understood."""
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "quota_data.json")
            with open(path, "w", encoding="utf-8") as f:
                json.dump({
                    "quota:u45h": json.dumps({
                        "start": 10, "count": 31, "extendedQuota": 100,
                        "extendedAt": "2024-01-01T00:00:00.000Z", "originalMonthStart": 10
                    })
                }, f, indent=2)
            record = QuotaRepository(JsonFileBackend(path)).read_record("u45h", NOW)
            assert record.count == 31
            assert record.extended_quota == 100
            assert record.extended_at == "2024-01-01T00:00:00.000Z"

    def test_non_object_document_fails_open(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "quota_data.json")
            with open(path, "w", encoding="utf-8") as f:
                f.write("[]")
            repo = QuotaRepository(JsonFileBackend(path))
            assert repo.read_record("acct", NOW) == QuotaRecord(start=NOW)

    def test_initialize_creates_file(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "nested", "quota_data.json")
            JsonFileBackend(path).initialize()
            with open(path, encoding="utf-8") as f:
                assert json.load(f) == {}


class TestSqliteBackend:
    """Test the SQLite key/value store."""

    def test_schema_creation(self):
        """Verify table is created correctly."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            SqliteBackend(db_path).initialize()

            conn = get_connection(db_path)
            try:
                cursor = conn.execute("PRAGMA table_info(quota_record)")
                column_names = [col[1] for col in cursor.fetchall()]
                assert column_names == ["key", "value"]
            finally:
                conn.close()

    def test_missing_table_loads_empty(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            backend = SqliteBackend(os.path.join(temp_dir, "test.db"))
            assert backend.load_all() == {}

    def test_round_trip_through_repository(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            repo = QuotaRepository(SqliteBackend(db_path), FailurePolicy.FAIL_CLOSED)
            repo.write_record("a", QuotaRecord(start=NOW, count=2))
            repo.write_record("b", QuotaRecord(start=NOW, count=3, extended_quota=5, original_month_start=NOW))

            fresh = QuotaRepository(SqliteBackend(db_path))
            assert fresh.read_record("a", 0).count == 2
            assert fresh.read_record("b", 0).extended_quota == 5
            assert fresh.count_records() == 2
