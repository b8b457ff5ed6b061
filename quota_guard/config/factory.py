"""
Factory for wiring quota components from configuration.
"""

from typing import Callable, Optional

from .loader import AppConfig, BackendKind
from quota_guard.core.ban_list import BanList
from quota_guard.core.ledger import QuotaLedger
from quota_guard.core.query import QuotaQuery
from quota_guard.core.retention import RetentionPolicy
from quota_guard.storage.backends import (
    JsonFileBackend,
    MemoryBackend,
    SqliteBackend,
    StorageBackend
)
from quota_guard.storage.models import now_ms
from quota_guard.storage.repository import QuotaRepository


def build_backend(config: AppConfig) -> StorageBackend:
    """Instantiate the configured storage backend."""
    storage = config.storage
    if storage.backend is BackendKind.SQLITE:
        return SqliteBackend(storage.path)
    if storage.backend is BackendKind.MEMORY:
        return MemoryBackend()
    return JsonFileBackend(storage.path)


def build_ledger(
    config: Optional[AppConfig] = None,
    clock: Callable[[], int] = now_ms
) -> QuotaLedger:
    """Create a QuotaLedger backed by the configured store."""
    config = config or AppConfig.default()
    repository = QuotaRepository(
        backend=build_backend(config),
        failure_policy=config.storage.failure_policy
    )
    return QuotaLedger(
        repository,
        clock=clock,
        retention=RetentionPolicy.from_days(config.retention.max_idle_days)
    )


def build_query(
    config: Optional[AppConfig] = None,
    ledger: Optional[QuotaLedger] = None
) -> QuotaQuery:
    """Create a ban-aware QuotaQuery."""
    config = config or AppConfig.default()
    return QuotaQuery(ledger or build_ledger(config), BanList(config.banned_ids))
