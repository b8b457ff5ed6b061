"""
Configuration management and loading.

Handles storage, ban list and retention settings.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple

import yaml

from quota_guard.core.ban_list import DEFAULT_BANNED_IDS
from quota_guard.storage.repository import FailurePolicy


class BackendKind(Enum):
    """Supported storage backends."""
    JSON = "json"
    SQLITE = "sqlite"
    MEMORY = "memory"


DEFAULT_PATHS = {
    BackendKind.JSON: "quota_data.json",
    BackendKind.SQLITE: "quota_guard.db",
    BackendKind.MEMORY: "",
}


@dataclass(frozen=True)
class StorageConfig:
    """Where quota records live and how store failures are handled."""
    backend: BackendKind = BackendKind.JSON
    path: str = DEFAULT_PATHS[BackendKind.JSON]
    failure_policy: FailurePolicy = FailurePolicy.FAIL_OPEN

    def __post_init__(self):
        """Validate a path is given for file-backed stores."""
        if self.backend is not BackendKind.MEMORY and not self.path:
            raise ValueError(f"storage.path is required for the {self.backend.value} backend")


@dataclass(frozen=True)
class RetentionConfig:
    """Idle-record eviction; None keeps records forever."""
    max_idle_days: Optional[float] = None

    def __post_init__(self):
        """Validate retention window is positive."""
        if self.max_idle_days is not None and self.max_idle_days <= 0:
            raise ValueError("max_idle_days must be > 0")


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    storage: StorageConfig = field(default_factory=StorageConfig)
    banned_ids: Tuple[str, ...] = DEFAULT_BANNED_IDS
    retention: RetentionConfig = field(default_factory=RetentionConfig)

    @classmethod
    def default(cls) -> "AppConfig":
        return cls()


def load_app_config(path: str) -> AppConfig:
    """Load and validate application configuration from YAML file.

    Unknown keys are rejected so a typo never silently falls back to a
    default such as fail-open storage.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'storage', 'ban_list', 'retention'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    return AppConfig(
        storage=_parse_storage(_section(raw_config, 'storage')),
        banned_ids=_parse_ban_list(_section(raw_config, 'ban_list')),
        retention=_parse_retention(_section(raw_config, 'retention'))
    )


def _section(raw_config: Dict, name: str) -> Dict:
    data = raw_config.get(name) or {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    return data


def _check_keys(data: Dict, allowed: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _parse_storage(data: Dict) -> StorageConfig:
    """Parse and validate the storage section.

    Args:
        data: Storage configuration data

    Returns:
        Validated StorageConfig

    Raises:
        ValueError: If configuration is invalid
    """
    _check_keys(data, {'backend', 'path', 'failure_policy'}, "storage")

    backend_str = data.get('backend', BackendKind.JSON.value)
    if not isinstance(backend_str, str):
        raise ValueError("'backend' in storage must be a string")
    try:
        backend = BackendKind(backend_str.lower())
    except ValueError:
        valid = [kind.value for kind in BackendKind]
        raise ValueError(f"'backend' in storage must be one of: {valid}")

    path = data.get('path', DEFAULT_PATHS[backend])
    if not isinstance(path, str):
        raise ValueError("'path' in storage must be a string")

    policy_str = data.get('failure_policy', FailurePolicy.FAIL_OPEN.value)
    if not isinstance(policy_str, str):
        raise ValueError("'failure_policy' in storage must be a string")
    try:
        failure_policy = FailurePolicy(policy_str.lower())
    except ValueError:
        valid = [policy.value for policy in FailurePolicy]
        raise ValueError(f"'failure_policy' in storage must be one of: {valid}")

    return StorageConfig(backend=backend, path=path, failure_policy=failure_policy)


def _parse_ban_list(data: Dict) -> Tuple[str, ...]:
    """Parse the ban list section.

    ``ids`` replaces the built-in list, ``extra_ids`` appends to it.
    """
    _check_keys(data, {'ids', 'extra_ids'}, "ban_list")

    ids = DEFAULT_BANNED_IDS
    if 'ids' in data:
        ids = tuple(_parse_id_list(data['ids'], "ban_list.ids"))
    if 'extra_ids' in data:
        ids = ids + tuple(_parse_id_list(data['extra_ids'], "ban_list.extra_ids"))
    return ids


def _parse_id_list(value, path: str):
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"'{path}' must be a list")
    for item in value:
        if not isinstance(item, str) or not item:
            raise ValueError(f"'{path}' entries must be non-empty strings")
    return value


def _parse_retention(data: Dict) -> RetentionConfig:
    _check_keys(data, {'max_idle_days'}, "retention")

    days = data.get('max_idle_days')
    if days is not None and (isinstance(days, bool) or not isinstance(days, (int, float))):
        raise ValueError("'max_idle_days' in retention must be a number")
    return RetentionConfig(max_idle_days=float(days) if days is not None else None)
