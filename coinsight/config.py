"""
Configuration loading and validation.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from coinsight.database.models import MAX_NOTIFICATIONS

STORE_BACKENDS = ("sqlite", "rest")


class ConfigValidationError(Exception):
    """Raised when configuration is invalid."""

    pass


@dataclass
class StoreConfig:
    """Record store configuration."""

    backend: str = "sqlite"
    path: str = "data/coinsight.db"
    url: str = ""
    api_key: str = ""
    timeout: float = 10


@dataclass
class AlertsConfig:
    """Price alert check configuration."""

    check_interval_seconds: int = 60
    suppress_duplicate_triggers: bool = True
    currency: str = "usd"


@dataclass
class NotificationsConfig:
    """Notification log configuration."""

    max_notifications: int = MAX_NOTIFICATIONS


@dataclass
class LegacyConfig:
    """Legacy local snapshot location."""

    path: str = "data/legacy.json"


@dataclass
class PricesConfig:
    """Market price API configuration."""

    base_url: str = "https://api.coingecko.com/api/v3"
    timeout: float = 10


@dataclass
class AdvancedConfig:
    """Advanced configuration."""

    log_level: str = "INFO"
    max_retries: int = 3
    retry_delay_seconds: int = 5


@dataclass
class AppConfig:
    """Main application configuration."""

    store: StoreConfig = field(default_factory=StoreConfig)
    alerts: AlertsConfig = field(default_factory=AlertsConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    legacy: LegacyConfig = field(default_factory=LegacyConfig)
    prices: PricesConfig = field(default_factory=PricesConfig)
    advanced: AdvancedConfig = field(default_factory=AdvancedConfig)


def _substitute_env_vars(value: Any) -> Any:
    """Substitute environment variables in string values."""
    if isinstance(value, str):
        # Match ${VAR_NAME} pattern
        pattern = r"\$\{([^}]+)\}"
        matches = re.findall(pattern, value)
        for var_name in matches:
            env_value = os.environ.get(var_name, "")
            value = value.replace(f"${{{var_name}}}", env_value)
        return value
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _validate_config(config_dict: dict[str, Any]) -> None:
    """Validate configuration values."""
    store = config_dict.get("store") or {}
    backend = store.get("backend", "sqlite")
    if backend not in STORE_BACKENDS:
        raise ConfigValidationError(f"Unknown store backend: {backend}")

    if backend == "sqlite":
        db_path = store.get("path", StoreConfig.path)
        if not db_path:
            raise ConfigValidationError("Database path is required")
        if db_path != ":memory:":
            parent = Path(db_path).parent
            if parent.exists() and not os.access(parent, os.W_OK):
                raise ConfigValidationError(f"Database path not writable: {parent}")
    elif not store.get("url"):
        raise ConfigValidationError("Store url is required for the rest backend")

    alerts = config_dict.get("alerts") or {}
    interval = alerts.get("check_interval_seconds", AlertsConfig.check_interval_seconds)
    if not isinstance(interval, int) or interval <= 0:
        raise ConfigValidationError("alerts.check_interval_seconds must be positive")

    notifications = config_dict.get("notifications") or {}
    capacity = notifications.get("max_notifications", MAX_NOTIFICATIONS)
    if not isinstance(capacity, int) or capacity <= 0:
        raise ConfigValidationError("notifications.max_notifications must be positive")


def load_config(config_path: str) -> AppConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        AppConfig instance

    Raises:
        ConfigValidationError: If configuration is invalid
        FileNotFoundError: If config file doesn't exist
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path) as f:
        raw_config = yaml.safe_load(f) or {}

    # Substitute environment variables
    config_dict = _substitute_env_vars(raw_config)

    _validate_config(config_dict)

    try:
        return AppConfig(
            store=StoreConfig(**(config_dict.get("store") or {})),
            alerts=AlertsConfig(**(config_dict.get("alerts") or {})),
            notifications=NotificationsConfig(
                **(config_dict.get("notifications") or {})
            ),
            legacy=LegacyConfig(**(config_dict.get("legacy") or {})),
            prices=PricesConfig(**(config_dict.get("prices") or {})),
            advanced=AdvancedConfig(**(config_dict.get("advanced") or {})),
        )
    except TypeError as e:
        raise ConfigValidationError(f"Unknown configuration key: {e}") from e
