"""
Runtime configuration

Settings are read from the environment (and an optional .env file) once and
cached. Tests call refresh_settings() after patching the environment.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional
from zoneinfo import ZoneInfo

from dotenv import find_dotenv, load_dotenv


def _load_env() -> None:
    env_path = find_dotenv(usecwd=True)
    if env_path:
        load_dotenv(env_path, override=False)


_load_env()


def _get_env(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key)
    if value is None or value == "":
        return default
    return value


def _get_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_list(key: str, default: List[str]) -> List[str]:
    value = os.getenv(key)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    # Server
    database_url: Optional[str] = field(default_factory=lambda: _get_env("DATABASE_URL"))
    database_name: str = field(default_factory=lambda: _get_env("DATABASE_NAME", "storefront"))
    port: int = field(default_factory=lambda: _get_int("PORT", 8000))
    cors_origins: List[str] = field(default_factory=lambda: _get_list("CORS_ORIGINS", ["*"]))
    store_timezone: str = field(default_factory=lambda: _get_env("STORE_TIMEZONE", "Asia/Kolkata"))
    cart_max_bytes: int = field(default_factory=lambda: _get_int("CART_MAX_BYTES", 45000))
    user_id_prefix: str = field(default_factory=lambda: _get_env("USER_ID_PREFIX", "U"))
    order_id_prefix: str = field(default_factory=lambda: _get_env("ORDER_ID_PREFIX", "SJ"))
    log_level: str = field(default_factory=lambda: _get_env("LOG_LEVEL", "INFO"))
    log_dir: Optional[str] = field(default_factory=lambda: _get_env("LOG_DIR"))

    # Client
    api_url: str = field(default_factory=lambda: _get_env("STOREFRONT_API_URL", "http://localhost:8000/api"))
    cart_sync_interval_seconds: float = field(
        default_factory=lambda: _get_float("CART_SYNC_INTERVAL_SECONDS", 5 * 60.0)
    )
    client_state_path: str = field(
        default_factory=lambda: _get_env(
            "CLIENT_STATE_PATH", os.path.join(os.path.expanduser("~"), ".storefront", "state.json")
        )
    )

    @property
    def timezone(self) -> ZoneInfo:
        return ZoneInfo(self.store_timezone)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def refresh_settings() -> Settings:
    """Re-read the environment, replacing the cached settings."""
    global _settings
    _settings = Settings()
    return _settings


__all__ = ["Settings", "get_settings", "refresh_settings"]
