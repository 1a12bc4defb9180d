"""Configuration loading for the ConfigCat client."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Optional

from .infra.fetcher import DEFAULT_BASE_URL

POLLING_MODE_AUTO: Final[str] = "auto"
POLLING_MODE_LAZY: Final[str] = "lazy"
POLLING_MODE_MANUAL: Final[str] = "manual"
POLLING_MODES: Final[frozenset[str]] = frozenset({POLLING_MODE_AUTO, POLLING_MODE_LAZY, POLLING_MODE_MANUAL})

DEFAULT_POLL_INTERVAL_SECONDS: Final[int] = 60
DEFAULT_CACHE_TTL_SECONDS: Final[int] = 60
DEFAULT_REQUEST_TIMEOUT: Final[float] = 10.0


class ConfigError(RuntimeError):
    """Raised when required environment configuration is missing or invalid."""


@dataclass(slots=True)
class ClientConfig:
    api_key: str
    base_url: str = DEFAULT_BASE_URL
    polling_mode: str = POLLING_MODE_AUTO
    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL_SECONDS
    max_init_wait_time_seconds: Optional[float] = None
    cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS
    lazy_async_refresh: bool = False
    max_wait_time_for_sync_calls: int = 0
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    cache_path: Optional[Path] = None


def _require_env(key: str) -> str:
    value = os.getenv(key)
    if not value or not value.strip():
        raise ConfigError(f"Environment variable '{key}' must be set")
    return value.strip()


def _parse_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    raise ConfigError(f"Environment variable '{name}' must be a boolean flag")


def _parse_positive_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None:
        return max(default, minimum)
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"Environment variable '{name}' must be an integer") from exc
    if value < minimum:
        raise ConfigError(f"Environment variable '{name}' must be >= {minimum}")
    return value


def _parse_optional_float(name: str, minimum: float = 0.0) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"Environment variable '{name}' must be a float") from exc
    if value < minimum:
        raise ConfigError(f"Environment variable '{name}' must be >= {minimum}")
    return value


def _parse_polling_mode(value: Optional[str]) -> str:
    if value is None:
        return POLLING_MODE_AUTO
    mode = value.strip().lower()
    if mode not in POLLING_MODES:
        raise ConfigError("CONFIGCAT_POLLING_MODE must be one of 'auto', 'lazy' or 'manual'")
    return mode


def _parse_max_wait() -> int:
    value = _parse_positive_int("CONFIGCAT_MAX_WAIT", 0, minimum=0)
    if value != 0 and value < 2:
        raise ConfigError("CONFIGCAT_MAX_WAIT must be 0 or at least 2 seconds")
    return value


def load_config() -> ClientConfig:
    api_key = _require_env("CONFIGCAT_API_KEY")
    base_url = (os.getenv("CONFIGCAT_BASE_URL") or DEFAULT_BASE_URL).strip().rstrip("/") or DEFAULT_BASE_URL

    request_timeout = _parse_optional_float("CONFIGCAT_REQUEST_TIMEOUT", minimum=0.1)
    cache_path_raw = os.getenv("CONFIGCAT_CACHE_PATH")
    cache_path = Path(cache_path_raw).expanduser() if cache_path_raw and cache_path_raw.strip() else None

    return ClientConfig(
        api_key=api_key,
        base_url=base_url,
        polling_mode=_parse_polling_mode(os.getenv("CONFIGCAT_POLLING_MODE")),
        poll_interval_seconds=_parse_positive_int("CONFIGCAT_POLL_INTERVAL", DEFAULT_POLL_INTERVAL_SECONDS, minimum=1),
        max_init_wait_time_seconds=_parse_optional_float("CONFIGCAT_MAX_INIT_WAIT"),
        cache_ttl_seconds=_parse_positive_int("CONFIGCAT_CACHE_TTL", DEFAULT_CACHE_TTL_SECONDS, minimum=1),
        lazy_async_refresh=_parse_bool_env("CONFIGCAT_LAZY_ASYNC_REFRESH", False),
        max_wait_time_for_sync_calls=_parse_max_wait(),
        request_timeout=request_timeout if request_timeout is not None else DEFAULT_REQUEST_TIMEOUT,
        cache_path=cache_path,
    )
