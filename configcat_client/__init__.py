"""Client library for ConfigCat feature flags and settings."""

from .client import ConfigCatClient, PolicyFactory
from .config import ClientConfig, ConfigError, load_config
from .infra import (
    AlwaysFetchPolicy,
    AsyncResult,
    AsyncResultTimeout,
    AutoPollingPolicy,
    ConfigCache,
    ConfigFetcher,
    DoubleResolutionError,
    ExpiringCachePolicy,
    FetchError,
    FetchErrorKind,
    FileConfigCache,
    InMemoryConfigCache,
    ManualPollingPolicy,
    PolicyClosedError,
    RefreshPolicy,
    RefreshResult,
)
from .parser import ConfigParser, ParseError, SettingValue, User

__all__ = [
    "AlwaysFetchPolicy",
    "AsyncResult",
    "AsyncResultTimeout",
    "AutoPollingPolicy",
    "ClientConfig",
    "ConfigCache",
    "ConfigCatClient",
    "ConfigError",
    "ConfigFetcher",
    "ConfigParser",
    "DoubleResolutionError",
    "ExpiringCachePolicy",
    "FetchError",
    "FetchErrorKind",
    "FileConfigCache",
    "InMemoryConfigCache",
    "ManualPollingPolicy",
    "ParseError",
    "PolicyClosedError",
    "PolicyFactory",
    "RefreshPolicy",
    "RefreshResult",
    "SettingValue",
    "User",
    "load_config",
]
