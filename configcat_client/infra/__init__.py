"""Caching, fetching and refresh coordination primitives."""

from .async_result import AsyncResult, AsyncResultTimeout, DoubleResolutionError
from .cache import ConfigCache, FileConfigCache, InMemoryConfigCache
from .fetcher import ConfigFetcher, FetchError, FetchErrorKind
from .policy import (
    AlwaysFetchPolicy,
    AutoPollingPolicy,
    ExpiringCachePolicy,
    ManualPollingPolicy,
    PolicyClosedError,
    RefreshPolicy,
    RefreshResult,
)

__all__ = [
    "AlwaysFetchPolicy",
    "AsyncResult",
    "AsyncResultTimeout",
    "AutoPollingPolicy",
    "ConfigCache",
    "ConfigFetcher",
    "DoubleResolutionError",
    "ExpiringCachePolicy",
    "FetchError",
    "FetchErrorKind",
    "FileConfigCache",
    "InMemoryConfigCache",
    "ManualPollingPolicy",
    "PolicyClosedError",
    "RefreshPolicy",
    "RefreshResult",
]
