"""Synchronous and callback based facade over a refresh policy."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, TypeVar

import httpx

from .config import POLLING_MODE_LAZY, POLLING_MODE_MANUAL, ClientConfig
from .infra.async_result import AsyncResultTimeout
from .infra.cache import ConfigCache, FileConfigCache, InMemoryConfigCache
from .infra.fetcher import DEFAULT_BASE_URL, ConfigFetcher
from .infra.policy import (
    AutoPollingPolicy,
    ChangeListener,
    ExpiringCachePolicy,
    ManualPollingPolicy,
    RefreshPolicy,
    RefreshResult,
)
from .parser import ConfigParser, ParseError, User, matches_default_type


_LOGGER = logging.getLogger(__name__)

V = TypeVar("V")
PolicyFactory = Callable[[ConfigCache, ConfigFetcher], RefreshPolicy]


class ConfigCatClient:
    """Client reading settings from a configuration document served by ConfigCat.

    ``max_wait_time_for_sync_calls`` bounds how long the blocking getters
    wait for the policy; ``0`` waits indefinitely. When the wait runs out the
    last cached document is used instead.
    """

    def __init__(
        self,
        api_key: str,
        *,
        config_cache: Optional[ConfigCache] = None,
        policy_factory: Optional[PolicyFactory] = None,
        max_wait_time_for_sync_calls: int = 0,
        base_url: str = DEFAULT_BASE_URL,
        request_timeout: float = 10.0,
        http_client: Optional[httpx.Client] = None,
        parser: Optional[ConfigParser] = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key cannot be empty")
        if max_wait_time_for_sync_calls != 0 and max_wait_time_for_sync_calls < 2:
            raise ValueError("max_wait_time_for_sync_calls cannot be less than 2")

        cache = config_cache or InMemoryConfigCache()
        self._fetcher = ConfigFetcher(
            api_key,
            base_url=base_url,
            timeout=request_timeout,
            http_client=http_client,
        )
        try:
            if policy_factory is not None:
                self._policy = policy_factory(cache, self._fetcher)
            else:
                self._policy = AutoPollingPolicy(cache, self._fetcher)
        except Exception:
            self._fetcher.close()
            raise
        self._max_wait = max_wait_time_for_sync_calls
        self._parser = parser or ConfigParser()

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        *,
        http_client: Optional[httpx.Client] = None,
        parser: Optional[ConfigParser] = None,
        change_listeners: Optional[Iterable[ChangeListener]] = None,
    ) -> "ConfigCatClient":
        listeners = tuple(change_listeners or ())

        def _build_policy(cache: ConfigCache, fetcher: ConfigFetcher) -> RefreshPolicy:
            if config.polling_mode == POLLING_MODE_LAZY:
                return ExpiringCachePolicy(
                    cache,
                    fetcher,
                    cache_ttl_seconds=config.cache_ttl_seconds,
                    use_async_refresh=config.lazy_async_refresh,
                    change_listeners=listeners,
                )
            if config.polling_mode == POLLING_MODE_MANUAL:
                return ManualPollingPolicy(cache, fetcher, change_listeners=listeners)
            return AutoPollingPolicy(
                cache,
                fetcher,
                poll_interval_seconds=config.poll_interval_seconds,
                max_init_wait_time_seconds=config.max_init_wait_time_seconds,
                change_listeners=listeners,
            )

        return cls(
            config.api_key,
            config_cache=FileConfigCache(config.cache_path) if config.cache_path else None,
            policy_factory=_build_policy,
            max_wait_time_for_sync_calls=config.max_wait_time_for_sync_calls,
            base_url=config.base_url,
            request_timeout=config.request_timeout,
            http_client=http_client,
            parser=parser,
        )

    @property
    def refresh_policy(self) -> RefreshPolicy:
        return self._policy

    def get_configuration_json_string(self) -> str:
        return self._read_configuration()

    def get_configuration_json_string_async(self, completion: Callable[[str], Any]) -> None:
        self._policy.get_configuration().accept(completion)

    def get_configuration(
        self,
        default_value: V,
        factory: Optional[Callable[[Dict[str, Any]], V]] = None,
    ) -> V:
        """Decode the whole document, optionally through ``factory``."""

        return self._deserialize(self._read_configuration(), default_value, factory)

    def get_configuration_async(
        self,
        default_value: V,
        completion: Callable[[V], Any],
        factory: Optional[Callable[[Dict[str, Any]], V]] = None,
    ) -> None:
        self._policy.get_configuration().accept(
            lambda config: completion(self._deserialize(config, default_value, factory))
        )

    def get_value(self, key: str, default_value: Any, user: Optional[User] = None) -> Any:
        self._require_key(key)
        return self._deserialize_value(key, self._read_configuration(), default_value, user)

    def get_value_async(
        self,
        key: str,
        default_value: Any,
        completion: Callable[[Any], Any],
        user: Optional[User] = None,
    ) -> None:
        self._require_key(key)
        self._policy.get_configuration().accept(
            lambda config: completion(self._deserialize_value(key, config, default_value, user))
        )

    async def aget_value(self, key: str, default_value: Any, user: Optional[User] = None) -> Any:
        self._require_key(key)
        try:
            config = await self._policy.get_configuration().aget(self._wait_timeout())
        except AsyncResultTimeout as exc:
            _LOGGER.error("An error occurred during reading the configuration. %s", exc)
            config = self._policy.last_cached_configuration
        return self._deserialize_value(key, config, default_value, user)

    def get_all_keys(self) -> Tuple[str, ...]:
        config = self._read_configuration()
        if not config:
            return ()
        try:
            return self._parser.keys(config)
        except ParseError as exc:
            _LOGGER.error("An error occurred during deserialization. %s", exc)
            return ()

    def refresh(self) -> RefreshResult:
        try:
            result = self._policy.refresh().get(self._wait_timeout())
        except AsyncResultTimeout as exc:
            _LOGGER.error("An error occurred during refresh. %s", exc)
            return RefreshResult(success=False, error=exc)
        if not result.success:
            _LOGGER.error("An error occurred during refresh. %s", result.error)
        return result

    def refresh_async(self, completion: Callable[[RefreshResult], Any]) -> None:
        self._policy.refresh().accept(completion)

    async def arefresh(self) -> RefreshResult:
        try:
            return await self._policy.refresh().aget(self._wait_timeout())
        except AsyncResultTimeout as exc:
            _LOGGER.error("An error occurred during refresh. %s", exc)
            return RefreshResult(success=False, error=exc)

    def close(self) -> None:
        self._policy.close()
        self._fetcher.close()

    def __enter__(self) -> "ConfigCatClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _wait_timeout(self) -> Optional[float]:
        return None if self._max_wait == 0 else float(self._max_wait)

    def _read_configuration(self) -> str:
        try:
            return self._policy.get_configuration().get(self._wait_timeout())
        except AsyncResultTimeout as exc:
            _LOGGER.error("An error occurred during reading the configuration. %s", exc)
            return self._policy.last_cached_configuration

    def _deserialize(
        self,
        config: str,
        default_value: V,
        factory: Optional[Callable[[Dict[str, Any]], V]],
    ) -> V:
        if not config:
            return default_value
        try:
            document = self._parser.parse(config)
            return factory(document) if factory is not None else document  # type: ignore[return-value]
        except (ValueError, TypeError, KeyError) as exc:
            _LOGGER.error("An error occurred during deserialization. %s", exc)
            return default_value

    def _deserialize_value(self, key: str, config: str, default_value: Any, user: Optional[User]) -> Any:
        if not config:
            return default_value
        try:
            value = self._parser.parse_value(key, config, user)
        except (ValueError, TypeError, KeyError) as exc:
            _LOGGER.error("An error occurred during deserialization. %s", exc)
            return default_value
        if not matches_default_type(value, default_value):
            _LOGGER.error(
                "Setting '%s' holds %s, expected %s; returning the default value",
                key,
                type(value).__name__,
                type(default_value).__name__,
            )
            return default_value
        return value

    @staticmethod
    def _require_key(key: str) -> None:
        if not key:
            raise ValueError("key cannot be empty")


__all__ = [
    "ConfigCatClient",
    "PolicyFactory",
]
