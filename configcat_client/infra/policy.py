from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from .async_result import AsyncResult
from .cache import ConfigCache
from .fetcher import ConfigFetcher, FetchError


_LOGGER = logging.getLogger(__name__)

ChangeListener = Callable[[str], None]
ErrorListener = Callable[[Exception], None]


class PolicyClosedError(RuntimeError):
    """Reported by refresh attempts made after the policy was closed."""


@dataclass(frozen=True, slots=True)
class RefreshResult:
    """Outcome of a single fetch attempt."""

    success: bool
    changed: bool = False
    error: Optional[Exception] = None


@dataclass(frozen=True, slots=True)
class _FetchOutcome:
    configuration: str
    result: RefreshResult


class RefreshPolicy(ABC):
    """Coordinates fetches, the cache and readers of the configuration.

    At most one fetch runs at a time; callers arriving while it is in flight
    share its handle. Failed fetches never replace the cached document.
    """

    def __init__(
        self,
        cache: ConfigCache,
        fetcher: ConfigFetcher,
        *,
        change_listeners: Optional[Iterable[ChangeListener]] = None,
        error_listener: Optional[ErrorListener] = None,
    ) -> None:
        self._cache = cache
        self._fetcher = fetcher
        self._lock = threading.Lock()
        self._last_cached = ""
        self._cache_stale = False
        self._inflight: Optional[AsyncResult[_FetchOutcome]] = None
        self._closed = False
        self._change_listeners: List[ChangeListener] = list(change_listeners or ())
        self._error_listener = error_listener
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="configcat-fetch")
        self._read_cache()

    @property
    def last_cached_configuration(self) -> str:
        with self._lock:
            return self._last_cached

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    @abstractmethod
    def get_configuration(self) -> AsyncResult[str]:
        """Return a handle to the configuration considered current."""

    def refresh(self) -> AsyncResult[RefreshResult]:
        return self._fetch().apply(lambda outcome: outcome.result)

    def add_change_listener(self, listener: ChangeListener) -> None:
        with self._lock:
            self._change_listeners.append(listener)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._on_close()
        self._executor.shutdown(wait=False)
        _LOGGER.debug("%s closed", type(self).__name__)

    def __enter__(self) -> "RefreshPolicy":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _on_close(self) -> None:
        return None

    def _on_fetch_succeeded(self) -> None:
        return None

    def _fetch(self) -> AsyncResult[_FetchOutcome]:
        with self._lock:
            if self._inflight is not None:
                return self._inflight
            closed = self._closed
            if not closed:
                pending: AsyncResult[_FetchOutcome] = AsyncResult()
                self._inflight = pending
                self._executor.submit(self._run_fetch, pending)
                return pending
        error = PolicyClosedError(f"{type(self).__name__} is closed")
        return AsyncResult.completed(_FetchOutcome(self._read_cache(), RefreshResult(success=False, error=error)))

    def _run_fetch(self, pending: AsyncResult[_FetchOutcome]) -> None:
        previous = self._read_cache()
        try:
            body = self._fetcher.fetch()
        except FetchError as exc:
            if exc.not_modified:
                self._on_fetch_succeeded()
                outcome = _FetchOutcome(previous, RefreshResult(success=True))
            else:
                _LOGGER.warning("Configuration fetch failed (%s): %s", exc.kind.value, exc)
                outcome = self._failed(previous, exc)
        except Exception as exc:
            _LOGGER.warning("Unexpected error while fetching configuration", exc_info=True)
            outcome = self._failed(previous, exc)
        else:
            changed = body != previous
            self._write_cache(body)
            self._on_fetch_succeeded()
            outcome = _FetchOutcome(body, RefreshResult(success=True, changed=changed))

        with self._lock:
            if self._inflight is pending:
                self._inflight = None
            listeners = list(self._change_listeners) if outcome.result.changed else []
        pending.complete(outcome)

        for listener in listeners:
            try:
                listener(outcome.configuration)
            except Exception:
                _LOGGER.exception("Configuration change listener raised")

    def _failed(self, previous: str, error: Exception) -> _FetchOutcome:
        if self._error_listener is not None:
            try:
                self._error_listener(error)
            except Exception:
                _LOGGER.exception("Fetch error listener raised")
        return _FetchOutcome(previous, RefreshResult(success=False, error=error))

    def _read_cache(self) -> str:
        with self._lock:
            if self._cache_stale:
                return self._last_cached
        try:
            cached = self._cache.get()
        except Exception:
            _LOGGER.warning("Reading the configuration cache failed", exc_info=True)
            cached = ""
        with self._lock:
            if cached:
                self._last_cached = cached
            return self._last_cached

    def _write_cache(self, value: str) -> None:
        with self._lock:
            self._last_cached = value
        try:
            self._cache.set(value)
        except Exception:
            _LOGGER.warning("Writing the configuration cache failed", exc_info=True)
            stale = True
        else:
            stale = False
        with self._lock:
            self._cache_stale = stale


class AutoPollingPolicy(RefreshPolicy):
    """Fetch at construction, then keep the cache fresh from a timer thread."""

    def __init__(
        self,
        cache: ConfigCache,
        fetcher: ConfigFetcher,
        *,
        poll_interval_seconds: float = 60,
        max_init_wait_time_seconds: Optional[float] = None,
        change_listeners: Optional[Iterable[ChangeListener]] = None,
        error_listener: Optional[ErrorListener] = None,
    ) -> None:
        if poll_interval_seconds < 1:
            raise ValueError("poll_interval_seconds cannot be less than 1")
        if max_init_wait_time_seconds is not None and max_init_wait_time_seconds < 0:
            raise ValueError("max_init_wait_time_seconds cannot be negative")
        super().__init__(
            cache,
            fetcher,
            change_listeners=change_listeners,
            error_listener=error_listener,
        )
        self._poll_interval = float(poll_interval_seconds)
        self._stop_event = threading.Event()
        self._initial: AsyncResult[str] = AsyncResult()
        self._fetch().accept(lambda outcome: self._initial.try_complete(outcome.configuration))

        self._init_timer: Optional[threading.Timer] = None
        if max_init_wait_time_seconds is not None and not self._initial.done():
            self._init_timer = threading.Timer(max_init_wait_time_seconds, self._release_initial)
            self._init_timer.daemon = True
            self._init_timer.start()

        self._thread = threading.Thread(target=self._run_loop, name="configcat-auto-poll", daemon=True)
        self._thread.start()

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    def get_configuration(self) -> AsyncResult[str]:
        if not self._initial.done():
            return self._initial
        return AsyncResult.completed(self._read_cache())

    def _release_initial(self) -> None:
        if self._initial.try_complete(self._read_cache()):
            _LOGGER.warning("Initial configuration fetch still running; serving cached configuration")

    def _run_loop(self) -> None:
        try:
            while not self._stop_event.wait(self._poll_interval):
                self._fetch().get()
        except Exception:  # pragma: no cover - defensive guard
            _LOGGER.exception("Auto polling loop crashed")

    def _on_close(self) -> None:
        self._stop_event.set()
        if self._init_timer is not None:
            self._init_timer.cancel()


class ExpiringCachePolicy(RefreshPolicy):
    """Fetch lazily once the cached document is older than the TTL."""

    def __init__(
        self,
        cache: ConfigCache,
        fetcher: ConfigFetcher,
        *,
        cache_ttl_seconds: float = 60,
        use_async_refresh: bool = False,
        clock: Callable[[], float] = time.monotonic,
        change_listeners: Optional[Iterable[ChangeListener]] = None,
        error_listener: Optional[ErrorListener] = None,
    ) -> None:
        if cache_ttl_seconds <= 0:
            raise ValueError("cache_ttl_seconds must be positive")
        super().__init__(
            cache,
            fetcher,
            change_listeners=change_listeners,
            error_listener=error_listener,
        )
        self._cache_ttl = float(cache_ttl_seconds)
        self._use_async_refresh = use_async_refresh
        self._clock = clock
        self._last_fetch: Optional[float] = None

    @property
    def cache_ttl(self) -> float:
        return self._cache_ttl

    def is_expired(self) -> bool:
        with self._lock:
            if self._last_fetch is None:
                return True
            return self._clock() - self._last_fetch > self._cache_ttl

    def get_configuration(self) -> AsyncResult[str]:
        if self.closed or not self.is_expired():
            return AsyncResult.completed(self._read_cache())
        if self._use_async_refresh:
            cached = self._read_cache()
            if cached:
                self._fetch()
                return AsyncResult.completed(cached)
        return self._fetch().apply(lambda outcome: outcome.configuration)

    def _on_fetch_succeeded(self) -> None:
        with self._lock:
            self._last_fetch = self._clock()


class ManualPollingPolicy(RefreshPolicy):
    """Serve the cached document; only ``refresh`` talks to the network."""

    def get_configuration(self) -> AsyncResult[str]:
        return AsyncResult.completed(self._read_cache())


class AlwaysFetchPolicy(RefreshPolicy):
    """Start (or join) a fetch for every read."""

    def get_configuration(self) -> AsyncResult[str]:
        return self._fetch().apply(lambda outcome: outcome.configuration)


__all__ = [
    "AlwaysFetchPolicy",
    "AutoPollingPolicy",
    "ChangeListener",
    "ErrorListener",
    "ExpiringCachePolicy",
    "ManualPollingPolicy",
    "PolicyClosedError",
    "RefreshPolicy",
    "RefreshResult",
]
