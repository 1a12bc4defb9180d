from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, Generic, List, Optional, TypeVar


_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")

_MISSING: Any = object()


class AsyncResultTimeout(TimeoutError):
    """Raised when a result is not resolved within the requested timeout."""


class DoubleResolutionError(RuntimeError):
    """Raised when ``complete`` is called on an already resolved result."""


class AsyncResult(Generic[T]):
    """Thread-safe single-assignment result shared by fetch workers and readers.

    The first ``complete`` wins; later calls raise ``DoubleResolutionError``
    and never alter the stored value. Callbacks run in registration order on
    the resolving thread, or immediately on the registering thread when the
    result is already resolved.

    A result derived through ``apply`` whose transform raises is resolved with
    that error: ``get`` re-raises it and ``accept`` callbacks are skipped.
    """

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._value: Any = _MISSING
        self._error: Optional[BaseException] = None
        self._resolved = False
        self._callbacks: List[Callable[["AsyncResult[T]"], None]] = []

    @classmethod
    def completed(cls, value: T) -> "AsyncResult[T]":
        result: AsyncResult[T] = cls()
        result.complete(value)
        return result

    def done(self) -> bool:
        with self._condition:
            return self._resolved

    def complete(self, value: T) -> None:
        if not self._resolve(value, None):
            raise DoubleResolutionError("AsyncResult was already resolved")

    def try_complete(self, value: T) -> bool:
        return self._resolve(value, None)

    def _fail(self, error: BaseException) -> bool:
        return self._resolve(_MISSING, error)

    def _resolve(self, value: Any, error: Optional[BaseException]) -> bool:
        with self._condition:
            if self._resolved:
                return False
            self._value = value
            self._error = error
            self._resolved = True
            callbacks, self._callbacks = self._callbacks, []
            self._condition.notify_all()
        for callback in callbacks:
            self._invoke(callback)
        return True

    def get(self, timeout: Optional[float] = None) -> T:
        """Block until resolved and return the value.

        ``timeout`` of ``None`` waits indefinitely; otherwise
        ``AsyncResultTimeout`` is raised once ``timeout`` seconds have passed.
        """

        with self._condition:
            if not self._condition.wait_for(lambda: self._resolved, timeout):
                raise AsyncResultTimeout(f"result not available after {timeout} seconds")
            return self._unwrap()

    def peek(self, default: Optional[T] = None) -> Optional[T]:
        with self._condition:
            if not self._resolved or self._error is not None:
                return default
            return self._value

    def accept(self, completion: Callable[[T], Any]) -> None:
        def _deliver(result: "AsyncResult[T]") -> None:
            if result._error is not None:
                _LOGGER.error("Skipping completion callback, result failed: %s", result._error)
                return
            completion(result._value)

        self._add_done_callback(_deliver)

    def apply(self, transform: Callable[[T], U]) -> "AsyncResult[U]":
        derived: AsyncResult[U] = AsyncResult()

        def _chain(result: "AsyncResult[T]") -> None:
            if result._error is not None:
                derived._fail(result._error)
                return
            try:
                mapped = transform(result._value)
            except Exception as exc:
                derived._fail(exc)
                return
            derived.complete(mapped)

        self._add_done_callback(_chain)
        return derived

    async def aget(self, timeout: Optional[float] = None) -> T:
        """Await resolution from an asyncio event loop without blocking it."""

        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()

        def _transfer(result: "AsyncResult[T]") -> None:
            if future.done():
                return
            if result._error is not None:
                future.set_exception(result._error)
            else:
                future.set_result(result._value)

        def _notify(result: "AsyncResult[T]") -> None:
            if loop.is_closed():
                return
            try:
                loop.call_soon_threadsafe(_transfer, result)
            except RuntimeError:
                # loop closed between the check and the call
                _LOGGER.debug("Dropping result for a closed event loop")

        self._add_done_callback(_notify)
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise AsyncResultTimeout(f"result not available after {timeout} seconds") from exc

    def _add_done_callback(self, callback: Callable[["AsyncResult[T]"], None]) -> None:
        with self._condition:
            if not self._resolved:
                self._callbacks.append(callback)
                return
        self._invoke(callback)

    def _invoke(self, callback: Callable[["AsyncResult[T]"], None]) -> None:
        try:
            callback(self)
        except Exception:
            _LOGGER.exception("AsyncResult callback raised")

    def _unwrap(self) -> T:
        if self._error is not None:
            raise self._error
        return self._value

    def __repr__(self) -> str:
        with self._condition:
            state = "resolved" if self._resolved else "pending"
        return f"<AsyncResult {state}>"


__all__ = [
    "AsyncResult",
    "AsyncResultTimeout",
    "DoubleResolutionError",
]
