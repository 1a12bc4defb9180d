from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path


_LOGGER = logging.getLogger(__name__)


class ConfigCache(ABC):
    """Storage for the last known raw configuration document.

    Implementations return an empty string when nothing has been stored yet
    and must be safe to call from the policy's worker threads.
    """

    @abstractmethod
    def get(self) -> str:
        """Return the stored document or an empty string on a miss."""

    @abstractmethod
    def set(self, value: str) -> None:
        """Replace the stored document."""


class InMemoryConfigCache(ConfigCache):
    """Process-local cache holding a single document."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = ""

    def get(self) -> str:
        with self._lock:
            return self._value

    def set(self, value: str) -> None:
        with self._lock:
            self._value = value


class FileConfigCache(ConfigCache):
    """Cache persisting the document to a file so it survives restarts."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def get(self) -> str:
        with self._lock:
            if not self._path.exists():
                return ""
            try:
                return self._path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                _LOGGER.warning("Unable to read cached configuration from %s: %s", self._path, exc)
                return ""

    def set(self, value: str) -> None:
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(".tmp")
            tmp_path.write_text(value, encoding="utf-8")
            tmp_path.replace(self._path)


__all__ = [
    "ConfigCache",
    "FileConfigCache",
    "InMemoryConfigCache",
]
