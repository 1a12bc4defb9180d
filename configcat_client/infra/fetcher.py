from __future__ import annotations

import json
import logging
import threading
from enum import Enum
from typing import Dict, Final, Optional

import httpx


_LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL: Final[str] = "https://cdn.configcat.com"
CONFIG_PATH_TEMPLATE: Final[str] = "/configuration-files/{api_key}/config_v2.json"
LIBRARY_VERSION: Final[str] = "1.0.0"
USER_AGENT_HEADER: Final[str] = "X-ConfigCat-UserAgent"


class FetchErrorKind(str, Enum):
    NETWORK = "network"
    HTTP_STATUS = "http-status"
    NOT_MODIFIED = "not-modified"
    INVALID_BODY = "invalid-body"


class FetchError(RuntimeError):
    """Raised when a fetch does not produce a new configuration document."""

    def __init__(self, message: str, *, kind: FetchErrorKind, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    @property
    def not_modified(self) -> bool:
        return self.kind is FetchErrorKind.NOT_MODIFIED


class ConfigFetcher:
    """Download the raw configuration document for a single API key."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        mode: str = "a",
        timeout: float = 10.0,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key must not be empty")
        self._url = base_url.rstrip("/") + CONFIG_PATH_TEMPLATE.format(api_key=api_key)
        self._headers: Dict[str, str] = {
            USER_AGENT_HEADER: f"ConfigCat-Python/{mode}-{LIBRARY_VERSION}",
        }
        self._client = http_client or httpx.Client(timeout=timeout)
        self._owns_client = http_client is None
        self._etag_lock = threading.Lock()
        self._etag: Optional[str] = None

    @property
    def url(self) -> str:
        return self._url

    @property
    def etag(self) -> Optional[str]:
        with self._etag_lock:
            return self._etag

    def fetch(self) -> str:
        """Return the latest document or raise ``FetchError``."""

        headers = dict(self._headers)
        etag = self.etag
        if etag:
            headers["If-None-Match"] = etag

        try:
            response = self._client.get(self._url, headers=headers)
        except httpx.HTTPError as exc:
            raise FetchError(f"request to {self._url} failed: {exc}", kind=FetchErrorKind.NETWORK) from exc

        if response.status_code == 304:
            _LOGGER.debug("Configuration not modified (etag=%s)", etag)
            raise FetchError("configuration not modified", kind=FetchErrorKind.NOT_MODIFIED, status_code=304)
        if not 200 <= response.status_code < 300:
            raise FetchError(
                f"unexpected HTTP status {response.status_code}",
                kind=FetchErrorKind.HTTP_STATUS,
                status_code=response.status_code,
            )

        body = response.text
        try:
            decoded = json.loads(body)
        except json.JSONDecodeError as exc:
            raise FetchError("response body is not valid JSON", kind=FetchErrorKind.INVALID_BODY) from exc
        if not isinstance(decoded, dict):
            raise FetchError("response body must be a JSON object", kind=FetchErrorKind.INVALID_BODY)

        new_etag = response.headers.get("etag")
        if new_etag:
            with self._etag_lock:
                self._etag = new_etag
        _LOGGER.debug("Fetched configuration (%d bytes)", len(body))
        return body

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "ConfigFetcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = [
    "ConfigFetcher",
    "DEFAULT_BASE_URL",
    "FetchError",
    "FetchErrorKind",
]
