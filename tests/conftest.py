import os
import threading

import pytest


class StubFetcher:
    """Fetcher replaying scripted responses; exceptions in the script are raised."""

    def __init__(self, responses=(), gate=None):
        self._responses = list(responses)
        self._lock = threading.Lock()
        self.gate = gate
        self.calls = 0

    def fetch(self):
        with self._lock:
            index = self.calls
            self.calls += 1
        if self.gate is not None:
            assert self.gate.wait(5), "fetch gate was never opened"
        if not self._responses:
            return "{}"
        response = self._responses[min(index, len(self._responses) - 1)]
        if isinstance(response, Exception):
            raise response
        return response

    def close(self):
        return None


@pytest.fixture
def make_fetcher():
    return StubFetcher


@pytest.fixture(autouse=True)
def clean_configcat_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("CONFIGCAT_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    yield
