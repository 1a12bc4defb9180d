import json
import threading

import httpx
import pytest

from configcat_client.client import ConfigCatClient
from configcat_client.config import ClientConfig
from configcat_client.infra.cache import FileConfigCache, InMemoryConfigCache
from configcat_client.infra.fetcher import ConfigFetcher, FetchError, FetchErrorKind
from configcat_client.infra.policy import (
    AlwaysFetchPolicy,
    AutoPollingPolicy,
    ExpiringCachePolicy,
    ManualPollingPolicy,
)
from configcat_client.parser import ConfigParser, User


DOCUMENT = json.dumps(
    {
        "isFeatureEnabled": {"Value": True, "SettingType": 0},
        "greeting": {"Value": "hello", "SettingType": 1},
        "maxUsers": {"Value": 10, "SettingType": 2},
    }
)


def _manual_client(fetcher, cache=None, **kwargs):
    client = ConfigCatClient(
        "api-key",
        config_cache=cache,
        policy_factory=lambda cache, _fetcher: ManualPollingPolicy(cache, fetcher),
        **kwargs,
    )
    return client


def _mock_http(documents):
    responses = iter(documents)

    def _handler(request):
        return httpx.Response(200, text=next(responses))

    return httpx.Client(transport=httpx.MockTransport(_handler))


def test_constructor_validation():
    with pytest.raises(ValueError):
        ConfigCatClient("")
    with pytest.raises(ValueError):
        ConfigCatClient("api-key", max_wait_time_for_sync_calls=1)


def test_failed_policy_construction_closes_fetcher(monkeypatch):
    closed = []
    original_close = ConfigFetcher.close

    def _recording_close(self):
        closed.append(self)
        original_close(self)

    monkeypatch.setattr(ConfigFetcher, "close", _recording_close)

    def _factory(cache, fetcher):
        return AutoPollingPolicy(cache, fetcher, poll_interval_seconds=0)

    with pytest.raises(ValueError):
        ConfigCatClient("api-key", policy_factory=_factory)

    assert len(closed) == 1
    assert closed[0]._client.is_closed


def test_default_policy_is_auto_polling():
    with ConfigCatClient("api-key", http_client=_mock_http([DOCUMENT])) as client:
        assert isinstance(client.refresh_policy, AutoPollingPolicy)
        assert client.get_value("isFeatureEnabled", False) is True
        assert client.get_value("greeting", "") == "hello"


def test_get_value_returns_default_without_configuration(make_fetcher):
    fetcher = make_fetcher([FetchError("down", kind=FetchErrorKind.NETWORK)])
    with _manual_client(fetcher) as client:
        assert client.refresh().success is False
        assert client.get_value("isFeatureEnabled", False) is False
        assert client.get_configuration_json_string() == ""


def test_get_value_falls_back_on_missing_key_or_type(make_fetcher, caplog):
    with _manual_client(make_fetcher([DOCUMENT])) as client:
        client.refresh()

        assert client.get_value("missing", "fallback") == "fallback"
        assert client.get_value("greeting", 0) == 0
        assert client.get_value("maxUsers", 0) == 10
        assert client.get_value("maxUsers", None) == 10
    assert "deserialization" in caplog.text


def test_empty_key_rejected(make_fetcher):
    with _manual_client(make_fetcher()) as client:
        with pytest.raises(ValueError):
            client.get_value("", False)
        with pytest.raises(ValueError):
            client.get_value_async("", False, lambda value: None)


def test_get_configuration_with_factory(make_fetcher):
    with _manual_client(make_fetcher([DOCUMENT])) as client:
        assert client.get_configuration({"empty": True}) == {"empty": True}

        client.refresh()

        assert client.get_configuration({}) == json.loads(DOCUMENT)
        assert client.get_configuration(0, factory=len) == 3
        assert client.get_configuration("default", factory=lambda doc: doc["absent"]) == "default"
        assert client.get_all_keys() == ("isFeatureEnabled", "greeting", "maxUsers")


def test_user_is_passed_to_evaluator(make_fetcher):
    def _evaluator(key, setting, user):
        return user is not None and user.identifier == "vip"

    parser = ConfigParser(evaluator=_evaluator)
    with _manual_client(make_fetcher([DOCUMENT]), parser=parser) as client:
        client.refresh()

        assert client.get_value("isFeatureEnabled", False, User(identifier="vip")) is True
        assert client.get_value("isFeatureEnabled", True, User(identifier="guest")) is False


def test_sync_call_times_out_to_last_cached_configuration(make_fetcher, caplog):
    cache = InMemoryConfigCache()
    cache.set(DOCUMENT)
    gate = threading.Event()
    fetcher = make_fetcher([DOCUMENT], gate=gate)
    client = ConfigCatClient(
        "api-key",
        config_cache=cache,
        policy_factory=lambda cache, _fetcher: AlwaysFetchPolicy(cache, fetcher),
        max_wait_time_for_sync_calls=2,
    )
    try:
        assert client.get_value("greeting", "") == "hello"
        assert "reading the configuration" in caplog.text
    finally:
        gate.set()
        client.close()


def test_async_callbacks(make_fetcher):
    with _manual_client(make_fetcher([DOCUMENT])) as client:
        refreshed = threading.Event()
        results = {}

        def _on_refresh(result):
            results["refresh"] = result
            refreshed.set()

        client.refresh_async(_on_refresh)
        assert refreshed.wait(5)
        assert results["refresh"].changed

        client.get_value_async("greeting", "", lambda value: results.setdefault("value", value))
        client.get_configuration_json_string_async(lambda doc: results.setdefault("json", doc))
        client.get_configuration_async({}, lambda doc: results.setdefault("doc", doc))

        assert results["value"] == "hello"
        assert results["json"] == DOCUMENT
        assert results["doc"]["maxUsers"]["Value"] == 10


@pytest.mark.asyncio
async def test_awaitable_access(make_fetcher):
    with _manual_client(make_fetcher([DOCUMENT])) as client:
        result = await client.arefresh()

        assert result.success
        assert await client.aget_value("isFeatureEnabled", False) is True


def test_refresh_reports_failure(make_fetcher, caplog):
    error = FetchError("boom", kind=FetchErrorKind.HTTP_STATUS, status_code=500)
    with _manual_client(make_fetcher([DOCUMENT, error])) as client:
        assert client.refresh().success

        result = client.refresh()

        assert not result.success
        assert result.error is error
        assert client.get_value("greeting", "") == "hello"
    assert "during refresh" in caplog.text


@pytest.mark.parametrize(
    "mode, policy_type",
    [("auto", AutoPollingPolicy), ("lazy", ExpiringCachePolicy), ("manual", ManualPollingPolicy)],
)
def test_from_config_selects_policy(mode, policy_type):
    config = ClientConfig(api_key="api-key", polling_mode=mode, cache_ttl_seconds=120)
    with ConfigCatClient.from_config(config, http_client=_mock_http([DOCUMENT, DOCUMENT])) as client:
        assert isinstance(client.refresh_policy, policy_type)
        if mode == "lazy":
            assert client.refresh_policy.cache_ttl == 120


def test_from_config_uses_file_cache(tmp_path):
    path = tmp_path / "config.json"
    config = ClientConfig(api_key="api-key", polling_mode="manual", cache_path=path)
    with ConfigCatClient.from_config(config, http_client=_mock_http([DOCUMENT])) as client:
        assert client.refresh().success

    assert FileConfigCache(path).get() == DOCUMENT


def test_close_stops_policy(make_fetcher):
    client = _manual_client(make_fetcher([DOCUMENT]))

    client.close()

    assert client.refresh_policy.closed
    assert not client.refresh().success
