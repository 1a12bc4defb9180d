import json

import pytest

from configcat_client.cli import main
from configcat_client.client import ConfigCatClient
from configcat_client.config import POLLING_MODE_AUTO
from configcat_client.infra.fetcher import FetchError, FetchErrorKind
from configcat_client.infra.policy import ManualPollingPolicy


DOCUMENT = json.dumps(
    {
        "isFeatureEnabled": {"Value": True, "SettingType": 0},
        "greeting": {"Value": "hello", "SettingType": 1},
    }
)


@pytest.fixture(autouse=True)
def api_key_env(monkeypatch):
    monkeypatch.setenv("CONFIGCAT_API_KEY", "api-key")
    yield


def _factory(fetcher, *, prefetch=True, configs=None):
    def _build(config, change_listeners=()):
        if configs is not None:
            configs.append(config)
        client = ConfigCatClient(
            config.api_key,
            policy_factory=lambda cache, _fetcher: ManualPollingPolicy(
                cache, fetcher, change_listeners=change_listeners
            ),
        )
        if prefetch:
            client.refresh_policy.refresh().get(timeout=5)
        return client

    return _build


def test_get_prints_value(make_fetcher, capsys):
    exit_code = main(["get", "isFeatureEnabled", "--default", "false"], client_factory=_factory(make_fetcher([DOCUMENT])))

    assert exit_code == 0
    assert capsys.readouterr().out.strip() == "true"


def test_get_with_user_attributes(make_fetcher, capsys):
    exit_code = main(
        ["get", "greeting", "--user-id", "u-1", "--email", "a@example.com", "--custom", "Plan=pro"],
        client_factory=_factory(make_fetcher([DOCUMENT])),
    )

    assert exit_code == 0
    assert capsys.readouterr().out.strip() == "hello"


def test_get_missing_setting_without_default(make_fetcher, capsys):
    exit_code = main(["get", "absent"], client_factory=_factory(make_fetcher([DOCUMENT])))

    assert exit_code == 1
    assert "not available" in capsys.readouterr().err


def test_invalid_custom_attribute(make_fetcher, capsys):
    exit_code = main(["get", "greeting", "--user-id", "u", "--custom", "broken"], client_factory=_factory(make_fetcher()))

    assert exit_code == 2
    assert "NAME=VALUE" in capsys.readouterr().err


def test_unknown_command(capsys):
    assert main(["explode"]) == 2
    assert "Error" in capsys.readouterr().err


def test_missing_api_key(monkeypatch, make_fetcher):
    monkeypatch.delenv("CONFIGCAT_API_KEY")

    assert main(["dump"], client_factory=_factory(make_fetcher())) == 2


def test_dump_and_keys(make_fetcher, capsys):
    assert main(["dump"], client_factory=_factory(make_fetcher([DOCUMENT]))) == 0
    assert json.loads(capsys.readouterr().out) == json.loads(DOCUMENT)

    assert main(["keys"], client_factory=_factory(make_fetcher([DOCUMENT]))) == 0
    assert capsys.readouterr().out.split() == ["isFeatureEnabled", "greeting"]


def test_refresh_reports_outcome(make_fetcher, capsys):
    assert main(["refresh"], client_factory=_factory(make_fetcher([DOCUMENT]), prefetch=False)) == 0
    assert capsys.readouterr().out.strip() == "changed"

    failing = make_fetcher([FetchError("down", kind=FetchErrorKind.NETWORK)])
    assert main(["refresh"], client_factory=_factory(failing, prefetch=False)) == 1
    assert "Refresh failed" in capsys.readouterr().err


def test_watch_prints_changes(make_fetcher, capsys):
    configs = []
    exit_code = main(["watch", "--count", "1"], client_factory=_factory(make_fetcher([DOCUMENT]), configs=configs))

    assert exit_code == 0
    assert capsys.readouterr().out.strip() == DOCUMENT
    assert configs[0].polling_mode == POLLING_MODE_AUTO
