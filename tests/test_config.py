from __future__ import annotations

import pytest

from pysensorcache.config import SensorConfig
from pysensorcache.exceptions import ConfigError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "FOOBOT_API_KEY",
        "FOOBOT_USERNAME",
        "FOOBOT_DEFAULT_DEVICE",
        "FOOBOT_BASE_URL",
        "FOOBOT_REQUEST_TIMEOUT",
        "FOOBOT_DAILY_TARGET",
        "FOOBOT_RESET_TIME",
        "FOOBOT_REPORTING_INTERVAL",
        "FOOBOT_MAX_CONNECTED_DISTANCE",
        "FOOBOT_PEAK_TIME",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    config = SensorConfig(api_key="key")

    assert config.daily_target == 200
    assert config.reporting_interval == 300
    assert config.max_connected_distance == 360
    assert config.reset_time_of_day == 0
    assert config.base_url == "https://api.foobot.io"


def test_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FOOBOT_API_KEY", "env-key")
    monkeypatch.setenv("FOOBOT_USERNAME", "owner@example.com")
    monkeypatch.setenv("FOOBOT_DAILY_TARGET", "150")
    monkeypatch.setenv("FOOBOT_RESET_TIME", "3600")

    config = SensorConfig.from_env()

    assert config.api_key == "env-key"
    assert config.username == "owner@example.com"
    assert config.daily_target == 150
    assert config.reset_time_of_day == 3600.0


def test_overrides_win_over_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FOOBOT_API_KEY", "env-key")
    monkeypatch.setenv("FOOBOT_DAILY_TARGET", "not-a-number")

    config = SensorConfig.from_env(api_key="explicit", daily_target=100)

    assert config.api_key == "explicit"
    assert config.daily_target == 100


def test_missing_api_key() -> None:
    with pytest.raises(ConfigError, match="FOOBOT_API_KEY"):
        SensorConfig.from_env()


def test_bad_number(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FOOBOT_API_KEY", "env-key")
    monkeypatch.setenv("FOOBOT_REQUEST_TIMEOUT", "soon")

    with pytest.raises(ConfigError, match="FOOBOT_REQUEST_TIMEOUT"):
        SensorConfig.from_env()


@pytest.mark.parametrize(
    "overrides",
    [
        {"daily_target": 0},
        {"reset_time_of_day": 86400},
        {"peak_time_of_day": -1},
        {"reporting_interval": 0},
        {"max_connected_distance": 200},
        {"request_timeout": 0},
    ],
)
def test_invalid_values(overrides: dict[str, float]) -> None:
    with pytest.raises(ConfigError):
        SensorConfig(api_key="key", **overrides)
