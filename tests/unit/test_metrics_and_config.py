# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from config import AppConfig
from observability import metrics


def test_timer_emits_one_metric(log_sink):
    timer_id = metrics.start_timer("connect_attempt_duration")

    duration = metrics.stop_timer(timer_id, node_id="node-1", state="CONNECTED")

    assert duration is not None and duration >= 0
    [event] = log_sink.events("METRIC_TIMER")
    assert event["metric"] == "connect_attempt_duration"
    assert event["node_id"] == "node-1"
    assert event["state"] == "CONNECTED"

    # Stopping twice is a no-op
    assert metrics.stop_timer(timer_id) is None
    assert len(log_sink.events("METRIC_TIMER")) == 1


def test_timed_stops_even_on_error(log_sink):
    before = metrics.active_timer_count()

    with pytest.raises(RuntimeError):
        with metrics.timed("http_connect", details={"route": "/connect"}):
            raise RuntimeError("boom")

    assert metrics.active_timer_count() == before
    [event] = log_sink.events("METRIC_TIMER")
    assert event["details"] == {"route": "/connect"}


def test_discard_timer_is_silent(log_sink):
    timer_id = metrics.start_timer("connect_attempt_duration")

    metrics.discard_timer(timer_id)
    metrics.discard_timer(timer_id)

    assert metrics.stop_timer(timer_id) is None
    assert log_sink.events("METRIC_TIMER") == []


# ---------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------

_ENV_KEYS = (
    "ENV",
    "LOG_LEVEL",
    "ENABLE_JSON_LOGS",
    "HOST",
    "PORT",
    "USER_ID",
    "CORS_ORIGINS",
)


def test_config_defaults(monkeypatch: pytest.MonkeyPatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)

    config = AppConfig.load_from_env()

    assert config == AppConfig()
    assert config.port == 8000
    assert config.cors_origins == ("*",)
    assert config.enable_json_logs


def test_config_from_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ENV", "prod")
    monkeypatch.setenv("ENABLE_JSON_LOGS", "0")
    monkeypatch.setenv("PORT", "9001")
    monkeypatch.setenv("USER_ID", "17")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example,")

    config = AppConfig.load_from_env()

    assert config.env == "prod"
    assert not config.enable_json_logs
    assert config.port == 9001
    assert config.user_id == 17
    assert config.cors_origins == ("https://a.example", "https://b.example")


def test_config_rejects_non_integer_port(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PORT", "eighty")

    with pytest.raises(ValueError):
        AppConfig.load_from_env()
