# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from orchestrator.strategy import (
    FAST,
    SECURE,
    ConnectionStrategy,
    StrategyCatalog,
    default_catalog,
)


def test_builtin_strategies():
    assert FAST.phases == (
        "Establishing connection...",
        "Authenticating...",
        "Connected!",
    )
    assert FAST.step_delay_ms == 500
    assert FAST.total_duration_ms == 1_500

    assert SECURE.phase_count == 5
    assert SECURE.step_delay_ms == 1_000
    assert SECURE.total_duration_ms == 5_000
    assert SECURE.phases[-1] == "Connection secured!"


@pytest.mark.parametrize(
    "name, expected",
    [
        ("fast", "fast"),
        ("secure", "secure"),
        ("SECURE", "secure"),
        ("  Fast ", "fast"),
        ("turbo", "fast"),
        ("", "fast"),
        (None, "fast"),
    ],
)
def test_resolve_is_case_insensitive_and_falls_back(name, expected):
    assert default_catalog().resolve(name).name == expected


def test_is_known_and_available():
    catalog = default_catalog()

    assert catalog.is_known("Secure")
    assert not catalog.is_known("turbo")
    assert not catalog.is_known(None)
    assert catalog.available() == ("fast", "secure")
    assert catalog.default is FAST


def test_progress_is_fraction_of_started_phases():
    assert FAST.progress_at(0) == pytest.approx(1 / 3)
    assert FAST.progress_at(1) == pytest.approx(2 / 3)
    assert FAST.progress_at(2) == 1.0

    progress = [SECURE.progress_at(i) for i in range(SECURE.phase_count)]
    assert progress == sorted(progress)
    assert 0 < progress[0] <= 1 / SECURE.phase_count

    with pytest.raises(IndexError):
        FAST.progress_at(3)


def test_strategy_rejects_empty_phases_and_bad_delay():
    with pytest.raises(ValueError):
        ConnectionStrategy(name="empty", phases=(), step_delay_ms=100)

    with pytest.raises(ValueError):
        ConnectionStrategy(name="zero", phases=("a",), step_delay_ms=0)


def test_catalog_requires_known_default():
    with pytest.raises(ValueError):
        StrategyCatalog((FAST,), default="secure")


def test_custom_catalog_default():
    catalog = StrategyCatalog((FAST, SECURE), default="SECURE")

    assert catalog.resolve("unknown") is SECURE


def test_describe_payload():
    assert FAST.describe() == {
        "name": "fast",
        "phases": list(FAST.phases),
        "step_delay_ms": 500,
        "total_duration_ms": 1_500,
    }
