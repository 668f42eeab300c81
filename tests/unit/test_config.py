"""Unit tests for settings overrides."""

from cozy.config import MergedSettings, coerce_value


def test_defaults_are_loaded() -> None:
    settings = MergedSettings(environ={})

    assert settings.MAX_RESTART_ATTEMPTS == 3
    assert settings.PROBE_INTERVAL_SECONDS == 3
    assert settings.SHUTDOWN_SETTLE_SECONDS == 2
    assert settings.CONFIG_FILE_NAME == "package.json"
    assert settings.CONFIG_KEY == "cozy"


def test_environment_overrides_are_coerced() -> None:
    settings = MergedSettings(environ={
        "COZY_PROBE_INTERVAL_SECONDS": "5",
        "COZY_NPM_RUNNER": "npm",
    })

    assert settings.PROBE_INTERVAL_SECONDS == 5
    assert settings.NPM_RUNNER == "npm"


def test_unmodifiable_and_invalid_overrides_are_ignored() -> None:
    settings = MergedSettings(environ={
        "COZY_MAX_RESTART_ATTEMPTS": "10",
        "COZY_SHUTDOWN_SETTLE_SECONDS": "soon",
    })

    assert settings.MAX_RESTART_ATTEMPTS == 3
    assert settings.SHUTDOWN_SETTLE_SECONDS == 2


def test_coerce_value() -> None:
    assert coerce_value(False, "yes") is True
    assert coerce_value(True, "0") is False
    assert coerce_value(2.5, "1") == 1.0
    assert coerce_value(None, "raw") == "raw"
