from __future__ import annotations

import pytest

from triage.config import TriageConfig, load_config
from triage.core.errors import ConfigError

_ENV = (
    "LOG_LEVEL",
    "TRIAGE_EXPERIMENTAL_ENABLED",
    "TRIAGE_DRY_RUN",
    "TRIAGE_MAX_INVESTIGATION_RETRIES",
    "TRIAGE_INITIAL_BACKOFF_SECONDS",
    "TRIAGE_MAX_BACKOFF_SECONDS",
    "TRIAGE_ACTION_MAX_RETRIES",
    "TRIAGE_CONCURRENT_ACTIONS",
    "INVENTORY_URL",
    "INVENTORY_TOKEN",
    "ACCESS_API_URL",
    "PD_TOKEN",
    "PD_SILENT_POLICY",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in _ENV:
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    cfg = load_config()

    assert cfg.log_level == "INFO"
    assert cfg.max_investigation_retries == 3
    assert cfg.initial_backoff_seconds == 1.0
    assert cfg.max_backoff_seconds == 10.0
    assert cfg.action_max_retries == 3
    assert cfg.concurrent_actions is True
    assert cfg.experimental_enabled is False


def test_env_overrides(monkeypatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("TRIAGE_EXPERIMENTAL_ENABLED", "true")
    monkeypatch.setenv("TRIAGE_MAX_INVESTIGATION_RETRIES", "5")
    monkeypatch.setenv("TRIAGE_CONCURRENT_ACTIONS", "0")
    monkeypatch.setenv("INVENTORY_URL", "https://inventory.example.com/")

    cfg = load_config()

    assert cfg.log_level == "DEBUG"
    assert cfg.experimental_enabled is True
    assert cfg.max_investigation_retries == 5
    assert cfg.concurrent_actions is False
    assert cfg.inventory_url == "https://inventory.example.com"


def test_invalid_and_negative_numbers_fall_back(monkeypatch) -> None:
    monkeypatch.setenv("TRIAGE_MAX_INVESTIGATION_RETRIES", "many")
    monkeypatch.setenv("TRIAGE_ACTION_MAX_RETRIES", "-2")

    cfg = load_config()

    assert cfg.max_investigation_retries == 3
    assert cfg.action_max_retries == 0


def test_validate_live_lists_missing_settings() -> None:
    cfg = TriageConfig(inventory_url="https://inventory.example.com")
    assert cfg.missing_live() == ["INVENTORY_TOKEN", "ACCESS_API_URL"]

    with pytest.raises(ConfigError) as exc:
        cfg.validate_live()
    assert "INVENTORY_TOKEN, ACCESS_API_URL" in str(exc.value)


def test_validate_alerting() -> None:
    TriageConfig(pd_token="t", pd_silent_policy="P1").validate_alerting()

    with pytest.raises(ConfigError):
        TriageConfig(pd_token="t").validate_alerting()
