from __future__ import annotations

import pytest
from pytest import MonkeyPatch

from crewtrack.core.config import DEFAULT_CORS_ALLOW_ORIGINS, load_settings

ENV_KEYS = (
    "APP_ENV",
    "DEBUG",
    "DATABASE_URL",
    "TESTING",
    "LOG_FORMAT",
    "DB_AUTO_INIT",
    "ESCALATION_SWEEP_ENABLED",
    "MAX_PAGE_SIZE",
    "CORS_ALLOW_ORIGINS",
    "SQLALCHEMY_ECHO",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: MonkeyPatch) -> None:
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_development_defaults() -> None:
    settings = load_settings()

    assert settings.app_env == "development"
    assert settings.debug is True
    assert settings.db_auto_init is True
    assert settings.escalation_sweep_enabled is False
    assert settings.log_format == "console"
    assert settings.database_url == "sqlite:///./crewtrack.db"
    assert settings.cors_allow_origins == list(DEFAULT_CORS_ALLOW_ORIGINS)
    assert settings.sqlalchemy_echo is None


def test_test_environment_uses_separate_database(monkeypatch: MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "TEST")

    settings = load_settings()

    assert settings.app_env == "test"
    assert settings.testing is True
    assert settings.db_auto_init is False
    assert settings.database_url == "sqlite:///./crewtrack_test.db"
    assert settings.log_format == "json"


def test_production_enables_sweep_and_disables_debug(monkeypatch: MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "production")

    settings = load_settings()

    assert settings.debug is False
    assert settings.escalation_sweep_enabled is True


def test_explicit_overrides_win(monkeypatch: MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("DEBUG", "yes")
    monkeypatch.setenv("ESCALATION_SWEEP_ENABLED", "off")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///./elsewhere.db")
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", " https://a.example , ,https://b.example")
    monkeypatch.setenv("SQLALCHEMY_ECHO", "maybe")

    settings = load_settings()

    assert settings.debug is True
    assert settings.escalation_sweep_enabled is False
    assert settings.database_url == "sqlite:///./elsewhere.db"
    assert settings.cors_allow_origins == ["https://a.example", "https://b.example"]
    assert settings.sqlalchemy_echo is None


def test_max_page_size_is_bounded(monkeypatch: MonkeyPatch) -> None:
    monkeypatch.setenv("MAX_PAGE_SIZE", "1000")

    with pytest.raises(ValueError):
        load_settings()
