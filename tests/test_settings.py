"""Configuration settings behaviour tests."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.config import ONE_WEEK_SECONDS, Settings


def test_defaults() -> None:
    settings = Settings(_env_file=None)

    assert settings.season_check_interval_seconds == ONE_WEEK_SECONDS
    assert settings.season_check_enabled is True
    assert settings.reconcile_concurrency == 1
    assert settings.notify_unstarted_series is False
    assert settings.tmdb_language == "en-US"


def test_blank_tmdb_key_is_treated_as_missing() -> None:
    """A whitespace-only key should disable reconciliation rather than fail requests."""

    settings = Settings(_env_file=None, TMDB_API_KEY="   ")

    assert settings.tmdb_api_key is None


def test_language_is_normalised() -> None:
    settings = Settings(_env_file=None, TMDB_LANGUAGE=" pt_BR ")

    assert settings.tmdb_language == "pt-BR"


def test_interval_must_be_at_least_an_hour() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, SEASON_CHECK_INTERVAL=60)


def test_concurrency_is_bounded() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, RECONCILE_CONCURRENCY=0)
    with pytest.raises(ValidationError):
        Settings(_env_file=None, RECONCILE_CONCURRENCY=64)
