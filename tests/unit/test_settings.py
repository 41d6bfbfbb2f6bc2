"""Unit tests for Settings loading and validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from capture_relay.config.settings import Settings, get_settings


class TestSettingsDefaults:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("API_KEY", raising=False)
        monkeypatch.delenv("API_BASE_URL", raising=False)
        monkeypatch.delenv("UPLOAD_URL", raising=False)
        settings = Settings(_env_file=None)

        assert settings.api_key is None
        assert settings.api_base_url == "http://localhost:8080"
        assert settings.credential_path == "/api/v1/qiniu/upload-token"
        assert settings.credential_safety_margin_seconds == 300
        assert settings.relay_timeout_seconds == 15.0
        assert settings.item_retries == 0
        assert settings.upload_videos is True

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("API_KEY", "env-key")
        monkeypatch.setenv("ITEM_RETRIES", "2")
        monkeypatch.setenv("UPLOAD_VIDEOS", "false")
        settings = Settings(_env_file=None)

        assert settings.api_key == "env-key"
        assert settings.item_retries == 2
        assert settings.upload_videos is False

    def test_unknown_variables_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SOMETHING_UNRELATED", "1")
        Settings(_env_file=None)


class TestSettingsValidation:
    def test_retries_bounded(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, item_retries=6)

    def test_relay_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, relay_timeout_seconds=0)

    def test_negative_safety_margin_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, credential_safety_margin_seconds=-1)


def test_get_settings_is_cached(monkeypatch: pytest.MonkeyPatch) -> None:
    get_settings.cache_clear()
    try:
        first = get_settings()
        monkeypatch.setenv("API_KEY", "changed")
        assert get_settings() is first
        get_settings.cache_clear()
        assert get_settings().api_key == "changed"
    finally:
        get_settings.cache_clear()
