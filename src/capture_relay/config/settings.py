"""Relay settings loaded from environment variables.

Uses Pydantic Settings v2 for validated, type-safe configuration.
The access key and every endpoint are read exclusively through this module;
never call ``os.getenv`` directly elsewhere in the codebase.

Usage::

    from capture_relay.config.settings import get_settings

    settings = get_settings()
    base = settings.api_base_url
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Relay configuration backed by environment variables and an optional .env file.

    Every field has a default except the access key, which is optional on
    purpose: a missing key is reported as
    :class:`~capture_relay.core.exceptions.MissingAuthError` at the start of a
    pipeline run, not as a startup failure.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Backend REST API
    # ------------------------------------------------------------------

    api_base_url: str = "http://localhost:8080"
    """Base URL of the backend REST API (no trailing slash)."""

    api_key: Optional[str] = None
    """Caller-held access key sent as ``X-API-Key``.  Authenticates both the
    credential endpoint and the record sync endpoints."""

    credential_path: str = "/api/v1/qiniu/upload-token"
    """Path of the upload-credential endpoint."""

    notes_path: str = "/api/v1/notes"
    """Path of the single-note sync endpoint."""

    notes_batch_path: str = "/api/v1/notes/batch"
    """Path of the batch sync endpoint."""

    # ------------------------------------------------------------------
    # Object storage
    # ------------------------------------------------------------------

    upload_url: str = "https://upload.qiniup.com"
    """Form-upload host used when the credential response carries no ``uploadUrl``."""

    credential_safety_margin_seconds: int = Field(default=300, ge=0)
    """Seconds subtracted from ``expiresIn`` before the credential is considered
    expired, so a token is never presented right at its true deadline."""

    default_image_extension: str = ".jpg"
    """Storage key extension for images whose URL has none."""

    default_video_extension: str = ".mp4"
    """Storage key extension for videos whose URL has none."""

    # ------------------------------------------------------------------
    # Relay
    # ------------------------------------------------------------------

    relay_timeout_seconds: float = Field(default=15.0, gt=0)
    """Upper bound for each individual relay attempt (privileged or page context)."""

    http_timeout_seconds: float = Field(default=30.0, gt=0)
    """Timeout for credential, upload and sync requests."""

    max_media_bytes: int = Field(default=200 * 1024 * 1024, gt=0)
    """Largest media payload the privileged fetcher accepts."""

    user_agent: str = (
        "Mozilla/5.0 (X11; Linux x86_64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    )
    """User-agent string sent by the privileged fetcher."""

    # ------------------------------------------------------------------
    # Pipeline behaviour
    # ------------------------------------------------------------------

    item_retries: int = Field(default=0, ge=0, le=5)
    """Extra relay attempts per media item after a relay failure.  The router
    itself never retries."""

    upload_videos: bool = True
    """When ``False`` videos keep their original URL and are not downloaded."""

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    log_level: str = "INFO"
    """Logging verbosity.  One of: DEBUG, INFO, WARNING, ERROR, CRITICAL."""


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings singleton.

    In tests, call ``get_settings.cache_clear()`` after patching environment
    variables.
    """
    return Settings()
