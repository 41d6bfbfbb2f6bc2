"""Upload credential cache.

Holds the single live :class:`~capture_relay.core.media.UploadCredential` and
hands out immutable snapshots of it.  A credential is reused while
``now < expires_at`` and replaced wholesale (never merged) when it runs out.

Refreshes are single-flight: concurrent callers that find the cache stale
queue behind one ``asyncio.Lock`` and re-check the cache once they hold it,
so one refresh serves all of them.

Credential endpoint contract::

    GET {api_base_url}/api/v1/qiniu/upload-token
    X-API-Key: <access key>

    200 {"uploadToken": "...", "cdnDomain": "...", "keyPrefix": "...",
         "expiresIn": 86400, "uploadUrl": "https://upload.qiniup.com"}
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from capture_relay.core.exceptions import (
    CredentialFetchError,
    CredentialRejectedError,
    MissingAuthError,
)
from capture_relay.core.media import UploadCredential

logger = logging.getLogger(__name__)

_REJECTED_STATUSES: frozenset[int] = frozenset({401, 403})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialResponse(BaseModel):
    """Body of a successful credential endpoint response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    upload_token: str = Field(alias="uploadToken", min_length=1)
    cdn_domain: str = Field(alias="cdnDomain", min_length=1)
    key_prefix: str = Field(alias="keyPrefix")
    expires_in: int = Field(alias="expiresIn", ge=0)
    upload_url: Optional[str] = Field(default=None, alias="uploadUrl")


class CredentialCache:
    """Cache and renew the time-limited upload credential.

    Args:
        client: Shared :class:`httpx.AsyncClient` for the backend API.
        endpoint_url: Absolute URL of the credential endpoint.
        access_key: Caller-held API key; ``None`` or empty means unconfigured.
        default_upload_url: Upload host used when the response omits one.
        safety_margin_seconds: Subtracted from ``expiresIn`` when computing
            ``expires_at``.
        timeout: Request timeout in seconds.
        clock: Returns the current aware UTC time.  Injected in tests.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        endpoint_url: str,
        access_key: Optional[str],
        default_upload_url: str,
        safety_margin_seconds: int = 300,
        timeout: float = 30.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._client = client
        self._endpoint_url = endpoint_url
        self._access_key = access_key
        self._default_upload_url = default_upload_url
        self._safety_margin = timedelta(seconds=safety_margin_seconds)
        self._timeout = timeout
        self._clock = clock
        self._credential: Optional[UploadCredential] = None
        self._lock = asyncio.Lock()

    @property
    def configured(self) -> bool:
        return bool(self._access_key)

    def peek(self) -> Optional[UploadCredential]:
        """Return the cached credential without validating or refreshing it."""
        return self._credential

    def invalidate(self) -> None:
        """Drop the cached credential so the next call fetches a fresh one."""
        if self._credential is not None:
            logger.debug("cdn: upload credential invalidated")
        self._credential = None

    async def get_credential(self) -> UploadCredential:
        """Return a valid upload credential, fetching one if needed.

        Raises:
            MissingAuthError: If no access key is configured.
            CredentialRejectedError: If the endpoint rejects the key.
            CredentialFetchError: On any other fetch or parse failure.
        """
        if not self._access_key:
            raise MissingAuthError()

        cached = self._credential
        if cached is not None and cached.is_valid_at(self._clock()):
            return cached

        async with self._lock:
            # Another caller may have refreshed while we waited for the lock.
            cached = self._credential
            if cached is not None and cached.is_valid_at(self._clock()):
                return cached
            fresh = await self._fetch()
            self._credential = fresh
            return fresh

    async def _fetch(self) -> UploadCredential:
        try:
            response = await self._client.get(
                self._endpoint_url,
                timeout=self._timeout,
                headers={"X-API-Key": self._access_key or "", "Accept": "application/json"},
            )
        except httpx.RequestError as exc:
            logger.warning("cdn: credential request failed: %s", exc)
            raise CredentialFetchError(f"credential request failed: {exc}") from exc

        if response.status_code in _REJECTED_STATUSES:
            logger.warning("cdn: credential endpoint rejected the API key (HTTP %d)", response.status_code)
            raise CredentialRejectedError(response.status_code)
        if not response.is_success:
            logger.warning("cdn: credential endpoint returned HTTP %d", response.status_code)
            raise CredentialFetchError(
                f"credential endpoint returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = CredentialResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise CredentialFetchError(f"malformed credential response: {exc.error_count()} error(s)") from exc

        now = self._clock()
        credential = UploadCredential(
            token=body.upload_token,
            cdn_domain=body.cdn_domain,
            key_prefix=body.key_prefix,
            expires_at=now + timedelta(seconds=body.expires_in) - self._safety_margin,
            upload_url=body.upload_url or self._default_upload_url,
        )
        logger.info(
            "cdn: fetched upload credential (prefix=%s, valid until %s)",
            credential.key_prefix,
            credential.expires_at.isoformat(),
        )
        return credential
