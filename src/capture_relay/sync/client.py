"""HTTP client for the backend record sync endpoints."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from capture_relay.core.exceptions import MissingAuthError, RecordSyncError
from capture_relay.sync.records import LinkSyncRecord, NoteSyncRecord

logger = logging.getLogger(__name__)


class RecordSyncClient:
    """Submit resolved records to the backend.

    The backend answers ``{"code": 0, ...}`` or ``{"success": true, ...}`` on
    success; anything else carries a ``message``.

    Args:
        client: Shared :class:`httpx.AsyncClient`.
        base_url: Backend base URL.
        api_key: Access key sent as ``X-API-Key``.
        notes_path: Single-note endpoint path.
        batch_path: Batch endpoint path.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str,
        api_key: Optional[str],
        notes_path: str = "/api/v1/notes",
        batch_path: str = "/api/v1/notes/batch",
        timeout: float = 30.0,
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._notes_path = notes_path
        self._batch_path = batch_path
        self._timeout = timeout

    async def submit_note(self, record: NoteSyncRecord) -> dict[str, Any]:
        return await self._post(self._notes_path, record.model_dump(by_alias=True))

    async def submit_links(self, records: list[LinkSyncRecord]) -> dict[str, Any]:
        return await self._post(
            self._batch_path, [record.model_dump(by_alias=True) for record in records]
        )

    async def _post(self, path: str, body: Any) -> dict[str, Any]:
        if not self._api_key:
            raise MissingAuthError()

        url = f"{self._base_url}{path}"
        try:
            response = await self._client.post(
                url,
                json=body,
                timeout=self._timeout,
                headers={"X-API-Key": self._api_key},
            )
        except httpx.RequestError as exc:
            logger.warning("sync: request to %s failed: %s", path, exc)
            raise RecordSyncError(f"request failed: {exc}") from exc

        try:
            result = response.json()
        except ValueError as exc:
            raise RecordSyncError(
                f"HTTP {response.status_code}: non-JSON response",
                status_code=response.status_code,
            ) from exc

        if not isinstance(result, dict):
            raise RecordSyncError("unexpected response shape", status_code=response.status_code)
        if result.get("code") == 0 or result.get("success") is True:
            return result

        message = result.get("message") or f"HTTP {response.status_code}"
        logger.warning("sync: %s rejected the record: %s", path, message)
        raise RecordSyncError(str(message), status_code=response.status_code)
