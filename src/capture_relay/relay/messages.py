"""Pydantic models for the inter-context relay contract.

This is the only boundary between the privileged context and the other two,
so the wire shape is fixed::

    request   {"action": "fetchMedia", "url": "...", "requestId": "...",
               "tabId": "..."|null, "originHost": "..."|null}
    response  {"success": true|false, "payload": "<base64>"|null,
               "error": "..."|null, "errorKind": "network"|"unreachable"|null,
               "requestId": "..."}

Field names are camelCase on the wire (aliases) and snake_case in Python.
"""

from __future__ import annotations

import base64
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from capture_relay.relay.config import ERROR_KIND_NETWORK, ERROR_KIND_UNREACHABLE, FETCH_MEDIA_ACTION

ErrorKind = Literal["network", "unreachable"]


class FetchMediaMessage(BaseModel):
    """Request asking a context to download ``url``."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    action: Literal["fetchMedia"] = FETCH_MEDIA_ACTION
    url: str = Field(min_length=1)
    request_id: str = Field(alias="requestId")
    tab_id: Optional[str] = Field(default=None, alias="tabId")
    origin_host: Optional[str] = Field(default=None, alias="originHost")

class FetchMediaResponse(BaseModel):
    """Reply to a :class:`FetchMediaMessage`.

    ``error_kind`` tells the caller why a fetch failed: ``"network"`` for a
    transport or HTTP failure, ``"unreachable"`` when the origin tab is gone.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    success: bool
    payload: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = Field(default=None, alias="errorKind")
    request_id: str = Field(alias="requestId")

    @classmethod
    def ok(cls, request_id: str, payload: bytes) -> FetchMediaResponse:
        return cls(
            success=True,
            payload=base64.b64encode(payload).decode("ascii"),
            request_id=request_id,
        )

    @classmethod
    def fail(
        cls,
        request_id: str,
        error: str,
        kind: ErrorKind = ERROR_KIND_NETWORK,
    ) -> FetchMediaResponse:
        return cls(success=False, error=error, error_kind=kind, request_id=request_id)

    @property
    def unreachable(self) -> bool:
        return self.error_kind == ERROR_KIND_UNREACHABLE

    def payload_bytes(self) -> bytes:
        """Decode the base64 payload.  Empty bytes when there is none."""
        if not self.payload:
            return b""
        return base64.b64decode(self.payload)
