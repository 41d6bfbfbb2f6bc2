"""Request handlers for the privileged and page execution contexts.

Each context turns a :class:`FetchMediaMessage` into a
:class:`FetchMediaResponse`.  Expected failures (network, unreachable tab) are
reported in-band as ``success=False``; the channel converts anything else
into a failure reply as well, so a context never leaves a caller hanging.
"""

from __future__ import annotations

import logging

from capture_relay.core.exceptions import CaptureRelayError, RelayUnreachableError
from capture_relay.core.media import OriginTabHandle
from capture_relay.relay.config import ERROR_KIND_UNREACHABLE, FETCH_MEDIA_ACTION
from capture_relay.relay.messages import FetchMediaMessage, FetchMediaResponse
from capture_relay.relay.page_fetcher import PageContextFetcher
from capture_relay.relay.privileged_fetcher import PrivilegedFetcher

logger = logging.getLogger(__name__)


class PrivilegedContext:
    """Serves ``fetchMedia`` with elevated, cookie-less network access."""

    def __init__(self, fetcher: PrivilegedFetcher) -> None:
        self._fetcher = fetcher

    async def handle(self, message: FetchMediaMessage) -> FetchMediaResponse:
        if message.action != FETCH_MEDIA_ACTION:
            return FetchMediaResponse.fail(message.request_id, f"unsupported action: {message.action}")
        try:
            payload = await self._fetcher.fetch(message.url)
        except CaptureRelayError as exc:
            return FetchMediaResponse.fail(message.request_id, str(exc))
        return FetchMediaResponse.ok(message.request_id, payload)


class PageContext:
    """Serves ``fetchMedia`` from inside the tab named by ``tabId``."""

    def __init__(self, fetcher: PageContextFetcher) -> None:
        self._fetcher = fetcher

    async def handle(self, message: FetchMediaMessage) -> FetchMediaResponse:
        if message.action != FETCH_MEDIA_ACTION:
            return FetchMediaResponse.fail(message.request_id, f"unsupported action: {message.action}")
        if message.tab_id is None:
            return FetchMediaResponse.fail(
                message.request_id, "no origin tab for this capture", ERROR_KIND_UNREACHABLE
            )

        origin = OriginTabHandle(
            tab_id=message.tab_id,
            captured_at_url_host=message.origin_host or "",
        )
        try:
            payload = await self._fetcher.fetch(message.url, origin)
        except RelayUnreachableError as exc:
            logger.info("relay: page context unreachable for tab %s: %s", message.tab_id, exc)
            return FetchMediaResponse.fail(message.request_id, str(exc), ERROR_KIND_UNREACHABLE)
        except CaptureRelayError as exc:
            return FetchMediaResponse.fail(message.request_id, str(exc))
        return FetchMediaResponse.ok(message.request_id, payload)
