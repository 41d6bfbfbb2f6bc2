"""Privileged media fetcher.

Uses ``httpx`` with no cookies and no referrer: the privileged context relies
on its elevated network scope, not on any browsing session.  Every media item
is attempted here first because it has no per-page dependency.
"""

from __future__ import annotations

import logging

import httpx

from capture_relay.core.exceptions import NetworkError
from capture_relay.relay.config import MEDIA_ACCEPT, NON_MEDIA_CONTENT_TYPES

logger = logging.getLogger(__name__)


def _is_non_media_content_type(content_type: str) -> bool:
    """Return ``True`` if the Content-Type indicates an HTML page, not media."""
    ct = content_type.lower().split(";")[0].strip()
    return ct in NON_MEDIA_CONTENT_TYPES


class PrivilegedFetcher:
    """Download media bytes from arbitrary URLs without session identity.

    Args:
        client: Shared :class:`httpx.AsyncClient`.  The caller owns its
            lifecycle.  It should be created without cookies.
        timeout: Request timeout in seconds.
        user_agent: User-agent header value.
        max_bytes: Largest accepted body; larger payloads raise
            :class:`NetworkError`.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        timeout: float,
        user_agent: str,
        max_bytes: int,
    ) -> None:
        self._client = client
        self._timeout = timeout
        self._user_agent = user_agent
        self._max_bytes = max_bytes

    async def fetch(self, url: str) -> bytes:
        """Fetch ``url`` and return the response body.

        Raises:
            NetworkError: On transport failure, timeout, a non-2xx status, an
                HTML body where media was expected, or an oversized body.
        """
        # A shared client may have picked up cookies from an earlier redirect.
        self._client.cookies.clear()
        try:
            response = await self._client.get(
                url,
                timeout=self._timeout,
                follow_redirects=True,
                headers={"User-Agent": self._user_agent, "Accept": MEDIA_ACCEPT},
            )
        except httpx.TimeoutException as exc:
            logger.warning("relay: privileged timeout fetching %s", url)
            raise NetworkError("timeout", url=url) from exc
        except httpx.TooManyRedirects as exc:
            logger.warning("relay: too many redirects for %s", url)
            raise NetworkError("too many redirects", url=url) from exc
        except httpx.RequestError as exc:
            logger.warning("relay: privileged request error for %s: %s", url, exc)
            raise NetworkError(f"request error: {exc}", url=url) from exc

        if not response.is_success:
            logger.info("relay: privileged HTTP %d for %s", response.status_code, url)
            raise NetworkError(
                f"HTTP {response.status_code}",
                url=url,
                status_code=response.status_code,
            )

        content_type = response.headers.get("content-type", "")
        if _is_non_media_content_type(content_type):
            logger.info("relay: %s answered with '%s' instead of media", url, content_type)
            raise NetworkError(
                f"unexpected content-type: {content_type}",
                url=url,
                status_code=response.status_code,
            )

        payload = response.content
        if len(payload) > self._max_bytes:
            raise NetworkError(
                f"payload too large ({len(payload)} bytes)",
                url=url,
                status_code=response.status_code,
            )

        logger.debug("relay: privileged fetch ok for %s (%d bytes)", url, len(payload))
        return payload
