"""Page-context media fetcher.

The fallback downloader.  It runs ``fetch()`` *inside* the origin tab via
Playwright's ``page.evaluate`` so the request carries that tab's cookies and
referrer, which is what gets past anti-hotlinking checks that reject the
cookie-less privileged fetch.

The origin tab is a weak reference: if the user has closed it or navigated
elsewhere, :class:`~capture_relay.core.exceptions.RelayUnreachableError` is
raised.  That is an ordinary outcome, not a bug.
"""

from __future__ import annotations

import base64
import binascii
import logging
import urllib.parse

from capture_relay.core.exceptions import NetworkError, RelayUnreachableError
from capture_relay.core.media import OriginTabHandle
from capture_relay.relay.config import MEDIA_ACCEPT, PAGE_FETCH_SCRIPT, PAGE_GONE_MARKERS
from capture_relay.relay.tabs import TabController

logger = logging.getLogger(__name__)


def _is_page_gone(exc: Exception) -> bool:
    """Return ``True`` if a Playwright error means the tab no longer exists."""
    message = str(exc)
    return any(marker in message for marker in PAGE_GONE_MARKERS)


class PageContextFetcher:
    """Download media through the origin tab's browsing session.

    Args:
        tabs: Tab controller used to resolve the origin tab's page.
    """

    def __init__(self, tabs: TabController) -> None:
        self._tabs = tabs

    async def fetch(self, url: str, origin: OriginTabHandle | None) -> bytes:
        """Fetch ``url`` from inside the origin tab.

        Raises:
            RelayUnreachableError: If there is no origin tab, it is closed, or
                it navigated away from the host it was captured on.
            NetworkError: On a non-2xx status or a script/transport failure.
        """
        if origin is None:
            raise RelayUnreachableError("no origin tab for this capture")

        page = self._tabs.page_for(origin.tab_id)
        if page is None:
            raise RelayUnreachableError("origin tab closed", tab_id=origin.tab_id)

        current_host = urllib.parse.urlparse(page.url).hostname or ""
        if origin.captured_at_url_host and current_host != origin.captured_at_url_host:
            logger.info(
                "relay: tab %s navigated from %s to %s",
                origin.tab_id,
                origin.captured_at_url_host,
                current_host,
            )
            raise RelayUnreachableError("origin tab navigated away", tab_id=origin.tab_id)

        try:
            result = await page.evaluate(PAGE_FETCH_SCRIPT, [url, MEDIA_ACCEPT])
        except Exception as exc:  # noqa: BLE001
            if _is_page_gone(exc):
                logger.info("relay: tab %s went away during fetch of %s", origin.tab_id, url)
                raise RelayUnreachableError(
                    "origin tab closed during fetch", tab_id=origin.tab_id
                ) from exc
            logger.warning("relay: page-context fetch failed for %s: %s", url, exc)
            raise NetworkError(f"page script error: {exc}", url=url) from exc

        if not result or not result.get("ok"):
            status = (result or {}).get("status")
            logger.info("relay: page-context HTTP %s for %s", status, url)
            raise NetworkError(f"HTTP {status}", url=url, status_code=status)

        try:
            return base64.b64decode(result["body"], validate=True)
        except (binascii.Error, TypeError, KeyError) as exc:
            raise NetworkError("page returned an undecodable body", url=url) from exc
