"""Browser tab bookkeeping for the page context.

The rest of the relay never touches a browser directly; it goes through the
:class:`TabController` protocol so that the origin tab guard and the
page-context fetcher can be exercised without a real browser.

:class:`PlaywrightTabs` is the production implementation.  It wraps a
Playwright ``BrowserContext``: every page the capture flow cares about is
registered once and receives an opaque tab id, which is what an
:class:`~capture_relay.core.media.OriginTabHandle` stores.  Closed pages are
forgotten automatically via the page ``close`` event.
"""

from __future__ import annotations

import logging
import urllib.parse
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from playwright.async_api import BrowserContext, async_playwright

from capture_relay.core.media import OriginTabHandle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TabState:
    """Snapshot of a tab at lookup time."""

    tab_id: str
    url: str
    active: bool

    @property
    def host(self) -> str:
        return urllib.parse.urlparse(self.url).hostname or ""


class TabController(Protocol):
    """What the relay needs from the browser."""

    async def lookup(self, tab_id: str) -> Optional[TabState]:
        """Return the tab's state, or ``None`` if it no longer exists."""
        ...

    async def focus(self, tab_id: str) -> bool:
        """Bring the tab to the front.  Returns ``False`` if it is gone."""
        ...

    def page_for(self, tab_id: str) -> Any:
        """Return the live page object for the tab, or ``None``."""
        ...


class PlaywrightTabs:
    """:class:`TabController` backed by Playwright pages.

    Playwright has no notion of an "active tab", so activity is tracked here:
    the most recently registered or focused page is the active one, provided
    the page itself still reports ``document.visibilityState == "visible"``.
    """

    def __init__(self) -> None:
        self._pages: dict[str, Any] = {}
        self._active_id: Optional[str] = None

    def register(self, page: Any) -> str:
        """Start tracking ``page`` and return its new tab id.

        Registering the same page twice returns the existing id.
        """
        for tab_id, known in self._pages.items():
            if known is page:
                return tab_id
        tab_id = uuid.uuid4().hex
        self._pages[tab_id] = page
        self._active_id = tab_id
        page.on("close", lambda _page: self._forget(tab_id))
        logger.debug("tabs: registered tab %s (%s)", tab_id, page.url)
        return tab_id

    def handle_for(self, tab_id: str) -> OriginTabHandle:
        """Build an origin handle for a registered tab from its current URL."""
        page = self._pages[tab_id]
        host = urllib.parse.urlparse(page.url).hostname or ""
        return OriginTabHandle(tab_id=tab_id, captured_at_url_host=host)

    def _forget(self, tab_id: str) -> None:
        self._pages.pop(tab_id, None)
        if self._active_id == tab_id:
            self._active_id = None
        logger.debug("tabs: tab %s closed", tab_id)

    def page_for(self, tab_id: str) -> Any:
        page = self._pages.get(tab_id)
        if page is None or page.is_closed():
            return None
        return page

    async def lookup(self, tab_id: str) -> Optional[TabState]:
        page = self.page_for(tab_id)
        if page is None:
            return None
        try:
            visibility = await page.evaluate("document.visibilityState")
        except Exception as exc:  # noqa: BLE001
            logger.info("tabs: tab %s did not answer a visibility check: %s", tab_id, exc)
            return None
        active = self._active_id == tab_id and visibility == "visible"
        return TabState(tab_id=tab_id, url=page.url, active=active)

    async def focus(self, tab_id: str) -> bool:
        page = self.page_for(tab_id)
        if page is None:
            return False
        try:
            await page.bring_to_front()
        except Exception as exc:  # noqa: BLE001
            logger.warning("tabs: could not focus tab %s: %s", tab_id, exc)
            return False
        self._active_id = tab_id
        return True

    def attach(self, context: BrowserContext) -> list[str]:
        """Register every open page of ``context`` and any page opened later.

        Returns:
            Tab ids of the pages that were already open, in context order.
        """
        context.on("page", self.register)
        return [self.register(page) for page in context.pages]


@asynccontextmanager
async def launch_browser_tabs(*, headless: bool = True) -> AsyncIterator[tuple[PlaywrightTabs, BrowserContext]]:
    """Launch Chromium and yield a :class:`PlaywrightTabs` attached to it.

    The browser is always closed on exit.  Requires the Chromium binary::

        playwright install chromium
    """
    tabs = PlaywrightTabs()
    async with async_playwright() as pw:
        browser = await pw.chromium.launch(headless=headless)
        try:
            context = await browser.new_context()
            tabs.attach(context)
            yield tabs, context
        finally:
            await browser.close()
            logger.debug("tabs: browser closed")
