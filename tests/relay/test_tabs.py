"""Unit tests for PlaywrightTabs bookkeeping, driven by FakePage."""

from __future__ import annotations

import pytest

from capture_relay.relay.tabs import PlaywrightTabs, TabState
from tests.fakes import NOTE_HOST, NOTE_PAGE_URL, FakePage


class TestRegister:
    def test_register_returns_stable_id(self) -> None:
        tabs = PlaywrightTabs()
        page = FakePage(NOTE_PAGE_URL)
        first = tabs.register(page)
        assert tabs.register(page) == first
        assert tabs.page_for(first) is page

    def test_handle_for_captures_host(self) -> None:
        tabs = PlaywrightTabs()
        tab_id = tabs.register(FakePage(NOTE_PAGE_URL))
        handle = tabs.handle_for(tab_id)
        assert handle.tab_id == tab_id
        assert handle.captured_at_url_host == NOTE_HOST

    def test_closed_page_is_forgotten(self) -> None:
        tabs = PlaywrightTabs()
        page = FakePage(NOTE_PAGE_URL)
        tab_id = tabs.register(page)
        page.close()
        assert tabs.page_for(tab_id) is None

    def test_state_host(self) -> None:
        assert TabState(tab_id="t", url=NOTE_PAGE_URL, active=True).host == NOTE_HOST


@pytest.mark.asyncio
class TestLookupAndFocus:
    async def test_last_registered_visible_page_is_active(self) -> None:
        tabs = PlaywrightTabs()
        first = tabs.register(FakePage(NOTE_PAGE_URL))
        second = tabs.register(FakePage("https://other.example.com/"))

        assert (await tabs.lookup(second)).active is True
        assert (await tabs.lookup(first)).active is False

    async def test_hidden_page_is_not_active(self) -> None:
        tabs = PlaywrightTabs()
        tab_id = tabs.register(FakePage(NOTE_PAGE_URL, visibility="hidden"))

        state = await tabs.lookup(tab_id)
        assert state is not None
        assert state.active is False

    async def test_lookup_of_unknown_tab_is_none(self) -> None:
        assert await PlaywrightTabs().lookup("missing") is None

    async def test_focus_brings_page_to_front(self) -> None:
        tabs = PlaywrightTabs()
        page = FakePage(NOTE_PAGE_URL)
        first = tabs.register(page)
        tabs.register(FakePage("https://other.example.com/"))

        assert await tabs.focus(first) is True
        assert page.front_calls == 1
        assert (await tabs.lookup(first)).active is True

    async def test_focus_closed_tab_fails(self) -> None:
        tabs = PlaywrightTabs()
        page = FakePage(NOTE_PAGE_URL)
        tab_id = tabs.register(page)
        page.close()

        assert await tabs.focus(tab_id) is False
        assert page.front_calls == 0


class _FakeContext:
    def __init__(self, pages: list[FakePage]) -> None:
        self.pages = pages
        self.handlers: dict[str, object] = {}

    def on(self, event: str, handler: object) -> None:
        self.handlers[event] = handler


class TestAttach:
    def test_existing_and_new_pages_are_registered(self) -> None:
        tabs = PlaywrightTabs()
        existing = FakePage(NOTE_PAGE_URL)
        context = _FakeContext([existing])

        ids = tabs.attach(context)  # type: ignore[arg-type]
        assert len(ids) == 1
        assert tabs.page_for(ids[0]) is existing

        opened = FakePage("https://other.example.com/")
        context.handlers["page"](opened)  # type: ignore[operator]
        opened_id = tabs.register(opened)
        assert opened_id != ids[0]
        assert tabs.page_for(opened_id) is opened
