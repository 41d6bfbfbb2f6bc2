"""Shared pytest fixtures for capture-relay tests.

Fixture summary
---------------
tabs            - FakeTabs controller with one active note tab registered.
origin          - OriginTabHandle pointing at that tab.
clock           - FakeClock for credential expiry.
settings        - Settings instance isolated from the developer's .env.

No test needs a real browser, backend, or network: httpx traffic is mocked
with ``respx`` and Playwright pages are replaced by ``tests.fakes.FakePage``.
"""

from __future__ import annotations

import os

import pytest

# ---------------------------------------------------------------------------
# Test environment bootstrap
# ---------------------------------------------------------------------------
# Pin the values the tests rely on before any application module reads the
# environment, so a developer's own .env cannot leak into assertions.

_TEST_ENV_DEFAULTS: dict[str, str] = {
    "API_BASE_URL": "https://api.example.com",
    "API_KEY": "test-api-key",
    "UPLOAD_URL": "https://upload.example.com",
    "LOG_LEVEL": "INFO",
}

for _key, _default in _TEST_ENV_DEFAULTS.items():
    os.environ.setdefault(_key, _default)

from capture_relay.config.settings import Settings, get_settings  # noqa: E402
from capture_relay.core.media import OriginTabHandle  # noqa: E402
from tests.fakes import (  # noqa: E402
    API_BASE,
    NOTE_HOST,
    NOTE_PAGE_URL,
    UPLOAD_URL,
    FakeClock,
    FakePage,
    FakeTabs,
)

get_settings.cache_clear()


@pytest.fixture
def tabs() -> FakeTabs:
    controller = FakeTabs()
    controller.add("tab-1", FakePage(NOTE_PAGE_URL))
    return controller


@pytest.fixture
def origin() -> OriginTabHandle:
    return OriginTabHandle(tab_id="tab-1", captured_at_url_host=NOTE_HOST)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        api_base_url=API_BASE,
        api_key="test-api-key",
        upload_url=UPLOAD_URL,
    )
