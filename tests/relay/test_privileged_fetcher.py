"""Unit tests for the privileged (cookie-less) media fetcher.

Tests successful downloads, HTTP error statuses, HTML-instead-of-media
responses, oversized payloads and transport failures using mocked httpx
responses.
"""

from __future__ import annotations

import httpx
import pytest
import respx

from capture_relay.core.exceptions import NetworkError
from capture_relay.relay.privileged_fetcher import PrivilegedFetcher, _is_non_media_content_type

IMAGE_URL = "https://img.example.com/pics/a.jpg"


def _fetcher(client: httpx.AsyncClient, max_bytes: int = 1024) -> PrivilegedFetcher:
    return PrivilegedFetcher(client, timeout=5, user_agent="test-agent", max_bytes=max_bytes)


class TestIsNonMediaContentType:
    def test_html_is_not_media(self) -> None:
        assert _is_non_media_content_type("text/html; charset=utf-8") is True

    def test_image_is_media(self) -> None:
        assert _is_non_media_content_type("image/webp") is False

    def test_missing_content_type_is_accepted(self) -> None:
        assert _is_non_media_content_type("") is False


@pytest.mark.asyncio
class TestFetch:
    async def test_successful_fetch_returns_bytes(self) -> None:
        with respx.mock() as mock:
            route = mock.get(IMAGE_URL).mock(
                return_value=httpx.Response(200, content=b"\xff\xd8jpeg", headers={"content-type": "image/jpeg"})
            )
            async with httpx.AsyncClient() as client:
                payload = await _fetcher(client).fetch(IMAGE_URL)

        assert payload == b"\xff\xd8jpeg"
        request = route.calls.last.request
        assert request.headers["User-Agent"] == "test-agent"
        assert "cookie" not in request.headers
        assert "referer" not in request.headers

    async def test_session_cookies_are_not_sent(self) -> None:
        with respx.mock() as mock:
            route = mock.get(IMAGE_URL).mock(return_value=httpx.Response(200, content=b"x"))
            async with httpx.AsyncClient() as client:
                client.cookies.set("session", "abc", domain="img.example.com")
                await _fetcher(client).fetch(IMAGE_URL)

        assert "cookie" not in route.calls.last.request.headers

    async def test_forbidden_raises_network_error(self) -> None:
        with respx.mock() as mock:
            mock.get(IMAGE_URL).mock(return_value=httpx.Response(403))
            async with httpx.AsyncClient() as client:
                with pytest.raises(NetworkError) as exc_info:
                    await _fetcher(client).fetch(IMAGE_URL)

        assert exc_info.value.status_code == 403
        assert exc_info.value.url == IMAGE_URL
        assert "403" in str(exc_info.value)

    async def test_html_response_raises_network_error(self) -> None:
        with respx.mock() as mock:
            mock.get(IMAGE_URL).mock(
                return_value=httpx.Response(200, text="<html>login</html>", headers={"content-type": "text/html"})
            )
            async with httpx.AsyncClient() as client:
                with pytest.raises(NetworkError, match="content-type"):
                    await _fetcher(client).fetch(IMAGE_URL)

    async def test_oversized_payload_raises_network_error(self) -> None:
        with respx.mock() as mock:
            mock.get(IMAGE_URL).mock(return_value=httpx.Response(200, content=b"x" * 2048))
            async with httpx.AsyncClient() as client:
                with pytest.raises(NetworkError, match="too large"):
                    await _fetcher(client, max_bytes=1024).fetch(IMAGE_URL)

    async def test_timeout_raises_network_error(self) -> None:
        with respx.mock() as mock:
            mock.get(IMAGE_URL).mock(side_effect=httpx.ReadTimeout("slow"))
            async with httpx.AsyncClient() as client:
                with pytest.raises(NetworkError, match="timeout"):
                    await _fetcher(client).fetch(IMAGE_URL)

    async def test_connect_error_raises_network_error(self) -> None:
        with respx.mock() as mock:
            mock.get(IMAGE_URL).mock(side_effect=httpx.ConnectError("refused"))
            async with httpx.AsyncClient() as client:
                with pytest.raises(NetworkError) as exc_info:
                    await _fetcher(client).fetch(IMAGE_URL)

        assert exc_info.value.status_code is None
