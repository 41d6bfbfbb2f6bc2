"""Unit tests for CredentialCache.

Tests cover:
- MissingAuthError when no access key is configured (no request made)
- Fetch, parse and caching of a fresh credential
- Bit-identical credential on repeated calls inside the TTL window
- Exactly one refresh after ``expires_at``
- The 300 s safety margin applied to ``expiresIn``
- Single-flight refresh under concurrent callers
- 401/403 mapped to CredentialRejectedError, other failures to CredentialFetchError
- invalidate() forcing a refetch
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

import httpx
import pytest
import respx

from capture_relay.cdn.credential_cache import CredentialCache
from capture_relay.core.exceptions import (
    CredentialFetchError,
    CredentialRejectedError,
    MissingAuthError,
)
from capture_relay.core.media import UploadCredential
from tests.fakes import CDN_DOMAIN, CREDENTIAL_URL, KEY_PREFIX, UPLOAD_URL, FakeClock, credential_body


def _cache(client: httpx.AsyncClient, clock: FakeClock, access_key: str | None = "k-1") -> CredentialCache:
    return CredentialCache(
        client,
        endpoint_url=CREDENTIAL_URL,
        access_key=access_key,
        default_upload_url="https://fallback-upload.example.com",
        safety_margin_seconds=300,
        clock=clock,
    )


@pytest.mark.asyncio
class TestGetCredential:
    async def test_missing_access_key_raises_without_request(self, clock: FakeClock) -> None:
        with respx.mock(assert_all_called=False) as mock:
            route = mock.get(CREDENTIAL_URL).mock(return_value=httpx.Response(200, json=credential_body()))
            async with httpx.AsyncClient() as client:
                cache = _cache(client, clock, access_key=None)
                with pytest.raises(MissingAuthError):
                    await cache.get_credential()
        assert route.call_count == 0

    async def test_empty_access_key_counts_as_missing(self, clock: FakeClock) -> None:
        async with httpx.AsyncClient() as client:
            cache = _cache(client, clock, access_key="")
            assert cache.configured is False
            with pytest.raises(MissingAuthError):
                await cache.get_credential()

    async def test_fetches_and_parses_credential(self, clock: FakeClock) -> None:
        with respx.mock() as mock:
            route = mock.get(CREDENTIAL_URL).mock(return_value=httpx.Response(200, json=credential_body()))
            async with httpx.AsyncClient() as client:
                credential = await _cache(client, clock).get_credential()

        assert credential.token == "tok-1"
        assert credential.cdn_domain == CDN_DOMAIN
        assert credential.key_prefix == KEY_PREFIX
        assert credential.upload_url == UPLOAD_URL
        assert route.calls.last.request.headers["X-API-Key"] == "k-1"

    async def test_safety_margin_applied_to_expiry(self, clock: FakeClock) -> None:
        start = clock.now
        with respx.mock() as mock:
            mock.get(CREDENTIAL_URL).mock(return_value=httpx.Response(200, json=credential_body(expiresIn=3600)))
            async with httpx.AsyncClient() as client:
                credential = await _cache(client, clock).get_credential()

        assert credential.expires_at == start + timedelta(seconds=3600 - 300)

    async def test_missing_upload_url_uses_default(self, clock: FakeClock) -> None:
        body = credential_body()
        del body["uploadUrl"]
        with respx.mock() as mock:
            mock.get(CREDENTIAL_URL).mock(return_value=httpx.Response(200, json=body))
            async with httpx.AsyncClient() as client:
                credential = await _cache(client, clock).get_credential()

        assert credential.upload_url == "https://fallback-upload.example.com"

    async def test_cached_within_ttl_is_identical(self, clock: FakeClock) -> None:
        with respx.mock() as mock:
            route = mock.get(CREDENTIAL_URL).mock(return_value=httpx.Response(200, json=credential_body()))
            async with httpx.AsyncClient() as client:
                cache = _cache(client, clock)
                first = await cache.get_credential()
                clock.advance(3000)
                second = await cache.get_credential()

        assert route.call_count == 1
        assert first is second
        assert first == second

    async def test_refreshes_exactly_once_after_expiry(self, clock: FakeClock) -> None:
        with respx.mock() as mock:
            route = mock.get(CREDENTIAL_URL).mock(
                side_effect=[
                    httpx.Response(200, json=credential_body(uploadToken="tok-1")),
                    httpx.Response(200, json=credential_body(uploadToken="tok-2")),
                ]
            )
            async with httpx.AsyncClient() as client:
                cache = _cache(client, clock)
                first = await cache.get_credential()
                clock.advance(3300)
                second = await cache.get_credential()
                third = await cache.get_credential()

        assert route.call_count == 2
        assert first.token == "tok-1"
        assert second.token == "tok-2"
        assert third is second

    async def test_concurrent_callers_share_one_refresh(self, clock: FakeClock) -> None:
        calls = 0

        async def slow_fetch() -> UploadCredential:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return UploadCredential(
                token=f"tok-{calls}",
                cdn_domain=CDN_DOMAIN,
                key_prefix=KEY_PREFIX,
                expires_at=clock.now + timedelta(hours=1),
                upload_url=UPLOAD_URL,
            )

        async with httpx.AsyncClient() as client:
            cache = _cache(client, clock)
            cache._fetch = slow_fetch  # type: ignore[method-assign]
            results = await asyncio.gather(*(cache.get_credential() for _ in range(5)))

        assert calls == 1
        assert all(result is results[0] for result in results)

    async def test_invalidate_forces_refetch(self, clock: FakeClock) -> None:
        with respx.mock() as mock:
            route = mock.get(CREDENTIAL_URL).mock(return_value=httpx.Response(200, json=credential_body()))
            async with httpx.AsyncClient() as client:
                cache = _cache(client, clock)
                await cache.get_credential()
                cache.invalidate()
                assert cache.peek() is None
                await cache.get_credential()

        assert route.call_count == 2


@pytest.mark.asyncio
class TestCredentialFailures:
    @pytest.mark.parametrize("status", [401, 403])
    async def test_rejected_key_is_missing_auth(self, clock: FakeClock, status: int) -> None:
        with respx.mock() as mock:
            mock.get(CREDENTIAL_URL).mock(return_value=httpx.Response(status))
            async with httpx.AsyncClient() as client:
                with pytest.raises(CredentialRejectedError) as exc_info:
                    await _cache(client, clock).get_credential()

        assert exc_info.value.status_code == status
        assert isinstance(exc_info.value, MissingAuthError)

    async def test_server_error_is_fetch_error(self, clock: FakeClock) -> None:
        with respx.mock() as mock:
            mock.get(CREDENTIAL_URL).mock(return_value=httpx.Response(500))
            async with httpx.AsyncClient() as client:
                with pytest.raises(CredentialFetchError) as exc_info:
                    await _cache(client, clock).get_credential()

        assert exc_info.value.status_code == 500

    async def test_transport_error_is_fetch_error(self, clock: FakeClock) -> None:
        with respx.mock() as mock:
            mock.get(CREDENTIAL_URL).mock(side_effect=httpx.ConnectError("refused"))
            async with httpx.AsyncClient() as client:
                with pytest.raises(CredentialFetchError):
                    await _cache(client, clock).get_credential()

    async def test_malformed_body_is_fetch_error(self, clock: FakeClock) -> None:
        with respx.mock() as mock:
            mock.get(CREDENTIAL_URL).mock(return_value=httpx.Response(200, json={"cdnDomain": CDN_DOMAIN}))
            async with httpx.AsyncClient() as client:
                cache = _cache(client, clock)
                with pytest.raises(CredentialFetchError):
                    await cache.get_credential()
                assert cache.peek() is None
