"""Relay router: picks the context that can serve a download.

The fallback chain is an explicit, ordered list of fetch strategies tried in
sequence, each returning bytes or raising a
:class:`~capture_relay.core.exceptions.CaptureRelayError`.  The default order
is the privileged context first, then the origin tab's page context.

Every attempt is bounded by the relay timeout.  A timeout counts as a
network failure of that attempt only, and the router moves on.  The router
has no retry loop of its own; retries belong to the caller, per item.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Protocol

from capture_relay.core.exceptions import CaptureRelayError, NetworkError, RelayUnreachableError
from capture_relay.core.media import (
    ContextHint,
    RelayFailure,
    RelayRequest,
    RelayResult,
    RelaySuccess,
)
from capture_relay.relay.channel import ContextChannel
from capture_relay.relay.config import DEFAULT_RELAY_TIMEOUT, PAGE_CONTEXT, PRIVILEGED_CONTEXT
from capture_relay.relay.messages import FetchMediaMessage

logger = logging.getLogger(__name__)


class FetchStrategy(Protocol):
    """One tier of the fallback chain."""

    name: str

    async def attempt(self, request: RelayRequest) -> bytes:
        ...


class ChannelStrategy:
    """Fetch by sending a ``fetchMedia`` message over a context channel.

    Args:
        channel: Channel in front of the serving context.
        requires_origin: When ``True`` the request must carry an origin tab;
            without one the attempt fails immediately without a round-trip.
    """

    def __init__(self, channel: ContextChannel, *, requires_origin: bool = False) -> None:
        self.name = channel.name
        self._channel = channel
        self._requires_origin = requires_origin

    async def attempt(self, request: RelayRequest) -> bytes:
        origin = request.origin
        if self._requires_origin and origin is None:
            raise RelayUnreachableError("no origin tab for this capture")

        message = FetchMediaMessage(
            url=request.source_url,
            request_id=str(request.request_id),
            tab_id=origin.tab_id if origin else None,
            origin_host=origin.captured_at_url_host if origin else None,
        )
        response = await self._channel.request(message)
        if response.unreachable:
            raise RelayUnreachableError(
                response.error or "origin tab unreachable",
                tab_id=origin.tab_id if origin else None,
            )
        if not response.success:
            raise NetworkError(response.error or "unknown error", url=request.source_url)
        return response.payload_bytes()


class RelayRouter:
    """Dispatch a :class:`RelayRequest` down the ordered strategy chain.

    Args:
        strategies: Fetch strategies in the order they should be tried.
        timeout: Per-attempt timeout in seconds.
    """

    def __init__(
        self,
        strategies: Sequence[FetchStrategy],
        *,
        timeout: float = DEFAULT_RELAY_TIMEOUT,
    ) -> None:
        self._strategies = list(strategies)
        self._timeout = timeout

    @classmethod
    def from_channels(
        cls,
        privileged: ContextChannel,
        page: ContextChannel,
        *,
        timeout: float = DEFAULT_RELAY_TIMEOUT,
    ) -> RelayRouter:
        """Build the standard privileged → page-context chain."""
        return cls(
            [ChannelStrategy(privileged), ChannelStrategy(page, requires_origin=True)],
            timeout=timeout,
        )

    def _strategies_for(self, request: RelayRequest) -> list[FetchStrategy]:
        if request.target_context_hint is ContextHint.PAGE_CONTEXT:
            return [s for s in self._strategies if s.name != PRIVILEGED_CONTEXT]
        return self._strategies

    async def relay(self, request: RelayRequest) -> RelayResult:
        """Try each strategy in turn and return the first payload.

        Returns:
            :class:`RelaySuccess` with the payload bytes, or
            :class:`RelayFailure` whose reason names every failed tier, e.g.
            ``"privileged: HTTP 403; page_context: origin tab closed"``.
        """
        failures: list[str] = []
        origin_lost = False
        for strategy in self._strategies_for(request):
            try:
                payload = await asyncio.wait_for(
                    strategy.attempt(request), timeout=self._timeout
                )
            except asyncio.TimeoutError:
                logger.info(
                    "relay: %s attempt timed out after %.1fs for %s",
                    strategy.name,
                    self._timeout,
                    request.source_url,
                )
                failures.append(f"{strategy.name}: timeout after {self._timeout:g}s")
                continue
            except RelayUnreachableError as exc:
                logger.info(
                    "relay: %s cannot reach the origin tab for %s: %s",
                    strategy.name,
                    request.source_url,
                    exc,
                )
                failures.append(f"{strategy.name}: {exc}")
                origin_lost = origin_lost or request.origin is not None
                continue
            except CaptureRelayError as exc:
                logger.info(
                    "relay: %s attempt failed for %s: %s",
                    strategy.name,
                    request.source_url,
                    exc,
                )
                failures.append(f"{strategy.name}: {exc}")
                continue

            if strategy.name == PAGE_CONTEXT:
                logger.info("relay: %s served by page context fallback", request.source_url)
            return RelaySuccess(payload=payload)

        reason = "; ".join(failures) or "no fetch strategy available"
        return RelayFailure(reason=reason, origin_lost=origin_lost)
