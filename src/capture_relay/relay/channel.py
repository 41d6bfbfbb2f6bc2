"""Message channel between isolated execution contexts.

Each context (privileged, page) is an actor: it owns an inbox, serves
requests from it in its own tasks, and shares no Python objects with its
callers.  Messages cross the channel as JSON text in both directions, so a
context only ever sees what the relay contract allows it to see.

Every request carries a correlation id (``requestId``).  The caller awaits a
future keyed by that id; the serving side resolves it when its handler
finishes.  If the caller gave up in the meantime (the router's per-attempt
timeout), the late reply is dropped, and the handler is never cancelled
mid-request.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Optional

from pydantic import ValidationError

from capture_relay.core.exceptions import RelayUnreachableError
from capture_relay.relay.messages import FetchMediaMessage, FetchMediaResponse

logger = logging.getLogger(__name__)

Handler = Callable[[FetchMediaMessage], Awaitable[FetchMediaResponse]]


class ContextChannel:
    """Async request/response channel in front of one execution context.

    Args:
        name: Context name used in logs (``"privileged"``, ``"page_context"``).
        handler: Coroutine that serves one :class:`FetchMediaMessage`.

    Usage::

        async with ContextChannel("privileged", context.handle) as channel:
            response = await channel.request(message)
    """

    def __init__(self, name: str, handler: Handler) -> None:
        self.name = name
        self._handler = handler
        self._inbox: asyncio.Queue[str] = asyncio.Queue()
        self._pending: dict[str, asyncio.Future[str]] = {}
        self._in_flight: set[asyncio.Task[None]] = set()
        self._serve_task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._serve_task is not None and not self._serve_task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._serve_task = asyncio.create_task(self._serve(), name=f"context:{self.name}")
        logger.debug("channel: %s context started", self.name)

    async def stop(self) -> None:
        """Stop serving and fail every request still waiting for a reply."""
        if self._serve_task is not None:
            self._serve_task.cancel()
            try:
                await self._serve_task
            except asyncio.CancelledError:
                pass
            self._serve_task = None
        for task in list(self._in_flight):
            task.cancel()
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
        for request_id, future in list(self._pending.items()):
            if not future.done():
                future.set_exception(
                    RelayUnreachableError(f"{self.name} context stopped")
                )
            self._pending.pop(request_id, None)
        logger.debug("channel: %s context stopped", self.name)

    async def __aenter__(self) -> ContextChannel:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Caller side
    # ------------------------------------------------------------------

    async def request(self, message: FetchMediaMessage) -> FetchMediaResponse:
        """Send ``message`` to the context and wait for its reply.

        No timeout is applied here; callers bound the wait themselves.

        Raises:
            RelayUnreachableError: If the context is not running.
        """
        if not self.running:
            raise RelayUnreachableError(f"{self.name} context is not running")

        loop = asyncio.get_running_loop()
        future: asyncio.Future[str] = loop.create_future()
        self._pending[message.request_id] = future
        try:
            await self._inbox.put(message.model_dump_json(by_alias=True))
            reply = await future
        finally:
            self._pending.pop(message.request_id, None)
        return FetchMediaResponse.model_validate_json(reply)

    # ------------------------------------------------------------------
    # Context side
    # ------------------------------------------------------------------

    async def _serve(self) -> None:
        while True:
            wire = await self._inbox.get()
            task = asyncio.create_task(self._dispatch(wire))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)

    async def _dispatch(self, wire: str) -> None:
        try:
            message = FetchMediaMessage.model_validate_json(wire)
        except ValidationError as exc:
            logger.error("channel: %s dropped a malformed message: %s", self.name, exc)
            return

        try:
            response = await self._handler(message)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "channel: %s handler failed for %s: %s", self.name, message.url, exc
            )
            response = FetchMediaResponse.fail(message.request_id, str(exc) or type(exc).__name__)

        future = self._pending.get(message.request_id)
        if future is None or future.done():
            logger.debug(
                "channel: %s dropped late reply for request %s",
                self.name,
                message.request_id,
            )
            return
        future.set_result(response.model_dump_json(by_alias=True))
