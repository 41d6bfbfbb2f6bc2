"""Wiring for a running relay.

:class:`RelayRuntime` builds every component from :class:`Settings`, starts
the privileged and page-context actors on enter, and tears everything down on
exit::

    tabs = PlaywrightTabs()
    origin_tab = tabs.register(page)

    async with RelayRuntime(get_settings(), tabs) as runtime:
        outcome = await runtime.sync_service.sync_note(note, tabs.handle_for(origin_tab))

Two httpx clients are used on purpose: the privileged context's client never
keeps cookies, while the API client talks to the backend and storage host.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from capture_relay.cdn.credential_cache import CredentialCache
from capture_relay.cdn.uploader import ObjectUploader
from capture_relay.config.settings import Settings
from capture_relay.core.logging_config import configure_logging
from capture_relay.pipeline.batch import BatchMediaPipeline
from capture_relay.pipeline.tab_guard import OriginTabGuard
from capture_relay.relay.channel import ContextChannel
from capture_relay.relay.config import PAGE_CONTEXT, PRIVILEGED_CONTEXT
from capture_relay.relay.contexts import PageContext, PrivilegedContext
from capture_relay.relay.page_fetcher import PageContextFetcher
from capture_relay.relay.privileged_fetcher import PrivilegedFetcher
from capture_relay.relay.router import RelayRouter
from capture_relay.relay.tabs import TabController
from capture_relay.sync.client import RecordSyncClient
from capture_relay.sync.service import CaptureSyncService

logger = logging.getLogger(__name__)


class RelayRuntime:
    """Own the clients, channels and services of one relay instance.

    Args:
        settings: Relay settings.
        tabs: Tab controller for the page context and the origin tab guard.
        media_client: Optional client for the privileged context (tests).
        api_client: Optional client for backend and storage calls (tests).
        configure_logs: Call :func:`configure_logging` on enter.
    """

    def __init__(
        self,
        settings: Settings,
        tabs: TabController,
        *,
        media_client: Optional[httpx.AsyncClient] = None,
        api_client: Optional[httpx.AsyncClient] = None,
        configure_logs: bool = True,
    ) -> None:
        self.settings = settings
        self.tabs = tabs
        self._owns_media_client = media_client is None
        self._owns_api_client = api_client is None
        self.media_client = media_client or httpx.AsyncClient()
        self.api_client = api_client or httpx.AsyncClient()
        self._configure_logs = configure_logs

        privileged = PrivilegedContext(
            PrivilegedFetcher(
                self.media_client,
                timeout=settings.relay_timeout_seconds,
                user_agent=settings.user_agent,
                max_bytes=settings.max_media_bytes,
            )
        )
        page = PageContext(PageContextFetcher(tabs))
        self.privileged_channel = ContextChannel(PRIVILEGED_CONTEXT, privileged.handle)
        self.page_channel = ContextChannel(PAGE_CONTEXT, page.handle)

        self.router = RelayRouter.from_channels(
            self.privileged_channel,
            self.page_channel,
            timeout=settings.relay_timeout_seconds,
        )
        self.credentials = CredentialCache(
            self.api_client,
            endpoint_url=f"{settings.api_base_url.rstrip('/')}{settings.credential_path}",
            access_key=settings.api_key,
            default_upload_url=settings.upload_url,
            safety_margin_seconds=settings.credential_safety_margin_seconds,
            timeout=settings.http_timeout_seconds,
        )
        self.uploader = ObjectUploader(
            self.api_client,
            timeout=settings.http_timeout_seconds,
            default_image_extension=settings.default_image_extension,
            default_video_extension=settings.default_video_extension,
        )
        self.pipeline = BatchMediaPipeline(
            self.router,
            self.credentials,
            self.uploader,
            item_retries=settings.item_retries,
            upload_videos=settings.upload_videos,
        )
        self.guard = OriginTabGuard(tabs)
        self.sync_client = RecordSyncClient(
            self.api_client,
            base_url=settings.api_base_url,
            api_key=settings.api_key,
            notes_path=settings.notes_path,
            batch_path=settings.notes_batch_path,
            timeout=settings.http_timeout_seconds,
        )
        self.sync_service = CaptureSyncService(
            self.guard,
            self.pipeline,
            self.sync_client,
            self.credentials,
        )

    async def __aenter__(self) -> RelayRuntime:
        if self._configure_logs:
            configure_logging(self.settings.log_level)
        await self.privileged_channel.start()
        await self.page_channel.start()
        logger.info("runtime: relay contexts started")
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.page_channel.stop()
        await self.privileged_channel.stop()
        if self._owns_media_client:
            await self.media_client.aclose()
        if self._owns_api_client:
            await self.api_client.aclose()
        logger.info("runtime: relay contexts stopped")
