"""Capture sync orchestration: guard → media pipeline → record POST.

The pipeline always runs to completion (or short-circuits on a missing
access key) before any record is submitted, so every media field in the
outgoing record is either a CDN URL or an accepted original-URL fallback.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog

from capture_relay.cdn.credential_cache import CredentialCache
from capture_relay.core.exceptions import CaptureRelayError
from capture_relay.core.logging_config import sync_id_var
from capture_relay.core.media import MediaKind, OriginTabHandle, PipelineReport
from capture_relay.pipeline.batch import BatchMediaPipeline, StatusCallback
from capture_relay.pipeline.tab_guard import SESSION_EXPIRED_MESSAGE, NeedsUserAction, OriginTabGuard
from capture_relay.sync.client import RecordSyncClient
from capture_relay.sync.records import (
    NOTE_TYPE_IMAGE,
    NOTE_TYPE_VIDEO,
    CapturedLink,
    CapturedNote,
    LinkSyncRecord,
    NoteSyncRecord,
    split_comma_list,
)

logger = structlog.get_logger(__name__)


class SyncStatus(str, Enum):
    SYNCED = "synced"
    NEEDS_USER_ACTION = "needs_user_action"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncOutcome:
    status: SyncStatus
    message: str
    report: Optional[PipelineReport] = None
    record_count: int = 0


def _now_ms() -> int:
    return int(time.time() * 1000)


def _partial_note(report: PipelineReport) -> str:
    if report.failed == 0:
        return ""
    return f" ({report.failed} of {len(report.items)} media kept their original URLs)"


def _summary(head: str, report: PipelineReport) -> str:
    message = head + _partial_note(report)
    if report.origin_lost:
        message += ". " + SESSION_EXPIRED_MESSAGE
    return message


class CaptureSyncService:
    """Sync captured records to the backend after relaying their media.

    Args:
        guard: Origin tab guard.
        pipeline: Batch media pipeline.
        sync_client: Record sync client.
        credentials: Credential cache; invalidated after each accepted sync.
        clock_ms: Millisecond timestamp source.  Injected in tests.
    """

    def __init__(
        self,
        guard: OriginTabGuard,
        pipeline: BatchMediaPipeline,
        sync_client: RecordSyncClient,
        credentials: CredentialCache,
        *,
        clock_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self._guard = guard
        self._pipeline = pipeline
        self._sync_client = sync_client
        self._credentials = credentials
        self._clock_ms = clock_ms

    async def sync_note(
        self,
        note: CapturedNote,
        origin: Optional[OriginTabHandle],
        *,
        status: Optional[StatusCallback] = None,
        should_abort: Optional[Callable[[], bool]] = None,
    ) -> SyncOutcome:
        """Relay a single note's media and submit it."""
        token = sync_id_var.set(uuid.uuid4().hex)
        try:
            refs = note.media_references()
            log = logger.bind(note_url=note.url, media_count=len(refs))

            verdict = await self._guard.ensure_reachable(origin, needs_media=bool(refs))
            if isinstance(verdict, NeedsUserAction):
                log.info("sync.needs_user_action", reason=verdict.reason.value)
                return SyncOutcome(SyncStatus.NEEDS_USER_ACTION, verdict.message)

            report = await self._pipeline.process(
                refs, origin, status=status, should_abort=should_abort
            )
            if report.fatal_error is not None:
                log.warning("sync.aborted", error=report.fatal_error)
                return SyncOutcome(SyncStatus.FAILED, report.fatal_error, report=report)

            images = [
                item.final_url
                for ref, item in zip(refs, report.items)
                if ref.kind is MediaKind.IMAGE
            ]
            videos = [
                item.final_url
                for ref, item in zip(refs, report.items)
                if ref.kind is MediaKind.VIDEO
            ]
            now = self._clock_ms()
            record = NoteSyncRecord(
                url=note.url,
                title=note.title,
                author=note.author,
                content=note.content,
                tags=split_comma_list(note.tags),
                image_urls=images if split_comma_list(note.image_urls) else [],
                video_url=videos[0] if videos else "",
                note_type=note.note_type or (NOTE_TYPE_VIDEO if videos else NOTE_TYPE_IMAGE),
                cover_image_url=images[0] if images else "",
                likes=note.likes,
                collects=note.collects,
                comments=note.comments,
                publish_date=note.publish_date or now,
                source="single",
                capture_timestamp=now,
            )

            try:
                await self._sync_client.submit_note(record)
            except CaptureRelayError as exc:
                log.warning("sync.failed", error=str(exc))
                return SyncOutcome(SyncStatus.FAILED, f"Sync failed: {exc}", report=report)

            self._credentials.invalidate()
            log.info(
                "sync.completed",
                uploaded=report.succeeded,
                kept_original=report.failed,
                origin_lost=report.origin_lost,
            )
            return SyncOutcome(
                SyncStatus.SYNCED,
                _summary("Synced", report),
                report=report,
                record_count=1,
            )
        finally:
            sync_id_var.reset(token)

    async def sync_links(
        self,
        links: Sequence[CapturedLink],
        origin: Optional[OriginTabHandle],
        *,
        status: Optional[StatusCallback] = None,
        should_abort: Optional[Callable[[], bool]] = None,
    ) -> SyncOutcome:
        """Relay each link's cover image and submit the batch."""
        if not links:
            return SyncOutcome(SyncStatus.FAILED, "Nothing to sync")

        token = sync_id_var.set(uuid.uuid4().hex)
        try:
            positions: list[int] = []
            refs = []
            for position, link in enumerate(links):
                ref = link.cover_reference()
                if ref is not None:
                    positions.append(position)
                    refs.append(ref)
            log = logger.bind(link_count=len(links), media_count=len(refs))

            verdict = await self._guard.ensure_reachable(origin, needs_media=bool(refs))
            if isinstance(verdict, NeedsUserAction):
                log.info("sync.needs_user_action", reason=verdict.reason.value)
                return SyncOutcome(SyncStatus.NEEDS_USER_ACTION, verdict.message)

            report = await self._pipeline.process(
                refs, origin, status=status, should_abort=should_abort
            )
            if report.fatal_error is not None:
                log.warning("sync.aborted", error=report.fatal_error)
                return SyncOutcome(SyncStatus.FAILED, report.fatal_error, report=report)

            covers = {pos: item.final_url for pos, item in zip(positions, report.items)}
            now = self._clock_ms()
            records = [
                LinkSyncRecord(
                    url=link.url,
                    title=link.title,
                    author=link.author,
                    likes=link.likes,
                    image=covers.get(position, link.image),
                    publish_date=link.publish_date or now,
                    source="batch",
                    capture_timestamp=now,
                )
                for position, link in enumerate(links)
            ]

            try:
                await self._sync_client.submit_links(records)
            except CaptureRelayError as exc:
                log.warning("sync.failed", error=str(exc))
                return SyncOutcome(SyncStatus.FAILED, f"Sync failed: {exc}", report=report)

            self._credentials.invalidate()
            log.info(
                "sync.completed",
                uploaded=report.succeeded,
                kept_original=report.failed,
                origin_lost=report.origin_lost,
            )
            return SyncOutcome(
                SyncStatus.SYNCED,
                _summary(f"Synced {len(records)} notes", report),
                report=report,
                record_count=len(records),
            )
        finally:
            sync_id_var.reset(token)
