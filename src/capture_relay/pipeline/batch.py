"""Batch media pipeline: download → credential → upload, one item at a time.

Items are processed strictly in order.  Item ``i+1`` starts only once item
``i`` has a recorded terminal state, which keeps upload pacing within the
backend's tolerance and lets the caller narrate "item i of N".

Any per-item failure degrades to an original-URL fallback and the batch goes
on.  The only early exit is a missing or rejected access key
(:class:`~capture_relay.core.exceptions.MissingAuthError`): every later item
would fail identically, so the run stops issuing requests and surfaces one
fatal message.  Even then each remaining item gets a fallback result, so the
report always has exactly one entry per input reference.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from capture_relay.cdn.credential_cache import CredentialCache
from capture_relay.cdn.uploader import ObjectUploader
from capture_relay.core.exceptions import CaptureRelayError, MissingAuthError
from capture_relay.core.media import (
    MediaKind,
    MediaReference,
    OriginTabHandle,
    PipelineItemResult,
    PipelineReport,
    RelayFailure,
    RelayRequest,
    RelayResult,
)
from capture_relay.pipeline.tab_guard import SESSION_EXPIRED_MESSAGE
from capture_relay.relay.router import RelayRouter

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    START = "start"
    DOWNLOAD = "download"
    CREDENTIAL = "credential"
    UPLOAD = "upload"
    DONE = "done"
    SKIPPED = "skipped"
    ABORTED = "aborted"
    ORIGIN_LOST = "origin_lost"
    FATAL = "fatal"


@dataclass(frozen=True)
class PipelineStatus:
    """One incremental, user-facing progress or failure message.

    Attributes:
        index: 1-based position of the item, or 0 for run-level messages.
        total: Number of items in the run.
        stage: Stage the message refers to.
        message: Text naming the item, the stage and any fallback applied.
        fatal: ``True`` only for the single short-circuit message.
    """

    index: int
    total: int
    stage: PipelineStage
    message: str
    fatal: bool = False


StatusCallback = Callable[[PipelineStatus], None]


@dataclass
class _RunState:
    """Mutable per-run state shared by the items of one run."""

    origin: Optional[OriginTabHandle]
    origin_lost: bool = False


def _fallback(ref: MediaReference, error: str) -> PipelineItemResult:
    return PipelineItemResult(
        ordinal=ref.ordinal,
        final_url=ref.source_url,
        used_fallback_original=True,
        error=error,
    )


class BatchMediaPipeline:
    """Drive each media reference through relay, credential and upload.

    Args:
        router: Relay router used to download each item.
        credentials: Upload credential cache.
        uploader: Object uploader.
        item_retries: Extra relay attempts per item after a relay failure.
        upload_videos: When ``False``, video references keep their original
            URL without being downloaded.
    """

    def __init__(
        self,
        router: RelayRouter,
        credentials: CredentialCache,
        uploader: ObjectUploader,
        *,
        item_retries: int = 0,
        upload_videos: bool = True,
    ) -> None:
        self._router = router
        self._credentials = credentials
        self._uploader = uploader
        self._item_retries = item_retries
        self._upload_videos = upload_videos

    async def process(
        self,
        references: Sequence[MediaReference],
        origin: Optional[OriginTabHandle] = None,
        *,
        status: Optional[StatusCallback] = None,
        should_abort: Optional[Callable[[], bool]] = None,
    ) -> PipelineReport:
        """Process ``references`` sequentially and return the aggregate report.

        Args:
            references: Media to relay, in record order.
            origin: Origin tab used for page-context fallbacks.
            status: Receives a :class:`PipelineStatus` per stage event.
            should_abort: Checked between items only.  Once it returns
                ``True`` the in-flight item has already finished; the rest are
                recorded as fallbacks with error ``"aborted"``.

        Returns:
            A :class:`PipelineReport`.  Never raises for per-item failures.
        """
        refs = list(references)
        total = len(refs)
        if total == 0:
            return PipelineReport.from_items([])

        def emit(index: int, stage: PipelineStage, message: str, fatal: bool = False) -> None:
            if status is not None:
                status(PipelineStatus(index=index, total=total, stage=stage, message=message, fatal=fatal))

        try:
            await self._credentials.get_credential()
        except MissingAuthError as exc:
            return self._short_circuit(refs, [], exc, emit)
        except CaptureRelayError as exc:
            # Not fatal: each item retries the credential step on its own.
            logger.warning("pipeline: credential pre-flight failed: %s", exc)

        state = _RunState(origin=origin)
        items: list[PipelineItemResult] = []
        for index, ref in enumerate(refs, start=1):
            if should_abort is not None and should_abort():
                logger.info("pipeline: aborted before item %d/%d", index, total)
                emit(
                    index,
                    PipelineStage.ABORTED,
                    f"Sync aborted; items {index}-{total} keep their original URLs",
                )
                items.extend(_fallback(rest, "aborted") for rest in refs[index - 1:])
                break

            try:
                items.append(await self._process_one(ref, index, total, state, emit))
            except MissingAuthError as exc:
                return self._short_circuit(refs, items, exc, emit, origin_lost=state.origin_lost)

        report = PipelineReport.from_items(items, origin_lost=state.origin_lost)
        logger.info(
            "pipeline: finished %d item(s): %d uploaded, %d kept original",
            total,
            report.succeeded,
            report.failed,
        )
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _short_circuit(
        self,
        refs: list[MediaReference],
        done: list[PipelineItemResult],
        exc: MissingAuthError,
        emit: Callable[..., None],
        *,
        origin_lost: bool = False,
    ) -> PipelineReport:
        message = str(exc)
        logger.warning("pipeline: stopping run, %s", message)
        emit(0, PipelineStage.FATAL, message, True)
        items = list(done)
        items.extend(_fallback(ref, f"credential: {message}") for ref in refs[len(done):])
        return PipelineReport.from_items(items, fatal_error=message, origin_lost=origin_lost)

    async def _relay(
        self,
        ref: MediaReference,
        state: _RunState,
        emit: Callable[..., None],
    ) -> RelayResult:
        result: RelayResult = RelayFailure(reason="not attempted")
        for attempt in range(self._item_retries + 1):
            result = await self._router.relay(RelayRequest(source_url=ref.source_url, origin=state.origin))
            if not isinstance(result, RelayFailure):
                return result
            if result.origin_lost and state.origin is not None:
                # Later attempts and items skip the page context entirely.
                logger.info("pipeline: origin tab %s is gone, dropping page fallback", state.origin.tab_id)
                state.origin = None
                state.origin_lost = True
                emit(0, PipelineStage.ORIGIN_LOST, SESSION_EXPIRED_MESSAGE)
            if attempt < self._item_retries:
                logger.info(
                    "pipeline: retrying download of %s (%d/%d)",
                    ref.source_url,
                    attempt + 1,
                    self._item_retries,
                )
        return result

    async def _process_one(
        self,
        ref: MediaReference,
        index: int,
        total: int,
        state: _RunState,
        emit: Callable[..., None],
    ) -> PipelineItemResult:
        label = f"{ref.kind.value} {index}/{total}"
        emit(index, PipelineStage.START, f"Uploading {label}...")

        if ref.kind is MediaKind.VIDEO and not self._upload_videos:
            emit(index, PipelineStage.SKIPPED, f"{label}: video upload disabled, keeping original URL")
            return _fallback(ref, "skipped: video upload disabled")

        stage = PipelineStage.DOWNLOAD
        try:
            result = await self._relay(ref, state, emit)
            if isinstance(result, RelayFailure):
                emit(
                    index,
                    PipelineStage.DOWNLOAD,
                    f"{label}: download failed ({result.reason}), keeping original URL",
                )
                return _fallback(ref, f"download: {result.reason}")

            stage = PipelineStage.CREDENTIAL
            try:
                credential = await self._credentials.get_credential()
            except MissingAuthError:
                raise
            except CaptureRelayError as exc:
                emit(
                    index,
                    PipelineStage.CREDENTIAL,
                    f"{label}: could not get an upload credential ({exc}), keeping original URL",
                )
                return _fallback(ref, f"credential: {exc}")

            stage = PipelineStage.UPLOAD
            key = self._uploader.build_key(credential.key_prefix, ref.source_url, ref.ordinal, ref.kind)
            try:
                cdn_url = await self._uploader.upload(result.payload, key, credential)
            except CaptureRelayError as exc:
                emit(
                    index,
                    PipelineStage.UPLOAD,
                    f"{label}: upload failed ({exc}), keeping original URL",
                )
                return _fallback(ref, f"upload: {exc}")
        except MissingAuthError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("pipeline: unexpected error during %s of %s", stage.value, ref.source_url)
            emit(index, stage, f"{label}: unexpected {stage.value} error ({exc}), keeping original URL")
            return _fallback(ref, f"{stage.value}: unexpected error: {exc}")

        emit(index, PipelineStage.DONE, f"{label}: uploaded")
        return PipelineItemResult(
            ordinal=ref.ordinal,
            final_url=cdn_url,
            used_fallback_original=False,
        )
