"""Value types shared by the relay, the uploader and the batch pipeline.

Everything here is immutable (``frozen=True``): a value created in one
execution context is never mutated by another.  Contexts exchange copies
through the relay channel; they never share these objects.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Union


class MediaKind(str, Enum):
    """Kind of media referenced by a captured record."""

    IMAGE = "image"
    VIDEO = "video"


class ContextHint(str, Enum):
    """Which execution context a relay request should start with.

    Attributes:
        PRIVILEGED: Try the cookie-less privileged context first, then fall
            back to the page context.
        PAGE_CONTEXT: Go straight to the origin tab's page context.
    """

    PRIVILEGED = "privileged"
    PAGE_CONTEXT = "page_context"


@dataclass(frozen=True)
class MediaReference:
    """A single media URL taken from a captured record.

    Attributes:
        source_url: Original URL as scraped from the page.
        kind: Image or video.
        ordinal: Position of the item within its record; used in storage keys.
    """

    source_url: str
    kind: MediaKind
    ordinal: int


@dataclass(frozen=True)
class UploadCredential:
    """A time-limited upload token issued by the credential endpoint.

    ``expires_at`` already includes the safety margin, so the credential may be
    used for as long as ``now < expires_at``.
    """

    token: str
    cdn_domain: str
    key_prefix: str
    expires_at: datetime
    upload_url: str

    def is_valid_at(self, now: datetime) -> bool:
        return now < self.expires_at


@dataclass(frozen=True)
class OriginTabHandle:
    """Weak reference to the tab a capture was taken from.

    Identifies the tab but does not own it; the user may close or navigate it
    at any time.

    Attributes:
        tab_id: Opaque id assigned by the tab controller.
        captured_at_url_host: Host of the page at capture time.  A tab whose
            current host differs is treated as navigated away.
    """

    tab_id: str
    captured_at_url_host: str


@dataclass(frozen=True)
class RelayRequest:
    """One download request travelling through the relay router."""

    source_url: str
    target_context_hint: ContextHint = ContextHint.PRIVILEGED
    origin: Optional[OriginTabHandle] = None
    request_id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass(frozen=True)
class RelaySuccess:
    payload: bytes


@dataclass(frozen=True)
class RelayFailure:
    """All tiers failed.

    ``origin_lost`` is set when a tier reported that the origin tab the
    request named can no longer be reached.
    """

    reason: str
    origin_lost: bool = False


RelayResult = Union[RelaySuccess, RelayFailure]


@dataclass(frozen=True)
class PipelineItemResult:
    """Terminal state of one media item after a pipeline run.

    Attributes:
        ordinal: Ordinal of the source :class:`MediaReference`.
        final_url: CDN URL on success, otherwise the original source URL.
        used_fallback_original: ``True`` when ``final_url`` is the source URL.
        error: Stage-qualified failure description, or ``None`` on success.
    """

    ordinal: int
    final_url: str
    used_fallback_original: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class PipelineReport:
    """Aggregate result of a batch pipeline run.

    ``items`` is ordered like the input references and always has the same
    length.  ``fatal_error`` is set only when the run short-circuited on a
    missing or rejected access key.  ``origin_lost`` is set when the origin
    tab went away part-way through the run.
    """

    succeeded: int
    failed: int
    items: tuple[PipelineItemResult, ...]
    fatal_error: Optional[str] = None
    origin_lost: bool = False

    @classmethod
    def from_items(
        cls,
        items: list[PipelineItemResult],
        fatal_error: Optional[str] = None,
        origin_lost: bool = False,
    ) -> PipelineReport:
        failed = sum(1 for item in items if item.used_fallback_original)
        return cls(
            succeeded=len(items) - failed,
            failed=failed,
            items=tuple(items),
            fatal_error=fatal_error,
            origin_lost=origin_lost,
        )

    @property
    def final_urls(self) -> list[str]:
        return [item.final_url for item in self.items]
