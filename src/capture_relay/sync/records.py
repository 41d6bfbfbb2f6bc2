"""Pydantic schemas for captured records and their outgoing sync payloads.

``CapturedNote`` and ``CapturedLink`` are produced by the external extractor
(page scraping is not part of this package).  ``NoteSyncRecord`` and
``LinkSyncRecord`` are what the backend receives; their media fields must
already hold CDN URLs or accepted original-URL fallbacks.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from capture_relay.core.media import MediaKind, MediaReference

#: Note types as the backend stores and counts them.
NOTE_TYPE_VIDEO = "视频"
NOTE_TYPE_IMAGE = "图文"


def split_comma_list(value: Optional[str]) -> list[str]:
    """Split one of the extractor's comma-joined fields (URLs, tags), dropping blanks."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CapturedNote(_CamelModel):
    """A single note captured from a detail page.

    Attributes:
        image_urls: Comma-joined image URLs, in page order.
        video_url: Video URL for video notes, else empty.
        tags: Comma-joined tags.
    """

    url: str
    title: str = ""
    author: str = ""
    content: str = ""
    tags: str = ""
    likes: int = 0
    collects: int = 0
    comments: int = 0
    publish_date: Optional[int] = Field(default=None, alias="publishDate")
    image_urls: str = Field(default="", alias="imageUrls")
    video_url: str = Field(default="", alias="videoUrl")
    note_type: str = Field(default="", alias="noteType")
    cover_image_url: str = Field(default="", alias="coverImageUrl")

    def media_references(self) -> list[MediaReference]:
        """Return the note's media in sync order: images, then the video.

        When the note has no images but carries a cover image, the cover is
        relayed in their place so the outgoing cover is resolved too.
        """
        images = split_comma_list(self.image_urls)
        if not images and self.cover_image_url.strip():
            images = [self.cover_image_url.strip()]
        refs = [
            MediaReference(source_url=url, kind=MediaKind.IMAGE, ordinal=i)
            for i, url in enumerate(images)
        ]
        if self.video_url.strip():
            refs.append(
                MediaReference(
                    source_url=self.video_url.strip(),
                    kind=MediaKind.VIDEO,
                    ordinal=len(refs),
                )
            )
        return refs


class CapturedLink(_CamelModel):
    """One row of a list-page batch capture."""

    url: str
    title: str = ""
    author: str = ""
    likes: int = 0
    image: str = ""
    publish_date: Optional[int] = Field(default=None, alias="publishDate")

    def cover_reference(self) -> Optional[MediaReference]:
        """Return the cover image as a media reference if it is an http(s) URL."""
        if not self.image.startswith("http"):
            return None
        return MediaReference(source_url=self.image, kind=MediaKind.IMAGE, ordinal=0)


class NoteSyncRecord(_CamelModel):
    """Outgoing ``POST /api/v1/notes`` body."""

    url: str
    title: str
    author: str
    content: str
    tags: list[str]
    image_urls: list[str] = Field(alias="imageUrls")
    video_url: str = Field(alias="videoUrl")
    note_type: str = Field(alias="noteType")
    cover_image_url: str = Field(alias="coverImageUrl")
    likes: int
    collects: int
    comments: int
    publish_date: int = Field(alias="publishDate")
    source: str = "single"
    capture_timestamp: int = Field(alias="captureTimestamp")


class LinkSyncRecord(_CamelModel):
    """One element of the outgoing ``POST /api/v1/notes/batch`` body."""

    url: str
    title: str
    author: str
    likes: int
    image: str
    publish_date: int = Field(alias="publishDate")
    source: str = "batch"
    capture_timestamp: int = Field(alias="captureTimestamp")
