"""Unit tests for captured record schemas and media extraction."""

from __future__ import annotations

from capture_relay.core.media import MediaKind
from capture_relay.sync.records import (
    NOTE_TYPE_IMAGE,
    NOTE_TYPE_VIDEO,
    CapturedLink,
    CapturedNote,
    LinkSyncRecord,
    split_comma_list,
)


class TestSplitCommaList:
    def test_blank_is_empty(self) -> None:
        assert split_comma_list("") == []
        assert split_comma_list(None) == []

    def test_strips_and_drops_empty_parts(self) -> None:
        assert split_comma_list(" a , ,b,") == ["a", "b"]

    def test_splits_tags(self) -> None:
        assert split_comma_list("旅行,美食 , 日常") == ["旅行", "美食", "日常"]


def test_note_types_match_backend_counters() -> None:
    assert NOTE_TYPE_IMAGE == "图文"
    assert NOTE_TYPE_VIDEO == "视频"


class TestNoteMediaReferences:
    def test_images_then_video(self) -> None:
        note = CapturedNote.model_validate(
            {
                "url": "https://notes.example.com/n/1",
                "imageUrls": "https://img/1.jpg,https://img/2.jpg",
                "videoUrl": "https://video/clip",
            }
        )
        refs = note.media_references()

        assert [(r.source_url, r.kind, r.ordinal) for r in refs] == [
            ("https://img/1.jpg", MediaKind.IMAGE, 0),
            ("https://img/2.jpg", MediaKind.IMAGE, 1),
            ("https://video/clip", MediaKind.VIDEO, 2),
        ]

    def test_cover_used_when_no_images(self) -> None:
        note = CapturedNote(url="https://n/1", cover_image_url="https://img/cover.jpg")
        refs = note.media_references()

        assert len(refs) == 1
        assert refs[0].source_url == "https://img/cover.jpg"

    def test_text_only_note_has_no_media(self) -> None:
        assert CapturedNote(url="https://n/1", content="hello").media_references() == []


class TestLinks:
    def test_http_cover_is_relayed(self) -> None:
        ref = CapturedLink(url="https://n/1", image="https://img/c.jpg").cover_reference()
        assert ref is not None
        assert ref.ordinal == 0

    def test_non_http_cover_is_ignored(self) -> None:
        assert CapturedLink(url="https://n/1", image="data:image/png;base64,xx").cover_reference() is None
        assert CapturedLink(url="https://n/1").cover_reference() is None

    def test_sync_record_uses_camel_case(self) -> None:
        record = LinkSyncRecord(
            url="https://n/1",
            title="t",
            author="a",
            likes=3,
            image="https://cdn/c.jpg",
            publish_date=1,
            capture_timestamp=2,
        )
        body = record.model_dump(by_alias=True)
        assert body["publishDate"] == 1
        assert body["captureTimestamp"] == 2
        assert body["source"] == "batch"
