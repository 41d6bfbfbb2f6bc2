"""Object uploader for the CDN-backed storage bucket.

Writes one payload per call using the storage vendor's form upload (a
multipart ``POST`` with ``token``, ``key`` and ``file`` parts) and returns the
public CDN URL.  Upload completion is a single terminal response; there is
nothing to poll.

Key layout::

    {keyPrefix}/{timestamp_ms}_{random6}_{ordinal}{extension}

The timestamp and random suffix keep keys from colliding across concurrent
captures; the ordinal keeps them traceable back to the record.
"""

from __future__ import annotations

import logging
import mimetypes
import re
import secrets
import string
import time
import urllib.parse
from collections.abc import Callable

import httpx

from capture_relay.core.exceptions import UploadError
from capture_relay.core.media import MediaKind, UploadCredential

logger = logging.getLogger(__name__)

_EXTENSION_RE = re.compile(r"(\.[A-Za-z0-9]{1,5})$")
_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
_SUFFIX_LENGTH = 6


def extension_for(source_url: str, default: str) -> str:
    """Return the extension of the last path segment of ``source_url``.

    Query strings and fragments are ignored.  Falls back to ``default`` when
    the segment has no short alphanumeric extension (CDN image URLs often end
    in processing directives such as ``!nd_dft_wlteh_webp_3``).
    """
    path = urllib.parse.urlparse(source_url).path
    segment = path.rsplit("/", 1)[-1]
    match = _EXTENSION_RE.search(segment)
    if match is None:
        return default
    return match.group(1).lower()


def _random_suffix() -> str:
    return "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))


def _now_ms() -> int:
    return int(time.time() * 1000)


class ObjectUploader:
    """Upload payloads to object storage and compute their CDN URLs.

    Args:
        client: Shared :class:`httpx.AsyncClient`.
        timeout: Upload request timeout in seconds.
        default_image_extension: Key extension for images without one.
        default_video_extension: Key extension for videos without one.
        clock_ms: Millisecond timestamp source.  Injected in tests.
        suffix: Random key-suffix source.  Injected in tests.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        timeout: float = 30.0,
        default_image_extension: str = ".jpg",
        default_video_extension: str = ".mp4",
        clock_ms: Callable[[], int] = _now_ms,
        suffix: Callable[[], str] = _random_suffix,
    ) -> None:
        self._client = client
        self._timeout = timeout
        self._defaults = {
            MediaKind.IMAGE: default_image_extension,
            MediaKind.VIDEO: default_video_extension,
        }
        self._clock_ms = clock_ms
        self._suffix = suffix

    def build_key(
        self,
        key_prefix: str,
        source_url: str,
        ordinal: int,
        kind: MediaKind = MediaKind.IMAGE,
    ) -> str:
        """Derive the storage key for one media item."""
        extension = extension_for(source_url, self._defaults[kind])
        name = f"{self._clock_ms()}_{self._suffix()}_{ordinal}{extension}"
        prefix = key_prefix.strip("/")
        return f"{prefix}/{name}" if prefix else name

    async def upload(self, payload: bytes, key: str, credential: UploadCredential) -> str:
        """Write ``payload`` under ``key`` and return its CDN URL.

        Raises:
            UploadError: On transport failure, a non-2xx status (including a
                rejected token), or a confirmation for a different key.
        """
        filename = key.rsplit("/", 1)[-1]
        content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        try:
            response = await self._client.post(
                credential.upload_url,
                data={"token": credential.token, "key": key},
                files={"file": (filename, payload, content_type)},
                timeout=self._timeout,
            )
        except httpx.RequestError as exc:
            logger.warning("cdn: upload request failed for %s: %s", key, exc)
            raise UploadError(f"upload request failed: {exc}", key=key) from exc

        if not response.is_success:
            detail = _error_detail(response)
            logger.warning("cdn: upload of %s rejected (HTTP %d): %s", key, response.status_code, detail)
            raise UploadError(
                f"upload rejected (HTTP {response.status_code}): {detail}",
                key=key,
                status_code=response.status_code,
            )

        confirmed_key = _confirmed_key(response)
        if confirmed_key is not None and confirmed_key != key:
            raise UploadError(
                f"storage confirmed key '{confirmed_key}' instead of '{key}'",
                key=key,
                status_code=response.status_code,
            )

        cdn_url = f"{credential.cdn_domain.rstrip('/')}/{key}"
        logger.info("cdn: uploaded %s (%d bytes)", cdn_url, len(payload))
        return cdn_url


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or "no detail"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return "no detail"


def _confirmed_key(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("key"), str):
        return body["key"]
    return None
