#!/usr/bin/env python
"""Fetch an upload credential to verify the API key and storage configuration.

Run from the project root::

    python scripts/check_upload_token.py [--api-key KEY] [--base-url URL]

Prints the CDN domain, key prefix, upload host and the cached expiry (which
already includes the safety margin).  The token itself is never printed.

Exit codes:
    0 - A credential was issued.
    1 - No API key configured, key rejected, or the endpoint failed.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Ensure the src layout is on sys.path when run as a standalone script.
_SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
_SRC_DIR = os.path.join(os.path.dirname(_SCRIPT_DIR), "src")
if _SRC_DIR not in sys.path:
    sys.path.insert(0, _SRC_DIR)


async def _run(api_key: str | None, base_url: str | None) -> int:
    """Fetch one credential and print its public fields.

    Returns:
        Process exit code.
    """
    import httpx  # noqa: PLC0415

    from capture_relay.cdn.credential_cache import CredentialCache  # noqa: PLC0415
    from capture_relay.config.settings import get_settings  # noqa: PLC0415
    from capture_relay.core.exceptions import CaptureRelayError  # noqa: PLC0415

    settings = get_settings()
    base = (base_url or settings.api_base_url).rstrip("/")

    async with httpx.AsyncClient() as client:
        cache = CredentialCache(
            client,
            endpoint_url=f"{base}{settings.credential_path}",
            access_key=api_key or settings.api_key,
            default_upload_url=settings.upload_url,
            safety_margin_seconds=settings.credential_safety_margin_seconds,
            timeout=settings.http_timeout_seconds,
        )
        try:
            credential = await cache.get_credential()
        except CaptureRelayError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    print(f"CDN domain:  {credential.cdn_domain}")
    print(f"Key prefix:  {credential.key_prefix}")
    print(f"Upload host: {credential.upload_url}")
    print(f"Valid until: {credential.expires_at.isoformat()}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Verify the upload-credential endpoint and API key."
    )
    parser.add_argument("--api-key", help="Override the configured API key.")
    parser.add_argument("--base-url", help="Override the configured backend base URL.")
    args = parser.parse_args()
    sys.exit(asyncio.run(_run(args.api_key, args.base_url)))


if __name__ == "__main__":
    main()
