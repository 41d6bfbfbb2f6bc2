"""Cross-context media relay.

Downloads media referenced by a capture from whichever execution context can
reach it.

Sub-modules:
- ``config``             - constants and the in-page fetch script
- ``messages``           - pydantic models for the ``fetchMedia`` contract
- ``channel``            - JSON message channel in front of each context
- ``contexts``           - privileged and page-context request handlers
- ``privileged_fetcher`` - cookie-less httpx downloader
- ``page_fetcher``       - Playwright in-tab downloader (anti-hotlinking fallback)
- ``tabs``               - tab controller protocol and Playwright implementation
- ``router``             - ordered fallback chain with per-attempt timeouts
"""
