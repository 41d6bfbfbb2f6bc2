"""Configuration package for capture-relay.

Re-exports the settings symbols so that callers can write::

    from capture_relay.config import get_settings
"""

from __future__ import annotations

from capture_relay.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
