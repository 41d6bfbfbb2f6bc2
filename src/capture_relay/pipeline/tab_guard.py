"""Origin tab guard.

Checks, before a pipeline run that may need page-context fetches, that the
tab the capture came from is still there and in front.

The guard is deliberately conservative: if the tab exists but is not the
active one, it brings the tab to the front and still asks the user to retry.
It never starts background network activity on a tab the user was not
looking at, and a navigation racing the focus change cannot invalidate a
relay that is already in flight.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from capture_relay.core.media import OriginTabHandle
from capture_relay.relay.tabs import TabController

logger = logging.getLogger(__name__)

SESSION_EXPIRED_MESSAGE = (
    "The capture session has expired: the original page was closed or "
    "navigated away. Open the page again and recapture before syncing."
)
REFOCUSED_MESSAGE = (
    "The original page has been brought back to the front. "
    "Please retry the sync."
)


class UserActionReason(str, Enum):
    """Why the user has to act before a sync can proceed.

    Attributes:
        EXPIRED: The origin tab is closed, navigated away or was never
            recorded.  The capture has to be taken again.
        REFOCUSED: The tab was behind another one and has been brought to
            the front.  A retry is enough.
    """

    EXPIRED = "expired"
    REFOCUSED = "refocused"


@dataclass(frozen=True)
class GuardOk:
    """The sync may start."""


@dataclass(frozen=True)
class NeedsUserAction:
    """The sync must not start; ``message`` tells the user what to do."""

    message: str
    reason: UserActionReason


GuardResult = Union[GuardOk, NeedsUserAction]


class OriginTabGuard:
    """Checks the origin tab of a capture through a :class:`TabController`.

    Args:
        tabs: Controller used to look up, and if needed focus, the tab.
    """

    def __init__(self, tabs: TabController) -> None:
        self._tabs = tabs

    async def ensure_reachable(
        self,
        handle: Optional[OriginTabHandle],
        needs_media: bool,
    ) -> GuardResult:
        """Decide whether a sync may start.

        Args:
            handle: Origin tab of the capture, if one was recorded.
            needs_media: Whether the record references any media.  When it
                does not, no page-context fetch can happen and the guard is
                skipped regardless of ``handle``.

        Returns:
            :class:`GuardOk`, or :class:`NeedsUserAction` with guidance.
        """
        if not needs_media:
            return GuardOk()

        if handle is None:
            return NeedsUserAction(SESSION_EXPIRED_MESSAGE, UserActionReason.EXPIRED)

        state = await self._tabs.lookup(handle.tab_id)
        if state is None:
            logger.info("guard: origin tab %s is gone", handle.tab_id)
            return NeedsUserAction(SESSION_EXPIRED_MESSAGE, UserActionReason.EXPIRED)

        if handle.captured_at_url_host and state.host != handle.captured_at_url_host:
            logger.info(
                "guard: origin tab %s moved from %s to %s",
                handle.tab_id,
                handle.captured_at_url_host,
                state.host,
            )
            return NeedsUserAction(SESSION_EXPIRED_MESSAGE, UserActionReason.EXPIRED)

        if state.active:
            return GuardOk()

        focused = await self._tabs.focus(handle.tab_id)
        if not focused:
            return NeedsUserAction(SESSION_EXPIRED_MESSAGE, UserActionReason.EXPIRED)
        logger.info("guard: refocused origin tab %s; waiting for user retry", handle.tab_id)
        return NeedsUserAction(REFOCUSED_MESSAGE, UserActionReason.REFOCUSED)
