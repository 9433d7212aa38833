"""Host foreground/background flag consulted before local playback."""

import logging

logger = logging.getLogger(__name__)


class ForegroundMonitor:
    """Tracks whether the host application is in the foreground.

    The host (or the presentation layer) calls :meth:`set_foreground` on
    lifecycle changes. A headless host stays in the foreground.
    """

    def __init__(self, foreground: bool = True):
        self._foreground = foreground

    @property
    def is_foreground(self) -> bool:
        return self._foreground

    def set_foreground(self, foreground: bool) -> None:
        if foreground == self._foreground:
            return
        self._foreground = foreground
        logger.info(f"Host moved to the {'foreground' if foreground else 'background'}")
