"""Bounded, time-ordered activity journal.

Every lifecycle transition and every failure in the connectivity layer
produces one entry here. The journal holds a fixed number of entries;
the oldest are evicted first and readers get the newest first.
"""

import logging
from collections import deque
from datetime import datetime
from typing import Callable, Deque, List, Optional

from glasslink.config.constants import DEFAULT_JOURNAL_CAPACITY, LOGGER_NAME
from glasslink.models.state import JournalEntry, JournalKind

_LOG_LEVELS = {
    JournalKind.INFO: logging.INFO,
    JournalKind.SUCCESS: logging.INFO,
    JournalKind.WARNING: logging.WARNING,
    JournalKind.ERROR: logging.ERROR,
}


class ActivityJournal:
    """Fixed-capacity ring of :class:`JournalEntry` records.

    Each entry is mirrored to the application logger, so the journal is a
    user-facing view of a subset of the log rather than a second sink.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_JOURNAL_CAPACITY,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        if capacity <= 0:
            raise ValueError("Journal capacity must be positive")
        self.capacity = capacity
        self.logger = logger or logging.getLogger(f"{LOGGER_NAME}.journal")
        self._clock = clock
        self._entries: Deque[JournalEntry] = deque(maxlen=capacity)
        self._listener: Optional[Callable[[JournalEntry], None]] = None

    def add(self, message: str, kind: JournalKind = JournalKind.INFO) -> JournalEntry:
        entry = JournalEntry(timestamp=self._clock(), message=message, kind=kind)
        self._entries.append(entry)
        self.logger.log(_LOG_LEVELS[kind], message)
        if self._listener is not None:
            try:
                self._listener(entry)
            except Exception as e:
                self.logger.error(f"Error in journal listener: {e}")
        return entry

    def info(self, message: str) -> JournalEntry:
        return self.add(message, JournalKind.INFO)

    def success(self, message: str) -> JournalEntry:
        return self.add(message, JournalKind.SUCCESS)

    def warning(self, message: str) -> JournalEntry:
        return self.add(message, JournalKind.WARNING)

    def error(self, message: str) -> JournalEntry:
        return self.add(message, JournalKind.ERROR)

    def entries(self) -> List[JournalEntry]:
        """Snapshot of the journal, newest first."""
        return list(reversed(self._entries))

    def lines(self) -> List[str]:
        """Formatted entries, newest first."""
        return [entry.format() for entry in self.entries()]

    def set_listener(self, listener: Optional[Callable[[JournalEntry], None]]) -> None:
        """Register the single callback invoked for each new entry."""
        self._listener = listener

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
