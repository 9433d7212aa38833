"""
Unit tests for the activity journal.

Tests:
- Capacity bounding and newest-first ordering
- Entry kinds and formatting
- Logger mirroring and listener isolation
"""

import logging
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from glasslink.journal import ActivityJournal
from glasslink.models.state import JournalEntry, JournalKind


class TestActivityJournal:
    def test_sixty_entries_keep_fifty_most_recent_newest_first(self):
        journal = ActivityJournal(capacity=50)

        for i in range(60):
            journal.info(f"entry {i}")

        entries = journal.entries()
        assert len(entries) == 50
        assert entries[0].message == "entry 59"
        assert entries[-1].message == "entry 10"
        assert [e.message for e in entries] == [f"entry {i}" for i in range(59, 9, -1)]

    def test_default_capacity_is_fifty(self):
        assert ActivityJournal().capacity == 50

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            ActivityJournal(capacity=0)

    def test_kind_helpers(self):
        journal = ActivityJournal()
        journal.info("a")
        journal.success("b")
        journal.warning("c")
        journal.error("d")

        kinds = [e.kind for e in reversed(journal.entries())]
        assert kinds == [
            JournalKind.INFO,
            JournalKind.SUCCESS,
            JournalKind.WARNING,
            JournalKind.ERROR,
        ]

    def test_lines_are_time_prefixed(self):
        journal = ActivityJournal(clock=lambda: datetime(2024, 5, 1, 9, 5, 7))
        journal.info("Connected to server")

        assert journal.lines() == ["[09:05:07] Connected to server"]

    def test_entries_returns_a_copy(self):
        journal = ActivityJournal()
        journal.info("one")
        snapshot = journal.entries()
        journal.info("two")

        assert len(snapshot) == 1

    def test_clear(self):
        journal = ActivityJournal()
        journal.info("one")
        journal.clear()
        assert len(journal) == 0
        assert journal.entries() == []

    def test_entries_are_mirrored_to_logger(self):
        logger = MagicMock(spec=logging.Logger)
        journal = ActivityJournal(logger=logger)

        journal.error("Connection failed")

        logger.log.assert_called_once_with(logging.ERROR, "Connection failed")

    def test_listener_receives_entries(self):
        journal = ActivityJournal()
        received = []
        journal.set_listener(received.append)

        entry = journal.warning("App in background")

        assert received == [entry]
        assert isinstance(entry, JournalEntry)

    def test_failing_listener_does_not_lose_entry(self):
        journal = ActivityJournal()
        journal.set_listener(MagicMock(side_effect=RuntimeError("boom")))

        journal.info("still recorded")

        assert journal.entries()[0].message == "still recorded"
