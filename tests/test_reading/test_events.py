"""Tests for session event log replay."""

from datetime import datetime, timedelta, timezone

import pytest

from readingtracker.clock import to_storage
from readingtracker.db.models import SessionEvent
from readingtracker.db.schemas import SessionEventType
from readingtracker.reading.events import (
    ReplayState,
    actual_reading_time,
    append_event,
    replay,
)

T0 = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


def make_events(*entries: tuple[str, float]) -> list[SessionEvent]:
    """Build an event log from (type, seconds after T0) pairs."""
    return [
        SessionEvent(
            sequence=i,
            timestamp=to_storage(T0 + timedelta(seconds=offset)),
            event_type=kind,
        )
        for i, (kind, offset) in enumerate(entries)
    ]


class TestReplay:
    """Tests for folding an event log into reading time."""

    def test_start_only_is_open(self):
        """Test that a fresh session has an open segment from its start."""
        state = replay(T0, make_events(("start", 0)))

        assert state.resume_anchor == T0
        assert not state.is_paused
        assert state.duration_at(T0 + timedelta(seconds=45)) == 45

    def test_pause_closes_segment(self):
        """Test that a pause stops the clock."""
        state = replay(T0, make_events(("start", 0), ("pause", 100)))

        assert state.is_paused
        assert state.accumulated_seconds == 100
        assert state.duration_at(T0 + timedelta(hours=5)) == 100

    def test_pause_resume_end(self):
        """Test the canonical reading time of a finished session."""
        events = make_events(
            ("start", 0), ("pause", 600), ("resume", 720), ("end", 1020)
        )

        state = replay(T0, events, T0 + timedelta(seconds=1020))

        assert state.is_ended
        assert state.resume_anchor is None
        assert state.accumulated_seconds == 900

    def test_duplicate_pause_ignored(self):
        """Test that a pause while paused does not double count."""
        events = make_events(("start", 0), ("pause", 50), ("pause", 80), ("resume", 90))

        state = replay(T0, events)

        assert state.accumulated_seconds == 50
        assert state.resume_anchor == T0 + timedelta(seconds=90)

    def test_resume_while_reading_ignored(self):
        """Test that a stray resume does not move the anchor."""
        state = replay(T0, make_events(("start", 0), ("resume", 30)))
        assert state.resume_anchor == T0

    def test_distractions_counted(self):
        """Test distraction events are tallied."""
        events = make_events(("start", 0), ("distraction", 5), ("distraction", 9))
        assert replay(T0, events).distraction_count == 2

    def test_end_while_paused(self):
        """Test that paused time before the end is excluded."""
        events = make_events(("start", 0), ("pause", 60), ("end", 500))

        state = replay(T0, events, T0 + timedelta(seconds=500))

        assert state.accumulated_seconds == 60

    def test_events_after_end_time_ignored(self):
        """Test that events past the recorded end are dropped."""
        events = make_events(("start", 0), ("pause", 30), ("resume", 40), ("pause", 400))

        state = replay(T0, events, T0 + timedelta(seconds=100))

        assert state.accumulated_seconds == 90
        assert state.is_ended

    def test_missing_end_event_clipped_at_end_time(self):
        """Test auto-closed sessions that have no end event."""
        state = replay(T0, make_events(("start", 0)), T0 + timedelta(seconds=60))

        assert state.accumulated_seconds == 60
        assert state.resume_anchor is None

    def test_empty_log(self):
        """Test replay of a session with no events."""
        state = replay(T0, [])
        assert state.duration_at(T0 + timedelta(seconds=10)) == 10

    def test_duration_never_negative(self):
        """Test an instant before the anchor."""
        state = ReplayState(accumulated_seconds=5, resume_anchor=T0)
        assert state.duration_at(T0 - timedelta(seconds=30)) == 5


class TestAppendEvent:
    """Tests for writing to the event log."""

    @pytest.fixture
    def reading_session(self, db, created_book):
        return db.create_session(created_book.id, T0, 50)

    def test_sequence_increments(self, db, reading_session):
        """Test that events are numbered in order."""

        def _append(s):
            rs = db.get_session_by_id(reading_session.id, s)
            append_event(s, rs, SessionEventType.START, T0)
            append_event(s, rs, SessionEventType.PAUSE, T0 + timedelta(seconds=5))

        db.transaction(_append)

        events = db.get_events_for_session(reading_session.id)
        assert [e.sequence for e in events] == [0, 1]
        assert [e.type for e in events] == [SessionEventType.START, SessionEventType.PAUSE]

    def test_timestamp_clamped_to_last_event(self, db, reading_session):
        """Test that the log never goes backwards in time."""

        def _append(s):
            rs = db.get_session_by_id(reading_session.id, s)
            append_event(s, rs, SessionEventType.START, T0)
            append_event(s, rs, SessionEventType.PAUSE, T0 + timedelta(seconds=30))
            return append_event(s, rs, SessionEventType.RESUME, T0 + timedelta(seconds=10))

        resumed = db.transaction(_append)

        assert resumed.get_timestamp() == T0 + timedelta(seconds=30)

    def test_non_start_event_after_session_start(self, db, reading_session):
        """Test that only the start event may share the start instant."""

        def _append(s):
            rs = db.get_session_by_id(reading_session.id, s)
            append_event(s, rs, SessionEventType.START, T0)
            return append_event(s, rs, SessionEventType.PAUSE, T0)

        paused = db.transaction(_append)

        assert paused.get_timestamp() > T0

    def test_actual_reading_time_of_open_session(self, db, reading_session):
        """Test reading time of an in-progress session at an instant."""

        def _append(s):
            rs = db.get_session_by_id(reading_session.id, s)
            append_event(s, rs, SessionEventType.START, T0)

        db.transaction(_append)
        stored = db.get_session_by_id(reading_session.id)

        assert actual_reading_time(stored, T0 + timedelta(minutes=2)) == 120
