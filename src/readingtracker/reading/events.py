"""Session event log.

Each reading session owns an append-only, ordered log of lifecycle events.
Replaying the log yields the canonical reading time of a session, which
excludes paused wall-clock time.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ..clock import ensure_utc, to_storage
from ..db.models import ReadingSession, SessionEvent
from ..db.schemas import SessionEventType


@dataclass(frozen=True)
class ReplayState:
    """Result of replaying a session's event log."""

    accumulated_seconds: float = 0.0
    resume_anchor: Optional[datetime] = None  # set while a reading segment is open
    is_paused: bool = False
    is_ended: bool = False
    distraction_count: int = 0

    def duration_at(self, now: datetime) -> float:
        """Reading time in seconds including any open segment."""
        if self.resume_anchor is None:
            return self.accumulated_seconds
        open_segment = (ensure_utc(now) - self.resume_anchor).total_seconds()
        return self.accumulated_seconds + max(0.0, open_segment)


def ordered_events(reading_session: ReadingSession) -> list[SessionEvent]:
    """Events of a session sorted by (timestamp, sequence)."""
    return sorted(reading_session.events, key=lambda e: (e.timestamp, e.sequence))


def replay(
    start_time: datetime,
    events: Iterable[SessionEvent],
    end_time: Optional[datetime] = None,
) -> ReplayState:
    """Fold an ordered event log into reading-time state.

    A reading segment opens at start_time or at a resume, and closes at a
    pause or the end event. Events after end_time are ignored. When end_time
    is given but the log has no end event, an open segment closes at
    end_time.

    Args:
        start_time: Session start
        events: Events in log order
        end_time: Session end, None while in progress

    Returns:
        ReplayState with closed-segment total and any open segment anchor
    """
    total = 0.0
    anchor: Optional[datetime] = ensure_utc(start_time)
    paused = False
    ended = False
    distractions = 0
    limit = ensure_utc(end_time) if end_time else None

    for event in events:
        ts = event.get_timestamp()
        if limit is not None and ts > limit:
            break
        if ended:
            continue

        kind = event.type
        if kind == SessionEventType.PAUSE:
            if not paused and anchor is not None:
                total += (ts - anchor).total_seconds()
                anchor = None
                paused = True
        elif kind == SessionEventType.RESUME:
            if paused:
                anchor = ts
                paused = False
        elif kind == SessionEventType.DISTRACTION:
            distractions += 1
        elif kind == SessionEventType.END:
            if not paused and anchor is not None:
                total += (ts - anchor).total_seconds()
            anchor = None
            ended = True

    if limit is not None and not ended:
        if not paused and anchor is not None:
            total += max(0.0, (limit - anchor).total_seconds())
        anchor = None
        ended = True

    return ReplayState(
        accumulated_seconds=total,
        resume_anchor=anchor,
        is_paused=paused,
        is_ended=ended,
        distraction_count=distractions,
    )


def replay_session(reading_session: ReadingSession) -> ReplayState:
    """Replay a session's own log against its start and end times."""
    return replay(
        reading_session.get_start_time(),
        ordered_events(reading_session),
        reading_session.get_end_time(),
    )


def actual_reading_time(
    reading_session: ReadingSession, now: Optional[datetime] = None
) -> float:
    """Canonical reading time of a session in seconds.

    Args:
        reading_session: Session with its events loaded
        now: Instant closing the open segment of an in-progress session
    """
    state = replay_session(reading_session)
    return state.duration_at(now or datetime.now(timezone.utc))


def append_event(
    s: Session,
    reading_session: ReadingSession,
    event_type: SessionEventType,
    timestamp: datetime,
) -> SessionEvent:
    """Append an event to a session's log.

    The timestamp is clamped so the log never goes backwards and every
    non-start event lies strictly after the session start.

    Args:
        s: Open database session the reading session is attached to
        reading_session: Owner of the log
        event_type: Kind of event
        timestamp: Requested event time

    Returns:
        The new SessionEvent
    """
    ts = ensure_utc(timestamp)
    existing = ordered_events(reading_session)
    if existing:
        last = existing[-1].get_timestamp()
        if ts < last:
            ts = last
    if event_type != SessionEventType.START:
        start = reading_session.get_start_time()
        if ts <= start:
            ts = start + timedelta(microseconds=1)

    sequence = max((e.sequence for e in existing), default=-1) + 1
    db_event = SessionEvent(
        session_id=reading_session.id,
        sequence=sequence,
        timestamp=to_storage(ts),
        event_type=event_type.value,
    )
    reading_session.events.append(db_event)
    s.flush()
    return db_event
