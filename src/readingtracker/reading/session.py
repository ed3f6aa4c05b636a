"""Reading session lifecycle management.

Owns "the current session": starting, pausing, resuming, recording
distractions, ending and cancelling it. Every command writes to the store
in one transaction and only then publishes a new immutable snapshot, so
observers never see a state the store has not committed.

At most one session without an end time may exist. On construction the
manager reconciles the store: the newest incomplete session is adopted and
its timing rebuilt from the event log, and any other incomplete session is
closed with no progress.
"""

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Optional, TypeVar

from sqlalchemy.orm import Session

from ..clock import Clock, SystemClock, ensure_utc
from ..config import Config, get_config
from ..db.models import ReadingSession
from ..db.schemas import SessionEventType
from ..db.sqlite import Database, get_db
from ..errors import (
    BookNotFound,
    InvalidPage,
    NoActiveSession,
    ObjectNotFound,
    SessionAlreadyActive,
    SessionNotFound,
)
from .events import append_event, replay_session

logger = logging.getLogger(__name__)

T = TypeVar("T")

SnapshotListener = Callable[["SessionSnapshot"], None]


@dataclass(frozen=True)
class SessionSnapshot:
    """Committed state of the lifecycle engine.

    Snapshots are immutable; the engine swaps in a new one after every
    successful command, so reading the latest snapshot needs no lock.
    """

    session_id: Optional[str] = None
    book_id: Optional[str] = None
    start_page: Optional[int] = None
    started_at: Optional[datetime] = None
    is_tracking: bool = False
    is_paused: bool = False
    distraction_count: int = 0
    accumulated_seconds: float = 0.0
    resume_anchor: Optional[datetime] = None
    version: int = 0

    def duration_at(self, now: datetime) -> float:
        """Elapsed reading time in seconds at an instant."""
        if not self.is_tracking:
            return 0.0
        if self.is_paused or self.resume_anchor is None:
            return self.accumulated_seconds
        open_segment = (ensure_utc(now) - self.resume_anchor).total_seconds()
        return self.accumulated_seconds + max(0.0, open_segment)

    @property
    def focus_score(self) -> float:
        return float(max(0, 100 - 5 * self.distraction_count))


class SessionManager:
    """Manages the active reading session."""

    def __init__(
        self,
        db: Optional[Database] = None,
        clock: Optional[Clock] = None,
        config: Optional[Config] = None,
        grace_seconds: Optional[float] = None,
    ):
        """Initialize session manager and recover any interrupted session.

        Args:
            db: Database instance
            clock: Source of "now" (default: system clock)
            config: Configuration (default: loaded from environment)
            grace_seconds: Duration given to auto-closed sessions; overrides config
        """
        self.db = db or get_db()
        self.clock = clock or SystemClock()
        if grace_seconds is None:
            grace_seconds = (config or get_config()).recovery_grace_seconds
        self.grace = timedelta(seconds=grace_seconds)

        self._lock = threading.RLock()
        self._snapshot = SessionSnapshot()
        self._listeners: tuple[SnapshotListener, ...] = ()

        self.reconcile()

    # -------------------------------------------------------------------------
    # Published state
    # -------------------------------------------------------------------------

    @property
    def snapshot(self) -> SessionSnapshot:
        """Latest committed state."""
        return self._snapshot

    @property
    def active_session_id(self) -> Optional[str]:
        return self._snapshot.session_id

    @property
    def is_tracking(self) -> bool:
        return self._snapshot.is_tracking

    @property
    def is_paused(self) -> bool:
        return self._snapshot.is_paused

    @property
    def distraction_count(self) -> int:
        return self._snapshot.distraction_count

    def has_active_session(self) -> bool:
        """Check if there's an active reading session."""
        return self._snapshot.is_tracking

    def current_duration(self, at: Optional[datetime] = None) -> float:
        """Elapsed reading time of the active session in seconds.

        Computed from the snapshot alone; the event log is not scanned.
        """
        return self._snapshot.duration_at(at or self.clock.now())

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register a callback invoked with each committed snapshot.

        Returns:
            A callable that removes the listener
        """
        with self._lock:
            self._listeners = self._listeners + (listener,)

        def unsubscribe() -> None:
            with self._lock:
                self._listeners = tuple(l for l in self._listeners if l is not listener)

        return unsubscribe

    def _publish(self, snapshot: SessionSnapshot) -> SessionSnapshot:
        snapshot = replace(snapshot, version=self._snapshot.version + 1)
        self._snapshot = snapshot
        for listener in self._listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Session listener %r failed", listener)
        return snapshot

    def _publish_idle(self) -> SessionSnapshot:
        return self._publish(SessionSnapshot())

    def _snapshot_for(self, reading_session: ReadingSession) -> SessionSnapshot:
        """Rebuild engine state for an incomplete session from its event log."""
        state = replay_session(reading_session)
        return SessionSnapshot(
            session_id=reading_session.id,
            book_id=reading_session.book_id,
            start_page=reading_session.start_page,
            started_at=reading_session.get_start_time(),
            is_tracking=True,
            is_paused=state.is_paused,
            distraction_count=max(
                reading_session.distraction_count or 0, state.distraction_count
            ),
            accumulated_seconds=state.accumulated_seconds,
            resume_anchor=state.resume_anchor,
        )

    # -------------------------------------------------------------------------
    # Recovery
    # -------------------------------------------------------------------------

    def reconcile(self) -> list[str]:
        """Bring engine state in line with incomplete sessions in the store.

        Returns:
            IDs of sessions that were auto-closed
        """
        with self._lock:
            tracked_id = self._snapshot.session_id

            def _reconcile(s: Session) -> tuple[Optional[ReadingSession], list[str]]:
                incomplete = self.db.get_incomplete_sessions(s)
                if not incomplete:
                    return None, []

                keep = next((rs for rs in incomplete if rs.id == tracked_id), incomplete[0])
                closed = []
                for rs in incomplete:
                    if rs is keep:
                        continue
                    rs.set_end_time(rs.get_start_time() + self.grace)
                    rs.end_page = rs.start_page
                    closed.append(rs.id)
                s.flush()
                return keep, closed

            keep, closed = self.db.transaction(_reconcile)

            for session_id in closed:
                logger.warning(
                    "Auto-closed stale incomplete session %s with no progress", session_id
                )

            if keep is None:
                if self._snapshot.is_tracking:
                    logger.warning(
                        "Tracked session %s is no longer in the store; resetting", tracked_id
                    )
                    self._publish_idle()
                return closed

            if keep.id != tracked_id:
                snapshot = self._publish(self._snapshot_for(keep))
                logger.info(
                    "Recovered session %s for book %s (%.0fs read, %s)",
                    keep.id,
                    keep.book_id,
                    snapshot.accumulated_seconds,
                    "paused" if snapshot.is_paused else "reading",
                )
            return closed

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def start_session(
        self,
        book_id: str,
        start_page: Optional[int] = None,
        location: Optional[str] = None,
    ) -> ReadingSession:
        """Start a new reading session.

        Starting again for the book that is already being read returns the
        existing session.

        Args:
            book_id: ID of the book being read
            start_page: Page number starting from (default: book's current page)
            location: Where reading (home, commute, etc.)

        Returns:
            The new or already running ReadingSession

        Raises:
            SessionAlreadyActive: If another book's session is in progress
            BookNotFound: If the book is missing or archived
            InvalidPage: If start_page is outside the book
        """
        with self._lock:
            now = self.clock.now()

            def _start(s: Session) -> tuple[ReadingSession, bool]:
                incomplete = self.db.get_incomplete_sessions(s)
                if incomplete:
                    existing = incomplete[0]
                    if existing.book_id == book_id:
                        return existing, False
                    raise SessionAlreadyActive(existing.id, existing.book_id)

                book = self.db.get_book(book_id, s)
                if not book or not book.is_active:
                    raise BookNotFound(book_id)

                page = book.current_page if start_page is None else start_page
                if page < 0 or page > book.total_pages:
                    raise InvalidPage(page, 0, book.total_pages)

                reading_session = self.db.create_session(book_id, now, page, location, s)
                append_event(s, reading_session, SessionEventType.START, now)
                return reading_session, True

            reading_session, created = self.db.transaction(_start)

            if created:
                start_time = reading_session.get_start_time()
                self._publish(
                    SessionSnapshot(
                        session_id=reading_session.id,
                        book_id=book_id,
                        start_page=reading_session.start_page,
                        started_at=start_time,
                        is_tracking=True,
                        resume_anchor=start_time,
                    )
                )
                logger.info(
                    "Started session %s for book %s at page %d",
                    reading_session.id,
                    book_id,
                    reading_session.start_page,
                )
            elif reading_session.id != self._snapshot.session_id:
                self._publish(self._snapshot_for(reading_session))
                logger.info("Adopted running session %s for book %s", reading_session.id, book_id)
            else:
                logger.debug("Session %s already running for book %s", reading_session.id, book_id)

            return reading_session

    def pause_session(self) -> SessionSnapshot:
        """Pause the active session. Pausing a paused session does nothing.

        Raises:
            NoActiveSession: If no session is in progress
        """
        with self._lock:
            snapshot = self._snapshot
            if not snapshot.is_tracking:
                raise NoActiveSession()
            if snapshot.is_paused:
                return snapshot

            now = self.clock.now()

            def _pause(s: Session) -> datetime:
                reading_session = self._load_active(s, snapshot)
                event = append_event(s, reading_session, SessionEventType.PAUSE, now)
                return event.get_timestamp()

            paused_at = self._run(_pause)
            snapshot = self._publish(
                replace(
                    snapshot,
                    is_paused=True,
                    accumulated_seconds=snapshot.duration_at(paused_at),
                    resume_anchor=None,
                )
            )
            logger.info("Paused session %s", snapshot.session_id)
            return snapshot

    def resume_session(self) -> SessionSnapshot:
        """Resume a paused session. Resuming a running session does nothing.

        Raises:
            NoActiveSession: If no session is in progress
        """
        with self._lock:
            snapshot = self._snapshot
            if not snapshot.is_tracking:
                raise NoActiveSession()
            if not snapshot.is_paused:
                return snapshot

            now = self.clock.now()

            def _resume(s: Session) -> datetime:
                reading_session = self._load_active(s, snapshot)
                event = append_event(s, reading_session, SessionEventType.RESUME, now)
                return event.get_timestamp()

            resumed_at = self._run(_resume)
            snapshot = self._publish(
                replace(snapshot, is_paused=False, resume_anchor=resumed_at)
            )
            logger.info("Resumed session %s", snapshot.session_id)
            return snapshot

    def record_distraction(self) -> SessionSnapshot:
        """Count a distraction in the running session.

        Distractions are only counted while reading; while paused this
        does nothing.

        Raises:
            NoActiveSession: If no session is in progress
        """
        with self._lock:
            snapshot = self._snapshot
            if not snapshot.is_tracking:
                raise NoActiveSession()
            if snapshot.is_paused:
                return snapshot

            count = snapshot.distraction_count + 1
            now = self.clock.now()

            def _distract(s: Session) -> None:
                reading_session = self._load_active(s, snapshot)
                reading_session.distraction_count = count
                append_event(s, reading_session, SessionEventType.DISTRACTION, now)

            self._run(_distract)
            snapshot = self._publish(replace(snapshot, distraction_count=count))
            logger.debug("Distraction %d in session %s", count, snapshot.session_id)
            return snapshot

    def end_session(self, end_page: int) -> ReadingSession:
        """End the active session and record progress.

        The session's end time and end page and the book's current page are
        written in a single transaction.

        Args:
            end_page: Page the reader stopped at

        Returns:
            The completed ReadingSession

        Raises:
            NoActiveSession: If no session is in progress
            InvalidPage: If end_page is before the start page or past the book
        """
        with self._lock:
            snapshot = self._snapshot
            if not snapshot.is_tracking:
                raise NoActiveSession()
            if snapshot.start_page is not None and end_page < snapshot.start_page:
                raise InvalidPage(end_page, snapshot.start_page)

            now = self.clock.now()

            def _end(s: Session) -> ReadingSession:
                reading_session = self._load_active(s, snapshot)
                if end_page < reading_session.start_page:
                    raise InvalidPage(end_page, reading_session.start_page)

                book = self.db.get_book(reading_session.book_id, s)
                if not book:
                    raise BookNotFound(reading_session.book_id)
                if end_page > book.total_pages:
                    raise InvalidPage(end_page, reading_session.start_page, book.total_pages)

                event = append_event(s, reading_session, SessionEventType.END, now)
                reading_session.set_end_time(event.get_timestamp())
                reading_session.end_page = end_page
                reading_session.distraction_count = snapshot.distraction_count
                book.current_page = end_page
                s.flush()
                return reading_session

            reading_session = self._run(_end)
            ended_at = reading_session.get_end_time()
            self._publish_idle()
            logger.info(
                "Ended session %s at page %d (%d pages, %.0fs read)",
                reading_session.id,
                end_page,
                reading_session.pages_read,
                snapshot.duration_at(ended_at),
            )
            return reading_session

    def cancel_session(self) -> str:
        """Discard the active session and its events without logging.

        Returns:
            ID of the cancelled session

        Raises:
            NoActiveSession: If no session is in progress
        """
        with self._lock:
            snapshot = self._snapshot
            if not snapshot.is_tracking:
                raise NoActiveSession()

            def _cancel(s: Session) -> None:
                if not self.db.delete_session(snapshot.session_id, s):
                    raise SessionNotFound(snapshot.session_id)

            self._run(_cancel)
            self._publish_idle()
            logger.info("Cancelled session %s", snapshot.session_id)
            return snapshot.session_id

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _load_active(self, s: Session, snapshot: SessionSnapshot) -> ReadingSession:
        reading_session = self.db.get_session_by_id(snapshot.session_id, s)
        if reading_session is None or reading_session.is_complete:
            raise SessionNotFound(snapshot.session_id)
        return reading_session

    def _run(self, operation: Callable[[Session], T]) -> T:
        """Run a command's store work; drop to idle if the session vanished."""
        try:
            return self.db.transaction(operation)
        except ObjectNotFound:
            logger.warning(
                "Session %s disappeared from the store; resetting to idle",
                self._snapshot.session_id,
            )
            self._publish_idle()
            raise
