"""SQLAlchemy ORM models for local SQLite database.

Tables:
- books: Books being tracked
- reading_sessions: Timed reading sessions (end_time NULL while in progress)
- session_events: Append-only lifecycle events of a session
"""

from datetime import date, datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from ..clock import from_storage, to_storage
from .schemas import SessionEventType


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


def utc_now_iso() -> str:
    return to_storage(datetime.now(timezone.utc))


class Book(Base):
    """Book model."""

    __tablename__ = "books"

    # Primary key
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    # Core fields
    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    author: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    total_pages: Mapped[int] = mapped_column(Integer, nullable=False)
    current_page: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    difficulty: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100))

    # Dates
    date_added: Mapped[str] = mapped_column(
        String(10), default=lambda: date.today().isoformat()
    )  # ISO date

    # Soft delete
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=utc_now_iso)
    updated_at: Mapped[str] = mapped_column(
        String(32), default=utc_now_iso, onupdate=utc_now_iso
    )

    # Relationships
    sessions: Mapped[list["ReadingSession"]] = relationship(
        "ReadingSession", back_populates="book"
    )

    def __repr__(self) -> str:
        return f"<Book(id={self.id}, title='{self.title}', author='{self.author}')>"

    @property
    def percent_complete(self) -> float:
        """Progress through the book as a percentage."""
        if not self.total_pages:
            return 0.0
        return self.current_page / self.total_pages * 100


class ReadingSession(Base):
    """Reading session model - one timed sitting with a book."""

    __tablename__ = "reading_sessions"
    __table_args__ = (Index("ix_reading_sessions_end_time", "end_time"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    book_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("books.id"), nullable=False, index=True
    )
    start_time: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    end_time: Mapped[Optional[str]] = mapped_column(String(32))  # NULL while in progress
    start_page: Mapped[int] = mapped_column(Integer, nullable=False)
    end_page: Mapped[Optional[int]] = mapped_column(Integer)
    location: Mapped[Optional[str]] = mapped_column(String(100))
    distraction_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[str] = mapped_column(String(32), default=utc_now_iso)

    # Relationships
    book: Mapped["Book"] = relationship("Book", back_populates="sessions")
    events: Mapped[list["SessionEvent"]] = relationship(
        "SessionEvent",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by=lambda: [SessionEvent.timestamp, SessionEvent.sequence],
    )

    def __repr__(self) -> str:
        return (
            f"<ReadingSession(id={self.id}, book_id={self.book_id}, "
            f"start={self.start_time}, end={self.end_time})>"
        )

    # Helper methods for timestamp fields
    def get_start_time(self) -> datetime:
        """Get start_time as datetime."""
        return from_storage(self.start_time)

    def set_start_time(self, moment: datetime) -> None:
        """Set start_time from datetime."""
        self.start_time = to_storage(moment)

    def get_end_time(self) -> Optional[datetime]:
        """Get end_time as datetime, None while in progress."""
        if self.end_time:
            return from_storage(self.end_time)
        return None

    def set_end_time(self, moment: datetime) -> None:
        """Set end_time from datetime."""
        self.end_time = to_storage(moment)

    @property
    def is_complete(self) -> bool:
        return self.end_time is not None

    @property
    def pages_read(self) -> int:
        """Pages read in the session, 0 until it is completed."""
        if self.end_page is None:
            return 0
        return self.end_page - self.start_page

    @property
    def focus_score(self) -> float:
        """100 minus 5 points per distraction, floored at 0."""
        return float(max(0, 100 - 5 * (self.distraction_count or 0)))


class SessionEvent(Base):
    """Session event model - one entry of a session's event log."""

    __tablename__ = "session_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    session_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("reading_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    timestamp: Mapped[str] = mapped_column(String(32), nullable=False)
    event_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Relationships
    session: Mapped["ReadingSession"] = relationship(
        "ReadingSession", back_populates="events"
    )

    def __repr__(self) -> str:
        return (
            f"<SessionEvent(session_id={self.session_id}, seq={self.sequence}, "
            f"type={self.event_type})>"
        )

    def get_timestamp(self) -> datetime:
        """Get timestamp as datetime."""
        return from_storage(self.timestamp)

    @property
    def type(self) -> SessionEventType:
        return SessionEventType(self.event_type)
