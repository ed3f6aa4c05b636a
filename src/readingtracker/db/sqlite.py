"""SQLite database operations.

Handles database connection, transactions with bounded retry, and CRUD
operations for books, reading sessions and their event logs.
"""

import logging
import os
import time
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Generator, Optional, TypeVar

from sqlalchemy import create_engine, event, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker
from sqlalchemy.pool import StaticPool

from ..clock import to_storage
from ..errors import InvalidPage, StoreError
from .models import Base, Book, ReadingSession, SessionEvent
from .schemas import BookCreate, BookUpdate

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Database connection and operations manager."""

    def __init__(
        self,
        db_path: Optional[str] = None,
        retry_max: int = 3,
        retry_delay: float = 0.1,
        timeout: float = 5.0,
    ):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses
                     READINGTRACKER_DB_PATH env var or default location.
            retry_max: Attempts for a transaction that hits a locked database
            retry_delay: Initial backoff delay in seconds
            timeout: SQLite busy timeout in seconds
        """
        if db_path is None:
            db_path = os.environ.get(
                "READINGTRACKER_DB_PATH",
                str(Path.home() / ".readingtracker" / "reading.db"),
            )

        self.db_path = Path(db_path)
        self._is_memory = str(db_path) == ":memory:"
        self.retry_max = max(1, retry_max)
        self.retry_delay = retry_delay

        if not self._is_memory:
            self._ensure_directory()

        # For in-memory databases, use StaticPool to reuse the same connection
        # This ensures all sessions share the same in-memory database
        if self._is_memory:
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False, "timeout": timeout},
            )
        event.listen(self.engine, "connect", _enable_foreign_keys)
        self.SessionLocal = sessionmaker(
            bind=self.engine, autocommit=False, autoflush=False, expire_on_commit=False
        )

    @classmethod
    def from_config(cls, config) -> "Database":
        """Create a database from a Config."""
        return cls(
            str(config.db_path),
            retry_max=config.store_retry_max,
            retry_delay=config.store_retry_delay,
            timeout=config.store_timeout,
        )

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables."""
        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        """Drop all database tables. Use with caution!"""
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def transaction(self, operation: Callable[[Session], T]) -> T:
        """Run operation in one transaction with exponential backoff retry.

        A locked or busy database is retried up to retry_max attempts. Any
        other store failure, or the last failed attempt, is raised as a
        StoreError. Exceptions raised by operation itself roll the
        transaction back and propagate unchanged.

        Args:
            operation: Callable receiving the open session

        Returns:
            Result of operation
        """
        backoff = self.retry_delay

        for attempt in range(self.retry_max):
            try:
                with self.get_session() as s:
                    return operation(s)
            except OperationalError as e:
                if attempt == self.retry_max - 1:
                    raise StoreError("Store operation failed", e) from e
                logger.warning(
                    "Store busy (attempt %d/%d), retrying in %.2fs: %s",
                    attempt + 1,
                    self.retry_max,
                    backoff,
                    e,
                )
                time.sleep(backoff)
                backoff *= 2
            except SQLAlchemyError as e:
                raise StoreError("Store operation failed", e) from e

        raise StoreError("Store operation failed")

    # ========================================================================
    # Book Operations
    # ========================================================================

    def create_book(self, book: BookCreate, session: Optional[Session] = None) -> Book:
        """Create a new book record."""

        def _create(s: Session) -> Book:
            db_book = Book(
                title=book.title,
                author=book.author,
                total_pages=book.total_pages,
                current_page=book.current_page,
                difficulty=book.difficulty,
                category=book.category,
                date_added=(book.date_added or date.today()).isoformat(),
                is_active=True,
            )
            s.add(db_book)
            s.flush()
            return db_book

        if session:
            return _create(session)
        return self.transaction(_create)

    def get_book(self, book_id: str, session: Optional[Session] = None) -> Optional[Book]:
        """Get a book by ID."""

        def _get(s: Session) -> Optional[Book]:
            return s.get(Book, book_id)

        if session:
            return _get(session)
        return self.transaction(_get)

    def get_all_books(
        self, include_inactive: bool = False, session: Optional[Session] = None
    ) -> list[Book]:
        """Get all books, active ones only unless asked otherwise."""

        def _get(s: Session) -> list[Book]:
            stmt = select(Book).order_by(Book.title)
            if not include_inactive:
                stmt = stmt.where(Book.is_active == True)  # noqa: E712
            return list(s.execute(stmt).scalars().all())

        if session:
            return _get(session)
        return self.transaction(_get)

    def search_books(
        self, query: str, limit: int = 20, session: Optional[Session] = None
    ) -> list[Book]:
        """Search active books by title or author."""

        def _search(s: Session) -> list[Book]:
            pattern = f"%{query}%"
            stmt = (
                select(Book)
                .where((Book.title.ilike(pattern)) | (Book.author.ilike(pattern)))
                .where(Book.is_active == True)  # noqa: E712
                .order_by(Book.title)
                .limit(limit)
            )
            return list(s.execute(stmt).scalars().all())

        if session:
            return _search(session)
        return self.transaction(_search)

    def update_book(
        self, book_id: str, update: BookUpdate, session: Optional[Session] = None
    ) -> Optional[Book]:
        """Update a book record.

        Raises:
            InvalidPage: If total_pages would drop below the current page
        """

        def _update(s: Session) -> Optional[Book]:
            book = s.get(Book, book_id)
            if not book:
                return None

            update_data = update.model_dump(exclude_unset=True)
            total_pages = update_data.get("total_pages")
            if total_pages is not None and total_pages < book.current_page:
                raise InvalidPage(book.current_page, 0, total_pages)

            for field, value in update_data.items():
                setattr(book, field, value)
            s.flush()
            return book

        if session:
            return _update(session)
        return self.transaction(_update)

    def archive_book(self, book_id: str, session: Optional[Session] = None) -> bool:
        """Soft-delete a book by marking it inactive."""
        return self.update_book(book_id, BookUpdate(is_active=False), session) is not None

    def delete_book(self, book_id: str, session: Optional[Session] = None) -> bool:
        """Delete a book record.

        A book that still has sessions is archived instead, so session
        history keeps its reference.

        Returns:
            True if the row was removed, False if it was missing or archived
        """

        def _delete(s: Session) -> bool:
            book = s.get(Book, book_id)
            if not book:
                return False

            stmt = select(ReadingSession.id).where(ReadingSession.book_id == book_id).limit(1)
            if s.execute(stmt).first() is not None:
                book.is_active = False
                logger.info("Book %s has sessions; archived instead of deleted", book_id)
                return False

            s.delete(book)
            return True

        if session:
            return _delete(session)
        return self.transaction(_delete)

    # ========================================================================
    # Reading Session Operations
    # ========================================================================

    def create_session(
        self,
        book_id: str,
        start_time: datetime,
        start_page: int,
        location: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> ReadingSession:
        """Create a new, incomplete reading session."""

        def _create(s: Session) -> ReadingSession:
            db_session = ReadingSession(
                book_id=book_id,
                start_page=start_page,
                location=location,
                distraction_count=0,
            )
            db_session.set_start_time(start_time)
            s.add(db_session)
            s.flush()
            return db_session

        if session:
            return _create(session)
        return self.transaction(_create)

    def get_session_by_id(
        self, session_id: str, session: Optional[Session] = None
    ) -> Optional[ReadingSession]:
        """Get a reading session by ID, with its events loaded."""

        def _get(s: Session) -> Optional[ReadingSession]:
            stmt = (
                select(ReadingSession)
                .where(ReadingSession.id == session_id)
                .options(selectinload(ReadingSession.events))
            )
            return s.execute(stmt).scalar_one_or_none()

        if session:
            return _get(session)
        return self.transaction(_get)

    def get_incomplete_sessions(
        self, session: Optional[Session] = None
    ) -> list[ReadingSession]:
        """Get sessions with no end time, most recently started first."""

        def _get(s: Session) -> list[ReadingSession]:
            stmt = (
                select(ReadingSession)
                .where(ReadingSession.end_time.is_(None))
                .options(selectinload(ReadingSession.events))
                .order_by(ReadingSession.start_time.desc())
            )
            return list(s.execute(stmt).scalars().all())

        if session:
            return _get(session)
        return self.transaction(_get)

    def get_sessions_by_time_range(
        self,
        start: datetime,
        end: datetime,
        include_incomplete: bool = True,
        session: Optional[Session] = None,
    ) -> list[ReadingSession]:
        """Get sessions whose start_time falls in [start, end).

        Args:
            start: Inclusive lower bound
            end: Exclusive upper bound
            include_incomplete: Whether in-progress sessions are returned
        """

        def _get(s: Session) -> list[ReadingSession]:
            stmt = (
                select(ReadingSession)
                .where(
                    ReadingSession.start_time >= to_storage(start),
                    ReadingSession.start_time < to_storage(end),
                )
                .options(selectinload(ReadingSession.events))
                .order_by(ReadingSession.start_time)
            )
            if not include_incomplete:
                stmt = stmt.where(ReadingSession.end_time.is_not(None))
            return list(s.execute(stmt).scalars().all())

        if session:
            return _get(session)
        return self.transaction(_get)

    def get_all_sessions(
        self, include_incomplete: bool = False, session: Optional[Session] = None
    ) -> list[ReadingSession]:
        """Get every session, oldest first."""

        def _get(s: Session) -> list[ReadingSession]:
            stmt = (
                select(ReadingSession)
                .options(selectinload(ReadingSession.events))
                .order_by(ReadingSession.start_time)
            )
            if not include_incomplete:
                stmt = stmt.where(ReadingSession.end_time.is_not(None))
            return list(s.execute(stmt).scalars().all())

        if session:
            return _get(session)
        return self.transaction(_get)

    def get_sessions_for_book(
        self, book_id: str, session: Optional[Session] = None
    ) -> list[ReadingSession]:
        """Get all sessions for a book, most recent first."""

        def _get(s: Session) -> list[ReadingSession]:
            stmt = (
                select(ReadingSession)
                .where(ReadingSession.book_id == book_id)
                .options(selectinload(ReadingSession.events))
                .order_by(ReadingSession.start_time.desc())
            )
            return list(s.execute(stmt).scalars().all())

        if session:
            return _get(session)
        return self.transaction(_get)

    def delete_session(self, session_id: str, session: Optional[Session] = None) -> bool:
        """Hard-delete a session together with its events."""

        def _delete(s: Session) -> bool:
            db_session = s.get(ReadingSession, session_id)
            if not db_session:
                return False
            s.delete(db_session)
            return True

        if session:
            return _delete(session)
        return self.transaction(_delete)

    # ========================================================================
    # Session Event Operations
    # ========================================================================

    def get_events_for_session(
        self, session_id: str, session: Optional[Session] = None
    ) -> list[SessionEvent]:
        """Get a session's events in log order."""

        def _get(s: Session) -> list[SessionEvent]:
            stmt = (
                select(SessionEvent)
                .where(SessionEvent.session_id == session_id)
                .order_by(SessionEvent.timestamp, SessionEvent.sequence)
            )
            return list(s.execute(stmt).scalars().all())

        if session:
            return _get(session)
        return self.transaction(_get)

    def count_events(self, session: Optional[Session] = None) -> int:
        """Count all stored events."""

        def _count(s: Session) -> int:
            return len(list(s.execute(select(SessionEvent.id)).all()))

        if session:
            return _count(session)
        return self.transaction(_count)


# Global database instance
_db: Optional[Database] = None


def get_db(db_path: Optional[str] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        if db_path is None:
            from ..config import get_config

            _db = Database.from_config(get_config())
        else:
            _db = Database(db_path)
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    _db = None
