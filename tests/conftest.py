"""Pytest configuration and shared fixtures.

This module provides fixtures for testing the readingtracker package,
including in-memory databases, a controllable clock, and sample books.
"""

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator
from zoneinfo import ZoneInfo

import pytest

from readingtracker.clock import LocalCalendar, ManualClock
from readingtracker.config import reset_config
from readingtracker.db.models import Book
from readingtracker.db.schemas import BookCreate
from readingtracker.db.sqlite import Database, reset_db
from readingtracker.reading.session import SessionManager
from readingtracker.stats.analytics import ReadingStats

# Monday 10 March 2025, 09:00 UTC
T0 = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)
    yield db_path
    # Cleanup
    if db_path.exists():
        db_path.unlink()


@pytest.fixture(scope="function")
def db() -> Generator[Database, None, None]:
    """Create an in-memory test database."""
    reset_db()
    reset_config()

    database = Database(":memory:", retry_delay=0)
    database.create_tables()
    yield database

    reset_db()


@pytest.fixture(scope="function")
def file_db(temp_db_path: Path) -> Generator[Database, None, None]:
    """Create a file-backed test database."""
    reset_db()
    reset_config()

    os.environ["READINGTRACKER_DB_PATH"] = str(temp_db_path)

    database = Database(str(temp_db_path), retry_delay=0)
    database.create_tables()
    yield database

    database.engine.dispose()
    reset_db()
    if "READINGTRACKER_DB_PATH" in os.environ:
        del os.environ["READINGTRACKER_DB_PATH"]


# ============================================================================
# Time Fixtures
# ============================================================================


@pytest.fixture
def clock() -> ManualClock:
    """A clock frozen at T0 that only moves when advanced."""
    return ManualClock(T0)


@pytest.fixture
def calendar() -> LocalCalendar:
    """A calendar with UTC day boundaries."""
    return LocalCalendar(ZoneInfo("UTC"))


# ============================================================================
# Engine Fixtures
# ============================================================================


@pytest.fixture
def manager(db: Database, clock: ManualClock) -> SessionManager:
    """Create a session manager on the test database and clock."""
    return SessionManager(db, clock, grace_seconds=60)


@pytest.fixture
def stats(db: Database, clock: ManualClock, calendar: LocalCalendar) -> ReadingStats:
    """Create a stats engine on the test database and clock."""
    return ReadingStats(db, clock, calendar)


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def sample_book_data() -> BookCreate:
    """Create sample book data for testing."""
    return BookCreate(
        title="The Great Gatsby",
        author="F. Scott Fitzgerald",
        total_pages=300,
        current_page=50,
        difficulty=2,
        category="novel",
    )


@pytest.fixture
def sample_book_minimal() -> BookCreate:
    """Create minimal book data (only required fields)."""
    return BookCreate(
        title="Minimal Book",
        author="Test Author",
        total_pages=120,
    )


@pytest.fixture
def created_book(db: Database, sample_book_data: BookCreate) -> Book:
    """Create and return a book in the database."""
    return db.create_book(sample_book_data)


@pytest.fixture
def other_book(db: Database) -> Book:
    """A second book for conflicting-session tests."""
    return db.create_book(
        BookCreate(title="Dune", author="Frank Herbert", total_pages=688, difficulty=4)
    )
