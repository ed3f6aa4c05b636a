"""Database module for local SQLite storage."""

from .models import Book, ReadingSession, SessionEvent
from .schemas import BookCreate, BookResponse, BookUpdate, SessionEventType, SessionResponse
from .sqlite import Database, get_db

__all__ = [
    "Book",
    "ReadingSession",
    "SessionEvent",
    "BookCreate",
    "BookUpdate",
    "BookResponse",
    "SessionEventType",
    "SessionResponse",
    "Database",
    "get_db",
]
