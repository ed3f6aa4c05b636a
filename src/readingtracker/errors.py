"""Exceptions raised by the session store and the lifecycle engine.

Precondition violations leave engine state unchanged. Store failures are
wrapped in StoreError with the underlying exception chained as __cause__.
"""

from typing import Optional


class ReadingTrackerError(Exception):
    """Base exception for readingtracker errors."""

    pass


class SessionAlreadyActive(ReadingTrackerError):
    """Raised when starting a session while another book is being read."""

    def __init__(self, active_session_id: str, book_id: str):
        self.active_session_id = active_session_id
        self.book_id = book_id
        super().__init__(
            f"A reading session is already in progress for book {book_id} "
            f"(session {active_session_id}). End or cancel it first."
        )


class InvalidPage(ReadingTrackerError):
    """Raised when a page number is outside the allowed range."""

    def __init__(self, page: int, minimum: int, maximum: Optional[int] = None):
        self.page = page
        self.minimum = minimum
        self.maximum = maximum
        if maximum is None:
            message = f"Page {page} is before the start page {minimum}"
        else:
            message = f"Page {page} must be between {minimum} and {maximum}"
        super().__init__(message)


class ObjectNotFound(ReadingTrackerError):
    """Raised when a book or session is missing from the store."""

    pass


class SessionNotFound(ObjectNotFound):
    """Raised when a reading session no longer exists."""

    def __init__(self, session_id: Optional[str] = None, message: Optional[str] = None):
        self.session_id = session_id
        super().__init__(message or f"Reading session not found: {session_id}")


class NoActiveSession(SessionNotFound):
    """Raised when a lifecycle command needs an active session and there is none."""

    def __init__(self):
        super().__init__(message="No reading session is in progress")


class BookNotFound(ObjectNotFound):
    """Raised when a book does not exist or has been archived."""

    def __init__(self, book_id: str):
        self.book_id = book_id
        super().__init__(f"Book not found: {book_id}")


class StoreError(ReadingTrackerError):
    """Raised when the session store fails to read or write."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
