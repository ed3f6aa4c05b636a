"""Reading session lifecycle and event log."""

from .events import (
    ReplayState,
    actual_reading_time,
    append_event,
    ordered_events,
    replay,
    replay_session,
)
from .session import (
    SessionManager,
    SessionSnapshot,
)
from .ticker import SessionTicker

__all__ = [
    "ReplayState",
    "actual_reading_time",
    "append_event",
    "ordered_events",
    "replay",
    "replay_session",
    "SessionManager",
    "SessionSnapshot",
    "SessionTicker",
]
