"""Periodic live-duration ticks for displays.

The ticker only reads the manager's published snapshot; it never writes to
the store and has no ordering dependency on lifecycle commands.
"""

import logging
import threading
from typing import Callable, Optional

from ..clock import Clock
from .session import SessionManager, SessionSnapshot

logger = logging.getLogger(__name__)

TickCallback = Callable[[SessionSnapshot, float], None]


class SessionTicker:
    """Calls tick callbacks with (snapshot, elapsed_seconds) on an interval."""

    def __init__(
        self, manager: SessionManager, interval: float = 1.0, clock: Optional[Clock] = None
    ):
        if interval <= 0:
            raise ValueError("Tick interval must be positive")
        self.manager = manager
        self.clock = clock or manager.clock
        self.interval = interval
        self._callbacks: list[TickCallback] = []
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def on_tick(self, callback: TickCallback) -> None:
        """Register a tick callback."""
        self._callbacks.append(callback)

    def tick(self) -> float:
        """Run one tick synchronously.

        Returns:
            Elapsed reading time passed to the callbacks
        """
        snapshot = self.manager.snapshot
        elapsed = snapshot.duration_at(self.clock.now())
        for callback in list(self._callbacks):
            try:
                callback(snapshot, elapsed)
            except Exception:
                logger.exception("Tick callback %r failed", callback)
        return elapsed

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start ticking on a daemon thread."""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="readingtracker-ticker", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop ticking and wait for the thread to finish.

        If the thread is still busy when the wait times out it stays
        registered, so start() will not launch a second one beside it.
        """
        self._stop_event.set()
        if self._thread is None:
            return
        self._thread.join(timeout if timeout is not None else self.interval * 2)
        if self._thread.is_alive():
            logger.warning("Ticker thread did not stop within the timeout")
            return
        self._thread = None

    def _run(self) -> None:
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(self.interval)

    def __enter__(self) -> "SessionTicker":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
