"""Tests for the live session ticker."""

import threading

import pytest

from readingtracker.reading.ticker import SessionTicker


class TestSessionTicker:
    """Tests for SessionTicker."""

    def test_invalid_interval(self, manager):
        """Test that the interval must be positive."""
        with pytest.raises(ValueError, match="positive"):
            SessionTicker(manager, interval=0)

    def test_tick_reports_elapsed(self, manager, created_book, clock):
        """Test a synchronous tick."""
        ticks = []
        ticker = SessionTicker(manager)
        ticker.on_tick(lambda snapshot, elapsed: ticks.append((snapshot.session_id, elapsed)))

        session = manager.start_session(created_book.id)
        clock.advance(42)

        assert ticker.tick() == 42
        assert ticks == [(session.id, 42)]

    def test_tick_when_idle(self, manager):
        """Test that an idle engine ticks zero."""
        assert SessionTicker(manager).tick() == 0.0

    def test_tick_does_not_write(self, manager, db, created_book):
        """Test that ticking leaves the store alone."""
        manager.start_session(created_book.id)
        before = db.count_events()

        SessionTicker(manager).tick()

        assert db.count_events() == before

    def test_failing_callback_is_contained(self, manager):
        """Test that a broken callback does not stop other callbacks."""
        calls = []
        ticker = SessionTicker(manager)
        ticker.on_tick(lambda snapshot, elapsed: 1 / 0)
        ticker.on_tick(lambda snapshot, elapsed: calls.append(elapsed))

        ticker.tick()

        assert calls == [0.0]

    def test_background_thread(self, manager):
        """Test starting and stopping the ticker thread."""
        ticked = threading.Event()
        ticker = SessionTicker(manager, interval=0.01)
        ticker.on_tick(lambda snapshot, elapsed: ticked.set())

        with ticker:
            assert ticked.wait(2.0)
            assert ticker.running

        assert not ticker.running

    def test_restart_after_stop_timeout_keeps_one_thread(self, manager):
        """Test that a thread that outlives stop() is not duplicated by start()."""
        release = threading.Event()
        entered = threading.Event()

        def slow_callback(snapshot, elapsed):
            entered.set()
            release.wait(2.0)

        ticker = SessionTicker(manager, interval=0.01)
        ticker.on_tick(slow_callback)
        ticker.start()
        assert entered.wait(2.0)
        first_thread = ticker._thread

        ticker.stop(timeout=0.01)
        assert ticker.running

        ticker.start()
        assert ticker._thread is first_thread
        assert sum(t.name == "readingtracker-ticker" for t in threading.enumerate()) == 1

        release.set()
        ticker.stop(timeout=2.0)
        assert not ticker.running
