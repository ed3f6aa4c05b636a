"""Reading analytics and statistics calculations.

Provides statistics derived from recorded reading sessions:
- Daily and period totals (minutes, pages, focus, favorite location)
- Reading streaks
- Reading speed and all-time totals

Every calculation is read-only. Day boundaries come from LocalCalendar so
that sessions are attributed to the user's local calendar day.
"""

from calendar import monthrange
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Union

from ..clock import Clock, LocalCalendar, SystemClock
from ..db.models import ReadingSession
from ..db.sqlite import Database, get_db
from ..reading.events import actual_reading_time

# Sessions at or below this much reading time are ignored for speed.
MIN_SPEED_SESSION_SECONDS = 5 * 60


@dataclass
class DailyStats:
    """Statistics for a single local day."""

    day: date
    total_minutes: float = 0.0
    pages_read: int = 0
    sessions_count: int = 0
    average_focus_score: float = 0.0
    favorite_location: Optional[str] = None


@dataclass
class PeriodStats:
    """Statistics for an inclusive range of local days."""

    start: date
    end: date
    total_minutes: float = 0.0
    pages_read: int = 0
    sessions_count: int = 0
    days_active: int = 0


def shift_months(day: date, months: int) -> date:
    """Move a date by whole months, clamping to the target month's length."""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    return date(year, month, min(day.day, monthrange(year, month)[1]))


def most_frequent(values: list[str]) -> Optional[str]:
    """Most common value; ties go to the value seen first."""
    if not values:
        return None
    return Counter(values).most_common(1)[0][0]


class ReadingStats:
    """Calculates reading statistics from the session store."""

    def __init__(
        self,
        db: Optional[Database] = None,
        clock: Optional[Clock] = None,
        calendar: Optional[LocalCalendar] = None,
    ):
        """Initialize analytics.

        Args:
            db: Database instance
            clock: Source of "now" (default: system clock)
            calendar: Local calendar for day boundaries (default: system zone)
        """
        self.db = db or get_db()
        self.clock = clock or SystemClock()
        self.calendar = calendar or LocalCalendar()

    def _as_day(self, value: Union[date, datetime]) -> date:
        if isinstance(value, datetime):
            return self.calendar.day_of(value)
        return value

    def _today(self) -> date:
        return self.calendar.today(self.clock.now())

    # -------------------------------------------------------------------------
    # Daily and period statistics
    # -------------------------------------------------------------------------

    def stats_for_date(
        self, day: Union[date, datetime], include_active: bool = True
    ) -> DailyStats:
        """Get statistics for sessions started on a local day.

        Args:
            day: Day (or any instant within it)
            include_active: Count the in-progress session up to now

        Returns:
            DailyStats for the day
        """
        day = self._as_day(day)
        start, end = self.calendar.day_bounds(day)
        sessions = self.db.get_sessions_by_time_range(start, end, include_active)
        now = self.clock.now()

        if not sessions:
            return DailyStats(day=day)

        total_seconds = sum(actual_reading_time(rs, now) for rs in sessions)
        pages = sum(rs.pages_read for rs in sessions)
        avg_focus = sum(rs.focus_score for rs in sessions) / len(sessions)
        locations = [rs.location for rs in sessions if rs.location]

        return DailyStats(
            day=day,
            total_minutes=round(total_seconds / 60, 2),
            pages_read=pages,
            sessions_count=len(sessions),
            average_focus_score=round(avg_focus, 2),
            favorite_location=most_frequent(locations),
        )

    def today_stats(self) -> DailyStats:
        """Get statistics for today."""
        return self.stats_for_date(self._today())

    def stats_for_period(
        self,
        start: Union[date, datetime],
        end: Union[date, datetime],
        include_active: bool = True,
    ) -> PeriodStats:
        """Get statistics for an inclusive range of local days.

        Raises:
            ValueError: If start is after end
        """
        start_day = self._as_day(start)
        end_day = self._as_day(end)
        if start_day > end_day:
            raise ValueError(f"Period start {start_day} is after end {end_day}")

        lower, upper = self.calendar.range_bounds(start_day, end_day)
        sessions = self.db.get_sessions_by_time_range(lower, upper, include_active)
        now = self.clock.now()

        total_seconds = sum(actual_reading_time(rs, now) for rs in sessions)
        days = {self.calendar.day_of(rs.get_start_time()) for rs in sessions}

        return PeriodStats(
            start=start_day,
            end=end_day,
            total_minutes=round(total_seconds / 60, 2),
            pages_read=sum(rs.pages_read for rs in sessions),
            sessions_count=len(sessions),
            days_active=len(days),
        )

    def weekly_stats(self) -> PeriodStats:
        """Statistics from the same weekday last week up to today.

        Both ends are inclusive, so the window spans 8 local days, matching
        how monthly_stats and yearly_stats count back from today.
        """
        today = self._today()
        return self.stats_for_period(today - timedelta(days=7), today)

    def monthly_stats(self) -> PeriodStats:
        """Statistics from the same day last month up to today."""
        today = self._today()
        return self.stats_for_period(shift_months(today, -1), today)

    def yearly_stats(self) -> PeriodStats:
        """Statistics from the same day last year up to today."""
        today = self._today()
        return self.stats_for_period(shift_months(today, -12), today)

    def reading_history(self, days: int) -> list[DailyStats]:
        """Daily statistics for the last `days` days, oldest first."""
        today = self._today()
        return [
            self.stats_for_date(today - timedelta(days=offset))
            for offset in reversed(range(days))
        ]

    # -------------------------------------------------------------------------
    # Streaks
    # -------------------------------------------------------------------------

    def _reading_days(self) -> set[date]:
        sessions = self.db.get_all_sessions(include_incomplete=True)
        return {self.calendar.day_of(rs.get_start_time()) for rs in sessions}

    def streak(self) -> int:
        """Count consecutive local days with at least one session.

        The walk starts at today and goes backwards. A day without
        sessions ends the streak, except today, which is still in progress
        and is skipped instead.
        """
        days = self._reading_days()
        day = self._today()
        if day not in days:
            day -= timedelta(days=1)

        streak = 0
        while day in days:
            streak += 1
            day -= timedelta(days=1)
        return streak

    def longest_streak(self) -> int:
        """Longest run of consecutive reading days in the whole history."""
        days = sorted(self._reading_days())
        longest = 0
        run = 0
        previous: Optional[date] = None
        for day in days:
            if previous is not None and day - previous == timedelta(days=1):
                run += 1
            else:
                run = 1
            longest = max(longest, run)
            previous = day
        return longest

    # -------------------------------------------------------------------------
    # Speed and totals
    # -------------------------------------------------------------------------

    def _completed_sessions(self) -> list[ReadingSession]:
        return self.db.get_all_sessions(include_incomplete=False)

    def reading_speed(self) -> float:
        """Average pages per hour.

        Only completed sessions with more than five minutes of reading
        and at least one page read are counted.

        Returns:
            Pages per hour, 0.0 if no session qualifies
        """
        total_pages = 0
        total_seconds = 0.0
        for rs in self._completed_sessions():
            seconds = actual_reading_time(rs)
            if seconds > MIN_SPEED_SESSION_SECONDS and rs.pages_read > 0:
                total_pages += rs.pages_read
                total_seconds += seconds

        if total_seconds <= 0:
            return 0.0
        return round(total_pages / (total_seconds / 3600), 2)

    def total_pages_all_time(self) -> int:
        """Pages read across all completed sessions."""
        return sum(rs.pages_read for rs in self._completed_sessions())

    def total_hours_all_time(self) -> int:
        """Whole hours of reading across all completed sessions."""
        total_seconds = sum(actual_reading_time(rs) for rs in self._completed_sessions())
        return int(total_seconds // 3600)
