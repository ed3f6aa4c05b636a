"""Reading statistics and analytics."""

from .analytics import (
    DailyStats,
    PeriodStats,
    ReadingStats,
    most_frequent,
    shift_months,
)

__all__ = [
    "DailyStats",
    "PeriodStats",
    "ReadingStats",
    "most_frequent",
    "shift_months",
]
