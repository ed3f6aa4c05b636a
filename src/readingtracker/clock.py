"""Time sources and local calendar arithmetic.

Every "now" in the package comes from an injectable Clock so tests can
drive time deterministically. Calendar-day boundaries are always computed
in a named timezone through LocalCalendar, never by shifting UTC offsets.
"""

import logging
import os
import threading
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


class Clock(Protocol):
    """Source of the current instant."""

    def now(self) -> datetime:
        """Return the current time as an aware UTC datetime."""
        ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """A clock that only moves when told to. Used for tests and replays."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = ensure_utc(start) if start else datetime.now(timezone.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, seconds: float = 0, **kwargs) -> datetime:
        """Move the clock forward.

        Args:
            seconds: Seconds to advance
            **kwargs: Extra timedelta arguments (minutes, hours, days)

        Returns:
            The new current time
        """
        with self._lock:
            self._now = self._now + timedelta(seconds=seconds, **kwargs)
            return self._now

    def set(self, moment: datetime) -> None:
        """Jump to an absolute instant."""
        with self._lock:
            self._now = ensure_utc(moment)


def ensure_utc(moment: datetime) -> datetime:
    """Convert a datetime to aware UTC. Naive values are taken as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def to_storage(moment: datetime) -> str:
    """Format a datetime for the store.

    The format is fixed width so that string comparison orders instants.
    """
    return ensure_utc(moment).isoformat(timespec="microseconds")


def from_storage(value: str) -> datetime:
    """Parse a stored timestamp back to an aware UTC datetime."""
    return ensure_utc(datetime.fromisoformat(value))


def load_timezone(name: str) -> ZoneInfo:
    """Load an IANA timezone by name.

    Raises:
        ValueError: If the zone is unknown
    """
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name}") from e


def zone_from_tz_variable(value: str) -> Optional[ZoneInfo]:
    """Zone named by a TZ environment value.

    Accepts an IANA key, optionally prefixed with ':', or a POSIX rule
    string whose leading name is itself a zone key (e.g. EST5EDT,M3.2.0,M11.1.0).
    """
    value = value.lstrip(":")
    if value.startswith("/"):
        return zone_from_localtime(value)
    for candidate in (value, value.split(",")[0]):
        try:
            return load_timezone(candidate)
        except ValueError:
            continue
    return None


def zone_from_localtime(path: str = "/etc/localtime") -> Optional[ZoneInfo]:
    """Zone named by a zoneinfo symlink such as /etc/localtime."""
    if not os.path.islink(path):
        return None
    target = os.path.realpath(path).replace(os.sep, "/")
    if "zoneinfo/" not in target:
        return None
    key = target.rsplit("zoneinfo/", 1)[1]
    for prefix in ("posix/", "right/"):
        if key.startswith(prefix):
            key = key[len(prefix):]
    try:
        return load_timezone(key)
    except ValueError:
        return None


def _zone_from_timezone_file(path: str = "/etc/timezone") -> Optional[ZoneInfo]:
    try:
        with open(path, encoding="utf-8") as f:
            name = f.read().strip()
    except OSError:
        return None
    if not name:
        return None
    try:
        return load_timezone(name)
    except ValueError:
        return None


def system_timezone() -> ZoneInfo:
    """The user's local IANA zone.

    Tried in order: the TZ variable, the /etc/localtime symlink and
    /etc/timezone. Falls back to UTC when none names a known zone.
    """
    tz_name = os.environ.get("TZ")
    if tz_name:
        zone = zone_from_tz_variable(tz_name)
        if zone is not None:
            return zone
        logger.debug("TZ=%s does not name a known zone", tz_name)

    zone = zone_from_localtime() or _zone_from_timezone_file()
    if zone is not None:
        return zone

    logger.warning("Could not determine the local timezone; using UTC")
    return ZoneInfo("UTC")


class LocalCalendar:
    """Calendar-day arithmetic in the user's timezone."""

    def __init__(self, tz: Optional[tzinfo] = None):
        self.tz = tz or system_timezone()

    @classmethod
    def from_name(cls, name: Optional[str]) -> "LocalCalendar":
        """Build a calendar for an IANA zone name, or the system zone."""
        return cls(load_timezone(name) if name else None)

    def localize(self, moment: datetime) -> datetime:
        """Express an instant in local time."""
        return ensure_utc(moment).astimezone(self.tz)

    def day_of(self, moment: datetime) -> date:
        """Local calendar day containing an instant."""
        return self.localize(moment).date()

    def today(self, now: datetime) -> date:
        return self.day_of(now)

    def start_of_day(self, day: date) -> datetime:
        """First instant of a local day, as aware UTC."""
        return datetime.combine(day, time.min, tzinfo=self.tz).astimezone(timezone.utc)

    def day_bounds(self, day: date) -> tuple[datetime, datetime]:
        """Half-open [start, end) UTC bounds of a local day."""
        return self.start_of_day(day), self.start_of_day(day + timedelta(days=1))

    def range_bounds(self, start: date, end: date) -> tuple[datetime, datetime]:
        """Half-open UTC bounds covering the inclusive local day range."""
        return self.start_of_day(start), self.start_of_day(end + timedelta(days=1))
