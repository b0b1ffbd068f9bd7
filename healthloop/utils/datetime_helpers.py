"""
Standardized Date/Time Handling Utilities

Centralizes "now", day boundaries and day differences so that streak logic
never compares raw durations:
1. All stored timestamps are timezone-aware UTC
2. Calendar days are computed in the configured user timezone
3. Day differences are calendar differences (date ordinals), so DST
   transitions and late-night activity never skew a streak
"""

import logging
from datetime import datetime, date, timedelta, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

# Default timezone if none is configured
DEFAULT_TIMEZONE = "UTC"


def now_utc() -> datetime:
    """
    Get current datetime in UTC (timezone-aware)

    Returns:
        Current datetime in UTC with timezone info
    """
    return datetime.now(timezone.utc)


def start_of_day(value: Union[datetime, date], tz: Optional[ZoneInfo] = None) -> date:
    """
    Strip time-of-day, returning the calendar day

    Aware datetimes are first converted into ``tz`` (when given) so the day
    boundary is the user's local midnight. Plain dates pass through.
    """
    if isinstance(value, datetime):
        if tz is not None and value.tzinfo is not None:
            value = value.astimezone(tz)
        return value.date()
    return value


def days_between(earlier: date, later: date) -> int:
    """
    Calendar-day difference ``later - earlier``

    Negative when ``later`` precedes ``earlier`` (clock skew).
    """
    return later.toordinal() - earlier.toordinal()


def parse_day(value: Optional[str]) -> Optional[date]:
    """Parse a persisted ``YYYY-MM-DD`` day, tolerating full ISO timestamps"""
    if not value:
        return None
    if isinstance(value, date):
        return start_of_day(value)
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        logger.warning(f"Ignoring unparseable persisted day: {value!r}")
        return None


class Clock:
    """
    Calendar adapter: supplies "now", today's day and day differences

    Injected into the progression store so tests can pin time.
    """

    def __init__(self, tz_name: str = DEFAULT_TIMEZONE):
        self.tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        """Current time in the configured timezone"""
        return now_utc().astimezone(self.tz)

    def today(self) -> date:
        """Today's calendar day in the configured timezone"""
        return start_of_day(self.now(), self.tz)

    def days_between(self, earlier: date, later: date) -> int:
        return days_between(earlier, later)


class FixedClock(Clock):
    """Clock pinned to a given instant; ``advance`` moves it forward"""

    def __init__(self, instant: datetime, tz_name: str = DEFAULT_TIMEZONE):
        super().__init__(tz_name)
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=self.tz)
        self._instant = instant

    def now(self) -> datetime:
        return self._instant.astimezone(self.tz)

    def set(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=self.tz)
        self._instant = instant

    def advance(self, **delta) -> None:
        """Move the clock forward, e.g. ``advance(days=1)``"""
        self._instant = self._instant + timedelta(**delta)
