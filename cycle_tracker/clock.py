"""
Timezone-aware clock used for all day-boundary decisions.

Every "which day is it" question in the engine goes through a Clock so that
midnight rollovers and DST transitions can be reproduced in tests.
"""

import math
from datetime import date, datetime, time, tzinfo
from typing import Optional


class Clock:
    """
    Wall clock in a fixed time zone, or the system local zone when tz is None.
    """

    def __init__(self, tz: Optional[tzinfo] = None):
        self.tz = tz

    def now(self) -> datetime:
        """Return the current time as an aware datetime."""
        return datetime.now(self.tz).astimezone(self.tz)

    def today(self) -> date:
        """Return the current local calendar day."""
        return self.now().date()

    def start_of_day(self, day: date) -> datetime:
        """
        Return midnight at the start of a calendar day as an aware datetime.

        Args:
            day: Calendar day

        Returns:
            Aware datetime for 00:00 local time on that day
        """
        if self.tz is None:
            return datetime.combine(day, time.min).astimezone()
        return datetime.combine(day, time.min, tzinfo=self.tz)

    def day_of(self, timestamp: float) -> date:
        """Return the local calendar day containing a POSIX timestamp."""
        return datetime.fromtimestamp(timestamp, self.tz).date()

    def whole_days_until(self, day: date, now: Optional[datetime] = None) -> int:
        """
        Count complete 24 hour periods from now until the start of a day.

        Args:
            day: Target calendar day
            now: Reference time, defaults to the current time

        Returns:
            Number of whole days (negative once the day has started)
        """
        now = now or self.now()
        seconds = self.start_of_day(day).timestamp() - now.timestamp()
        return math.floor(seconds / 86400)
