"""
Clock and day boundary.

All per-day queries are scoped by local midnight to local midnight.
Stored token dates are naive local datetimes truncated to midnight.
"""

from datetime import datetime, timedelta
from typing import Optional, Tuple


class Clock:
    """Supplies "now" and the local day range."""

    def now(self) -> datetime:
        return datetime.now()

    def today(self) -> datetime:
        return self.start_of_day(self.now())

    @staticmethod
    def start_of_day(moment: datetime) -> datetime:
        return moment.replace(hour=0, minute=0, second=0, microsecond=0)

    def day_bounds(self, day: Optional[datetime] = None) -> Tuple[datetime, datetime]:
        """Return the ``[start, end)`` range of the given day (today by default)."""
        start = self.start_of_day(day or self.now())
        return start, start + timedelta(days=1)


class FixedClock(Clock):
    """Clock pinned to a given instant, advanced by hand."""

    def __init__(self, moment: datetime):
        self.moment = moment

    def now(self) -> datetime:
        return self.moment

    def advance(self, **kwargs) -> datetime:
        self.moment = self.moment + timedelta(**kwargs)
        return self.moment


_clock: Clock = Clock()


def get_clock() -> Clock:
    """Get the process clock."""
    return _clock


def set_clock(clock: Clock) -> None:
    """Swap the process clock, used by tests and simulations."""
    global _clock
    _clock = clock
