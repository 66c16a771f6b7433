"""
Salon clock.

All date comparisons in the booking engine happen in the salon's single
configured timezone. Components receive a clock instead of calling
datetime.now() so that "today" can be pinned in tests and scripts.
"""

from datetime import date, datetime
from zoneinfo import ZoneInfo

from .config import get_settings


class SalonClock:
    """Wall clock in the salon timezone."""

    def __init__(self, timezone_name: str):
        self.tz = ZoneInfo(timezone_name)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()


class FixedClock(SalonClock):
    """Clock frozen at a given local datetime."""

    def __init__(self, frozen: datetime, timezone_name: str = "Asia/Singapore"):
        super().__init__(timezone_name)
        if frozen.tzinfo is None:
            frozen = frozen.replace(tzinfo=self.tz)
        self.frozen = frozen.astimezone(self.tz)

    def now(self) -> datetime:
        return self.frozen


def get_clock() -> SalonClock:
    return SalonClock(get_settings().salon_timezone)
