"""
AvailabilityResolver: bookable start times for a date and duration.

A candidate start s is available iff [s, s + duration) lies inside the
resolved window and overlaps no occupied interval. Every sub-slot of a long
service must be free, not only the first one.
"""

import logging
import uuid
from datetime import date, time
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import SalonClock
from ..core.config import Settings, get_settings
from .calendar import ScheduleCalendar
from .errors import InvalidDuration, SlotUnavailable
from .index import BookingIndex, first_conflict
from .slots import generate_slots
from .types import Interval, TimeSlot, Window, format_hhmm

logger = logging.getLogger(__name__)


class AvailabilityResolver:
    def __init__(self, calendar: ScheduleCalendar, index: BookingIndex, granularity_minutes: int):
        self.calendar = calendar
        self.index = index
        self.granularity_minutes = granularity_minutes

    @classmethod
    async def load(
        cls,
        session: AsyncSession,
        clock: SalonClock,
        settings: Optional[Settings] = None,
    ) -> "AvailabilityResolver":
        settings = settings or get_settings()
        calendar = await ScheduleCalendar.load(session, clock, settings)
        granularity = settings.slot_granularity_minutes
        return cls(calendar, BookingIndex(session, granularity), granularity)

    def require_positive(self, duration_minutes: int) -> None:
        if duration_minutes <= 0:
            raise InvalidDuration(
                "Duration must be positive", details={"duration_minutes": duration_minutes}
            )

    def validate_duration(self, duration_minutes: int) -> None:
        """Positive, and no longer than the longest opening window of the week."""
        self.require_positive(duration_minutes)
        longest = self.calendar.longest_window_minutes()
        if duration_minutes > longest:
            raise InvalidDuration(
                f"Duration of {duration_minutes} minutes exceeds the longest opening window",
                details={"duration_minutes": duration_minutes, "longest_window_minutes": longest},
            )

    def candidates(self, window: Window) -> List[time]:
        if not window.is_open:
            return []
        return generate_slots(window.open, window.close, self.granularity_minutes)

    async def slot_grid(
        self,
        day: date,
        duration_minutes: int,
        stylist_id: Optional[int] = None,
    ) -> List[TimeSlot]:
        """
        Every slot start of the window, flagged available or not. Past and
        closed dates yield an empty grid whatever the weekly schedule holds.
        """
        self.require_positive(duration_minutes)
        window = self.calendar.resolve_window(day, stylist_id)
        if not window.is_open:
            return []
        self.validate_duration(duration_minutes)
        starts = self.candidates(window)

        bounds = window.as_interval()
        occupied = await self.index.occupied(day, stylist_id)
        grid: list[TimeSlot] = []
        for start in starts:
            requested = Interval.starting_at(start, duration_minutes)
            free = requested.within(bounds) and first_conflict(requested, occupied) is None
            grid.append(TimeSlot(start, free))
        return grid

    async def available_slots(
        self,
        day: date,
        duration_minutes: int,
        stylist_id: Optional[int] = None,
    ) -> List[time]:
        grid = await self.slot_grid(day, duration_minutes, stylist_id)
        return [slot.time for slot in grid if slot.available]

    async def ensure_bookable(
        self,
        day: date,
        start: time,
        duration_minutes: int,
        stylist_id: Optional[int] = None,
        exclude_appointment_id: Optional[uuid.UUID] = None,
    ) -> None:
        """
        Raise SlotUnavailable unless [start, start + duration) can be claimed.
        Same rule as slot_grid, applied to a single start.
        """
        self.require_positive(duration_minutes)
        details = {
            "date": day.isoformat(),
            "time": format_hhmm(start),
            "duration_minutes": duration_minutes,
            "stylist_id": stylist_id,
        }

        window = self.calendar.resolve_window(day, stylist_id)
        if window.is_open:
            self.validate_duration(duration_minutes)
        if start not in self.candidates(window):
            raise SlotUnavailable("Requested time is outside opening hours", details=details)

        requested = Interval.starting_at(start, duration_minutes)
        if not requested.within(window.as_interval()):
            raise SlotUnavailable("Requested duration runs past closing time", details=details)

        occupied = await self.index.occupied(day, stylist_id, exclude_appointment_id)
        conflict = first_conflict(requested, occupied)
        if conflict is not None:
            details["conflict"] = conflict.source
            raise SlotUnavailable("Requested time is no longer available", details=details)
