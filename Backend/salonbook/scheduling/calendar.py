"""
ScheduleCalendar: resolves the open/close window for a date.

The salon-wide weekly schedule, salon closed dates, each stylist's weekly
working hours and each stylist's blocked dates are loaded once per request
into a ScheduleCalendar. Stylist records are parsed only when that stylist is
asked for, so one malformed record never affects other stylists or
salon-wide queries. Window resolution itself is pure.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import SalonClock
from ..core.config import Settings, get_settings
from ..queries import get_salon_settings, list_active_stylists
from .errors import StylistNotFound
from .types import Weekday, WeeklySchedule, Window

logger = logging.getLogger(__name__)


def parse_iso_dates(values: Optional[Iterable[str]]) -> frozenset[date]:
    """Parse a stored list of "YYYY-MM-DD" strings."""
    return frozenset(date.fromisoformat(str(value)) for value in values or ())


@dataclass(frozen=True)
class StylistHours:
    """Read model of one stylist. A missing weekly schedule follows salon hours."""
    stylist_id: int
    schedule: Optional[WeeklySchedule] = None
    blocked_dates: frozenset[date] = field(default_factory=frozenset)

    @classmethod
    def from_record(cls, stylist_id: int, working_hours: Any, blocked_dates: Any) -> "StylistHours":
        """Parse stored JSON columns. Raises ValueError on malformed entries."""
        return cls(
            stylist_id=stylist_id,
            schedule=WeeklySchedule.from_json(working_hours) if working_hours else None,
            blocked_dates=parse_iso_dates(blocked_dates),
        )


class ScheduleCalendar:
    def __init__(
        self,
        salon_schedule: WeeklySchedule,
        today: date,
        closed_dates: Iterable[date] = (),
        stylists: Optional[Mapping[int, StylistHours]] = None,
        stylist_records: Optional[Mapping[int, tuple[Any, Any]]] = None,
    ):
        self.salon_schedule = salon_schedule
        self.today = today
        self.closed_dates = frozenset(closed_dates)
        self.stylists = dict(stylists or {})
        # stylist_id -> (working_hours, blocked_dates) as stored, parsed on first use
        self.stylist_records = dict(stylist_records or {})

    @classmethod
    async def load(
        cls,
        session: AsyncSession,
        clock: SalonClock,
        settings: Optional[Settings] = None,
    ) -> "ScheduleCalendar":
        settings = settings or get_settings()
        salon = await get_salon_settings(session, settings)
        records = {
            stylist.id: (stylist.working_hours, stylist.blocked_dates)
            for stylist in await list_active_stylists(session)
        }
        return cls(
            salon_schedule=WeeklySchedule.from_json(salon.weekly_schedule),
            today=clock.today(),
            closed_dates=parse_iso_dates(salon.closed_dates),
            stylist_records=records,
        )

    def has_stylist(self, stylist_id: int) -> bool:
        return stylist_id in self.stylists or stylist_id in self.stylist_records

    def require_stylist(self, stylist_id: int) -> StylistHours:
        if stylist_id in self.stylists:
            return self.stylists[stylist_id]
        if stylist_id not in self.stylist_records:
            raise StylistNotFound(
                f"Stylist {stylist_id} not found", details={"stylist_id": stylist_id}
            )

        working_hours, blocked_dates = self.stylist_records[stylist_id]
        try:
            hours = StylistHours.from_record(stylist_id, working_hours, blocked_dates)
        except ValueError as exc:
            logger.warning("Stylist %s has an unreadable schedule: %s", stylist_id, exc)
            raise StylistNotFound(
                f"Stylist {stylist_id} has no usable schedule",
                details={"stylist_id": stylist_id, "reason": str(exc)},
            )
        self.stylists[stylist_id] = hours
        return hours

    def longest_window_minutes(self) -> int:
        """Upper bound on any window; stylist windows never exceed salon hours."""
        return self.salon_schedule.longest_window_minutes()

    def resolve_window(self, day: date, stylist_id: Optional[int] = None) -> Window:
        """
        Salon hours for the weekday, intersected with the stylist's hours
        when a stylist is given. Past dates, salon closed dates and stylist
        blocked dates are closed.
        """
        stylist = self.require_stylist(stylist_id) if stylist_id is not None else None

        if day < self.today or day in self.closed_dates:
            return Window.closed()

        weekday = Weekday.of(day)
        salon_day = self.salon_schedule.for_day(weekday)
        if not salon_day.is_open:
            return Window.closed()
        if stylist is None:
            return Window(True, salon_day.opening_time, salon_day.closing_time)

        if day in stylist.blocked_dates:
            return Window.closed()
        stylist_day = stylist.schedule.for_day(weekday) if stylist.schedule else salon_day
        if not stylist_day.is_open:
            return Window.closed()

        opening = max(salon_day.opening_time, stylist_day.opening_time)
        closing = min(salon_day.closing_time, stylist_day.closing_time)
        if opening >= closing:
            logger.debug(
                "Empty window for stylist %s on %s (%s-%s)", stylist_id, day, opening, closing
            )
            return Window.closed()
        return Window(True, opening, closing)
