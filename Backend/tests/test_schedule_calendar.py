"""
Window resolution: salon hours, stylist hours, blocked and closed dates.
"""
from datetime import date, time

import pytest

from salonbook.models import Stylist
from salonbook.scheduling.calendar import ScheduleCalendar, StylistHours
from salonbook.scheduling.errors import StylistNotFound
from salonbook.scheduling.types import Weekday, WeeklySchedule, Window

MONDAY = date(2024, 6, 10)
TUESDAY = date(2024, 6, 11)
WEDNESDAY = date(2024, 6, 12)


@pytest.fixture
def calendar():
    return ScheduleCalendar(
        salon_schedule=WeeklySchedule.uniform(time(9, 0), time(17, 0)),
        today=date(2024, 6, 1),
        closed_dates=[date(2024, 6, 20)],
        stylists={
            1: StylistHours(
                1,
                WeeklySchedule.uniform(time(11, 0), time(19, 0), closed_days=(Weekday.TUESDAY,)),
            ),
            2: StylistHours(2, None, frozenset({WEDNESDAY})),
            3: StylistHours(3, WeeklySchedule.uniform(time(17, 0), time(21, 0))),
        },
    )


class TestResolveWindow:
    def test_salon_wide_window(self, calendar):
        assert calendar.resolve_window(MONDAY) == Window(True, time(9, 0), time(17, 0))

    def test_stylist_window_is_intersection(self, calendar):
        assert calendar.resolve_window(MONDAY, 1) == Window(True, time(11, 0), time(17, 0))

    def test_stylist_day_off(self, calendar):
        assert not calendar.resolve_window(TUESDAY, 1).is_open
        # The salon itself is open that day
        assert calendar.resolve_window(TUESDAY).is_open

    def test_stylist_without_weekly_hours_follows_salon(self, calendar):
        assert calendar.resolve_window(MONDAY, 2) == Window(True, time(9, 0), time(17, 0))

    def test_stylist_blocked_date(self, calendar):
        assert not calendar.resolve_window(WEDNESDAY, 2).is_open
        assert calendar.resolve_window(WEDNESDAY, 1).is_open

    def test_empty_intersection_is_closed(self, calendar):
        assert not calendar.resolve_window(MONDAY, 3).is_open

    def test_salon_closed_date_closes_every_window(self, calendar):
        closed = date(2024, 6, 20)
        assert not calendar.resolve_window(closed).is_open
        assert not calendar.resolve_window(closed, 1).is_open

    def test_past_dates_are_closed(self, calendar):
        assert not calendar.resolve_window(date(2024, 5, 31)).is_open
        assert not calendar.resolve_window(date(2024, 5, 27), 1).is_open

    def test_today_is_still_open(self, calendar):
        assert calendar.resolve_window(date(2024, 6, 1)).is_open

    def test_salon_closed_weekday(self):
        calendar = ScheduleCalendar(
            salon_schedule=WeeklySchedule.uniform(time(9, 0), time(17, 0), closed_days=(Weekday.SUNDAY,)),
            today=date(2024, 6, 1),
            stylists={1: StylistHours(1, WeeklySchedule.uniform(time(9, 0), time(17, 0)))},
        )
        sunday = date(2024, 6, 9)
        assert not calendar.resolve_window(sunday).is_open
        assert not calendar.resolve_window(sunday, 1).is_open

    def test_unknown_stylist(self, calendar):
        with pytest.raises(StylistNotFound):
            calendar.resolve_window(MONDAY, 99)


class TestLoad:
    async def test_load_from_database(self, async_session, salon, clock, settings):
        calendar = await ScheduleCalendar.load(async_session, clock, settings)

        assert calendar.today == date(2024, 6, 1)
        assert calendar.resolve_window(MONDAY, salon.stylist_a.id) == Window(True, time(11, 0), time(17, 0))
        assert not calendar.resolve_window(WEDNESDAY, salon.stylist_b.id).is_open
        assert not calendar.resolve_window(date(2024, 6, 20)).is_open
        assert calendar.longest_window_minutes() == 8 * 60

    async def test_load_without_settings_row_uses_configured_defaults(self, async_session, clock, settings):
        calendar = await ScheduleCalendar.load(async_session, clock, settings)

        # Defaults: 11:00-19:00, closed on Tuesdays
        assert calendar.resolve_window(MONDAY) == Window(True, time(11, 0), time(19, 0))
        assert not calendar.resolve_window(TUESDAY).is_open

    async def test_malformed_stylist_record_only_affects_that_stylist(self, async_session, salon, clock, settings):
        broken = Stylist(
            name="C",
            working_hours={"monday": {"isOpen": True, "openingTime": "9am", "closingTime": "17:00"}},
            blocked_dates=["2024/06/12"],
        )
        async_session.add(broken)
        await async_session.commit()
        broken_id = broken.id

        calendar = await ScheduleCalendar.load(async_session, clock, settings)

        assert calendar.resolve_window(MONDAY) == Window(True, time(9, 0), time(17, 0))
        assert calendar.resolve_window(MONDAY, salon.stylist_a.id).is_open
        assert calendar.has_stylist(broken_id)
        with pytest.raises(StylistNotFound) as exc_info:
            calendar.resolve_window(MONDAY, broken_id)
        assert exc_info.value.details["stylist_id"] == broken_id
