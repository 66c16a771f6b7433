"""
Value types shared by the scheduling engine.

Times of day are handled as datetime.time at the edges and as minutes since
midnight inside the engine, so interval arithmetic is exact integer math.
"""

from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
from typing import Any, Mapping, Optional


class Weekday(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def of(cls, day: date) -> "Weekday":
        return list(cls)[day.weekday()]


def parse_hhmm(value: str) -> time:
    """Parse a 24-hour "HH:MM" string. Raises ValueError on anything else."""
    if not isinstance(value, str) or len(value) != 5 or value[2] != ":":
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    hour, minute = value.split(":")
    if not (hour.isdigit() and minute.isdigit()):
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    return time(hour=int(hour), minute=int(minute))


def format_hhmm(value: time) -> str:
    return value.strftime("%H:%M")


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    return time(hour=minutes // 60, minute=minutes % 60)


@dataclass(frozen=True)
class Interval:
    """Half-open [start, end) range in minutes since midnight."""
    start: int
    end: int

    @classmethod
    def starting_at(cls, start: time, duration_minutes: int) -> "Interval":
        begin = to_minutes(start)
        return cls(begin, begin + duration_minutes)

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and other.start < self.end

    def within(self, other: "Interval") -> bool:
        return other.start <= self.start and self.end <= other.end


@dataclass(frozen=True)
class DaySchedule:
    is_open: bool
    opening_time: time
    closing_time: time

    def __post_init__(self):
        if self.is_open and self.opening_time >= self.closing_time:
            raise ValueError(
                f"Opening time {format_hhmm(self.opening_time)} must be before "
                f"closing time {format_hhmm(self.closing_time)}"
            )

    @classmethod
    def closed(cls) -> "DaySchedule":
        return cls(is_open=False, opening_time=time(0, 0), closing_time=time(0, 0))

    def to_dict(self) -> dict:
        return {
            "isOpen": self.is_open,
            "openingTime": format_hhmm(self.opening_time),
            "closingTime": format_hhmm(self.closing_time),
        }


@dataclass(frozen=True)
class WeeklySchedule:
    """Opening hours per weekday. Days without an entry are closed."""
    days: Mapping[Weekday, DaySchedule] = field(default_factory=dict)

    def for_day(self, day: Weekday) -> DaySchedule:
        return self.days.get(day) or DaySchedule.closed()

    def longest_window_minutes(self) -> int:
        longest = 0
        for entry in self.days.values():
            if entry.is_open:
                longest = max(longest, to_minutes(entry.closing_time) - to_minutes(entry.opening_time))
        return longest

    @classmethod
    def uniform(
        cls,
        opening: time,
        closing: time,
        closed_days: tuple[Weekday, ...] = (),
    ) -> "WeeklySchedule":
        return cls(
            {
                day: DaySchedule(day not in closed_days, opening, closing)
                for day in Weekday
            }
        )

    @classmethod
    def from_json(cls, raw: Optional[Mapping[str, Any]]) -> "WeeklySchedule":
        """
        Parse the stored JSON shape::

            {"monday": {"isOpen": true, "openingTime": "09:00", "closingTime": "17:00"}, ...}

        Unknown weekday keys, non-boolean isOpen and malformed times raise ValueError.
        """
        if not raw:
            return cls({})
        if not isinstance(raw, Mapping):
            raise ValueError("Weekly schedule must be an object keyed by weekday")
        days: dict[Weekday, DaySchedule] = {}
        for key, entry in raw.items():
            try:
                weekday = Weekday(str(key).lower())
            except ValueError:
                raise ValueError(f"Unknown weekday {key!r}")
            if not isinstance(entry, Mapping):
                raise ValueError(f"Schedule entry for {key!r} must be an object")
            is_open = entry.get("isOpen", False)
            if not isinstance(is_open, bool):
                raise ValueError(f"isOpen for {key!r} must be true or false, got {is_open!r}")
            opening = parse_hhmm(entry.get("openingTime", "00:00"))
            closing = parse_hhmm(entry.get("closingTime", "00:00"))
            days[weekday] = DaySchedule(is_open, opening, closing)
        return cls(days)

    def to_json(self) -> dict:
        return {day.value: self.for_day(day).to_dict() for day in Weekday}


@dataclass(frozen=True)
class Window:
    """Resolved open/close range for one date. Closed windows carry no times."""
    is_open: bool
    open: Optional[time] = None
    close: Optional[time] = None

    @classmethod
    def closed(cls) -> "Window":
        return cls(is_open=False)

    def as_interval(self) -> Interval:
        return Interval(to_minutes(self.open), to_minutes(self.close))


@dataclass(frozen=True)
class TimeSlot:
    time: time
    available: bool

    def to_dict(self) -> dict:
        return {"time": format_hhmm(self.time), "available": self.available}
