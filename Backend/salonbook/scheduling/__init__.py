"""
Availability & booking engine.

Read path: ScheduleCalendar (calendar), BookingIndex (index) and
generate_slots (slots) feed AvailabilityResolver (availability).
Write path: BookingTransaction (booking), RescheduleCoordinator
(reschedule) and SlotOverride (overrides), serialized per date and
stylist by the keys in locks.

Only the value types and errors are re-exported here; the components
import the ORM models and are imported from their own modules.
"""
from .errors import (
    AppointmentNotFound,
    BookingError,
    InvalidDuration,
    InvalidRequest,
    InvalidStatusTransition,
    NoChangeRequested,
    ServiceNotFound,
    SlotUnavailable,
    StylistNotFound,
    TransientContention,
)
from .slots import generate_slots
from .types import DaySchedule, Interval, TimeSlot, Weekday, WeeklySchedule, Window

__all__ = [
    # Errors
    "AppointmentNotFound",
    "BookingError",
    "InvalidDuration",
    "InvalidRequest",
    "InvalidStatusTransition",
    "NoChangeRequested",
    "ServiceNotFound",
    "SlotUnavailable",
    "StylistNotFound",
    "TransientContention",
    # Slots
    "generate_slots",
    # Types
    "DaySchedule",
    "Interval",
    "TimeSlot",
    "Weekday",
    "WeeklySchedule",
    "Window",
]
