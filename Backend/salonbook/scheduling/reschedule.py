"""
RescheduleCoordinator: move a SCHEDULED appointment to a new date/time.

The appointment row is updated in place inside one serialized section that
holds the keys of both the old and the new date, so the old interval is
released and the new one claimed in a single commit.
"""

import logging
import uuid
from datetime import date, time

from .availability import AvailabilityResolver
from .booking import BookingTransaction
from .errors import BookingError, NoChangeRequested
from .locks import lock_keys_for
from .types import format_hhmm

logger = logging.getLogger(__name__)


class RescheduleCoordinator:
    def __init__(self, transaction: BookingTransaction):
        self.transaction = transaction

    async def reschedule(self, appointment_id: uuid.UUID, new_date: date, new_time: time):
        txn = self.transaction
        current = await txn.require_scheduled(appointment_id)
        old_date, old_time, stylist_id = current.date, current.start_time, current.stylist_id
        if (new_date, new_time) == (old_date, old_time):
            raise NoChangeRequested(
                "Appointment is already at the requested date and time",
                details={"date": new_date.isoformat(), "time": format_hhmm(new_time)},
            )
        keys = lock_keys_for(old_date, stylist_id) + lock_keys_for(new_date, stylist_id)

        async def move():
            appt = await txn.require_scheduled(appointment_id)
            if (new_date, new_time) == (appt.date, appt.start_time):
                raise NoChangeRequested("Appointment is already at the requested date and time")
            resolver = await AvailabilityResolver.load(txn.session, txn.clock, txn.settings)
            await resolver.ensure_bookable(
                new_date,
                new_time,
                appt.total_duration_minutes,
                appt.stylist_id,
                exclude_appointment_id=appt.id,
            )
            appt.date = new_date
            appt.start_time = new_time
            await txn.session.flush()
            return appt

        try:
            appt = await txn.atomic(keys, move)
        except BookingError as exc:
            logger.info(
                "Reschedule of %s to %s %s rejected (%s: %s)",
                appointment_id, new_date, format_hhmm(new_time), exc.code, exc.message,
            )
            raise

        logger.info(
            "Rescheduled appointment %s from %s %s to %s %s",
            appt.id, old_date, format_hhmm(old_time), new_date, format_hhmm(new_time),
        )
        return appt
