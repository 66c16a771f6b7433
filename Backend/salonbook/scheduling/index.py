"""
BookingIndex: read-only occupancy view for one date.

Occupancy scopes:
    salon-wide (no stylist): every SCHEDULED appointment on the date plus
        salon-wide slot blocks.
    stylist: that stylist's SCHEDULED appointments, SCHEDULED appointments
        with no stylist, salon-wide blocks and the stylist's own blocks.

Each slot block occupies one granularity unit.
"""

import uuid
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Appointment, AppointmentStatus, SlotBlock
from .types import Interval


@dataclass(frozen=True)
class OccupiedInterval:
    interval: Interval
    source: str  # "appointment" | "block"
    ref: str


class BookingIndex:
    def __init__(self, session: AsyncSession, granularity_minutes: int):
        self.session = session
        self.granularity_minutes = granularity_minutes

    async def scheduled_appointments(
        self,
        day: date,
        stylist_id: Optional[int] = None,
        exclude_appointment_id: Optional[uuid.UUID] = None,
    ) -> List[Appointment]:
        query = select(Appointment).where(
            Appointment.date == day,
            Appointment.status == AppointmentStatus.SCHEDULED,
        )
        if stylist_id is not None:
            query = query.where(
                or_(Appointment.stylist_id == stylist_id, Appointment.stylist_id.is_(None))
            )
        if exclude_appointment_id is not None:
            query = query.where(Appointment.id != exclude_appointment_id)
        result = await self.session.execute(
            query.order_by(Appointment.start_time).execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def blocks(self, day: date, stylist_id: Optional[int] = None) -> List[SlotBlock]:
        query = select(SlotBlock).where(SlotBlock.date == day)
        if stylist_id is None:
            query = query.where(SlotBlock.stylist_id.is_(None))
        else:
            query = query.where(
                or_(SlotBlock.stylist_id == stylist_id, SlotBlock.stylist_id.is_(None))
            )
        result = await self.session.execute(query.order_by(SlotBlock.start_time))
        return list(result.scalars().all())

    async def occupied(
        self,
        day: date,
        stylist_id: Optional[int] = None,
        exclude_appointment_id: Optional[uuid.UUID] = None,
    ) -> List[OccupiedInterval]:
        entries: list[OccupiedInterval] = []
        for appt in await self.scheduled_appointments(day, stylist_id, exclude_appointment_id):
            entries.append(OccupiedInterval(appt.interval, "appointment", str(appt.id)))
        for block in await self.blocks(day, stylist_id):
            entries.append(
                OccupiedInterval(
                    Interval.starting_at(block.start_time, self.granularity_minutes),
                    "block",
                    str(block.id),
                )
            )
        entries.sort(key=lambda entry: (entry.interval.start, entry.interval.end))
        return entries

    async def occupied_intervals(
        self,
        day: date,
        stylist_id: Optional[int] = None,
        exclude_appointment_id: Optional[uuid.UUID] = None,
    ) -> List[Interval]:
        """Occupied [start, end) intervals in minutes, sorted by start."""
        return [
            entry.interval
            for entry in await self.occupied(day, stylist_id, exclude_appointment_id)
        ]


def first_conflict(candidate: Interval, occupied: List[OccupiedInterval]) -> Optional[OccupiedInterval]:
    for entry in occupied:
        if candidate.overlaps(entry.interval):
            return entry
    return None
