"""
Read-model query helpers.

The booking engine consumes the service catalog, stylist records and the
salon settings as read models. All lookups of those tables go through these
helpers so the engine never builds ad-hoc queries against them.

Usage:
    from salonbook.queries import get_services_by_ids, get_stylist_by_id

    services = await get_services_by_ids(session, [1, 2])
    stylist = await get_stylist_by_id(session, stylist_id)
"""

import uuid
from collections import defaultdict
from datetime import date
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .core.config import Settings
from .models import (
    Appointment,
    AppointmentService,
    AppointmentStatus,
    SalonSettings,
    Service,
    SlotBlock,
    Stylist,
    StylistSpecialty,
)
from .scheduling.types import Weekday, WeeklySchedule, parse_hhmm


# ────────────────────────────────────────────────────────────────
# Service catalog
# ────────────────────────────────────────────────────────────────

async def list_services(session: AsyncSession) -> Sequence[Service]:
    result = await session.execute(
        select(Service).where(Service.active.is_(True)).order_by(Service.id)
    )
    return result.scalars().all()


async def get_services_by_ids(
    session: AsyncSession,
    service_ids: Sequence[int],
) -> list[Service]:
    """
    Get active services by IDs, in the order requested.
    Unknown or inactive IDs are left out; callers compare lengths.
    """
    if not service_ids:
        return []
    result = await session.execute(
        select(Service).where(Service.id.in_(set(service_ids)), Service.active.is_(True))
    )
    by_id = {svc.id: svc for svc in result.scalars().all()}
    return [by_id[service_id] for service_id in service_ids if service_id in by_id]


# ────────────────────────────────────────────────────────────────
# Stylists
# ────────────────────────────────────────────────────────────────

async def get_stylist_by_id(session: AsyncSession, stylist_id: int) -> Optional[Stylist]:
    """Get an active stylist. Inactive stylists are treated as missing."""
    result = await session.execute(
        select(Stylist).where(Stylist.id == stylist_id, Stylist.active.is_(True))
    )
    return result.scalar_one_or_none()


async def list_active_stylists(session: AsyncSession) -> Sequence[Stylist]:
    result = await session.execute(
        select(Stylist).where(Stylist.active.is_(True)).order_by(Stylist.id)
    )
    return result.scalars().all()


async def get_specialties(
    session: AsyncSession,
    stylist_ids: Sequence[int],
) -> dict[int, set[int]]:
    """Map stylist_id -> set of service ids the stylist performs."""
    specialties: dict[int, set[int]] = {stylist_id: set() for stylist_id in stylist_ids}
    if not stylist_ids:
        return specialties
    result = await session.execute(
        select(StylistSpecialty).where(StylistSpecialty.stylist_id.in_(stylist_ids))
    )
    for row in result.scalars().all():
        specialties.setdefault(row.stylist_id, set()).add(row.service_id)
    return specialties


async def list_stylists_for_services(
    session: AsyncSession,
    service_ids: Sequence[int],
) -> list[Stylist]:
    """Active stylists whose specialties cover every requested service."""
    stylists = await list_active_stylists(session)
    if not service_ids:
        return list(stylists)
    specialties = await get_specialties(session, [s.id for s in stylists])
    wanted = set(service_ids)
    return [s for s in stylists if wanted <= specialties.get(s.id, set())]


# ────────────────────────────────────────────────────────────────
# Salon settings
# ────────────────────────────────────────────────────────────────

def default_weekly_schedule(settings: Settings) -> WeeklySchedule:
    closed = tuple(Weekday(day) for day in settings.default_closed_days_list)
    return WeeklySchedule.uniform(
        parse_hhmm(settings.default_opening_time),
        parse_hhmm(settings.default_closing_time),
        closed_days=closed,
    )


def default_salon_settings(settings: Settings) -> SalonSettings:
    return SalonSettings(
        business_name=settings.business_name,
        weekly_schedule=default_weekly_schedule(settings).to_json(),
        closed_dates=[],
    )


async def get_salon_settings(session: AsyncSession, settings: Settings) -> SalonSettings:
    """
    The single salon settings row. When none has been stored yet an unsaved
    default built from configuration is returned, so reads never write.
    """
    result = await session.execute(select(SalonSettings).order_by(SalonSettings.id).limit(1))
    row = result.scalar_one_or_none()
    if row is None:
        return default_salon_settings(settings)
    return row


# ────────────────────────────────────────────────────────────────
# Appointments
# ────────────────────────────────────────────────────────────────

async def get_appointment_by_id(
    session: AsyncSession,
    appointment_id: uuid.UUID,
) -> Optional[Appointment]:
    result = await session.execute(select(Appointment).where(Appointment.id == appointment_id))
    return result.scalar_one_or_none()


async def get_appointment_services(
    session: AsyncSession,
    appointment_ids: Sequence[uuid.UUID],
) -> dict[uuid.UUID, list[AppointmentService]]:
    items: dict[uuid.UUID, list[AppointmentService]] = defaultdict(list)
    if not appointment_ids:
        return items
    result = await session.execute(
        select(AppointmentService)
        .where(AppointmentService.appointment_id.in_(appointment_ids))
        .order_by(AppointmentService.appointment_id, AppointmentService.position)
    )
    for item in result.scalars().all():
        items[item.appointment_id].append(item)
    return items


async def list_upcoming_appointments_for_email(
    session: AsyncSession,
    email: str,
    today: date,
) -> Sequence[Appointment]:
    """SCHEDULED appointments on or after today, matched case-insensitively."""
    result = await session.execute(
        select(Appointment)
        .where(
            func.lower(Appointment.customer_email) == email.strip().lower(),
            Appointment.date >= today,
            Appointment.status == AppointmentStatus.SCHEDULED,
        )
        .order_by(Appointment.date, Appointment.start_time)
    )
    return result.scalars().all()


# ────────────────────────────────────────────────────────────────
# Slot blocks
# ────────────────────────────────────────────────────────────────

async def list_slot_blocks(
    session: AsyncSession,
    day: date,
    stylist_id: Optional[int] = None,
) -> Sequence[SlotBlock]:
    """Blocks stored for the date. With a stylist, only that stylist's own blocks."""
    query = select(SlotBlock).where(SlotBlock.date == day)
    if stylist_id is None:
        query = query.where(SlotBlock.stylist_id.is_(None))
    else:
        query = query.where(SlotBlock.stylist_id == stylist_id)
    result = await session.execute(query.order_by(SlotBlock.start_time))
    return result.scalars().all()
