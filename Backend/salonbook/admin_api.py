"""
Administrative API: appointment status, slot blocks and salon settings.

Authentication is handled in front of this service; these routes trust
their caller.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .booking_api import (
    ERROR_RESPONSES,
    AppointmentResponse,
    parse_date_param,
    parse_time_param,
    render_appointment,
)
from .core.clock import SalonClock, get_clock
from .core.config import Settings, get_settings
from .core.db import get_session
from .models import AppointmentStatus, SalonSettings, SlotBlock
from .queries import get_salon_settings
from .scheduling.booking import BookingTransaction
from .scheduling.calendar import parse_iso_dates
from .scheduling.errors import InvalidRequest
from .scheduling.overrides import SlotOverride
from .scheduling.types import WeeklySchedule, format_hhmm

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class StatusUpdateRequest(BaseModel):
    status: AppointmentStatus


class SlotBlockRequest(BaseModel):
    date: str
    time: str
    stylist_id: Optional[int] = None


class SlotBlockResponse(BaseModel):
    id: int
    date: str
    time: str
    stylist_id: Optional[int] = None
    created_at: Optional[datetime] = None


class UnblockResponse(BaseModel):
    removed: bool


class SalonSettingsResponse(BaseModel):
    business_name: str
    weekly_schedule: dict[str, Any]
    closed_dates: list[str]


class SalonSettingsUpdate(BaseModel):
    business_name: Optional[str] = None
    weekly_schedule: Optional[dict[str, Any]] = None
    closed_dates: Optional[list[str]] = None


def to_block_response(block: SlotBlock) -> SlotBlockResponse:
    return SlotBlockResponse(
        id=block.id,
        date=block.date.isoformat(),
        time=format_hhmm(block.start_time),
        stylist_id=block.stylist_id,
        created_at=block.created_at,
    )


def to_settings_response(row: SalonSettings) -> SalonSettingsResponse:
    return SalonSettingsResponse(
        business_name=row.business_name,
        weekly_schedule=WeeklySchedule.from_json(row.weekly_schedule).to_json(),
        closed_dates=sorted(d.isoformat() for d in parse_iso_dates(row.closed_dates)),
    )


# ────────────────────────────────────────────────────────────────
# Appointment status
# ────────────────────────────────────────────────────────────────

@router.post(
    "/appointments/{appointment_id}/status",
    response_model=AppointmentResponse,
    responses=ERROR_RESPONSES,
)
async def update_appointment_status(
    appointment_id: uuid.UUID,
    payload: StatusUpdateRequest,
    session: AsyncSession = Depends(get_session),
    clock: SalonClock = Depends(get_clock),
    settings: Settings = Depends(get_settings),
):
    """Mark a SCHEDULED appointment COMPLETED or NO_SHOW."""
    appt = await BookingTransaction(session, clock, settings).mark_status(appointment_id, payload.status)
    return await render_appointment(session, appt)


# ────────────────────────────────────────────────────────────────
# Slot blocks
# ────────────────────────────────────────────────────────────────

@router.get("/slot-blocks", response_model=list[SlotBlockResponse], responses=ERROR_RESPONSES)
async def list_slot_blocks(
    date: str,
    stylist_id: Optional[int] = None,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    blocks = await SlotOverride(session, settings).list_blocks(parse_date_param(date), stylist_id)
    return [to_block_response(b) for b in blocks]


@router.post("/slot-blocks", response_model=SlotBlockResponse, responses=ERROR_RESPONSES)
async def block_slot(
    payload: SlotBlockRequest,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    """Block a slot. Blocking an already-blocked slot returns the existing block."""
    block = await SlotOverride(session, settings).block(
        parse_date_param(payload.date), parse_time_param(payload.time), payload.stylist_id
    )
    return to_block_response(block)


@router.delete("/slot-blocks", response_model=UnblockResponse, responses=ERROR_RESPONSES)
async def unblock_slot(
    payload: SlotBlockRequest,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    """Unblock a slot. Unblocking a slot that is not blocked succeeds with removed=false."""
    removed = await SlotOverride(session, settings).unblock(
        parse_date_param(payload.date), parse_time_param(payload.time), payload.stylist_id
    )
    return UnblockResponse(removed=removed)


# ────────────────────────────────────────────────────────────────
# Salon settings
# ────────────────────────────────────────────────────────────────

@router.get("/settings", response_model=SalonSettingsResponse)
async def read_salon_settings(
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    return to_settings_response(await get_salon_settings(session, settings))


@router.put("/settings", response_model=SalonSettingsResponse, responses=ERROR_RESPONSES)
async def update_salon_settings(
    payload: SalonSettingsUpdate,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    try:
        schedule = (
            WeeklySchedule.from_json(payload.weekly_schedule)
            if payload.weekly_schedule is not None
            else None
        )
        closed = parse_iso_dates(payload.closed_dates) if payload.closed_dates is not None else None
    except ValueError as exc:
        raise InvalidRequest(str(exc))

    result = await session.execute(select(SalonSettings).order_by(SalonSettings.id).limit(1))
    row = result.scalar_one_or_none()
    if row is None:
        row = await get_salon_settings(session, settings)
        session.add(row)

    if payload.business_name is not None:
        if not payload.business_name.strip():
            raise InvalidRequest("business_name must not be empty")
        row.business_name = payload.business_name.strip()
    if schedule is not None:
        row.weekly_schedule = schedule.to_json()
    if closed is not None:
        row.closed_dates = sorted(d.isoformat() for d in closed)

    await session.commit()
    await session.refresh(row)
    logger.info("Salon settings updated")
    return to_settings_response(row)
