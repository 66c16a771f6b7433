"""
Customer-facing booking API.

Exposes availability, appointment creation, lookup, reschedule, cancel and
calendar invites. Engine errors (BookingError) are rendered by the
exception handler registered in main as the standard error envelope.
"""

import logging
import uuid
from datetime import date, datetime, time
from typing import Optional, Sequence

from fastapi import APIRouter, BackgroundTasks, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from .core.clock import SalonClock, get_clock
from .core.config import Settings, get_settings
from .core.db import get_session
from .core.responses import ErrorResponse
from .emailer import deliver_appointment_email
from .invites import build_appointment_invite
from .models import Appointment, AppointmentService
from .queries import (
    get_appointment_by_id,
    get_appointment_services,
    get_stylist_by_id,
    list_services,
    list_stylists_for_services,
    list_upcoming_appointments_for_email,
)
from .scheduling.availability import AvailabilityResolver
from .scheduling.booking import BookingTransaction, Customer, resolve_service_lines
from .scheduling.errors import AppointmentNotFound, InvalidRequest
from .scheduling.reschedule import RescheduleCoordinator
from .scheduling.types import format_hhmm, parse_hhmm

logger = logging.getLogger(__name__)

router = APIRouter(tags=["booking"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


# ────────────────────────────────────────────────────────────────
# Request / Response Models
# ────────────────────────────────────────────────────────────────

class ServiceResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    duration_minutes: int
    price_cents: int


class StylistResponse(BaseModel):
    id: int
    name: str


class TimeSlotResponse(BaseModel):
    time: str
    available: bool


class AvailabilityResponse(BaseModel):
    date: str
    stylist_id: Optional[int] = None
    duration_minutes: int
    slots: list[TimeSlotResponse]


class CustomerIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=64)


class CreateAppointmentRequest(BaseModel):
    date: str  # YYYY-MM-DD, salon timezone
    time: str  # HH:MM, 24-hour
    service_ids: list[int] = Field(min_length=1)
    stylist_id: Optional[int] = None
    customer: CustomerIn


class RescheduleRequest(BaseModel):
    new_date: str
    new_time: str


class AppointmentServiceResponse(BaseModel):
    service_id: int
    name: str
    price_cents: int
    duration_minutes: int


class CustomerOut(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None


class AppointmentResponse(BaseModel):
    id: uuid.UUID
    date: str
    time: str
    end_time: str
    stylist_id: Optional[int] = None
    services: list[AppointmentServiceResponse]
    total_duration_minutes: int
    total_price_cents: int
    customer: CustomerOut
    status: str
    created_at: Optional[datetime] = None


# ────────────────────────────────────────────────────────────────
# Helper Functions
# ────────────────────────────────────────────────────────────────

def parse_date_param(value: str, field: str = "date") -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise InvalidRequest(
            "Invalid date format. Use YYYY-MM-DD.", details={"field": field, "value": value}
        )


def parse_time_param(value: str, field: str = "time") -> time:
    try:
        return parse_hhmm(value)
    except ValueError:
        raise InvalidRequest(
            "Invalid time format. Use HH:MM (24-hour).", details={"field": field, "value": value}
        )


def parse_id_list(value: Optional[str], field: str = "service_ids") -> list[int]:
    """Parse "1,2,3" into [1, 2, 3]."""
    if not value:
        return []
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise InvalidRequest(
            f"{field} must be a comma-separated list of integers", details={"field": field}
        )


def to_appointment_response(
    appt: Appointment, items: Sequence[AppointmentService]
) -> AppointmentResponse:
    return AppointmentResponse(
        id=appt.id,
        date=appt.date.isoformat(),
        time=format_hhmm(appt.start_time),
        end_time=format_hhmm(appt.end_time),
        stylist_id=appt.stylist_id,
        services=[
            AppointmentServiceResponse(
                service_id=item.service_id,
                name=item.service_name,
                price_cents=item.price_cents,
                duration_minutes=item.duration_minutes,
            )
            for item in items
        ],
        total_duration_minutes=appt.total_duration_minutes,
        total_price_cents=appt.total_price_cents,
        customer=CustomerOut(
            name=appt.customer_name, email=appt.customer_email, phone=appt.customer_phone
        ),
        status=appt.status.value,
        created_at=appt.created_at,
    )


async def render_appointment(session: AsyncSession, appt: Appointment) -> AppointmentResponse:
    items = await get_appointment_services(session, [appt.id])
    return to_appointment_response(appt, items.get(appt.id, []))


async def fetch_appointment(session: AsyncSession, appointment_id: uuid.UUID) -> Appointment:
    appt = await get_appointment_by_id(session, appointment_id)
    if appt is None:
        raise AppointmentNotFound(
            f"Appointment {appointment_id} not found",
            details={"appointment_id": str(appointment_id)},
        )
    return appt


async def build_invite(
    session: AsyncSession, appt: Appointment, settings: Settings, rescheduled: bool = False
):
    items = await get_appointment_services(session, [appt.id])
    stylist = await get_stylist_by_id(session, appt.stylist_id) if appt.stylist_id else None
    return build_appointment_invite(
        appt,
        service_names=[item.service_name for item in items.get(appt.id, [])],
        stylist_name=stylist.name if stylist else None,
        business_name=settings.business_name,
        timezone_name=settings.salon_timezone,
        public_api_base=settings.public_api_base,
        rescheduled=rescheduled,
    )


async def schedule_email(
    background_tasks: BackgroundTasks,
    session: AsyncSession,
    appt: Appointment,
    settings: Settings,
    rescheduled: bool = False,
) -> None:
    invite = await build_invite(session, appt, settings, rescheduled=rescheduled)
    background_tasks.add_task(deliver_appointment_email, appt.customer_email, invite, settings)


# ────────────────────────────────────────────────────────────────
# Catalog
# ────────────────────────────────────────────────────────────────

@router.get("/services", response_model=list[ServiceResponse])
async def get_services(session: AsyncSession = Depends(get_session)):
    services = await list_services(session)
    return [
        ServiceResponse(
            id=svc.id,
            name=svc.name,
            description=svc.description,
            duration_minutes=svc.duration_minutes,
            price_cents=svc.price_cents,
        )
        for svc in services
    ]


@router.get("/stylists", response_model=list[StylistResponse], responses=ERROR_RESPONSES)
async def get_stylists(
    service_ids: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
):
    """Active stylists; with service_ids, only those who perform every listed service."""
    stylists = await list_stylists_for_services(session, parse_id_list(service_ids))
    return [StylistResponse(id=s.id, name=s.name) for s in stylists]


# ────────────────────────────────────────────────────────────────
# Availability
# ────────────────────────────────────────────────────────────────

@router.get("/availability", response_model=AvailabilityResponse, responses=ERROR_RESPONSES)
async def get_availability(
    date: str,
    duration_minutes: Optional[int] = None,
    service_ids: Optional[str] = None,
    stylist_id: Optional[int] = None,
    session: AsyncSession = Depends(get_session),
    clock: SalonClock = Depends(get_clock),
    settings: Settings = Depends(get_settings),
):
    """
    Slot grid for a date.

    - date: YYYY-MM-DD in the salon timezone
    - duration_minutes or service_ids (comma-separated): the requested length
    - stylist_id: optional stylist preference

    A slot is available only if the whole requested duration fits.
    """
    day = parse_date_param(date)
    ids = parse_id_list(service_ids)
    if (duration_minutes is None) == (not ids):
        raise InvalidRequest("Provide exactly one of duration_minutes or service_ids")
    if ids:
        lines = await resolve_service_lines(session, ids)
        duration_minutes = sum(line.duration_minutes for line in lines)

    resolver = await AvailabilityResolver.load(session, clock, settings)
    grid = await resolver.slot_grid(day, duration_minutes, stylist_id)
    return AvailabilityResponse(
        date=day.isoformat(),
        stylist_id=stylist_id,
        duration_minutes=duration_minutes,
        slots=[TimeSlotResponse(**slot.to_dict()) for slot in grid],
    )


# ────────────────────────────────────────────────────────────────
# Appointments
# ────────────────────────────────────────────────────────────────

@router.post(
    "/appointments",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def create_appointment(
    payload: CreateAppointmentRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    clock: SalonClock = Depends(get_clock),
    settings: Settings = Depends(get_settings),
):
    day = parse_date_param(payload.date)
    start = parse_time_param(payload.time)
    customer = Customer(
        name=payload.customer.name,
        email=payload.customer.email,
        phone=payload.customer.phone,
    )

    txn = BookingTransaction(session, clock, settings)
    appt = await txn.create_appointment(day, start, payload.service_ids, payload.stylist_id, customer)
    await schedule_email(background_tasks, session, appt, settings)
    return await render_appointment(session, appt)


@router.get("/appointments", response_model=list[AppointmentResponse], responses=ERROR_RESPONSES)
async def find_appointments(
    email: str,
    session: AsyncSession = Depends(get_session),
    clock: SalonClock = Depends(get_clock),
):
    """Upcoming SCHEDULED appointments for a customer email (case-insensitive)."""
    if not email.strip():
        raise InvalidRequest("email is required")
    appts = await list_upcoming_appointments_for_email(session, email, clock.today())
    items = await get_appointment_services(session, [a.id for a in appts])
    return [to_appointment_response(a, items.get(a.id, [])) for a in appts]


@router.get("/appointments/{appointment_id}", response_model=AppointmentResponse, responses=ERROR_RESPONSES)
async def get_appointment(
    appointment_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
):
    appt = await fetch_appointment(session, appointment_id)
    return await render_appointment(session, appt)


@router.post(
    "/appointments/{appointment_id}/reschedule",
    response_model=AppointmentResponse,
    responses=ERROR_RESPONSES,
)
async def reschedule_appointment(
    appointment_id: uuid.UUID,
    payload: RescheduleRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    clock: SalonClock = Depends(get_clock),
    settings: Settings = Depends(get_settings),
):
    new_date = parse_date_param(payload.new_date, "new_date")
    new_time = parse_time_param(payload.new_time, "new_time")

    coordinator = RescheduleCoordinator(BookingTransaction(session, clock, settings))
    appt = await coordinator.reschedule(appointment_id, new_date, new_time)
    await schedule_email(background_tasks, session, appt, settings, rescheduled=True)
    return await render_appointment(session, appt)


@router.post(
    "/appointments/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    responses=ERROR_RESPONSES,
)
async def cancel_appointment(
    appointment_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    clock: SalonClock = Depends(get_clock),
    settings: Settings = Depends(get_settings),
):
    appt = await BookingTransaction(session, clock, settings).cancel(appointment_id)
    return await render_appointment(session, appt)


@router.get("/appointments/{appointment_id}/invite", responses=ERROR_RESPONSES)
async def appointment_invite(
    appointment_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    """Return a .ics invite file compatible with Google, Apple, and Outlook."""
    appt = await fetch_appointment(session, appointment_id)
    if not appt.is_scheduled():
        raise AppointmentNotFound(
            "Invite is only available for scheduled appointments",
            details={"appointment_id": str(appointment_id), "status": appt.status.value},
        )
    invite = await build_invite(session, appt, settings)
    return Response(
        content=invite.ics_text,
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{invite.ics_filename}"'},
    )
