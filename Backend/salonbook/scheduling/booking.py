"""
BookingTransaction: the atomic claim of a slot.

Availability is re-checked inside the same serialized section that inserts
the appointment, so a slot reported available by the read path is only
ever awarded once. Cancellation and status marking go through the same
section so they serialize against claims on the same date.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, time
from typing import Awaitable, Callable, Iterable, Optional, Sequence, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import SalonClock
from ..core.config import Settings, get_settings
from ..models import Appointment, AppointmentService, AppointmentStatus, Service
from ..queries import get_services_by_ids
from .availability import AvailabilityResolver
from .errors import (
    AppointmentNotFound,
    BookingError,
    InvalidRequest,
    InvalidStatusTransition,
    ServiceNotFound,
)
from .locks import LockKey, SlotLockRegistry, atomic_write, lock_keys_for
from .types import format_hhmm

logger = logging.getLogger(__name__)

T = TypeVar("T")

MARKABLE_STATUSES = (AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW)


@dataclass(frozen=True)
class Customer:
    name: str
    email: str
    phone: Optional[str] = None


@dataclass(frozen=True)
class ServiceLine:
    """One service as priced and timed at booking time."""
    service_id: int
    name: str
    price_cents: int
    duration_minutes: int

    @classmethod
    def from_service(cls, service: Service) -> "ServiceLine":
        return cls(service.id, service.name, service.price_cents, service.duration_minutes)


async def resolve_service_lines(session: AsyncSession, service_ids: Sequence[int]) -> list[ServiceLine]:
    """Catalog lookup in request order. Unknown or inactive ids raise ServiceNotFound."""
    if not service_ids:
        raise InvalidRequest("At least one service is required")
    services = await get_services_by_ids(session, service_ids)
    found = {svc.id for svc in services}
    missing = [service_id for service_id in service_ids if service_id not in found]
    if missing:
        raise ServiceNotFound(
            f"Unknown service id(s): {', '.join(str(m) for m in missing)}",
            details={"service_ids": missing},
        )
    return [ServiceLine.from_service(svc) for svc in services]


class BookingTransaction:
    def __init__(
        self,
        session: AsyncSession,
        clock: SalonClock,
        settings: Optional[Settings] = None,
        registry: Optional[SlotLockRegistry] = None,
    ):
        self.session = session
        self.clock = clock
        self.settings = settings or get_settings()
        self.registry = registry

    async def atomic(self, keys: Iterable[LockKey], section: Callable[[], Awaitable[T]]) -> T:
        return await atomic_write(
            self.session,
            keys,
            section,
            timeout=self.settings.lock_timeout_seconds,
            registry=self.registry,
        )

    async def load_appointment(self, appointment_id: uuid.UUID) -> Optional[Appointment]:
        result = await self.session.execute(
            select(Appointment)
            .where(Appointment.id == appointment_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def require_scheduled(self, appointment_id: uuid.UUID) -> Appointment:
        appt = await self.load_appointment(appointment_id)
        if appt is None or appt.status == AppointmentStatus.CANCELLED:
            raise AppointmentNotFound(
                f"Appointment {appointment_id} not found",
                details={"appointment_id": str(appointment_id)},
            )
        if not appt.is_scheduled():
            raise InvalidStatusTransition(
                f"Appointment is {appt.status.value}",
                details={"appointment_id": str(appointment_id), "status": appt.status.value},
            )
        return appt

    # ────────────────────────────────────────────────────────────────
    # Claim
    # ────────────────────────────────────────────────────────────────

    async def book(
        self,
        day: date,
        start: time,
        duration_minutes: int,
        services: Sequence[ServiceLine],
        stylist_id: Optional[int],
        customer: Customer,
    ) -> Appointment:
        """
        Claim [start, start + duration) on day and persist a SCHEDULED
        appointment. Raises SlotUnavailable if the interval is taken, outside
        the window or off the slot grid.
        """
        if not customer.name.strip() or not customer.email.strip():
            raise InvalidRequest("Customer name and email are required")

        async def claim() -> Appointment:
            resolver = await AvailabilityResolver.load(self.session, self.clock, self.settings)
            await resolver.ensure_bookable(day, start, duration_minutes, stylist_id)

            appt = Appointment(
                id=uuid.uuid4(),
                date=day,
                start_time=start,
                stylist_id=stylist_id,
                total_duration_minutes=duration_minutes,
                total_price_cents=sum(line.price_cents for line in services),
                customer_name=customer.name.strip(),
                customer_email=customer.email.strip(),
                customer_phone=customer.phone,
                status=AppointmentStatus.SCHEDULED,
            )
            self.session.add(appt)
            for position, line in enumerate(services):
                self.session.add(
                    AppointmentService(
                        appointment_id=appt.id,
                        service_id=line.service_id,
                        position=position,
                        service_name=line.name,
                        price_cents=line.price_cents,
                        duration_minutes=line.duration_minutes,
                    )
                )
            await self.session.flush()
            return appt

        try:
            appt = await self.atomic(lock_keys_for(day, stylist_id), claim)
        except BookingError as exc:
            logger.info(
                "Booking rejected: %s %s stylist=%s (%s: %s)",
                day, format_hhmm(start), stylist_id, exc.code, exc.message,
            )
            raise

        logger.info(
            "Booked appointment %s on %s at %s for %s min, stylist=%s",
            appt.id, day, format_hhmm(start), duration_minutes, stylist_id,
        )
        return appt

    async def create_appointment(
        self,
        day: date,
        start: time,
        service_ids: Sequence[int],
        stylist_id: Optional[int],
        customer: Customer,
    ) -> Appointment:
        """Book a bundle of catalog services; duration and price are summed."""
        lines = await resolve_service_lines(self.session, service_ids)
        duration = sum(line.duration_minutes for line in lines)
        return await self.book(day, start, duration, lines, stylist_id, customer)

    # ────────────────────────────────────────────────────────────────
    # Lifecycle
    # ────────────────────────────────────────────────────────────────

    async def _keys_for_existing(self, appointment_id: uuid.UUID) -> list[LockKey]:
        appt = await self.load_appointment(appointment_id)
        if appt is None:
            raise AppointmentNotFound(
                f"Appointment {appointment_id} not found",
                details={"appointment_id": str(appointment_id)},
            )
        return lock_keys_for(appt.date, appt.stylist_id)

    async def cancel(self, appointment_id: uuid.UUID) -> Appointment:
        """Soft delete: status becomes CANCELLED and the interval is freed."""
        keys = await self._keys_for_existing(appointment_id)

        async def release() -> Appointment:
            appt = await self.require_scheduled(appointment_id)
            appt.status = AppointmentStatus.CANCELLED
            await self.session.flush()
            return appt

        appt = await self.atomic(keys, release)
        logger.info("Cancelled appointment %s on %s at %s", appt.id, appt.date, format_hhmm(appt.start_time))
        return appt

    async def mark_status(self, appointment_id: uuid.UUID, status: AppointmentStatus) -> Appointment:
        if status not in MARKABLE_STATUSES:
            raise InvalidRequest(
                f"Status must be one of {', '.join(s.value for s in MARKABLE_STATUSES)}",
                details={"status": status.value},
            )
        keys = await self._keys_for_existing(appointment_id)

        async def transition() -> Appointment:
            appt = await self.require_scheduled(appointment_id)
            appt.status = status
            await self.session.flush()
            return appt

        appt = await self.atomic(keys, transition)
        logger.info("Appointment %s marked %s", appt.id, status.value)
        return appt
