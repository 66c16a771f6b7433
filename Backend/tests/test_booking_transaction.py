"""
Write path: atomic claims, concurrency, contention and lifecycle.

Run with: pytest Backend/tests/test_booking_transaction.py -v
"""
import asyncio
import uuid
from datetime import date, time

import pytest
from sqlalchemy import func, select

from salonbook.models import Appointment, AppointmentService, AppointmentStatus
from salonbook.scheduling.booking import BookingTransaction, Customer, ServiceLine
from salonbook.scheduling.errors import (
    AppointmentNotFound,
    InvalidDuration,
    InvalidRequest,
    InvalidStatusTransition,
    ServiceNotFound,
    SlotUnavailable,
    StylistNotFound,
    TransientContention,
)
from salonbook.scheduling.locks import lock_keys_for

MONDAY = date(2024, 6, 10)
CUSTOMER = Customer(name="Ada", email="ada@example.com", phone="+6590000000")


@pytest.fixture
def txn(async_session, clock, settings, registry):
    return BookingTransaction(async_session, clock, settings, registry)


async def count_appointments(session, status=AppointmentStatus.SCHEDULED):
    result = await session.execute(
        select(func.count()).select_from(Appointment).where(Appointment.status == status)
    )
    return result.scalar_one()


# ────────────────────────────────────────────────────────────────
# Claims
# ────────────────────────────────────────────────────────────────

class TestBook:
    async def test_create_appointment_snapshots_services(self, txn, async_session, salon):
        appt = await txn.create_appointment(
            MONDAY, time(11, 0), [salon.cut.id, salon.color.id], salon.stylist_a.id, CUSTOMER
        )

        assert appt.status == AppointmentStatus.SCHEDULED
        assert appt.total_duration_minutes == 150
        assert appt.total_price_cents == 11000
        assert appt.end_time == time(13, 30)

        result = await async_session.execute(
            select(AppointmentService)
            .where(AppointmentService.appointment_id == appt.id)
            .order_by(AppointmentService.position)
        )
        items = result.scalars().all()
        assert [i.service_name for i in items] == ["Haircut", "Root Touch-Up"]

    async def test_overlap_is_rejected(self, txn, salon):
        await txn.create_appointment(MONDAY, time(14, 0), [salon.cut.id], salon.stylist_a.id, CUSTOMER)

        with pytest.raises(SlotUnavailable) as exc_info:
            await txn.create_appointment(MONDAY, time(13, 30), [salon.cut.id], salon.stylist_a.id, CUSTOMER)
        assert exc_info.value.details["conflict"] == "appointment"

    async def test_adjacent_booking_is_allowed(self, txn, salon):
        await txn.create_appointment(MONDAY, time(14, 0), [salon.cut.id], salon.stylist_a.id, CUSTOMER)
        appt = await txn.create_appointment(MONDAY, time(15, 0), [salon.cut.id], salon.stylist_a.id, CUSTOMER)
        assert appt.start_time == time(15, 0)

    async def test_outside_window_is_rejected(self, txn, salon):
        # Stylist A starts at 11:00
        with pytest.raises(SlotUnavailable):
            await txn.create_appointment(MONDAY, time(10, 0), [salon.trim.id], salon.stylist_a.id, CUSTOMER)
        # Runs past the 17:00 salon close
        with pytest.raises(SlotUnavailable):
            await txn.create_appointment(MONDAY, time(16, 30), [salon.cut.id], salon.stylist_a.id, CUSTOMER)

    async def test_off_grid_start_is_rejected(self, txn, salon):
        with pytest.raises(SlotUnavailable):
            await txn.create_appointment(MONDAY, time(11, 15), [salon.trim.id], salon.stylist_a.id, CUSTOMER)

    async def test_blocked_slot_is_rejected(self, txn, salon, make_block):
        await make_block(MONDAY, time(12, 0))

        with pytest.raises(SlotUnavailable) as exc_info:
            await txn.create_appointment(MONDAY, time(11, 30), [salon.cut.id], salon.stylist_b.id, CUSTOMER)
        assert exc_info.value.details["conflict"] == "block"

    async def test_past_date_is_rejected(self, txn, salon):
        with pytest.raises(SlotUnavailable):
            await txn.create_appointment(date(2024, 5, 20), time(11, 0), [salon.cut.id], None, CUSTOMER)

    async def test_unknown_service(self, txn, salon):
        with pytest.raises(ServiceNotFound):
            await txn.create_appointment(MONDAY, time(11, 0), [salon.cut.id, 999], None, CUSTOMER)

    async def test_empty_service_list(self, txn, salon):
        with pytest.raises(InvalidRequest):
            await txn.create_appointment(MONDAY, time(11, 0), [], None, CUSTOMER)

    async def test_unknown_stylist(self, txn, salon):
        with pytest.raises(StylistNotFound):
            await txn.create_appointment(MONDAY, time(11, 0), [salon.cut.id], 999, CUSTOMER)

    async def test_invalid_duration(self, txn, salon):
        line = ServiceLine(salon.cut.id, "Haircut", 4000, 0)
        with pytest.raises(InvalidDuration):
            await txn.book(MONDAY, time(11, 0), 0, [line], None, CUSTOMER)

    async def test_failed_claim_leaves_state_unchanged(self, txn, async_session, salon):
        await txn.create_appointment(MONDAY, time(14, 0), [salon.cut.id], salon.stylist_a.id, CUSTOMER)

        with pytest.raises(SlotUnavailable):
            await txn.create_appointment(MONDAY, time(14, 0), [salon.cut.id], salon.stylist_a.id, CUSTOMER)

        assert await count_appointments(async_session) == 1
        result = await async_session.execute(select(func.count()).select_from(AppointmentService))
        assert result.scalar_one() == 1


# ────────────────────────────────────────────────────────────────
# Concurrency
# ────────────────────────────────────────────────────────────────

class TestConcurrentClaims:
    async def test_exactly_one_winner(self, session_factory, async_session, salon, clock, settings, registry):
        """N concurrent claims on the same slot: one succeeds, N-1 get SlotUnavailable."""

        async def attempt(n):
            async with session_factory() as session:
                txn = BookingTransaction(session, clock, settings, registry)
                customer = Customer(name=f"Guest {n}", email=f"guest{n}@example.com")
                return await txn.create_appointment(
                    MONDAY, time(12, 0), [salon.cut.id], salon.stylist_a.id, customer
                )

        results = await asyncio.gather(*(attempt(n) for n in range(5)), return_exceptions=True)

        winners = [r for r in results if isinstance(r, Appointment)]
        losers = [r for r in results if isinstance(r, SlotUnavailable)]
        assert len(winners) == 1
        assert len(losers) == 4
        assert await count_appointments(async_session) == 1
        assert len(registry) == 0

    async def test_unassigned_and_stylist_claims_serialize(
        self, session_factory, async_session, salon, clock, settings, registry
    ):
        """A no-preference claim and a stylist claim on the same slot cannot both win."""

        async def attempt(stylist_id):
            async with session_factory() as session:
                txn = BookingTransaction(session, clock, settings, registry)
                return await txn.create_appointment(MONDAY, time(12, 0), [salon.cut.id], stylist_id, CUSTOMER)

        results = await asyncio.gather(
            attempt(None), attempt(salon.stylist_a.id), return_exceptions=True
        )

        assert sum(isinstance(r, Appointment) for r in results) == 1
        assert sum(isinstance(r, SlotUnavailable) for r in results) == 1

    async def test_different_stylists_both_win(
        self, session_factory, salon, clock, settings, registry
    ):
        async def attempt(stylist_id):
            async with session_factory() as session:
                txn = BookingTransaction(session, clock, settings, registry)
                return await txn.create_appointment(MONDAY, time(12, 0), [salon.cut.id], stylist_id, CUSTOMER)

        results = await asyncio.gather(attempt(salon.stylist_a.id), attempt(salon.stylist_b.id))

        assert all(isinstance(r, Appointment) for r in results)

    async def test_contention_timeout_is_transient(self, async_session, salon, clock, settings, registry):
        settings.lock_timeout_seconds = 0.05
        txn = BookingTransaction(async_session, clock, settings, registry)

        async with registry.hold(lock_keys_for(MONDAY, salon.stylist_a.id), timeout=1):
            with pytest.raises(TransientContention):
                await txn.create_appointment(MONDAY, time(12, 0), [salon.cut.id], salon.stylist_a.id, CUSTOMER)

        assert await count_appointments(async_session) == 0
        # Once the key is free the same claim succeeds
        appt = await txn.create_appointment(MONDAY, time(12, 0), [salon.cut.id], salon.stylist_a.id, CUSTOMER)
        assert appt.start_time == time(12, 0)


# ────────────────────────────────────────────────────────────────
# Lifecycle
# ────────────────────────────────────────────────────────────────

class TestLifecycle:
    async def test_cancel_frees_the_slot(self, txn, salon):
        appt = await txn.create_appointment(MONDAY, time(12, 0), [salon.cut.id], salon.stylist_a.id, CUSTOMER)

        cancelled = await txn.cancel(appt.id)
        assert cancelled.status == AppointmentStatus.CANCELLED

        again = await txn.create_appointment(MONDAY, time(12, 0), [salon.cut.id], salon.stylist_a.id, CUSTOMER)
        assert again.id != appt.id

    async def test_cancel_twice_is_not_found(self, txn, salon):
        appt = await txn.create_appointment(MONDAY, time(12, 0), [salon.cut.id], None, CUSTOMER)
        appt_id = appt.id
        await txn.cancel(appt_id)

        with pytest.raises(AppointmentNotFound):
            await txn.cancel(appt_id)

    async def test_cancel_unknown(self, txn, salon):
        with pytest.raises(AppointmentNotFound):
            await txn.cancel(uuid.uuid4())

    async def test_mark_completed(self, txn, salon):
        appt = await txn.create_appointment(MONDAY, time(12, 0), [salon.cut.id], None, CUSTOMER)
        # A rejected write rolls back and expires loaded instances
        appt_id = appt.id

        done = await txn.mark_status(appt_id, AppointmentStatus.COMPLETED)
        assert done.status == AppointmentStatus.COMPLETED

        with pytest.raises(InvalidStatusTransition):
            await txn.mark_status(appt_id, AppointmentStatus.NO_SHOW)
        with pytest.raises(InvalidStatusTransition):
            await txn.cancel(appt_id)

        stored = await txn.load_appointment(appt_id)
        assert stored.status == AppointmentStatus.COMPLETED

    async def test_mark_status_rejects_scheduled_and_cancelled_targets(self, txn, salon):
        appt = await txn.create_appointment(MONDAY, time(12, 0), [salon.cut.id], None, CUSTOMER)
        appt_id = appt.id

        for target in (AppointmentStatus.SCHEDULED, AppointmentStatus.CANCELLED):
            with pytest.raises(InvalidRequest):
                await txn.mark_status(appt_id, target)
