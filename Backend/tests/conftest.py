"""
Pytest configuration and fixtures for async database testing.

Each test gets a fresh schema. By default that is a SQLite file in the
test's tmp_path (aiosqlite); set TEST_DATABASE_URL to run against a local
PostgreSQL database instead (advisory locks are exercised only there).
"""
import os
from dataclasses import dataclass
from datetime import datetime, time

# The app module builds its engine at import; keep it off any real server.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from salonbook.core.clock import FixedClock
from salonbook.core.config import Settings
from salonbook.core.db import Base
from salonbook.models import (
    Appointment,
    AppointmentStatus,
    SalonSettings,
    Service,
    SlotBlock,
    Stylist,
    StylistSpecialty,
)
from salonbook.scheduling.locks import SlotLockRegistry
from salonbook.scheduling.types import Weekday, WeeklySchedule

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

# Verify we're NOT pointing tests at a hosted production database
if TEST_DATABASE_URL and ("neon" in TEST_DATABASE_URL.lower() or "prod" in TEST_DATABASE_URL.lower()):
    raise RuntimeError(
        f"DANGER: Tests are configured to use a production database!\n"
        f"TEST_DATABASE_URL: {TEST_DATABASE_URL}\n"
        f"Tests must ONLY run against a local test database."
    )


# ────────────────────────────────────────────────────────────────
# Database
# ────────────────────────────────────────────────────────────────

@pytest.fixture(scope="function")
async def async_engine(tmp_path):
    """Engine with a freshly created schema, dropped again after the test."""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'salonbook_test.db'}"
    engine = create_async_engine(url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(async_engine):
    """Factory for independent sessions, e.g. one per concurrent booking."""
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def async_session(session_factory):
    async with session_factory() as session:
        yield session


# ────────────────────────────────────────────────────────────────
# Configuration
# ────────────────────────────────────────────────────────────────

@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        salon_timezone="Asia/Singapore",
        slot_granularity_minutes=30,
        lock_timeout_seconds=2.0,
        business_name="Test Salon",
        seed_demo_data=False,
        resend_api_key="",
        resend_from="",
    )


@pytest.fixture
def clock():
    """Salon "now" pinned to Saturday 2024-06-01 08:00 in Singapore."""
    return FixedClock(datetime(2024, 6, 1, 8, 0))


@pytest.fixture
def registry():
    """Private lock registry so tests never share keys."""
    return SlotLockRegistry()


# ────────────────────────────────────────────────────────────────
# Salon data
# ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Ref:
    """Plain copy of a row's identity; ORM instances expire on rollback."""
    id: int
    name: str


@dataclass(frozen=True)
class SalonData:
    cut: Ref  # 60 minutes
    trim: Ref  # 30 minutes
    color: Ref  # 90 minutes
    stylist_a: Ref
    stylist_b: Ref


def stylist_a_hours() -> dict:
    """11:00-19:00 every day except Tuesday."""
    return WeeklySchedule.uniform(time(11, 0), time(19, 0), closed_days=(Weekday.TUESDAY,)).to_json()


@pytest.fixture
async def salon(async_session):
    """
    Salon open 09:00-17:00 every day.
    Stylist A works 11:00-19:00 and is off on Tuesdays.
    Stylist B follows salon hours and is blocked on 2024-06-12.
    """
    async_session.add(
        SalonSettings(
            business_name="Test Salon",
            weekly_schedule=WeeklySchedule.uniform(time(9, 0), time(17, 0)).to_json(),
            closed_dates=["2024-06-20"],
        )
    )
    cut = Service(name="Haircut", duration_minutes=60, price_cents=4000)
    trim = Service(name="Fringe Trim", duration_minutes=30, price_cents=1000)
    color = Service(name="Root Touch-Up", duration_minutes=90, price_cents=7000)
    stylist_a = Stylist(name="A", email="a@example.com", working_hours=stylist_a_hours(), blocked_dates=[])
    stylist_b = Stylist(name="B", email="b@example.com", working_hours={}, blocked_dates=["2024-06-12"])
    async_session.add_all([cut, trim, color, stylist_a, stylist_b])
    await async_session.flush()
    async_session.add_all(
        [
            StylistSpecialty(stylist_id=stylist_a.id, service_id=cut.id),
            StylistSpecialty(stylist_id=stylist_a.id, service_id=color.id),
            StylistSpecialty(stylist_id=stylist_b.id, service_id=cut.id),
            StylistSpecialty(stylist_id=stylist_b.id, service_id=trim.id),
        ]
    )
    await async_session.commit()
    return SalonData(
        *(Ref(row.id, row.name) for row in (cut, trim, color, stylist_a, stylist_b))
    )


@pytest.fixture
def make_appointment(async_session):
    """Insert an appointment directly, bypassing the engine."""

    async def _make(day, start, duration, stylist_id=None, status=AppointmentStatus.SCHEDULED,
                    email="guest@example.com"):
        appt = Appointment(
            date=day,
            start_time=start,
            stylist_id=stylist_id,
            total_duration_minutes=duration,
            total_price_cents=1000,
            customer_name="Guest",
            customer_email=email,
            status=status,
        )
        async_session.add(appt)
        await async_session.commit()
        return appt

    return _make


@pytest.fixture
def make_block(async_session):
    async def _make(day, start, stylist_id=None):
        block = SlotBlock(date=day, start_time=start, stylist_id=stylist_id)
        async_session.add(block)
        await async_session.commit()
        return block

    return _make


# ────────────────────────────────────────────────────────────────
# HTTP
# ────────────────────────────────────────────────────────────────

@pytest.fixture(scope="function")
async def client(session_factory, settings, clock):
    """
    FastAPI AsyncClient with database session, clock and settings overrides.
    Every request gets its own session, as in production.
    """
    from salonbook.core.clock import get_clock
    from salonbook.core.config import get_settings
    from salonbook.core.db import get_session
    from salonbook.main import app

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_settings] = lambda: settings

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
