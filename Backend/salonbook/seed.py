from sqlalchemy import select

from .core.config import Settings, get_settings
from .models import SalonSettings, Service, Stylist, StylistSpecialty
from .queries import default_salon_settings


SERVICES = [
    # name, duration_minutes, price_cents
    ("Women's Haircut", 60, 4000),
    ("Men's Haircut", 30, 3000),
    ("Kids' Haircut", 30, 2000),
    ("Special Occasion Styling", 60, 5000),
    ("Root Touch-Up", 90, 7000),
    ("Complete Hair Color", 120, 9500),
]

STYLISTS = [
    # name, email, specialties
    ("May", "may@example.com", ["Women's Haircut", "Special Occasion Styling", "Root Touch-Up", "Complete Hair Color"]),
    ("Jun", "jun@example.com", ["Women's Haircut", "Men's Haircut", "Kids' Haircut"]),
]


async def seed_initial_data(session, settings: Settings | None = None):
    """Idempotent: only creates what is missing."""
    settings = settings or get_settings()

    result = await session.execute(select(SalonSettings).limit(1))
    if result.scalar_one_or_none() is None:
        session.add(default_salon_settings(settings))

    result = await session.execute(select(Service))
    services = {svc.name: svc for svc in result.scalars().all()}
    if not services:
        for name, duration, price in SERVICES:
            services[name] = Service(name=name, duration_minutes=duration, price_cents=price)
        session.add_all(services.values())
        await session.flush()

    result = await session.execute(select(Stylist))
    if not result.scalars().all():
        for name, email, specialties in STYLISTS:
            stylist = Stylist(name=name, email=email, active=True, working_hours={}, blocked_dates=[])
            session.add(stylist)
            await session.flush()
            session.add_all(
                [
                    StylistSpecialty(stylist_id=stylist.id, service_id=services[svc].id)
                    for svc in specialties
                    if svc in services
                ]
            )

    await session.commit()
