#!/usr/bin/env python3
"""
Initialize a local salonbook database schema using SQLAlchemy models.

Creates all tables and, with --seed, the demo services and stylists.
Safe to run multiple times (idempotent).

Usage:
    export DATABASE_URL="postgresql+asyncpg://localhost:5432/salonbook_test"
    python3 Backend/scripts/init_test_db.py [--seed]
"""
import asyncio
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Add Backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

load_dotenv()

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from salonbook import models  # noqa: F401  registers tables on Base.metadata
from salonbook.core.config import get_settings
from salonbook.core.db import Base
from salonbook.seed import seed_initial_data

DATABASE_URL = os.getenv("DATABASE_URL")

if not DATABASE_URL:
    print("ERROR: DATABASE_URL environment variable not set")
    print("   Use: export DATABASE_URL='postgresql+asyncpg://localhost:5432/salonbook_test'")
    sys.exit(1)

# Safety check - NEVER run against production
if "neon" in DATABASE_URL.lower() or "prod" in DATABASE_URL.lower():
    print("FATAL: Refusing to initialize what looks like a production database")
    print(f"   DATABASE_URL: {DATABASE_URL}")
    print("   This script is for LOCAL TEST DATABASES ONLY")
    sys.exit(1)


async def init_db(seed: bool):
    """Create all tables, optionally seeding demo data."""
    print("Initializing database...")
    print(f"   Database: {DATABASE_URL}")

    engine = create_async_engine(DATABASE_URL, echo=False)

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        print("Schema initialized. Tables:")
        for table in Base.metadata.sorted_tables:
            print(f"   - {table.name}")

        if seed:
            session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            async with session_factory() as session:
                await seed_initial_data(session, get_settings())
            print("Demo services and stylists seeded.")

        print("\nNext steps:")
        print("   TEST_DATABASE_URL=$DATABASE_URL pytest Backend/tests -v")

    except Exception as e:
        print(f"Error initializing database: {e}")
        sys.exit(1)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(init_db(seed="--seed" in sys.argv[1:]))
