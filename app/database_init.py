"""
Database initialization for the cycle count engine.

Creates tables and seeds the default tolerance rules.
"""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import async_session_factory, init_db
import logging

logger = logging.getLogger(__name__)


# ABC tiers tighten tolerance for high velocity SKUs
DEFAULT_TOLERANCES = [
    {
        "tolerance_id": "TOL-ABC-A",
        "tolerance_name": "ABC Category A",
        "abc_category": "A",
        "allowable_variance_percent": Decimal("0.5"),
        "allowable_variance_amount": Decimal("1"),
        "auto_adjust_threshold": Decimal("0.25"),
        "requires_approval_threshold": Decimal("1.0"),
    },
    {
        "tolerance_id": "TOL-ABC-B",
        "tolerance_name": "ABC Category B",
        "abc_category": "B",
        "allowable_variance_percent": Decimal("1.0"),
        "allowable_variance_amount": Decimal("5"),
        "auto_adjust_threshold": Decimal("0.5"),
        "requires_approval_threshold": Decimal("2.0"),
    },
    {
        "tolerance_id": "TOL-ABC-C",
        "tolerance_name": "ABC Category C",
        "abc_category": "C",
        "allowable_variance_percent": Decimal("2.0"),
        "allowable_variance_amount": Decimal("10"),
        "auto_adjust_threshold": Decimal("1.0"),
        "requires_approval_threshold": Decimal("3.0"),
    },
    {
        "tolerance_id": "TOL-DEFAULT",
        "tolerance_name": "Default Tolerance",
        "abc_category": None,
        "allowable_variance_percent": Decimal("1.0"),
        "allowable_variance_amount": Decimal("5"),
        "auto_adjust_threshold": Decimal("0.5"),
        "requires_approval_threshold": Decimal("2.0"),
    },
]


async def seed_default_tolerances(session: AsyncSession) -> int:
    """
    Insert the default tolerance rows that are missing.

    Returns the number of rows created.
    """
    from app.models.cycle_count import CycleCountTolerance

    result = await session.execute(select(CycleCountTolerance.tolerance_id))
    existing = set(result.scalars().all())

    created = 0
    for tolerance_data in DEFAULT_TOLERANCES:
        if tolerance_data["tolerance_id"] in existing:
            continue
        session.add(CycleCountTolerance(is_active=True, **tolerance_data))
        created += 1

    if created:
        await session.commit()
        logger.info(f"Seeded {created} default tolerance rules")
    else:
        logger.info(f"Tolerance rules already exist ({len(existing)} found). Skipping seed.")
    return created


async def startup_initialization():
    """
    Main startup initialization.

    Steps:
    1. Create tables
    2. Seed default tolerance rules
    """
    logger.info("=== Cycle Count Engine Startup Initialization ===")

    try:
        await init_db()

        async with async_session_factory() as session:
            await seed_default_tolerances(session)

        logger.info("=== Startup initialization complete ===")

    except Exception as e:
        logger.error(f"Startup initialization failed: {e}")
        # Don't raise - allow server to start even if initialization fails
        logger.warning("Server will start but tables or tolerance rules may be missing")
