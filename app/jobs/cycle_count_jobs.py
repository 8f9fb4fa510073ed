"""
Cycle Count Jobs

Background jobs for cycle counting:
- Creating plans from due recurring schedules
"""

import logging
from typing import Dict, Any
from datetime import datetime

logger = logging.getLogger(__name__)


async def process_recurring_schedules() -> Dict[str, Any]:
    """
    Create cycle count plans for all due recurring schedules.

    Runs on the interval configured by RECURRING_SCHEDULE_INTERVAL_MINUTES.
    """
    from app.database import get_db_session
    from app.services.recurring_schedule_service import RecurringScheduleService

    logger.info("Starting recurring cycle count schedule run...")
    start_time = datetime.utcnow()

    async with get_db_session() as session:
        result = await RecurringScheduleService(session).process_due_schedules()

    duration = (datetime.utcnow() - start_time).total_seconds()
    logger.info(
        f"Recurring schedule run finished in {duration:.2f}s: "
        f"{result['processed']} plans created, {result['failed']} failed"
    )
    return result
