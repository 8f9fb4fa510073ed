"""
Recurring cycle count schedules.

A schedule periodically creates a cycle count plan (through
CycleCountService.create_plan) and advances its next run date.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, List, Tuple, Dict, Any

from dateutil.relativedelta import relativedelta
from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.core.identifiers import SCHEDULE_PREFIX, generate_id
from app.models.cycle_count import RecurringCountSchedule, FrequencyType, CountType
from app.schemas.cycle_count import (
    CycleCountPlanCreate, RecurringScheduleCreate, RecurringScheduleUpdate,
)
from app.services.cycle_count_service import CycleCountService
from app.services.notification_service import NotificationType


logger = logging.getLogger(__name__)

# Scheduled counts start at the beginning of the business day
BUSINESS_DAY_START_HOUR = 8


def calculate_next_run_date(
    frequency_type: FrequencyType,
    frequency_interval: int,
    from_date: datetime,
) -> datetime:
    """Next run: DAILY +n days, WEEKLY +7n days, MONTHLY +n months, QUARTERLY +3n months, at 08:00."""
    frequency_type = FrequencyType(frequency_type)
    interval = frequency_interval or 1

    if frequency_type == FrequencyType.DAILY:
        next_date = from_date + timedelta(days=interval)
    elif frequency_type == FrequencyType.WEEKLY:
        next_date = from_date + timedelta(weeks=interval)
    elif frequency_type == FrequencyType.MONTHLY:
        next_date = from_date + relativedelta(months=interval)
    else:
        next_date = from_date + relativedelta(months=3 * interval)

    return next_date.replace(hour=BUSINESS_DAY_START_HOUR, minute=0, second=0, microsecond=0)


class RecurringScheduleService:
    """Service for recurring count schedules."""

    def __init__(self, db: AsyncSession, cycle_count_service: Optional[CycleCountService] = None):
        self.db = db
        self.cycle_counts = cycle_count_service or CycleCountService(db)

    async def create_schedule(self, data: RecurringScheduleCreate, created_by: str) -> RecurringCountSchedule:
        now = datetime.utcnow()
        schedule = RecurringCountSchedule(
            schedule_id=generate_id(SCHEDULE_PREFIX),
            schedule_name=data.schedule_name,
            count_type=CountType(data.count_type).value,
            frequency_type=FrequencyType(data.frequency_type).value,
            frequency_interval=data.frequency_interval,
            location=data.location or None,
            sku=data.sku or None,
            assigned_to=data.assigned_to,
            next_run_date=data.start_date or calculate_next_run_date(
                data.frequency_type, data.frequency_interval, now
            ),
            is_active=True,
            created_by=created_by,
            notes=data.notes,
            created_at=now,
            updated_at=now,
        )
        self.db.add(schedule)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.exception(f"Error creating recurring schedule {data.schedule_name}")
            raise
        await self.db.refresh(schedule)

        logger.info(
            f"Recurring schedule created: {schedule.schedule_id} ({schedule.schedule_name}), "
            f"next run {schedule.next_run_date}"
        )
        return schedule

    async def get_schedule(self, schedule_id: str) -> RecurringCountSchedule:
        schedule = await self.db.get(RecurringCountSchedule, schedule_id)
        if not schedule:
            raise NotFoundError("Recurring schedule", schedule_id)
        return schedule

    async def list_schedules(
        self,
        is_active: Optional[bool] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[RecurringCountSchedule], int]:
        query = select(RecurringCountSchedule)
        if is_active is not None:
            query = query.where(RecurringCountSchedule.is_active == is_active)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))

        query = query.order_by(RecurringCountSchedule.next_run_date).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total or 0

    async def update_schedule(self, schedule_id: str, data: RecurringScheduleUpdate) -> RecurringCountSchedule:
        schedule = await self.get_schedule(schedule_id)

        update_data = data.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            if hasattr(value, "value"):
                value = value.value
            setattr(schedule, field, value)

        # A new cadence restarts from today
        if "frequency_type" in update_data or "frequency_interval" in update_data:
            schedule.next_run_date = calculate_next_run_date(
                schedule.frequency_type, schedule.frequency_interval, datetime.utcnow()
            )
        schedule.updated_at = datetime.utcnow()

        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.exception(f"Error updating recurring schedule {schedule_id}")
            raise
        await self.db.refresh(schedule)
        logger.info(f"Recurring schedule updated: {schedule_id}")
        return schedule

    async def deactivate_schedule(self, schedule_id: str) -> RecurringCountSchedule:
        schedule = await self.get_schedule(schedule_id)
        schedule.is_active = False
        schedule.updated_at = datetime.utcnow()
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        await self.db.refresh(schedule)
        logger.info(f"Recurring schedule deactivated: {schedule_id}")
        return schedule

    async def process_due_schedules(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Create a plan for every active schedule that is due.

        A failing schedule is logged and counted; the others still run.
        """
        now = now or datetime.utcnow()
        result = await self.db.execute(
            select(RecurringCountSchedule.schedule_id)
            .where(
                and_(
                    RecurringCountSchedule.is_active == True,  # noqa: E712
                    RecurringCountSchedule.next_run_date <= now,
                )
            )
            .order_by(RecurringCountSchedule.next_run_date)
        )
        due_ids = list(result.scalars().all())

        processed = 0
        failed = 0
        plans_created: List[str] = []

        for schedule_id in due_ids:
            try:
                schedule = await self.get_schedule(schedule_id)
                logger.info(f"Processing due schedule {schedule_id} ({schedule.schedule_name})")

                plan = await self.cycle_counts.create_plan(
                    CycleCountPlanCreate(
                        plan_name=f"{schedule.schedule_name} - {now:%Y-%m-%d}",
                        count_type=schedule.count_type,
                        scheduled_date=now,
                        location=schedule.location,
                        sku=schedule.sku,
                        count_by=schedule.assigned_to,
                        notes=f"Auto-generated from recurring schedule: {schedule.notes or ''}",
                    ),
                    created_by=schedule.created_by,
                )

                schedule = await self.get_schedule(schedule_id)
                schedule.last_run_date = now
                schedule.next_run_date = calculate_next_run_date(
                    schedule.frequency_type, schedule.frequency_interval, now
                )
                schedule.updated_at = datetime.utcnow()
                await self.db.commit()

                processed += 1
                plans_created.append(plan.plan_id)
            except Exception:
                await self.db.rollback()
                failed += 1
                logger.exception(f"Failed to process recurring schedule {schedule_id}")
                continue

            try:
                await self.cycle_counts.notifications.notify_user(
                    user_id=plan.count_by,
                    notification_type=NotificationType.CYCLE_COUNT_ASSIGNED,
                    title="Cycle Count Assigned",
                    message=f"Scheduled cycle count {plan.plan_name} has been assigned to you",
                    data={"plan_id": plan.plan_id, "schedule_id": schedule_id},
                )
            except Exception:
                logger.exception(f"Failed to notify {plan.count_by} about plan {plan.plan_id}")

        logger.info(f"Recurring schedules processed: {processed} created, {failed} failed")
        return {"processed": processed, "plans_created": plans_created, "failed": failed}
