"""Background scheduler and the recurring schedule job."""
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import select

from app import database
from app.jobs import cycle_count_jobs
from app.jobs.scheduler import get_job_status, scheduler, shutdown_scheduler, start_scheduler
from app.models.cycle_count import CountType, CycleCountPlan, FrequencyType
from app.schemas.cycle_count import RecurringScheduleCreate
from app.services.recurring_schedule_service import RecurringScheduleService


async def test_scheduler_registers_recurring_job():
    start_scheduler()
    try:
        assert scheduler.running
        jobs = {job["id"]: job for job in get_job_status()}
        assert "process_recurring_schedules" in jobs
        assert "interval" in jobs["process_recurring_schedules"]["trigger"]
    finally:
        shutdown_scheduler()
    assert not scheduler.running


async def test_job_processes_due_schedules(db, session_factory, monkeypatch):
    @asynccontextmanager
    async def test_session():
        async with session_factory() as session:
            yield session
            await session.commit()

    monkeypatch.setattr(database, "get_db_session", test_session)

    await RecurringScheduleService(db).create_schedule(
        RecurringScheduleCreate(
            schedule_name="Dock receiving",
            count_type=CountType.RECEIVING,
            frequency_type=FrequencyType.DAILY,
            assigned_to="counter-1",
            start_date=datetime(2024, 1, 1, 8, 0),
        ),
        created_by="sup-1",
    )

    result = await cycle_count_jobs.process_recurring_schedules()

    assert result["processed"] == 1
    plans = (await db.execute(select(CycleCountPlan))).scalars().all()
    assert [plan.count_type for plan in plans] == [CountType.RECEIVING.value]
