"""
Background Jobs Module

Handles scheduled tasks for:
- Recurring cycle count schedules
"""

from app.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler, get_job_status
from app.jobs.cycle_count_jobs import process_recurring_schedules

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "get_job_status",
    "process_recurring_schedules",
]
