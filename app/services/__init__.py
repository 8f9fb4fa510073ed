# Services module
from app.services.audit_service import AuditService
from app.services.notification_service import NotificationService
from app.services.inventory_service import InventoryAdjustmentService
from app.services.tolerance_resolver import ToleranceResolver

# Cycle counting
from app.services.cycle_count_service import CycleCountService, PlanScope
from app.services.recurring_schedule_service import RecurringScheduleService

__all__ = [
    "AuditService",
    "NotificationService",
    "InventoryAdjustmentService",
    "ToleranceResolver",
    # Cycle counting
    "CycleCountService",
    "PlanScope",
    "RecurringScheduleService",
]
