from app.models.audit_log import AuditLog
from app.models.cycle_count import (
    ABCCategory,
    CountType,
    CycleCountEntry,
    CycleCountPlan,
    CycleCountStatus,
    CycleCountTolerance,
    FrequencyType,
    RecurringCountSchedule,
    VarianceStatus,
)
from app.models.inventory import InventoryTransaction, InventoryUnit, TransactionType
from app.models.order import Order, OrderItem, OrderPriority, OrderStatus

__all__ = [
    "AuditLog",
    "ABCCategory",
    "CountType",
    "CycleCountEntry",
    "CycleCountPlan",
    "CycleCountStatus",
    "CycleCountTolerance",
    "FrequencyType",
    "RecurringCountSchedule",
    "VarianceStatus",
    "InventoryTransaction",
    "InventoryUnit",
    "TransactionType",
    "Order",
    "OrderItem",
    "OrderPriority",
    "OrderStatus",
]
