"""
Cycle Counting Models.

Models for inventory counting operations including:
- Cycle count plans and their lifecycle
- Count entries with variance tracking
- Tolerance rules driving auto-adjustment
- Recurring count schedules
"""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional, List, Tuple

from sqlalchemy import (
    String, Integer, DateTime, ForeignKey, Index, Text, Boolean, CHAR
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import QuantityType, PercentType


# ============================================================================
# ENUMS
# ============================================================================

class CountType(str, Enum):
    """Type of cycle count; selects the entry generation strategy."""
    BLANKET = "BLANKET"          # Every SKU in one location
    ABC = "ABC"                  # Category A (high velocity) SKUs
    SPOT_CHECK = "SPOT_CHECK"    # Random sample
    RECEIVING = "RECEIVING"      # Recently received SKUs
    SHIPPING = "SHIPPING"        # SKUs on orders being picked/packed
    AD_HOC = "AD_HOC"            # Explicit SKU list


class CycleCountStatus(str, Enum):
    """Status of a cycle count plan."""
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    RECONCILED = "RECONCILED"
    CANCELLED = "CANCELLED"


class VarianceStatus(str, Enum):
    """Review status of a count entry."""
    PENDING = "PENDING"
    AUTO_ADJUSTED = "AUTO_ADJUSTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ABCCategory(str, Enum):
    """ABC velocity tier."""
    A = "A"
    B = "B"
    C = "C"


class FrequencyType(str, Enum):
    """Repeat frequency of a recurring count schedule."""
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"


PERCENT_QUANTUM = Decimal("0.01")


def exact_variance_percent(system_quantity: Decimal, variance: Decimal) -> Decimal:
    """|variance| / system * 100 without rounding; 0 when the system quantity is 0."""
    system_quantity = Decimal(system_quantity)
    if system_quantity > 0:
        return abs(Decimal(variance)) / system_quantity * 100
    return Decimal("0")


def compute_variance(system_quantity: Decimal, counted_quantity: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Return (variance, variance_percent) for a count.

    variance = counted - system
    variance_percent = |variance| / system * 100, rounded to 2 places,
    and 0 when the system quantity is 0. The rounded percent is for storage
    and display; tolerance decisions use exact_variance_percent().
    """
    system_quantity = Decimal(system_quantity)
    counted_quantity = Decimal(counted_quantity)
    variance = counted_quantity - system_quantity
    percent = exact_variance_percent(system_quantity, variance)
    return variance, percent.quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_UP)


# ============================================================================
# MODELS
# ============================================================================

class CycleCountPlan(Base):
    """
    Cycle count plan defining what to count and who counts it.

    Lifecycle: SCHEDULED -> IN_PROGRESS -> COMPLETED -> RECONCILED,
    or CANCELLED from SCHEDULED / IN_PROGRESS. Plans are never deleted.
    """
    __tablename__ = "cycle_count_plans"
    __table_args__ = (
        Index("idx_cycle_count_status", "status"),
        Index("idx_cycle_count_scheduled_date", "scheduled_date"),
        Index("idx_cycle_count_location", "location"),
        Index("idx_cycle_count_sku", "sku"),
    )

    plan_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    plan_name: Mapped[str] = mapped_column(String(255), nullable=False)
    count_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=CycleCountStatus.SCHEDULED.value
    )

    scheduled_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    reconciled_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Scope
    location: Mapped[Optional[str]] = mapped_column(String(100))
    sku: Mapped[Optional[str]] = mapped_column(Text)  # Single SKU, or comma-separated for AD_HOC

    count_by: Mapped[str] = mapped_column(String(50), nullable=False)
    created_by: Mapped[str] = mapped_column(String(50), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    count_entries: Mapped[List["CycleCountEntry"]] = relationship(
        back_populates="plan", order_by="CycleCountEntry.counted_at"
    )

    def __repr__(self):
        return f"<CycleCountPlan {self.plan_id} {self.status}>"


class CycleCountEntry(Base):
    """
    One SKU/bin comparison of system vs. counted quantity within a plan.

    variance and variance_percent are always derived from the two
    quantities through apply_counts().
    """
    __tablename__ = "cycle_count_entries"
    __table_args__ = (
        Index("idx_cycle_entry_plan", "plan_id"),
        Index("idx_cycle_entry_sku", "sku"),
        Index("idx_cycle_entry_location", "bin_location"),
        Index("idx_cycle_entry_variance_status", "variance_status"),
    )

    entry_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    plan_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("cycle_count_plans.plan_id", ondelete="CASCADE"), nullable=False
    )

    sku: Mapped[str] = mapped_column(String(100), nullable=False)
    bin_location: Mapped[str] = mapped_column(String(100), nullable=False)

    system_quantity: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    counted_quantity: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    variance: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    variance_percent: Mapped[Decimal] = mapped_column(PercentType, default=Decimal("0"))
    variance_status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=VarianceStatus.PENDING.value
    )

    counted_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    counted_by: Mapped[str] = mapped_column(String(50), nullable=False)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(50))
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Set iff an inventory mutation was committed for this entry
    adjustment_transaction_id: Mapped[Optional[str]] = mapped_column(
        String(50), ForeignKey("inventory_transactions.transaction_id")
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)

    # Relationships
    plan: Mapped["CycleCountPlan"] = relationship(back_populates="count_entries")

    def apply_counts(self, system_quantity: Decimal, counted_quantity: Decimal) -> None:
        """Set both quantities and recompute variance and variance percent."""
        variance, percent = compute_variance(system_quantity, counted_quantity)
        self.system_quantity = Decimal(system_quantity)
        self.counted_quantity = Decimal(counted_quantity)
        self.variance = variance
        self.variance_percent = percent

    def __repr__(self):
        return f"<CycleCountEntry {self.entry_id} {self.sku}@{self.bin_location} {self.variance_status}>"


class CycleCountTolerance(Base):
    """
    Tolerance rule for variance auto-adjustment.

    Scope is one of: SKU-specific (sku set), zone-specific (location_zone set)
    or the named default ("Default Tolerance"). abc_category marks a SKU's
    velocity tier for ABC counts.
    """
    __tablename__ = "cycle_count_tolerances"
    __table_args__ = (
        Index("idx_tolerance_sku", "sku"),
        Index("idx_tolerance_abc", "abc_category"),
        Index("idx_tolerance_zone", "location_zone"),
    )

    tolerance_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    tolerance_name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(100))
    abc_category: Mapped[Optional[str]] = mapped_column(CHAR(1))
    location_zone: Mapped[Optional[str]] = mapped_column(String(50))

    allowable_variance_percent: Mapped[Decimal] = mapped_column(PercentType, nullable=False)
    allowable_variance_amount: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    auto_adjust_threshold: Mapped[Decimal] = mapped_column(PercentType, nullable=False)
    requires_approval_threshold: Mapped[Decimal] = mapped_column(PercentType, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self):
        return f"<CycleCountTolerance {self.tolerance_id} {self.tolerance_name}>"


class RecurringCountSchedule(Base):
    """Recurring schedule that periodically creates cycle count plans."""
    __tablename__ = "recurring_count_schedules"
    __table_args__ = (
        Index("idx_recurring_next_run", "is_active", "next_run_date"),
    )

    schedule_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    schedule_name: Mapped[str] = mapped_column(String(255), nullable=False)
    count_type: Mapped[str] = mapped_column(String(50), nullable=False)
    frequency_type: Mapped[str] = mapped_column(String(20), nullable=False)
    frequency_interval: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    location: Mapped[Optional[str]] = mapped_column(String(100))
    sku: Mapped[Optional[str]] = mapped_column(Text)
    assigned_to: Mapped[str] = mapped_column(String(50), nullable=False)

    next_run_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    last_run_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_by: Mapped[str] = mapped_column(String(50), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self):
        return f"<RecurringCountSchedule {self.schedule_id} {self.frequency_type}>"
