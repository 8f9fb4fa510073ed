"""
Cycle Counting Schemas.

Pydantic schemas for cycle count plans, entries, tolerances and
recurring schedules.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict

from pydantic import BaseModel, Field

from app.models.cycle_count import (
    CountType, CycleCountStatus, VarianceStatus, ABCCategory, FrequencyType
)
from app.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema


# ============================================================================
# CYCLE COUNT PLAN SCHEMAS
# ============================================================================

class CycleCountPlanCreate(BaseCreateSchema):
    """Schema for creating a cycle count plan."""
    plan_name: str = Field(..., min_length=1, max_length=255)
    count_type: CountType
    scheduled_date: datetime
    location: Optional[str] = Field(None, max_length=100)
    sku: Optional[str] = None
    count_by: str = Field(..., min_length=1, max_length=50)
    notes: Optional[str] = None


class CycleCountEntryResponse(BaseResponseSchema):
    """Response schema for a count entry."""
    entry_id: str
    plan_id: str
    sku: str
    bin_location: str
    system_quantity: Decimal
    counted_quantity: Decimal
    variance: Decimal
    variance_percent: Decimal
    variance_status: VarianceStatus
    counted_at: datetime
    counted_by: str
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    adjustment_transaction_id: Optional[str] = None
    notes: Optional[str] = None


class CycleCountPlanResponse(BaseResponseSchema):
    """Response schema for a cycle count plan with its entries."""
    plan_id: str
    plan_name: str
    count_type: CountType
    status: CycleCountStatus
    scheduled_date: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    reconciled_at: Optional[datetime] = None
    location: Optional[str] = None
    sku: Optional[str] = None
    count_by: str
    created_by: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    count_entries: List[CycleCountEntryResponse] = []


class CycleCountPlanListResponse(BaseModel):
    """Paginated plan list."""
    items: List[CycleCountPlanResponse]
    total: int
    skip: int = 0
    limit: int = 50


class PlanCancelRequest(BaseModel):
    reason: Optional[str] = None


class PlanReconcileRequest(BaseModel):
    notes: Optional[str] = None


# ============================================================================
# COUNT ENTRY SCHEMAS
# ============================================================================

class CycleCountEntryCreate(BaseCreateSchema):
    """Schema for recording a physical count."""
    plan_id: str
    sku: str = Field(..., min_length=1, max_length=100)
    bin_location: str = Field(..., min_length=1, max_length=100)
    counted_quantity: Decimal = Field(..., ge=0)
    notes: Optional[str] = None


class VarianceStatusUpdate(BaseModel):
    """Approve or reject one entry."""
    status: VarianceStatus
    notes: Optional[str] = None


class BulkVarianceStatusUpdate(BaseModel):
    """Approve or reject all pending entries of a plan."""
    status: VarianceStatus
    notes: Optional[str] = None
    auto_approve_zero_variance: bool = False


class VarianceAdjustment(BaseModel):
    entry_id: str
    sku: str
    bin_location: str
    variance: Decimal
    transaction_id: str


class BulkVarianceStatusResult(BaseModel):
    updated: int
    skipped: int
    adjustments: List[VarianceAdjustment] = []


class ReconcileSummaryItem(BaseModel):
    entry_id: str
    sku: str
    bin_location: str
    system_quantity: Decimal
    counted_quantity: Decimal
    variance: Decimal
    variance_percent: Decimal


class ReconcileSummaryResponse(BaseModel):
    pending_variance_count: int
    total_adjustment_value: Decimal
    skus_to_adjust: List[ReconcileSummaryItem] = []
    zero_variance_entries: int


# ============================================================================
# COLLISION / AUDIT SCHEMAS
# ============================================================================

class CollidingCount(BaseModel):
    plan_id: str
    plan_name: str
    location: Optional[str] = None
    status: str
    assigned_to: str


class CollisionCheckResponse(BaseModel):
    has_collisions: bool
    colliding_counts: List[CollidingCount] = []


class AuditLogDetails(BaseModel):
    old_values: Optional[Dict] = None
    new_values: Optional[Dict] = None
    description: Optional[str] = None


class AuditLogItem(BaseModel):
    timestamp: datetime
    action: str
    user_id: Optional[str] = None
    details: AuditLogDetails


# ============================================================================
# TOLERANCE SCHEMAS
# ============================================================================

class ToleranceCreate(BaseCreateSchema):
    """Schema for creating a tolerance rule."""
    tolerance_name: str = Field(..., min_length=1, max_length=255)
    sku: Optional[str] = Field(None, max_length=100)
    abc_category: Optional[ABCCategory] = None
    location_zone: Optional[str] = Field(None, max_length=50)
    allowable_variance_percent: Decimal = Field(..., ge=0)
    allowable_variance_amount: Decimal = Field(..., ge=0)
    auto_adjust_threshold: Decimal = Field(..., ge=0)
    requires_approval_threshold: Decimal = Field(..., ge=0)
    is_active: bool = True


class ToleranceResponse(BaseResponseSchema):
    tolerance_id: str
    tolerance_name: str
    sku: Optional[str] = None
    abc_category: Optional[str] = None
    location_zone: Optional[str] = None
    allowable_variance_percent: Decimal
    allowable_variance_amount: Decimal
    auto_adjust_threshold: Decimal
    requires_approval_threshold: Decimal
    is_active: bool
    created_at: datetime
    updated_at: datetime


# ============================================================================
# KPI SCHEMAS
# ============================================================================

class CycleCountKPIResponse(BaseModel):
    """Dashboard KPIs for cycle counting."""
    total_counts: int
    completed_counts: int
    in_progress_counts: int
    scheduled_counts: int
    reconciled_counts: int
    cancelled_counts: int
    completion_rate: float
    total_entries: int
    pending_variances: int
    high_variance_count: int
    average_accuracy: float


class AccuracyTrendPoint(BaseModel):
    period: str
    accuracy: float
    total_counts: int


class TopDiscrepancySku(BaseModel):
    sku: str
    variance_count: int
    total_variance: Decimal
    average_variance_percent: float


# ============================================================================
# RECURRING SCHEDULE SCHEMAS
# ============================================================================

class RecurringScheduleCreate(BaseCreateSchema):
    """Schema for creating a recurring count schedule."""
    schedule_name: str = Field(..., min_length=1, max_length=255)
    count_type: CountType
    frequency_type: FrequencyType
    frequency_interval: int = Field(default=1, ge=1)
    location: Optional[str] = Field(None, max_length=100)
    sku: Optional[str] = None
    assigned_to: str = Field(..., min_length=1, max_length=50)
    start_date: Optional[datetime] = None
    notes: Optional[str] = None


class RecurringScheduleUpdate(BaseUpdateSchema):
    """Schema for updating a recurring count schedule."""
    schedule_name: Optional[str] = Field(None, min_length=1, max_length=255)
    count_type: Optional[CountType] = None
    frequency_type: Optional[FrequencyType] = None
    frequency_interval: Optional[int] = Field(None, ge=1)
    location: Optional[str] = None
    sku: Optional[str] = None
    assigned_to: Optional[str] = None
    is_active: Optional[bool] = None
    notes: Optional[str] = None


class RecurringScheduleResponse(BaseResponseSchema):
    schedule_id: str
    schedule_name: str
    count_type: CountType
    frequency_type: FrequencyType
    frequency_interval: int
    location: Optional[str] = None
    sku: Optional[str] = None
    assigned_to: str
    next_run_date: datetime
    last_run_date: Optional[datetime] = None
    is_active: bool
    created_by: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ProcessDueSchedulesResult(BaseModel):
    processed: int
    plans_created: List[str] = []
    failed: int
