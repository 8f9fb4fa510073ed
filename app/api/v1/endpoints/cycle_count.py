"""
Cycle Counting API Endpoints.

API endpoints for cycle counting operations including:
- Count plans and their lifecycle
- Count entries and variance review
- Collision check, audit trail and CSV export
- Tolerance rules, KPIs and recurring schedules
"""
from typing import Optional, List

from fastapi import APIRouter, HTTPException, Query, Response, status

from app.api.deps import DB, CurrentActor
from app.core.exceptions import CycleCountError, NotFoundError, InvalidStateTransitionError
from app.models.cycle_count import CountType, CycleCountStatus
from app.schemas.cycle_count import (
    CycleCountPlanCreate, CycleCountPlanResponse, CycleCountPlanListResponse,
    PlanCancelRequest, PlanReconcileRequest,
    CycleCountEntryCreate, CycleCountEntryResponse,
    VarianceStatusUpdate, BulkVarianceStatusUpdate, BulkVarianceStatusResult,
    ReconcileSummaryResponse, CollisionCheckResponse, AuditLogItem,
    ToleranceCreate, ToleranceResponse, CycleCountKPIResponse,
    AccuracyTrendPoint, TopDiscrepancySku,
    RecurringScheduleCreate, RecurringScheduleUpdate, RecurringScheduleResponse,
    ProcessDueSchedulesResult,
)
from app.services.cycle_count_service import CycleCountService
from app.services.recurring_schedule_service import RecurringScheduleService
from app.services.tolerance_resolver import ToleranceResolver

router = APIRouter()


def _http_error(exc: CycleCountError) -> HTTPException:
    """Map a domain error to its HTTP status."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, InvalidStateTransitionError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


# ============================================================================
# CYCLE COUNT PLANS
# ============================================================================

@router.post(
    "/plans",
    response_model=CycleCountPlanResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Cycle Count Plan"
)
async def create_plan(data: CycleCountPlanCreate, db: DB, actor: CurrentActor):
    """Create a new cycle count plan."""
    service = CycleCountService(db)
    return await service.create_plan(data, actor.user_id)


@router.get(
    "/plans",
    response_model=CycleCountPlanListResponse,
    summary="List Cycle Count Plans"
)
async def list_plans(
    db: DB,
    actor: CurrentActor,
    plan_status: Optional[CycleCountStatus] = Query(None, alias="status"),
    count_type: Optional[CountType] = None,
    location: Optional[str] = None,
    count_by: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
):
    """
    List cycle count plans visible to the caller.

    Pickers and packers see their own counts; stock controllers also see
    the counts they created; supervisors and admins see everything.
    """
    service = CycleCountService(db)
    plans, total = await service.list_plans(
        status=plan_status,
        count_type=count_type,
        location=location,
        count_by=count_by,
        scope=actor.plan_scope,
        skip=skip,
        limit=limit,
    )
    return CycleCountPlanListResponse(
        items=[CycleCountPlanResponse.model_validate(p) for p in plans],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get(
    "/plans/{plan_id}",
    response_model=CycleCountPlanResponse,
    summary="Get Cycle Count Plan"
)
async def get_plan(plan_id: str, db: DB, actor: CurrentActor):
    """Get a cycle count plan with its entries."""
    service = CycleCountService(db)
    try:
        return await service.get_plan(plan_id)
    except CycleCountError as e:
        raise _http_error(e)


@router.post(
    "/plans/{plan_id}/start",
    response_model=CycleCountPlanResponse,
    summary="Start Cycle Count"
)
async def start_plan(plan_id: str, db: DB, actor: CurrentActor):
    """Start counting and generate the count entries for the plan type."""
    service = CycleCountService(db)
    try:
        return await service.start_plan(plan_id, actor.user_id)
    except CycleCountError as e:
        raise _http_error(e)


@router.post(
    "/plans/{plan_id}/complete",
    response_model=CycleCountPlanResponse,
    summary="Complete Cycle Count"
)
async def complete_plan(plan_id: str, db: DB, actor: CurrentActor):
    service = CycleCountService(db)
    try:
        return await service.complete_plan(plan_id, actor.user_id)
    except CycleCountError as e:
        raise _http_error(e)


@router.post(
    "/plans/{plan_id}/cancel",
    response_model=CycleCountPlanResponse,
    summary="Cancel Cycle Count"
)
async def cancel_plan(plan_id: str, db: DB, actor: CurrentActor, data: Optional[PlanCancelRequest] = None):
    """Cancel a scheduled or in-progress cycle count."""
    service = CycleCountService(db)
    try:
        return await service.cancel_plan(plan_id, actor.user_id, data.reason if data else None)
    except CycleCountError as e:
        raise _http_error(e)


@router.post(
    "/plans/{plan_id}/reconcile",
    response_model=CycleCountPlanResponse,
    summary="Reconcile Cycle Count"
)
async def reconcile_plan(plan_id: str, db: DB, actor: CurrentActor, data: Optional[PlanReconcileRequest] = None):
    """Approve all pending variances and close the plan."""
    service = CycleCountService(db)
    try:
        return await service.reconcile_plan(plan_id, actor.user_id, data.notes if data else None)
    except CycleCountError as e:
        raise _http_error(e)


@router.get(
    "/plans/{plan_id}/reconcile-summary",
    response_model=ReconcileSummaryResponse,
    summary="Preview Reconciliation"
)
async def get_reconcile_summary(plan_id: str, db: DB, actor: CurrentActor):
    service = CycleCountService(db)
    try:
        return await service.get_reconcile_summary(plan_id)
    except CycleCountError as e:
        raise _http_error(e)


@router.post(
    "/plans/{plan_id}/variances/bulk-status",
    response_model=BulkVarianceStatusResult,
    summary="Bulk Approve/Reject Variances"
)
async def bulk_update_variance_status(
    plan_id: str,
    data: BulkVarianceStatusUpdate,
    db: DB,
    actor: CurrentActor,
):
    service = CycleCountService(db)
    try:
        return await service.bulk_update_variance_status(
            plan_id,
            data.status,
            actor.user_id,
            notes=data.notes,
            auto_approve_zero_variance=data.auto_approve_zero_variance,
        )
    except CycleCountError as e:
        raise _http_error(e)


@router.get(
    "/plans/{plan_id}/collisions",
    response_model=CollisionCheckResponse,
    summary="Check Location Collisions"
)
async def check_for_collisions(plan_id: str, db: DB, actor: CurrentActor):
    """Other scheduled or in-progress counts at the same location."""
    service = CycleCountService(db)
    try:
        return await service.check_for_collisions(plan_id)
    except CycleCountError as e:
        raise _http_error(e)


@router.get(
    "/plans/{plan_id}/audit-log",
    response_model=List[AuditLogItem],
    summary="Cycle Count Audit Log"
)
async def get_audit_log(plan_id: str, db: DB, actor: CurrentActor):
    service = CycleCountService(db)
    try:
        return await service.get_audit_log(plan_id)
    except CycleCountError as e:
        raise _http_error(e)


@router.get(
    "/plans/{plan_id}/export",
    summary="Export Cycle Count as CSV"
)
async def export_plan(plan_id: str, db: DB, actor: CurrentActor):
    service = CycleCountService(db)
    try:
        content = await service.export_csv(plan_id)
    except CycleCountError as e:
        raise _http_error(e)

    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=cycle-count-{plan_id}.csv"}
    )


# ============================================================================
# COUNT ENTRIES
# ============================================================================

@router.post(
    "/entries",
    response_model=CycleCountEntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record Count"
)
async def create_entry(data: CycleCountEntryCreate, db: DB, actor: CurrentActor):
    """Record a physical count; small variances are adjusted automatically."""
    service = CycleCountService(db)
    try:
        return await service.create_entry(data, actor.user_id)
    except CycleCountError as e:
        raise _http_error(e)


@router.patch(
    "/entries/{entry_id}/variance-status",
    response_model=CycleCountEntryResponse,
    summary="Approve/Reject Variance"
)
async def update_variance_status(
    entry_id: str,
    data: VarianceStatusUpdate,
    db: DB,
    actor: CurrentActor,
):
    service = CycleCountService(db)
    try:
        return await service.update_variance_status(entry_id, data.status, actor.user_id, data.notes)
    except CycleCountError as e:
        raise _http_error(e)


# ============================================================================
# TOLERANCES
# ============================================================================

@router.get(
    "/tolerances",
    response_model=List[ToleranceResponse],
    summary="List Tolerance Rules"
)
async def list_tolerances(db: DB, actor: CurrentActor):
    service = CycleCountService(db)
    return await service.list_tolerances()


@router.post(
    "/tolerances",
    response_model=ToleranceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Tolerance Rule"
)
async def create_tolerance(data: ToleranceCreate, db: DB, actor: CurrentActor):
    resolver = ToleranceResolver(db)
    return await resolver.create_tolerance(data.model_dump(mode="python"))


@router.get(
    "/tolerances/{tolerance_id}",
    response_model=ToleranceResponse,
    summary="Get Tolerance Rule"
)
async def get_tolerance(tolerance_id: str, db: DB, actor: CurrentActor):
    resolver = ToleranceResolver(db)
    try:
        return await resolver.get_tolerance(tolerance_id)
    except CycleCountError as e:
        raise _http_error(e)


# ============================================================================
# KPIs
# ============================================================================

@router.get(
    "/kpis",
    response_model=CycleCountKPIResponse,
    summary="Cycle Count KPIs"
)
async def get_kpis(
    db: DB,
    actor: CurrentActor,
    location: Optional[str] = None,
    count_type: Optional[CountType] = None,
):
    service = CycleCountService(db)
    return await service.get_kpis(location=location, count_type=count_type)


@router.get(
    "/kpis/accuracy-trend",
    response_model=List[AccuracyTrendPoint],
    summary="Daily Count Accuracy"
)
async def get_accuracy_trend(
    db: DB,
    actor: CurrentActor,
    days: int = Query(30, ge=1, le=365),
):
    service = CycleCountService(db)
    return await service.get_accuracy_trend(days=days)


@router.get(
    "/kpis/top-discrepancies",
    response_model=List[TopDiscrepancySku],
    summary="SKUs With Most Variances"
)
async def get_top_discrepancies(
    db: DB,
    actor: CurrentActor,
    limit: int = Query(10, ge=1, le=100),
    days: int = Query(30, ge=1, le=365),
):
    service = CycleCountService(db)
    return await service.get_top_discrepancy_skus(limit=limit, days=days)


# ============================================================================
# RECURRING SCHEDULES
# ============================================================================

@router.post(
    "/schedules",
    response_model=RecurringScheduleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Recurring Schedule"
)
async def create_schedule(data: RecurringScheduleCreate, db: DB, actor: CurrentActor):
    service = RecurringScheduleService(db)
    return await service.create_schedule(data, actor.user_id)


@router.get(
    "/schedules",
    response_model=List[RecurringScheduleResponse],
    summary="List Recurring Schedules"
)
async def list_schedules(
    db: DB,
    actor: CurrentActor,
    is_active: Optional[bool] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
):
    service = RecurringScheduleService(db)
    schedules, _total = await service.list_schedules(is_active=is_active, skip=skip, limit=limit)
    return schedules


@router.post(
    "/schedules/process-due",
    response_model=ProcessDueSchedulesResult,
    summary="Run Due Recurring Schedules"
)
async def process_due_schedules(db: DB, actor: CurrentActor):
    """Create plans for all due schedules now instead of waiting for the job."""
    service = RecurringScheduleService(db)
    return await service.process_due_schedules()


@router.get(
    "/schedules/{schedule_id}",
    response_model=RecurringScheduleResponse,
    summary="Get Recurring Schedule"
)
async def get_schedule(schedule_id: str, db: DB, actor: CurrentActor):
    service = RecurringScheduleService(db)
    try:
        return await service.get_schedule(schedule_id)
    except CycleCountError as e:
        raise _http_error(e)


@router.patch(
    "/schedules/{schedule_id}",
    response_model=RecurringScheduleResponse,
    summary="Update Recurring Schedule"
)
async def update_schedule(schedule_id: str, data: RecurringScheduleUpdate, db: DB, actor: CurrentActor):
    service = RecurringScheduleService(db)
    try:
        return await service.update_schedule(schedule_id, data)
    except CycleCountError as e:
        raise _http_error(e)


@router.delete(
    "/schedules/{schedule_id}",
    response_model=RecurringScheduleResponse,
    summary="Deactivate Recurring Schedule"
)
async def deactivate_schedule(schedule_id: str, db: DB, actor: CurrentActor):
    service = RecurringScheduleService(db)
    try:
        return await service.deactivate_schedule(schedule_id)
    except CycleCountError as e:
        raise _http_error(e)
