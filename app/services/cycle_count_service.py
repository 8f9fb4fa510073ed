"""
Cycle Counting Service.

Business logic for cycle counting operations:
- Plan lifecycle (create, start, complete, cancel, reconcile)
- Count entries and tolerance-driven variance processing
- Variance review (single and bulk)
- Collision check, audit trail, CSV export and KPIs
"""
import csv
import io
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, List, Tuple, Dict, Any

from sqlalchemy import select, func, and_, or_, case
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.core.exceptions import NotFoundError, InvalidStateTransitionError
from app.core.identifiers import PLAN_PREFIX, ENTRY_PREFIX, generate_id
from app.models.cycle_count import (
    CycleCountPlan, CycleCountEntry,
    CountType, CycleCountStatus, VarianceStatus, exact_variance_percent,
)
from app.schemas.cycle_count import CycleCountPlanCreate, CycleCountEntryCreate
from app.services.audit_service import AuditService
from app.services.count_generation import GENERATION_NOTES, generate_snapshots
from app.services.cycle_count_state_machine import (
    validate_transition, get_transition_action, can_cancel, accepts_entries,
)
from app.services.inventory_service import InventoryAdjustmentService
from app.services.notification_service import (
    NotificationService, NotificationType, NotificationPriority,
)
from app.services.tolerance_resolver import ToleranceResolver


logger = logging.getLogger(__name__)

PLAN_ENTITY_TYPE = "CYCLE_COUNT_PLAN"

REVIEW_STATUSES = (VarianceStatus.APPROVED, VarianceStatus.REJECTED)

CSV_HEADERS = [
    "SKU",
    "Bin Location",
    "System Quantity",
    "Counted Quantity",
    "Variance",
    "Variance %",
    "Status",
    "Counted At",
    "Counted By",
    "Reviewed At",
    "Reviewed By",
    "Notes",
]


@dataclass(frozen=True)
class PlanScope:
    """
    Row-level visibility of plans for the requesting user.

    - PICKER, PACKER: plans assigned to them
    - STOCK_CONTROLLER: plans assigned to or created by them
    - SUPERVISOR, ADMIN: all plans, count_by filter honoured
    """
    user_id: Optional[str] = None
    role: Optional[str] = None

    OWN_ROLES = ("PICKER", "PACKER")
    OWN_OR_CREATED_ROLES = ("STOCK_CONTROLLER",)
    ALL_ROLES = ("SUPERVISOR", "ADMIN")

    @classmethod
    def for_user(cls, user_id: Optional[str], role: Optional[str]) -> "PlanScope":
        return cls(user_id=user_id, role=role.upper() if role else None)

    def condition(self):
        """SQL predicate restricting visible plans, or None for no restriction."""
        if self.role in self.OWN_ROLES:
            return CycleCountPlan.count_by == self.user_id
        if self.role in self.OWN_OR_CREATED_ROLES:
            return or_(
                CycleCountPlan.count_by == self.user_id,
                CycleCountPlan.created_by == self.user_id,
            )
        return None

    @property
    def honours_count_by_filter(self) -> bool:
        return self.role in self.ALL_ROLES


def _csv_value(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class CycleCountService:
    """Service for cycle counting operations."""

    def __init__(
        self,
        db: AsyncSession,
        notification_service: Optional[NotificationService] = None,
        audit_service: Optional[AuditService] = None,
    ):
        self.db = db
        self.notifications = notification_service or NotificationService()
        self.audit = audit_service or AuditService(db)
        self.inventory = InventoryAdjustmentService(db)
        self.tolerances = ToleranceResolver(db)

    async def _commit(self, operation: str) -> None:
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.exception(f"Error {operation}; transaction rolled back")
            raise

    # ========================================================================
    # CYCLE COUNT PLANS
    # ========================================================================

    async def create_plan(
        self,
        data: CycleCountPlanCreate,
        created_by: str
    ) -> CycleCountPlan:
        """Create a new cycle count plan in SCHEDULED status."""
        now = datetime.utcnow()
        plan = CycleCountPlan(
            plan_id=generate_id(PLAN_PREFIX),
            plan_name=data.plan_name,
            count_type=CountType(data.count_type).value,
            status=CycleCountStatus.SCHEDULED.value,
            scheduled_date=data.scheduled_date,
            location=data.location or None,
            sku=data.sku or None,
            count_by=data.count_by,
            created_by=created_by,
            notes=data.notes or None,
            created_at=now,
            updated_at=now,
        )

        try:
            self.db.add(plan)
            await self.db.flush()
            await self.audit.log(
                action="CREATE",
                entity_type=PLAN_ENTITY_TYPE,
                entity_id=plan.plan_id,
                user_id=created_by,
                new_values={
                    "plan_name": plan.plan_name,
                    "count_type": plan.count_type,
                    "status": plan.status,
                    "location": plan.location,
                    "sku": plan.sku,
                    "count_by": plan.count_by,
                    "scheduled_date": plan.scheduled_date,
                },
                description=f"Created cycle count plan: {plan.plan_name}",
            )
        except Exception:
            await self.db.rollback()
            raise
        await self._commit("creating cycle count plan")

        logger.info(f"Cycle count plan created: {plan.plan_id} ({plan.plan_name})")
        return await self.get_plan(plan.plan_id)

    async def _get_plan_row(self, plan_id: str) -> CycleCountPlan:
        plan = await self.db.get(CycleCountPlan, plan_id)
        if not plan:
            raise NotFoundError("Cycle count plan", plan_id)
        return plan

    async def get_plan(self, plan_id: str) -> CycleCountPlan:
        """Get a cycle count plan with its entries."""
        result = await self.db.execute(
            select(CycleCountPlan)
            .options(selectinload(CycleCountPlan.count_entries))
            .where(CycleCountPlan.plan_id == plan_id)
            .execution_options(populate_existing=True)
        )
        plan = result.scalar_one_or_none()
        if not plan:
            raise NotFoundError("Cycle count plan", plan_id)
        return plan

    async def list_plans(
        self,
        status: Optional[CycleCountStatus] = None,
        count_type: Optional[CountType] = None,
        location: Optional[str] = None,
        count_by: Optional[str] = None,
        scope: Optional[PlanScope] = None,
        skip: int = 0,
        limit: int = 50
    ) -> Tuple[List[CycleCountPlan], int]:
        """List cycle count plans with filters, newest scheduled date first."""
        query = select(CycleCountPlan)

        conditions = []
        if scope is not None:
            scope_condition = scope.condition()
            if scope_condition is not None:
                conditions.append(scope_condition)
        if status:
            conditions.append(CycleCountPlan.status == CycleCountStatus(status).value)
        if count_type:
            conditions.append(CycleCountPlan.count_type == CountType(count_type).value)
        if location:
            conditions.append(CycleCountPlan.location == location)
        if count_by and (scope is None or scope.honours_count_by_filter):
            conditions.append(CycleCountPlan.count_by == count_by)

        if conditions:
            query = query.where(and_(*conditions))

        # Count
        count_query = select(func.count()).select_from(query.subquery())
        total = await self.db.scalar(count_query)

        # Paginate
        query = (
            query.options(selectinload(CycleCountPlan.count_entries))
            .order_by(CycleCountPlan.scheduled_date.desc())
            .offset(skip)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)

        return list(result.scalars().all()), total or 0

    async def _transition(
        self,
        plan: CycleCountPlan,
        new_status: CycleCountStatus,
        user_id: Optional[str],
        description: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Move the plan to new_status and audit it. Returns the old status."""
        old_status = plan.status
        validate_transition(old_status, new_status.value)

        plan.status = new_status.value
        plan.updated_at = datetime.utcnow()
        await self.audit.log_status_change(
            action=get_transition_action(old_status, new_status.value),
            entity_type=PLAN_ENTITY_TYPE,
            entity_id=plan.plan_id,
            old_status=old_status,
            new_status=new_status.value,
            user_id=user_id,
            description=description,
            extra=extra,
        )
        return old_status

    async def start_plan(self, plan_id: str, started_by: Optional[str] = None) -> CycleCountPlan:
        """
        Start counting: move to IN_PROGRESS and generate the pending entries
        for the plan's count type in the same transaction.
        """
        plan = await self._get_plan_row(plan_id)
        if plan.status == CycleCountStatus.IN_PROGRESS.value:
            return await self.get_plan(plan_id)

        validate_transition(plan.status, CycleCountStatus.IN_PROGRESS.value)

        counter = started_by or plan.count_by
        try:
            now = datetime.utcnow()
            await self._transition(
                plan, CycleCountStatus.IN_PROGRESS, counter,
                description=f"Started {plan.count_type} count",
            )
            plan.started_at = now

            snapshots = await generate_snapshots(self.db, plan)
            note = GENERATION_NOTES[CountType(plan.count_type)]
            for snapshot in snapshots:
                entry = CycleCountEntry(
                    entry_id=generate_id(ENTRY_PREFIX),
                    plan_id=plan.plan_id,
                    sku=snapshot.sku,
                    bin_location=snapshot.bin_location,
                    variance_status=VarianceStatus.PENDING.value,
                    counted_at=now,
                    counted_by=counter,
                    notes=note,
                )
                entry.apply_counts(snapshot.quantity, Decimal("0"))
                self.db.add(entry)
        except Exception:
            await self.db.rollback()
            raise
        await self._commit("starting cycle count plan")

        logger.info(
            f"Cycle count plan started: {plan_id} ({plan.count_type}), "
            f"{len(snapshots)} entries generated"
        )
        return await self.get_plan(plan_id)

    async def complete_plan(self, plan_id: str, completed_by: Optional[str] = None) -> CycleCountPlan:
        """Mark counting as finished."""
        plan = await self._get_plan_row(plan_id)
        if plan.status == CycleCountStatus.COMPLETED.value:
            return await self.get_plan(plan_id)
        validate_transition(plan.status, CycleCountStatus.COMPLETED.value)

        try:
            await self._transition(plan, CycleCountStatus.COMPLETED, completed_by)
            plan.completed_at = datetime.utcnow()
        except Exception:
            await self.db.rollback()
            raise
        await self._commit("completing cycle count plan")

        logger.info(f"Cycle count plan completed: {plan_id}")
        return await self.get_plan(plan_id)

    async def cancel_plan(
        self,
        plan_id: str,
        cancelled_by: str,
        reason: Optional[str] = None
    ) -> CycleCountPlan:
        """Cancel a SCHEDULED or IN_PROGRESS plan."""
        plan = await self._get_plan_row(plan_id)
        if plan.status == CycleCountStatus.CANCELLED.value:
            return await self.get_plan(plan_id)
        if not can_cancel(plan.status):
            raise InvalidStateTransitionError(
                f"Cannot cancel a {plan.status} cycle count",
                current_status=plan.status,
                requested_status=CycleCountStatus.CANCELLED.value,
            )

        cancel_note = f"Cancelled: {reason or 'No reason provided'}"
        try:
            await self._transition(
                plan, CycleCountStatus.CANCELLED, cancelled_by,
                description=cancel_note,
                extra={"reason": reason},
            )
            plan.notes = f"{plan.notes}\n{cancel_note}" if plan.notes else cancel_note
        except Exception:
            await self.db.rollback()
            raise
        await self._commit("cancelling cycle count plan")

        logger.info(f"Cycle count plan cancelled: {plan_id} by {cancelled_by} ({reason})")
        return await self.get_plan(plan_id)

    async def reconcile_plan(
        self,
        plan_id: str,
        reconciled_by: str,
        notes: Optional[str] = None
    ) -> CycleCountPlan:
        """
        Close a COMPLETED plan: every PENDING entry is approved, adjusting
        stock for nonzero variances regardless of magnitude.
        """
        plan = await self._get_plan_row(plan_id)
        if plan.status == CycleCountStatus.RECONCILED.value:
            return await self.get_plan(plan_id)
        validate_transition(plan.status, CycleCountStatus.RECONCILED.value)

        try:
            await self._transition(
                plan, CycleCountStatus.RECONCILED, reconciled_by,
                description=notes or "Reconciled cycle count",
            )
            plan.reconciled_at = datetime.utcnow()
            result = await self._bulk_review(
                plan_id,
                VarianceStatus.APPROVED,
                reviewed_by=reconciled_by,
                notes=notes,
                auto_approve_zero_variance=True,
            )
        except Exception:
            await self.db.rollback()
            raise
        await self._commit("reconciling cycle count plan")

        logger.info(
            f"Cycle count plan reconciled: {plan_id}, "
            f"{result['updated']} entries approved, {len(result['adjustments'])} adjustments"
        )
        return await self.get_plan(plan_id)

    # ========================================================================
    # COUNT ENTRIES & VARIANCE PROCESSING
    # ========================================================================

    async def create_entry(
        self,
        data: CycleCountEntryCreate,
        counted_by: str
    ) -> CycleCountEntry:
        """
        Record a physical count.

        Within the auto-adjust threshold the stock is corrected at once and
        the entry is AUTO_ADJUSTED; otherwise it waits for review as PENDING.
        """
        plan = await self._get_plan_row(data.plan_id)
        if not accepts_entries(plan.status):
            raise InvalidStateTransitionError(
                f"Cannot record counts on a {plan.status} cycle count",
                current_status=plan.status,
            )

        try:
            system_quantity = await self.inventory.get_quantity(data.sku, data.bin_location)
            if system_quantity is None:
                system_quantity = Decimal("0")

            entry = CycleCountEntry(
                entry_id=generate_id(ENTRY_PREFIX),
                plan_id=plan.plan_id,
                sku=data.sku,
                bin_location=data.bin_location,
                variance_status=VarianceStatus.PENDING.value,
                counted_at=datetime.utcnow(),
                counted_by=counted_by,
                notes=data.notes,
            )
            entry.apply_counts(system_quantity, Decimal(data.counted_quantity))
            # Thresholds compare against the unrounded percent
            percent = exact_variance_percent(system_quantity, entry.variance)

            tolerance = await self.tolerances.get_applicable_tolerance(data.sku, data.bin_location)
            if percent <= tolerance.auto_adjust_threshold:
                entry.adjustment_transaction_id = await self.inventory.apply_variance(
                    data.sku,
                    data.bin_location,
                    entry.variance,
                    f"Cycle count auto-adjustment - Entry {entry.entry_id}",
                    counted_by,
                )
                entry.variance_status = VarianceStatus.AUTO_ADJUSTED.value

            self.db.add(entry)
        except Exception:
            await self.db.rollback()
            raise
        await self._commit("creating cycle count entry")

        logger.info(
            f"Cycle count entry {entry.entry_id} created ({entry.variance_status}): "
            f"variance {entry.variance}, {entry.variance_percent}%"
        )

        if (
            entry.variance_status == VarianceStatus.PENDING.value
            and percent > tolerance.auto_adjust_threshold * 2
        ):
            await self._send_variance_alert(entry, percent)

        await self.db.refresh(entry)
        return entry

    async def _send_variance_alert(self, entry: CycleCountEntry, percent: Decimal) -> None:
        priority = (
            NotificationPriority.URGENT
            if percent > Decimal(str(settings.VARIANCE_ALERT_URGENT_PERCENT))
            else NotificationPriority.HIGH
        )
        sign = "+" if entry.variance > 0 else ""
        try:
            await self.notifications.notify_all(
                notification_type=NotificationType.EXCEPTION_REPORTED,
                title="Significant Cycle Count Variance",
                message=(
                    f"Large variance detected for {entry.sku} at {entry.bin_location}: "
                    f"{sign}{entry.variance} units ({entry.variance_percent}%)"
                ),
                priority=priority,
                data={
                    "entry_id": entry.entry_id,
                    "sku": entry.sku,
                    "bin_location": entry.bin_location,
                    "system_quantity": entry.system_quantity,
                    "counted_quantity": entry.counted_quantity,
                    "variance": entry.variance,
                    "variance_percent": entry.variance_percent,
                },
            )
        except Exception:
            logger.exception(f"Failed to send variance alert for entry {entry.entry_id}")

    async def _review_entry(
        self,
        entry: CycleCountEntry,
        status: VarianceStatus,
        reviewed_by: str,
        notes: Optional[str] = None,
    ) -> Optional[str]:
        """Apply a review decision without committing. Returns the adjustment id if stock moved."""
        transaction_id = None
        if (
            status == VarianceStatus.APPROVED
            and entry.variance != 0
            and not entry.adjustment_transaction_id
        ):
            reason = f"Cycle count adjustment reviewed by {reviewed_by}"
            if notes:
                reason = f"{reason}: {notes}"
            transaction_id = await self.inventory.apply_variance(
                entry.sku, entry.bin_location, entry.variance, reason, reviewed_by
            )
            entry.adjustment_transaction_id = transaction_id

        entry.variance_status = status.value
        entry.reviewed_by = reviewed_by
        entry.reviewed_at = datetime.utcnow()
        if notes:
            entry.notes = notes
        return transaction_id

    @staticmethod
    def _review_status(status) -> VarianceStatus:
        status = VarianceStatus(status)
        if status not in REVIEW_STATUSES:
            raise InvalidStateTransitionError(
                f"Variance can only be reviewed as APPROVED or REJECTED, not {status.value}",
                requested_status=status.value,
            )
        return status

    async def update_variance_status(
        self,
        entry_id: str,
        status: VarianceStatus,
        reviewed_by: str,
        notes: Optional[str] = None
    ) -> CycleCountEntry:
        """Approve or reject one entry. Approval of a nonzero variance adjusts stock."""
        status = self._review_status(status)

        entry = await self.db.get(CycleCountEntry, entry_id)
        if not entry:
            raise NotFoundError("Cycle count entry", entry_id)
        if entry.adjustment_transaction_id:
            raise InvalidStateTransitionError(
                f"Entry {entry_id} was already adjusted ({entry.variance_status}) and is final",
                current_status=entry.variance_status,
                requested_status=status.value,
            )

        try:
            await self._review_entry(entry, status, reviewed_by, notes)
        except Exception:
            await self.db.rollback()
            raise
        await self._commit("updating variance status")

        logger.info(f"Variance status updated: {entry_id} -> {status.value}")
        await self.db.refresh(entry)
        return entry

    async def _bulk_review(
        self,
        plan_id: str,
        status: VarianceStatus,
        reviewed_by: str,
        notes: Optional[str] = None,
        auto_approve_zero_variance: bool = False,
    ) -> Dict[str, Any]:
        result = await self.db.execute(
            select(CycleCountEntry)
            .where(
                and_(
                    CycleCountEntry.plan_id == plan_id,
                    CycleCountEntry.variance_status == VarianceStatus.PENDING.value,
                )
            )
            .order_by(CycleCountEntry.sku, CycleCountEntry.bin_location)
        )

        updated = 0
        skipped = 0
        adjustments = []
        for entry in result.scalars().all():
            if entry.variance == 0 and not auto_approve_zero_variance:
                skipped += 1
                continue

            transaction_id = await self._review_entry(entry, status, reviewed_by, notes)
            if transaction_id:
                adjustments.append({
                    "entry_id": entry.entry_id,
                    "sku": entry.sku,
                    "bin_location": entry.bin_location,
                    "variance": entry.variance,
                    "transaction_id": transaction_id,
                })
            updated += 1

        return {"updated": updated, "skipped": skipped, "adjustments": adjustments}

    async def bulk_update_variance_status(
        self,
        plan_id: str,
        status: VarianceStatus,
        reviewed_by: str,
        notes: Optional[str] = None,
        auto_approve_zero_variance: bool = False
    ) -> Dict[str, Any]:
        """Approve or reject every PENDING entry of a plan in one transaction."""
        status = self._review_status(status)
        await self._get_plan_row(plan_id)

        try:
            result = await self._bulk_review(
                plan_id, status, reviewed_by, notes, auto_approve_zero_variance
            )
        except Exception:
            await self.db.rollback()
            raise
        await self._commit("bulk updating variance status")

        logger.info(
            f"Bulk variance status updated for {plan_id}: {status.value}, "
            f"updated={result['updated']}, skipped={result['skipped']}"
        )
        return result

    async def get_reconcile_summary(self, plan_id: str) -> Dict[str, Any]:
        """Preview the adjustments reconciliation would make."""
        await self._get_plan_row(plan_id)

        result = await self.db.execute(
            select(CycleCountEntry)
            .where(
                and_(
                    CycleCountEntry.plan_id == plan_id,
                    CycleCountEntry.variance_status == VarianceStatus.PENDING.value,
                )
            )
            .order_by(func.abs(CycleCountEntry.variance).desc(), CycleCountEntry.sku)
        )
        entries = result.scalars().all()

        with_variance = [entry for entry in entries if entry.variance != 0]
        return {
            "pending_variance_count": len(with_variance),
            "total_adjustment_value": sum((abs(entry.variance) for entry in with_variance), Decimal("0")),
            "skus_to_adjust": [
                {
                    "entry_id": entry.entry_id,
                    "sku": entry.sku,
                    "bin_location": entry.bin_location,
                    "system_quantity": entry.system_quantity,
                    "counted_quantity": entry.counted_quantity,
                    "variance": entry.variance,
                    "variance_percent": entry.variance_percent,
                }
                for entry in with_variance
            ],
            "zero_variance_entries": len(entries) - len(with_variance),
        }

    # ========================================================================
    # COLLISIONS, AUDIT, EXPORT
    # ========================================================================

    async def check_for_collisions(self, plan_id: str) -> Dict[str, Any]:
        """Other active plans at the same location. Advisory only."""
        plan = await self._get_plan_row(plan_id)
        if not plan.location:
            return {"has_collisions": False, "colliding_counts": []}

        result = await self.db.execute(
            select(CycleCountPlan)
            .where(
                and_(
                    CycleCountPlan.location == plan.location,
                    CycleCountPlan.plan_id != plan_id,
                    CycleCountPlan.status.in_([
                        CycleCountStatus.SCHEDULED.value,
                        CycleCountStatus.IN_PROGRESS.value,
                    ]),
                )
            )
            .order_by(CycleCountPlan.scheduled_date)
        )
        colliding = [
            {
                "plan_id": other.plan_id,
                "plan_name": other.plan_name,
                "location": other.location,
                "status": other.status,
                "assigned_to": other.count_by,
            }
            for other in result.scalars().all()
        ]
        if colliding:
            logger.warning(f"Plan {plan_id} collides with {len(colliding)} active count(s) at {plan.location}")
        return {"has_collisions": bool(colliding), "colliding_counts": colliding}

    async def get_audit_log(self, plan_id: str) -> List[Dict[str, Any]]:
        """Chronological audit trail of a plan."""
        await self._get_plan_row(plan_id)

        logs, _total = await self.audit.get_audit_logs(
            entity_type=PLAN_ENTITY_TYPE,
            entity_id=plan_id,
            limit=1000,
            chronological=True,
        )
        return [
            {
                "timestamp": log.created_at,
                "action": log.action,
                "user_id": log.user_id,
                "details": {
                    "old_values": log.old_values,
                    "new_values": log.new_values,
                    "description": log.description,
                },
            }
            for log in logs
        ]

    async def export_csv(self, plan_id: str) -> str:
        """All entries of a plan as CSV, every field quoted."""
        await self._get_plan_row(plan_id)

        result = await self.db.execute(
            select(CycleCountEntry)
            .where(CycleCountEntry.plan_id == plan_id)
            .order_by(CycleCountEntry.sku, CycleCountEntry.bin_location)
        )

        output = io.StringIO()
        writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(CSV_HEADERS)
        for entry in result.scalars().all():
            writer.writerow([
                _csv_value(entry.sku),
                _csv_value(entry.bin_location),
                _csv_value(entry.system_quantity),
                _csv_value(entry.counted_quantity),
                _csv_value(entry.variance),
                f"{entry.variance_percent}%" if entry.variance_percent else "",
                _csv_value(entry.variance_status),
                _csv_value(entry.counted_at),
                _csv_value(entry.counted_by),
                _csv_value(entry.reviewed_at),
                _csv_value(entry.reviewed_by),
                _csv_value(entry.notes),
            ])
        return output.getvalue()

    # ========================================================================
    # TOLERANCES & KPIs
    # ========================================================================

    async def list_tolerances(self):
        return await self.tolerances.list_tolerances()

    async def get_kpis(
        self,
        location: Optional[str] = None,
        count_type: Optional[CountType] = None,
    ) -> Dict[str, Any]:
        """Overall cycle count KPIs, optionally filtered by location and count type."""
        plan_conditions = []
        if location:
            plan_conditions.append(CycleCountPlan.location == location)
        if count_type:
            plan_conditions.append(CycleCountPlan.count_type == CountType(count_type).value)

        status_query = select(CycleCountPlan.status, func.count()).group_by(CycleCountPlan.status)
        if plan_conditions:
            status_query = status_query.where(and_(*plan_conditions))
        by_status = {status: count for status, count in (await self.db.execute(status_query)).all()}

        total = sum(by_status.values())
        completed = by_status.get(CycleCountStatus.COMPLETED.value, 0)
        reconciled = by_status.get(CycleCountStatus.RECONCILED.value, 0)

        abs_percent = func.abs(CycleCountEntry.variance_percent)
        accuracy = case(
            (CycleCountEntry.variance == 0, 100),
            (abs_percent >= 100, 0),
            else_=100 - abs_percent,
        )
        entry_query = (
            select(
                func.count(CycleCountEntry.entry_id),
                func.sum(case(
                    (and_(
                        CycleCountEntry.variance_status == VarianceStatus.PENDING.value,
                        CycleCountEntry.variance != 0,
                    ), 1),
                    else_=0,
                )),
                func.sum(case((abs_percent > 10, 1), else_=0)),
                func.avg(accuracy),
            )
            .select_from(CycleCountEntry)
            .join(CycleCountPlan, CycleCountPlan.plan_id == CycleCountEntry.plan_id)
        )
        if plan_conditions:
            entry_query = entry_query.where(and_(*plan_conditions))
        total_entries, pending, high_variance, average_accuracy = (await self.db.execute(entry_query)).one()

        return {
            "total_counts": total,
            "completed_counts": completed + reconciled,
            "in_progress_counts": by_status.get(CycleCountStatus.IN_PROGRESS.value, 0),
            "scheduled_counts": by_status.get(CycleCountStatus.SCHEDULED.value, 0),
            "reconciled_counts": reconciled,
            "cancelled_counts": by_status.get(CycleCountStatus.CANCELLED.value, 0),
            "completion_rate": round((completed + reconciled) / total * 100, 2) if total else 0.0,
            "total_entries": total_entries or 0,
            "pending_variances": int(pending or 0),
            "high_variance_count": int(high_variance or 0),
            "average_accuracy": round(float(average_accuracy), 2) if average_accuracy is not None else 0.0,
        }

    @staticmethod
    def _plan_accuracy(entries: List[CycleCountEntry]) -> float:
        """100 when any entry matched exactly, else 100 minus the mean percent, floored at 0."""
        if not entries:
            return 0.0
        if any(entry.variance == 0 for entry in entries):
            return 100.0
        mean_percent = sum(abs(Decimal(entry.variance_percent)) for entry in entries) / len(entries)
        return float(100 - min(mean_percent, Decimal("100")))

    async def get_accuracy_trend(self, days: int = 30) -> List[Dict[str, Any]]:
        """Daily average accuracy of finished plans created in the last `days` days."""
        since = datetime.utcnow() - timedelta(days=days)
        result = await self.db.execute(
            select(CycleCountPlan)
            .options(selectinload(CycleCountPlan.count_entries))
            .where(
                and_(
                    CycleCountPlan.created_at >= since,
                    CycleCountPlan.status.in_([
                        CycleCountStatus.COMPLETED.value,
                        CycleCountStatus.RECONCILED.value,
                    ]),
                )
            )
            .order_by(CycleCountPlan.created_at)
            .execution_options(populate_existing=True)
        )

        by_day: Dict[str, List[float]] = {}
        for plan in result.scalars().all():
            period = plan.created_at.date().isoformat()
            by_day.setdefault(period, []).append(self._plan_accuracy(plan.count_entries))

        return [
            {
                "period": period,
                "accuracy": round(sum(values) / len(values), 2),
                "total_counts": len(values),
            }
            for period, values in sorted(by_day.items())
        ]

    async def get_top_discrepancy_skus(self, limit: int = 10, days: int = 30) -> List[Dict[str, Any]]:
        """SKUs with the most nonzero-variance entries counted in the last `days` days."""
        since = datetime.utcnow() - timedelta(days=days)
        variance_count = func.count(CycleCountEntry.entry_id)
        query = (
            select(
                CycleCountEntry.sku,
                variance_count,
                func.sum(func.abs(CycleCountEntry.variance)),
                func.avg(func.abs(CycleCountEntry.variance_percent)),
            )
            .where(
                and_(
                    CycleCountEntry.counted_at >= since,
                    CycleCountEntry.variance != 0,
                )
            )
            .group_by(CycleCountEntry.sku)
            .order_by(variance_count.desc(), CycleCountEntry.sku)
            .limit(limit)
        )
        rows = (await self.db.execute(query)).all()

        return [
            {
                "sku": sku,
                "variance_count": count,
                "total_variance": Decimal(str(total_variance or 0)),
                "average_variance_percent": round(float(average_percent or 0), 2),
            }
            for sku, count, total_variance, average_percent in rows
        ]
