from typing import Optional, Dict, Any, List
from datetime import datetime

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit_log import AuditLog


class AuditService:
    """
    Audit service for logging cycle count lifecycle changes.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[str] = None,
        user_id: Optional[str] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
    ) -> AuditLog:
        """
        Create an audit log entry inside the caller's transaction.

        Args:
            action: The action performed (CREATE, START, COMPLETE, etc.)
            entity_type: Type of entity (CYCLE_COUNT_PLAN)
            entity_id: ID of the affected entity
            user_id: ID of the user performing the action
            old_values: Previous values (for updates)
            new_values: New values (for creates/updates)
            description: Human-readable description

        Returns:
            The created AuditLog entry
        """
        audit_log = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            old_values=old_values,
            new_values=new_values,
            description=description,
            created_at=datetime.utcnow(),
        )
        self.db.add(audit_log)
        await self.db.flush()
        return audit_log

    async def log_status_change(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        old_status: str,
        new_status: str,
        user_id: Optional[str] = None,
        description: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        """Log a status transition."""
        new_values = {"status": new_status}
        if extra:
            new_values.update(extra)
        return await self.log(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            old_values={"status": old_status},
            new_values=new_values,
            description=description or f"Status changed from {old_status} to {new_status}",
        )

    async def get_audit_logs(
        self,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        user_id: Optional[str] = None,
        action: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 50,
        chronological: bool = False,
    ) -> tuple[List[AuditLog], int]:
        """
        Get audit logs with filtering. Newest first unless chronological.
        """
        if chronological:
            stmt = select(AuditLog).order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
        else:
            stmt = select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())

        if entity_type:
            stmt = stmt.where(AuditLog.entity_type == entity_type)
        if entity_id:
            stmt = stmt.where(AuditLog.entity_id == entity_id)
        if user_id:
            stmt = stmt.where(AuditLog.user_id == user_id)
        if action:
            stmt = stmt.where(AuditLog.action == action)
        if start_date:
            stmt = stmt.where(AuditLog.created_at >= start_date)
        if end_date:
            stmt = stmt.where(AuditLog.created_at <= end_date)

        # Count total
        count_stmt = select(func.count()).select_from(stmt.subquery())
        total = (await self.db.execute(count_stmt)).scalar()

        # Get paginated results
        stmt = stmt.offset(skip).limit(limit)
        result = await self.db.execute(stmt)
        logs = result.scalars().all()

        return list(logs), total
