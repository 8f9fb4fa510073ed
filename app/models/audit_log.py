from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, Text, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import JSONType


class AuditLog(Base):
    """
    Audit log model for tracking cycle count lifecycle changes.
    Records: plan creation, start, completion, reconciliation, cancellation.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Who performed the action
    user_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Action details
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    # Actions: CREATE, START, COMPLETE, RECONCILE, CANCEL

    # Entity being modified
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    # Entity types: CYCLE_COUNT_PLAN

    entity_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Change tracking
    old_values: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    new_values: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    # Additional context
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamp
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
        index=True
    )

    def __repr__(self) -> str:
        return f"<AuditLog(action='{self.action}', entity='{self.entity_type}', id='{self.entity_id}')>"
