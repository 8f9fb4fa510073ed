from datetime import datetime
from enum import Enum
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import QuantityType


class OrderStatus(str, Enum):
    """Order status enumeration - warehouse fulfilment flow."""
    PENDING = "PENDING"       # Received, not yet released to the floor
    PICKING = "PICKING"       # Currently being picked
    PICKED = "PICKED"         # All items picked
    PACKING = "PACKING"       # Being packed
    PACKED = "PACKED"         # Packing complete
    SHIPPED = "SHIPPED"       # Handed to carrier
    CANCELLED = "CANCELLED"
    BACKORDER = "BACKORDER"


class OrderPriority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class Order(Base):
    """Customer order, as far as warehouse fulfilment needs it."""
    __tablename__ = "orders"
    __table_args__ = (
        Index("idx_orders_status", "status"),
    )

    order_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default=OrderStatus.PENDING.value)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default=OrderPriority.NORMAL.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    items: Mapped[List["OrderItem"]] = relationship(back_populates="order")

    def __repr__(self) -> str:
        return f"<Order(order_id='{self.order_id}', status='{self.status}')>"


class OrderItem(Base):
    """Order line item with the bin it is picked from."""
    __tablename__ = "order_items"

    order_item_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    order_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("orders.order_id", ondelete="CASCADE"), nullable=False, index=True
    )
    sku: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    bin_location: Mapped[Optional[str]] = mapped_column(String(100))
    quantity: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)

    order: Mapped["Order"] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<OrderItem(order_id='{self.order_id}', sku='{self.sku}')>"
