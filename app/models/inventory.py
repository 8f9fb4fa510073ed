"""Inventory models: stock per bin and the append-only transaction ledger."""
from enum import Enum
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Index
from sqlalchemy import UniqueConstraint

from app.database import Base
from app.db_types import QuantityType


class TransactionType(str, Enum):
    """Inventory transaction type enum."""
    RECEIPT = "RECEIPT"  # Goods received into a bin
    PICK = "PICK"  # Picked for an order
    ADJUSTMENT = "ADJUSTMENT"  # Count correction
    RETURN = "RETURN"  # Customer return put back
    TRANSFER = "TRANSFER"  # Bin to bin move


class InventoryUnit(Base):
    """On-hand stock of one SKU in one bin."""

    __tablename__ = "inventory_units"
    __table_args__ = (
        UniqueConstraint("sku", "bin_location", name="uq_inventory_unit_sku_bin"),
    )

    unit_id = Column(String(50), primary_key=True)
    sku = Column(String(100), nullable=False, index=True)
    bin_location = Column(String(100), nullable=False, index=True)

    quantity = Column(QuantityType, nullable=False, default=0)
    reserved = Column(QuantityType, nullable=False, default=0)

    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def available(self):
        return (self.quantity or 0) - (self.reserved or 0)

    def __repr__(self):
        return f"<InventoryUnit {self.sku}@{self.bin_location} qty={self.quantity}>"


class InventoryTransaction(Base):
    """
    Append-only inventory ledger.

    quantity is signed: positive adds stock, negative removes it.
    """

    __tablename__ = "inventory_transactions"
    __table_args__ = (
        Index("idx_inv_txn_sku_type", "sku", "type"),
        Index("idx_inv_txn_timestamp", "timestamp"),
    )

    transaction_id = Column(String(50), primary_key=True)
    type = Column(
        String(20), nullable=False,
        comment="RECEIPT, PICK, ADJUSTMENT, RETURN, TRANSFER"
    )
    sku = Column(String(100), nullable=False)
    quantity = Column(QuantityType, nullable=False)
    bin_location = Column(String(100))
    user_id = Column(String(50))
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow)
    reason = Column(Text)

    def __repr__(self):
        return f"<InventoryTransaction {self.transaction_id} {self.type} {self.sku} {self.quantity}>"
