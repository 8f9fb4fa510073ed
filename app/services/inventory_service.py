"""Inventory adjustment service: the only path by which cycle counts change stock."""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.identifiers import INVENTORY_UNIT_PREFIX, TRANSACTION_PREFIX, generate_id
from app.models.inventory import InventoryUnit, InventoryTransaction, TransactionType


logger = logging.getLogger(__name__)


class InventoryAdjustmentService:
    """
    Stock reads and corrections for (sku, bin_location) pairs.

    Methods never commit; they run inside the caller's transaction.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_unit(self, sku: str, bin_location: str) -> Optional[InventoryUnit]:
        query = select(InventoryUnit).where(
            and_(
                InventoryUnit.sku == sku,
                InventoryUnit.bin_location == bin_location,
            )
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_quantity(self, sku: str, bin_location: str) -> Optional[Decimal]:
        """On-hand quantity, or None if there is no stock row."""
        unit = await self._get_unit(sku, bin_location)
        if unit is None:
            return None
        return Decimal(unit.quantity)

    async def exists(self, sku: str, bin_location: str) -> bool:
        return await self._get_unit(sku, bin_location) is not None

    async def create_adjustment_transaction(
        self,
        sku: str,
        bin_location: str,
        quantity: Decimal,
        reason: str,
        user_id: str,
    ) -> str:
        """Append an ADJUSTMENT ledger row with a signed quantity; returns its id."""
        transaction = InventoryTransaction(
            transaction_id=generate_id(TRANSACTION_PREFIX),
            type=TransactionType.ADJUSTMENT.value,
            sku=sku,
            quantity=quantity,
            bin_location=bin_location,
            user_id=user_id,
            timestamp=datetime.utcnow(),
            reason=reason,
        )
        self.db.add(transaction)
        await self.db.flush()
        return transaction.transaction_id

    async def adjust_up(self, sku: str, bin_location: str, quantity: Decimal) -> None:
        """Increase stock, creating the row if absent."""
        unit = await self._get_unit(sku, bin_location)
        if unit:
            unit.quantity = Decimal(unit.quantity) + quantity
            unit.last_updated = datetime.utcnow()
        else:
            unit = InventoryUnit(
                unit_id=generate_id(INVENTORY_UNIT_PREFIX),
                sku=sku,
                bin_location=bin_location,
                quantity=quantity,
                reserved=Decimal("0"),
                last_updated=datetime.utcnow(),
            )
            self.db.add(unit)
        await self.db.flush()

    async def adjust_down(self, sku: str, bin_location: str, quantity: Decimal) -> None:
        """Decrease stock, floored at zero. A missing row is left missing."""
        unit = await self._get_unit(sku, bin_location)
        if not unit:
            logger.warning(f"No inventory row for {sku}@{bin_location}; nothing to decrement")
            return
        unit.quantity = max(Decimal("0"), Decimal(unit.quantity) - quantity)
        unit.last_updated = datetime.utcnow()
        await self.db.flush()

    async def apply_variance(
        self,
        sku: str,
        bin_location: str,
        variance: Decimal,
        reason: str,
        user_id: str,
    ) -> Optional[str]:
        """
        Record the ledger row and move stock by `variance`. Returns the transaction id.

        A decrease against a missing stock row changes nothing, so no ledger
        row is written and None is returned.
        """
        variance = Decimal(variance)
        if variance < 0 and not await self.exists(sku, bin_location):
            logger.warning(
                f"No inventory row for {sku}@{bin_location}; variance {variance} not applied, "
                f"no adjustment recorded"
            )
            return None

        transaction_id = await self.create_adjustment_transaction(
            sku, bin_location, variance, reason, user_id
        )
        if variance > 0:
            await self.adjust_up(sku, bin_location, variance)
        elif variance < 0:
            await self.adjust_down(sku, bin_location, abs(variance))

        logger.info(f"Adjusted {sku}@{bin_location} by {variance} ({transaction_id})")
        return transaction_id
