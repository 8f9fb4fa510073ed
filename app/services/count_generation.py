"""
Entry generation strategies for cycle count plans.

Each count type maps to an async generator ``(db, plan) -> List[StockSnapshot]``
in ENTRY_GENERATORS. Generators only read; CycleCountService turns the
snapshots into PENDING entries when a plan is started.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Awaitable, Callable, Dict, List, Optional

from sqlalchemy import select, and_, or_, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.cycle_count import CountType, CycleCountPlan, CycleCountTolerance, ABCCategory
from app.models.inventory import InventoryUnit, InventoryTransaction, TransactionType
from app.models.order import Order, OrderItem, OrderStatus
from app.services.tolerance_resolver import zone_of


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockSnapshot:
    """System quantity of one SKU in one bin at generation time."""
    sku: str
    bin_location: str
    quantity: Decimal


EntryGenerator = Callable[[AsyncSession, CycleCountPlan], Awaitable[List[StockSnapshot]]]

SHIPPING_ORDER_STATUSES = [
    OrderStatus.PICKING.value,
    OrderStatus.PICKED.value,
    OrderStatus.PACKED.value,
]

GENERATION_NOTES: Dict[CountType, str] = {
    CountType.BLANKET: "BLANKET count: Entry auto-generated, awaiting physical count",
    CountType.ABC: "ABC count: High-value item (Category A), awaiting physical count",
    CountType.SPOT_CHECK: "SPOT CHECK: Random sample verification",
    CountType.RECEIVING: "RECEIVING count: Verifying recently received items",
    CountType.SHIPPING: "SHIPPING count: Verifying items before shipment",
    CountType.AD_HOC: "AD_HOC count: Entry for specified SKU, awaiting physical count",
}


def _snapshots(rows) -> List[StockSnapshot]:
    return [
        StockSnapshot(sku=row.sku, bin_location=row.bin_location, quantity=Decimal(row.quantity or 0))
        for row in rows
    ]


def _in_zone(column, zone: str):
    """Bin location column lies in `zone` ('A' matches 'A' and 'A-...')."""
    return or_(column == zone, column.like(f"{zone}-%"))


def parse_sku_list(raw: Optional[str]) -> List[str]:
    """Split a comma-separated SKU list: trimmed, empties dropped, de-duplicated, order kept."""
    if not raw:
        return []
    skus: List[str] = []
    for part in raw.split(","):
        sku = part.strip()
        if sku and sku not in skus:
            skus.append(sku)
    return skus


def spot_check_sample_size(eligible: int) -> int:
    """ceil(eligible * sample%) clamped to [min, max]."""
    size = math.ceil(eligible * settings.SPOT_CHECK_SAMPLE_PERCENT / 100)
    return max(settings.SPOT_CHECK_MIN_SAMPLE, min(settings.SPOT_CHECK_MAX_SAMPLE, size))


# ==================== STRATEGIES ====================

async def generate_blanket(db: AsyncSession, plan: CycleCountPlan) -> List[StockSnapshot]:
    """Every SKU with stock at the plan location."""
    if not plan.location:
        logger.warning(f"BLANKET count {plan.plan_id} has no location; no entries generated")
        return []

    query = (
        select(InventoryUnit.sku, InventoryUnit.bin_location, InventoryUnit.quantity)
        .where(
            and_(
                InventoryUnit.bin_location == plan.location,
                InventoryUnit.quantity > 0,
            )
        )
        .order_by(InventoryUnit.sku)
    )
    result = await db.execute(query)
    snapshots = _snapshots(result.all())
    logger.info(f"BLANKET count: Found {len(snapshots)} SKUs in location {plan.location}")
    return snapshots


async def generate_abc(db: AsyncSession, plan: CycleCountPlan) -> List[StockSnapshot]:
    """Category A SKUs (optionally narrowed to the plan zone) plus the plan's named SKU."""
    zone = zone_of(plan.location)

    category_a = and_(
        CycleCountTolerance.abc_category == ABCCategory.A.value,
        CycleCountTolerance.is_active == True,  # noqa: E712
    )
    if zone:
        category_a = and_(
            category_a,
            or_(
                CycleCountTolerance.location_zone == zone,
                CycleCountTolerance.location_zone.is_(None),
            ),
        )

    qualifies = category_a
    if plan.sku:
        qualifies = or_(category_a, InventoryUnit.sku == plan.sku.strip())

    conditions = [qualifies, InventoryUnit.quantity > 0]
    if zone:
        conditions.append(_in_zone(InventoryUnit.bin_location, zone))

    query = (
        select(InventoryUnit.sku, InventoryUnit.bin_location, InventoryUnit.quantity)
        .outerjoin(CycleCountTolerance, CycleCountTolerance.sku == InventoryUnit.sku)
        .where(and_(*conditions))
        .distinct()
        .order_by(InventoryUnit.sku, InventoryUnit.bin_location)
    )
    result = await db.execute(query)
    snapshots = _snapshots(result.all())
    logger.info(f"ABC count: Found {len(snapshots)} ABC category A items")
    return snapshots


async def generate_spot_check(db: AsyncSession, plan: CycleCountPlan) -> List[StockSnapshot]:
    """Random sample of stocked bins."""
    conditions = [InventoryUnit.quantity > 0]
    if plan.location:
        conditions.append(InventoryUnit.bin_location == plan.location)

    total = await db.scalar(
        select(func.count()).select_from(InventoryUnit).where(and_(*conditions))
    ) or 0
    if total == 0:
        logger.info(f"SPOT_CHECK count: No eligible items for {plan.plan_id}")
        return []

    sample_size = spot_check_sample_size(total)
    query = (
        select(InventoryUnit.sku, InventoryUnit.bin_location, InventoryUnit.quantity)
        .where(and_(*conditions))
        .order_by(func.random())
        .limit(sample_size)
    )
    result = await db.execute(query)
    snapshots = _snapshots(result.all())
    logger.info(f"SPOT_CHECK count: Sampling {len(snapshots)} items from {total} total")
    return snapshots


async def generate_receiving(db: AsyncSession, plan: CycleCountPlan) -> List[StockSnapshot]:
    """SKUs received within the lookback window, at every stocked bin."""
    since = datetime.utcnow() - timedelta(days=settings.RECEIVING_LOOKBACK_DAYS)

    conditions = [
        InventoryTransaction.type == TransactionType.RECEIPT.value,
        InventoryTransaction.timestamp > since,
        InventoryUnit.quantity > 0,
    ]
    if plan.location:
        conditions.append(InventoryUnit.bin_location == plan.location)

    query = (
        select(InventoryUnit.sku, InventoryUnit.bin_location, InventoryUnit.quantity)
        .join(InventoryTransaction, InventoryTransaction.sku == InventoryUnit.sku)
        .where(and_(*conditions))
        .distinct()
        .order_by(InventoryUnit.sku, InventoryUnit.bin_location)
    )
    result = await db.execute(query)
    snapshots = _snapshots(result.all())
    logger.info(f"RECEIVING count: Found {len(snapshots)} items from recent receipts")
    return snapshots


async def generate_shipping(db: AsyncSession, plan: CycleCountPlan) -> List[StockSnapshot]:
    """SKUs on orders being picked or packed, at the bin they are picked from."""
    conditions = [
        Order.status.in_(SHIPPING_ORDER_STATUSES),
        OrderItem.bin_location.isnot(None),
    ]
    if plan.location:
        conditions.append(OrderItem.bin_location == plan.location)

    query = (
        select(OrderItem.sku, OrderItem.bin_location, InventoryUnit.quantity)
        .join(Order, Order.order_id == OrderItem.order_id)
        .join(
            InventoryUnit,
            and_(
                InventoryUnit.sku == OrderItem.sku,
                InventoryUnit.bin_location == OrderItem.bin_location,
            ),
        )
        .where(and_(*conditions))
        .distinct()
        .order_by(OrderItem.sku, OrderItem.bin_location)
    )
    result = await db.execute(query)
    snapshots = _snapshots(result.all())
    logger.info(f"SHIPPING count: Found {len(snapshots)} unique SKUs in orders to ship")
    return snapshots


async def generate_ad_hoc(db: AsyncSession, plan: CycleCountPlan) -> List[StockSnapshot]:
    """Explicit comma-separated SKU list, optionally limited to the plan location."""
    skus = parse_sku_list(plan.sku)
    if not skus:
        logger.warning(f"AD_HOC count {plan.plan_id}: No valid SKUs provided")
        return []

    conditions = [InventoryUnit.sku.in_(skus), InventoryUnit.quantity > 0]
    if plan.location:
        conditions.append(InventoryUnit.bin_location == plan.location)

    query = (
        select(InventoryUnit.sku, InventoryUnit.bin_location, InventoryUnit.quantity)
        .where(and_(*conditions))
        .order_by(InventoryUnit.bin_location)
    )
    result = await db.execute(query)
    position = {sku: index for index, sku in enumerate(skus)}
    snapshots = sorted(_snapshots(result.all()), key=lambda s: position[s.sku])
    logger.info(f"AD_HOC count: Found {len(snapshots)} inventory records for {len(skus)} SKU(s)")
    return snapshots


ENTRY_GENERATORS: Dict[CountType, EntryGenerator] = {
    CountType.BLANKET: generate_blanket,
    CountType.ABC: generate_abc,
    CountType.SPOT_CHECK: generate_spot_check,
    CountType.RECEIVING: generate_receiving,
    CountType.SHIPPING: generate_shipping,
    CountType.AD_HOC: generate_ad_hoc,
}


async def generate_snapshots(db: AsyncSession, plan: CycleCountPlan) -> List[StockSnapshot]:
    """Run the strategy for the plan's count type."""
    generator = ENTRY_GENERATORS[CountType(plan.count_type)]
    return await generator(db, plan)
