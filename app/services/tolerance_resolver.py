"""
Tolerance resolution for cycle count variances.

Resolution order for a (sku, bin_location) pair:
1. Active tolerance scoped to the SKU
2. Active tolerance scoped to the bin's zone (prefix before the first '-')
3. Active row named "Default Tolerance"
4. FALLBACK_TOLERANCE
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.core.identifiers import TOLERANCE_PREFIX, generate_id
from app.models.cycle_count import ABCCategory, CycleCountTolerance


logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_NAME = "Default Tolerance"


@dataclass(frozen=True)
class TolerancePolicy:
    """Thresholds applied to one count entry."""
    tolerance_name: str
    allowable_variance_percent: Decimal
    allowable_variance_amount: Decimal
    auto_adjust_threshold: Decimal
    requires_approval_threshold: Decimal
    tolerance_id: Optional[str] = None

    @classmethod
    def from_model(cls, row: CycleCountTolerance) -> "TolerancePolicy":
        return cls(
            tolerance_id=row.tolerance_id,
            tolerance_name=row.tolerance_name,
            allowable_variance_percent=Decimal(row.allowable_variance_percent),
            allowable_variance_amount=Decimal(row.allowable_variance_amount),
            auto_adjust_threshold=Decimal(row.auto_adjust_threshold),
            requires_approval_threshold=Decimal(row.requires_approval_threshold),
        )


# Used when no tolerance row matches at all
FALLBACK_TOLERANCE = TolerancePolicy(
    tolerance_name="Fallback",
    allowable_variance_percent=Decimal("10"),
    allowable_variance_amount=Decimal("5"),
    auto_adjust_threshold=Decimal("5"),
    requires_approval_threshold=Decimal("10"),
)


def zone_of(bin_location: Optional[str]) -> Optional[str]:
    """Zone of a bin location, e.g. 'A-01-03' -> 'A'."""
    if not bin_location:
        return None
    return bin_location.split("-")[0]


# Ordered (rule name, predicate(row, sku, zone)) pairs; first match wins
TOLERANCE_RULES: List[Tuple[str, Callable[[CycleCountTolerance, str, Optional[str]], bool]]] = [
    ("sku", lambda row, sku, zone: row.sku is not None and row.sku == sku),
    ("zone", lambda row, sku, zone: zone is not None and row.location_zone == zone),
    ("default", lambda row, sku, zone: row.tolerance_name == DEFAULT_TOLERANCE_NAME),
]


def resolve_tolerance(
    candidates: Iterable[CycleCountTolerance],
    sku: str,
    bin_location: Optional[str],
) -> TolerancePolicy:
    """Pick the policy for (sku, bin_location) from candidate rows. Never raises."""
    rows = [row for row in candidates if row.is_active is not False]
    zone = zone_of(bin_location)
    for _rule, matches in TOLERANCE_RULES:
        for row in rows:
            if matches(row, sku, zone):
                return TolerancePolicy.from_model(row)
    return FALLBACK_TOLERANCE


class ToleranceResolver:
    """Loads tolerance rows and resolves the policy for a count entry."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_applicable_tolerance(self, sku: str, bin_location: Optional[str]) -> TolerancePolicy:
        conditions = [
            CycleCountTolerance.sku == sku,
            CycleCountTolerance.tolerance_name == DEFAULT_TOLERANCE_NAME,
        ]
        zone = zone_of(bin_location)
        if zone:
            conditions.append(CycleCountTolerance.location_zone == zone)

        query = (
            select(CycleCountTolerance)
            .where(CycleCountTolerance.is_active == True)  # noqa: E712
            .where(or_(*conditions))
            .order_by(CycleCountTolerance.tolerance_id)
        )
        result = await self.db.execute(query)
        policy = resolve_tolerance(result.scalars().all(), sku, bin_location)
        logger.debug(f"Tolerance for {sku}@{bin_location}: {policy.tolerance_name}")
        return policy

    async def list_tolerances(self) -> Sequence[CycleCountTolerance]:
        """Active tolerance rows ordered by ABC category then SKU."""
        query = (
            select(CycleCountTolerance)
            .where(CycleCountTolerance.is_active == True)  # noqa: E712
            .order_by(
                CycleCountTolerance.abc_category.is_(None),
                CycleCountTolerance.abc_category,
                CycleCountTolerance.sku.is_(None),
                CycleCountTolerance.sku,
            )
        )
        result = await self.db.execute(query)
        return result.scalars().all()

    async def get_tolerance(self, tolerance_id: str) -> CycleCountTolerance:
        tolerance = await self.db.get(CycleCountTolerance, tolerance_id)
        if not tolerance:
            raise NotFoundError("Tolerance", tolerance_id)
        return tolerance

    async def create_tolerance(self, data: dict) -> CycleCountTolerance:
        tolerance = CycleCountTolerance(
            tolerance_id=data.get("tolerance_id") or generate_id(TOLERANCE_PREFIX),
            tolerance_name=data["tolerance_name"],
            sku=data.get("sku"),
            abc_category=ABCCategory(data["abc_category"]).value if data.get("abc_category") else None,
            location_zone=data.get("location_zone"),
            allowable_variance_percent=data["allowable_variance_percent"],
            allowable_variance_amount=data["allowable_variance_amount"],
            auto_adjust_threshold=data["auto_adjust_threshold"],
            requires_approval_threshold=data["requires_approval_threshold"],
            is_active=data.get("is_active", True),
        )
        self.db.add(tolerance)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.exception(f"Failed to create tolerance {tolerance.tolerance_name}")
            raise
        await self.db.refresh(tolerance)
        logger.info(f"Created tolerance {tolerance.tolerance_id} ({tolerance.tolerance_name})")
        return tolerance
