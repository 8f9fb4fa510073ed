"""Tolerance resolution: SKU rule, then zone rule, then the named default."""
from decimal import Decimal

import pytest

from app.core.exceptions import NotFoundError
from app.models.cycle_count import CycleCountTolerance
from app.services.tolerance_resolver import (
    DEFAULT_TOLERANCE_NAME,
    FALLBACK_TOLERANCE,
    ToleranceResolver,
    resolve_tolerance,
    zone_of,
)
from tests.factories import add_tolerance, seed_defaults


def _row(tolerance_id, auto, sku=None, zone=None, name=None, is_active=True):
    return CycleCountTolerance(
        tolerance_id=tolerance_id,
        tolerance_name=name or tolerance_id,
        sku=sku,
        location_zone=zone,
        allowable_variance_percent=Decimal("10"),
        allowable_variance_amount=Decimal("5"),
        auto_adjust_threshold=Decimal(auto),
        requires_approval_threshold=Decimal("10"),
        is_active=is_active,
    )


class TestZoneOf:

    def test_prefix_before_first_dash(self):
        assert zone_of("A-01-03") == "A"

    def test_no_dash(self):
        assert zone_of("DOCK") == "DOCK"

    def test_empty(self):
        assert zone_of(None) is None
        assert zone_of("") is None


class TestResolveTolerance:
    """Pure rule ordering, no database."""

    def test_sku_rule_wins(self):
        rows = [
            _row("DEF", "1", name=DEFAULT_TOLERANCE_NAME),
            _row("ZONE", "2", zone="A"),
            _row("SKU", "3", sku="SKU-1"),
        ]
        policy = resolve_tolerance(rows, "SKU-1", "A-01")
        assert policy.tolerance_id == "SKU"
        assert policy.auto_adjust_threshold == Decimal("3")

    def test_zone_rule_before_default(self):
        rows = [
            _row("DEF", "1", name=DEFAULT_TOLERANCE_NAME),
            _row("ZONE", "2", zone="A"),
        ]
        assert resolve_tolerance(rows, "SKU-1", "A-01").tolerance_id == "ZONE"

    def test_zone_rule_needs_matching_zone(self):
        rows = [
            _row("DEF", "1", name=DEFAULT_TOLERANCE_NAME),
            _row("ZONE", "2", zone="B"),
        ]
        assert resolve_tolerance(rows, "SKU-1", "A-01").tolerance_id == "DEF"

    def test_default_rule(self):
        rows = [_row("DEF", "1", name=DEFAULT_TOLERANCE_NAME)]
        assert resolve_tolerance(rows, "SKU-1", None).tolerance_id == "DEF"

    def test_inactive_rows_ignored(self):
        rows = [
            _row("SKU", "3", sku="SKU-1", is_active=False),
            _row("DEF", "1", name=DEFAULT_TOLERANCE_NAME),
        ]
        assert resolve_tolerance(rows, "SKU-1", "A-01").tolerance_id == "DEF"

    def test_fallback_when_nothing_matches(self):
        policy = resolve_tolerance([], "SKU-1", "A-01")
        assert policy is FALLBACK_TOLERANCE
        assert policy.auto_adjust_threshold == Decimal("5")
        assert policy.allowable_variance_percent == Decimal("10")


class TestToleranceResolver:
    """Resolution and management against the database."""

    async def test_fallback_on_empty_table(self, db):
        policy = await ToleranceResolver(db).get_applicable_tolerance("SKU-1", "A-01")
        assert policy == FALLBACK_TOLERANCE

    async def test_seeded_default(self, db):
        await seed_defaults(db)
        policy = await ToleranceResolver(db).get_applicable_tolerance("SKU-1", "A-01")
        assert policy.tolerance_id == "TOL-DEFAULT"
        assert policy.auto_adjust_threshold == Decimal("0.5")

    async def test_sku_and_zone_rules(self, db):
        await seed_defaults(db)
        await add_tolerance(db, "TOL-ZONE-B", auto="2", zone="B")
        await add_tolerance(db, "TOL-SKU-9", auto="4", sku="SKU-9")
        resolver = ToleranceResolver(db)

        assert (await resolver.get_applicable_tolerance("SKU-9", "B-01")).tolerance_id == "TOL-SKU-9"
        assert (await resolver.get_applicable_tolerance("SKU-1", "B-01")).tolerance_id == "TOL-ZONE-B"
        assert (await resolver.get_applicable_tolerance("SKU-1", "C-01")).tolerance_id == "TOL-DEFAULT"

    async def test_seed_is_idempotent(self, db):
        assert await seed_defaults(db) == 4
        assert await seed_defaults(db) == 0

    async def test_list_orders_by_category_then_sku(self, db):
        await seed_defaults(db)
        await add_tolerance(db, "TOL-SKU-1", auto="4", sku="SKU-1")
        await add_tolerance(db, "TOL-OFF", auto="4", sku="SKU-0", is_active=False)

        rows = await ToleranceResolver(db).list_tolerances()
        ids = [row.tolerance_id for row in rows]
        assert ids[:3] == ["TOL-ABC-A", "TOL-ABC-B", "TOL-ABC-C"]
        assert "TOL-OFF" not in ids
        assert set(ids[3:]) == {"TOL-SKU-1", "TOL-DEFAULT"}

    async def test_create_and_get(self, db):
        resolver = ToleranceResolver(db)
        created = await resolver.create_tolerance({
            "tolerance_name": "Fragile",
            "abc_category": "A",
            "location_zone": "F",
            "allowable_variance_percent": Decimal("1"),
            "allowable_variance_amount": Decimal("1"),
            "auto_adjust_threshold": Decimal("0.5"),
            "requires_approval_threshold": Decimal("1"),
        })
        assert created.tolerance_id.startswith("TOL-")
        assert created.abc_category == "A"

        fetched = await resolver.get_tolerance(created.tolerance_id)
        assert fetched.tolerance_name == "Fragile"

    async def test_get_unknown(self, db):
        with pytest.raises(NotFoundError):
            await ToleranceResolver(db).get_tolerance("TOL-NOPE")
