"""Entry generation strategies, one per count type."""
from decimal import Decimal

import pytest

from app.models.cycle_count import CountType, CycleCountPlan
from app.models.order import OrderStatus
from app.services.count_generation import (
    ENTRY_GENERATORS,
    generate_abc,
    generate_ad_hoc,
    generate_blanket,
    generate_receiving,
    generate_shipping,
    generate_snapshots,
    generate_spot_check,
    parse_sku_list,
    spot_check_sample_size,
)
from tests.factories import add_order, add_receipt, add_stock, add_tolerance


def _plan(count_type, location=None, sku=None):
    return CycleCountPlan(
        plan_id="CCP-TEST",
        plan_name="Test",
        count_type=count_type.value,
        location=location,
        sku=sku,
        count_by="counter-1",
        created_by="sup-1",
    )


def _keys(snapshots):
    return [(s.sku, s.bin_location) for s in snapshots]


class TestHelpers:

    def test_every_count_type_has_a_generator(self):
        assert set(ENTRY_GENERATORS) == set(CountType)

    def test_parse_sku_list(self):
        assert parse_sku_list(" SKU-2, SKU-1 ,,SKU-2") == ["SKU-2", "SKU-1"]
        assert parse_sku_list(None) == []
        assert parse_sku_list(" , ") == []

    @pytest.mark.parametrize("eligible,expected", [(0, 5), (3, 5), (40, 6), (100, 15), (1000, 50)])
    def test_spot_check_sample_size(self, eligible, expected):
        assert spot_check_sample_size(eligible) == expected


class TestBlanket:

    async def test_stock_at_location(self, db):
        await add_stock(db, "SKU-2", "A-01", 4)
        await add_stock(db, "SKU-1", "A-01", 6)
        await add_stock(db, "SKU-3", "A-01", 0)
        await add_stock(db, "SKU-1", "A-02", 9)

        snapshots = await generate_blanket(db, _plan(CountType.BLANKET, location="A-01"))

        assert _keys(snapshots) == [("SKU-1", "A-01"), ("SKU-2", "A-01")]
        assert snapshots[0].quantity == Decimal("6")

    async def test_no_location_generates_nothing(self, db):
        await add_stock(db, "SKU-1", "A-01", 6)
        assert await generate_blanket(db, _plan(CountType.BLANKET)) == []


class TestABC:

    async def _stock(self, db):
        await add_tolerance(db, "TOL-A", auto="1", sku="SKU-A", abc_category="A")
        await add_tolerance(db, "TOL-B", auto="1", sku="SKU-B", abc_category="B")
        await add_tolerance(db, "TOL-Z", auto="1", sku="SKU-Z", abc_category="A", zone="B")
        await add_stock(db, "SKU-A", "A-01", 5)
        await add_stock(db, "SKU-A", "B-01", 3)
        await add_stock(db, "SKU-B", "A-02", 4)
        await add_stock(db, "SKU-C", "A-03", 2)
        await add_stock(db, "SKU-Z", "A-04", 1)

    async def test_all_category_a(self, db):
        await self._stock(db)
        snapshots = await generate_abc(db, _plan(CountType.ABC))
        assert _keys(snapshots) == [("SKU-A", "A-01"), ("SKU-A", "B-01"), ("SKU-Z", "A-04")]

    async def test_narrowed_to_zone_plus_named_sku(self, db):
        await self._stock(db)
        snapshots = await generate_abc(db, _plan(CountType.ABC, location="A-01", sku="SKU-C"))
        assert _keys(snapshots) == [("SKU-A", "A-01"), ("SKU-C", "A-03")]

    async def test_inactive_rule_ignored(self, db):
        await add_tolerance(db, "TOL-A", auto="1", sku="SKU-A", abc_category="A", is_active=False)
        await add_stock(db, "SKU-A", "A-01", 5)
        assert await generate_abc(db, _plan(CountType.ABC)) == []


class TestSpotCheck:

    async def test_sample_is_bounded(self, db):
        for index in range(40):
            await add_stock(db, f"SKU-{index:02d}", f"S-{index:02d}", 1)

        snapshots = await generate_spot_check(db, _plan(CountType.SPOT_CHECK))

        assert len(snapshots) == 6
        assert len(set(_keys(snapshots))) == 6

    async def test_small_population_returns_all(self, db):
        await add_stock(db, "SKU-1", "S-01", 1)
        await add_stock(db, "SKU-2", "S-02", 1)
        await add_stock(db, "SKU-3", "S-03", 0)

        snapshots = await generate_spot_check(db, _plan(CountType.SPOT_CHECK))

        assert sorted(_keys(snapshots)) == [("SKU-1", "S-01"), ("SKU-2", "S-02")]

    async def test_location_filter(self, db):
        await add_stock(db, "SKU-1", "S-01", 1)
        await add_stock(db, "SKU-2", "S-02", 1)

        snapshots = await generate_spot_check(db, _plan(CountType.SPOT_CHECK, location="S-02"))

        assert _keys(snapshots) == [("SKU-2", "S-02")]

    async def test_empty(self, db):
        assert await generate_spot_check(db, _plan(CountType.SPOT_CHECK)) == []


class TestReceiving:

    async def test_recent_receipts_only(self, db):
        await add_receipt(db, "SKU-R", "DOCK", 10, days_ago=1)
        await add_receipt(db, "SKU-R", "DOCK", 5, days_ago=2)
        await add_receipt(db, "SKU-OLD", "DOCK", 10, days_ago=30)
        await add_stock(db, "SKU-R", "R-01", 6)
        await add_stock(db, "SKU-R", "R-02", 9)
        await add_stock(db, "SKU-OLD", "R-03", 4)

        snapshots = await generate_receiving(db, _plan(CountType.RECEIVING))

        assert _keys(snapshots) == [("SKU-R", "R-01"), ("SKU-R", "R-02")]

    async def test_location_filter(self, db):
        await add_receipt(db, "SKU-R", "DOCK", 10, days_ago=1)
        await add_stock(db, "SKU-R", "R-01", 6)
        await add_stock(db, "SKU-R", "R-02", 9)

        snapshots = await generate_receiving(db, _plan(CountType.RECEIVING, location="R-02"))

        assert _keys(snapshots) == [("SKU-R", "R-02")]


class TestShipping:

    async def test_orders_in_fulfilment(self, db):
        await add_stock(db, "SKU-S", "S-01", 8)
        await add_stock(db, "SKU-T", "S-02", 5)
        await add_order(db, "ORD-1", OrderStatus.PICKING.value, [("SKU-S", "S-01", 1)])
        await add_order(db, "ORD-2", OrderStatus.PACKED.value, [("SKU-S", "S-01", 2)])
        await add_order(db, "ORD-3", OrderStatus.SHIPPED.value, [("SKU-T", "S-02", 1)])
        await add_order(db, "ORD-4", OrderStatus.PICKED.value, [("SKU-U", None, 1)])

        snapshots = await generate_shipping(db, _plan(CountType.SHIPPING))

        assert _keys(snapshots) == [("SKU-S", "S-01")]
        assert snapshots[0].quantity == Decimal("8")

    async def test_picked_bin_must_match_stock_bin(self, db):
        await add_stock(db, "SKU-S", "S-01", 8)
        await add_stock(db, "SKU-S", "S-09", 3)
        await add_order(db, "ORD-1", OrderStatus.PICKED.value, [("SKU-S", "S-09", 1)])

        snapshots = await generate_shipping(db, _plan(CountType.SHIPPING))

        assert _keys(snapshots) == [("SKU-S", "S-09")]


class TestAdHoc:

    async def test_list_order_kept(self, db):
        await add_stock(db, "SKU-1", "A-01", 1)
        await add_stock(db, "SKU-2", "A-03", 2)
        await add_stock(db, "SKU-2", "A-02", 3)
        await add_stock(db, "SKU-3", "A-01", 4)

        snapshots = await generate_ad_hoc(db, _plan(CountType.AD_HOC, sku="SKU-2, SKU-1"))

        assert _keys(snapshots) == [("SKU-2", "A-02"), ("SKU-2", "A-03"), ("SKU-1", "A-01")]

    async def test_location_filter(self, db):
        await add_stock(db, "SKU-1", "A-01", 1)
        await add_stock(db, "SKU-1", "A-02", 1)

        snapshots = await generate_ad_hoc(db, _plan(CountType.AD_HOC, location="A-02", sku="SKU-1"))

        assert _keys(snapshots) == [("SKU-1", "A-02")]

    async def test_empty_list(self, db):
        await add_stock(db, "SKU-1", "A-01", 1)
        assert await generate_ad_hoc(db, _plan(CountType.AD_HOC, sku=" , ")) == []


async def test_generate_snapshots_dispatches_on_count_type(db):
    await add_stock(db, "SKU-1", "A-01", 1)
    snapshots = await generate_snapshots(db, _plan(CountType.AD_HOC, sku="SKU-1"))
    assert _keys(snapshots) == [("SKU-1", "A-01")]
