"""HTTP endpoints under /api/v1/cycle-count."""
from decimal import Decimal

from tests.factories import add_stock, add_tolerance, seed_defaults

BASE = "/api/v1/cycle-count"

PLAN = {
    "plan_name": "Bin A-01 count",
    "count_type": "BLANKET",
    "scheduled_date": "2024-03-01T08:00:00",
    "location": "A-01",
    "count_by": "counter-1",
}


async def _create_plan(client, headers, **overrides):
    response = await client.post(f"{BASE}/plans", json={**PLAN, **overrides}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestIdentity:

    async def test_missing_user_header(self, client):
        response = await client.get(f"{BASE}/plans")
        assert response.status_code == 401
        assert response.json()["detail"] == "X-User-Id header is required"


class TestPlanEndpoints:

    async def test_create_and_get(self, client, supervisor_headers):
        plan = await _create_plan(client, supervisor_headers)

        assert plan["status"] == "SCHEDULED"
        assert plan["created_by"] == "sup-1"

        response = await client.get(f"{BASE}/plans/{plan['plan_id']}", headers=supervisor_headers)
        assert response.status_code == 200
        assert response.json()["plan_name"] == "Bin A-01 count"

    async def test_get_unknown(self, client, supervisor_headers):
        response = await client.get(f"{BASE}/plans/CCP-NOPE", headers=supervisor_headers)
        assert response.status_code == 404

    async def test_invalid_count_type(self, client, supervisor_headers):
        response = await client.post(
            f"{BASE}/plans", json={**PLAN, "count_type": "WEEKLY"}, headers=supervisor_headers
        )
        assert response.status_code == 422

    async def test_list_is_scoped_by_role(self, client, supervisor_headers):
        await _create_plan(client, supervisor_headers, count_by="picker-1")
        await _create_plan(client, supervisor_headers, count_by="picker-2")

        response = await client.get(
            f"{BASE}/plans", headers={"X-User-Id": "picker-1", "X-User-Role": "picker"}
        )
        body = response.json()
        assert body["total"] == 1
        assert body["items"][0]["count_by"] == "picker-1"

        response = await client.get(f"{BASE}/plans", params={"status": "SCHEDULED"}, headers=supervisor_headers)
        assert response.json()["total"] == 2

    async def test_lifecycle(self, client, db, supervisor_headers):
        await add_stock(db, "SKU-1", "A-01", 6)
        plan = await _create_plan(client, supervisor_headers)
        plan_id = plan["plan_id"]

        response = await client.post(f"{BASE}/plans/{plan_id}/start", headers=supervisor_headers)
        assert response.status_code == 200
        started = response.json()
        assert started["status"] == "IN_PROGRESS"
        assert len(started["count_entries"]) == 1

        response = await client.post(f"{BASE}/plans/{plan_id}/reconcile", headers=supervisor_headers)
        assert response.status_code == 400

        response = await client.post(f"{BASE}/plans/{plan_id}/complete", headers=supervisor_headers)
        assert response.json()["status"] == "COMPLETED"

        response = await client.get(f"{BASE}/plans/{plan_id}/reconcile-summary", headers=supervisor_headers)
        assert response.json()["pending_variance_count"] == 1

        response = await client.post(
            f"{BASE}/plans/{plan_id}/reconcile", json={"notes": "Month end"}, headers=supervisor_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "RECONCILED"

        response = await client.get(f"{BASE}/plans/{plan_id}/audit-log", headers=supervisor_headers)
        assert [item["action"] for item in response.json()] == ["CREATE", "START", "COMPLETE", "RECONCILE"]

    async def test_cancel(self, client, supervisor_headers):
        plan = await _create_plan(client, supervisor_headers)

        response = await client.post(
            f"{BASE}/plans/{plan['plan_id']}/cancel", json={"reason": "Bin blocked"}, headers=supervisor_headers
        )
        assert response.status_code == 200
        assert response.json()["notes"] == "Cancelled: Bin blocked"

        response = await client.post(f"{BASE}/plans/{plan['plan_id']}/start", headers=supervisor_headers)
        assert response.status_code == 400

    async def test_collisions(self, client, supervisor_headers):
        plan = await _create_plan(client, supervisor_headers)
        await _create_plan(client, supervisor_headers, count_by="counter-2")

        response = await client.get(f"{BASE}/plans/{plan['plan_id']}/collisions", headers=supervisor_headers)
        body = response.json()
        assert body["has_collisions"] is True
        assert body["colliding_counts"][0]["assigned_to"] == "counter-2"

    async def test_export(self, client, db, supervisor_headers):
        await add_stock(db, "SKU-1", "A-01", 6)
        plan = await _create_plan(client, supervisor_headers)
        await client.post(f"{BASE}/plans/{plan['plan_id']}/start", headers=supervisor_headers)

        response = await client.get(f"{BASE}/plans/{plan['plan_id']}/export", headers=supervisor_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert plan["plan_id"] in response.headers["content-disposition"]
        assert response.text.startswith('"SKU","Bin Location"')
        assert '"SKU-1","A-01"' in response.text


class TestEntryEndpoints:

    async def test_record_and_review(self, client, db, supervisor_headers):
        await add_stock(db, "SKU-1", "A-01", 10)
        await add_tolerance(db, "TOL-SKU-1", auto="5", sku="SKU-1")
        plan = await _create_plan(client, supervisor_headers)

        response = await client.post(
            f"{BASE}/entries",
            json={"plan_id": plan["plan_id"], "sku": "SKU-1", "bin_location": "A-01", "counted_quantity": 12},
            headers={"X-User-Id": "counter-1"},
        )
        assert response.status_code == 201
        entry = response.json()
        assert entry["variance_status"] == "PENDING"
        assert Decimal(entry["variance"]) == Decimal("2")
        assert Decimal(entry["variance_percent"]) == Decimal("20")
        assert entry["counted_by"] == "counter-1"

        response = await client.patch(
            f"{BASE}/entries/{entry['entry_id']}/variance-status",
            json={"status": "APPROVED"},
            headers=supervisor_headers,
        )
        assert response.status_code == 200
        assert response.json()["adjustment_transaction_id"] is not None

        response = await client.patch(
            f"{BASE}/entries/{entry['entry_id']}/variance-status",
            json={"status": "REJECTED"},
            headers=supervisor_headers,
        )
        assert response.status_code == 400

    async def test_negative_count_rejected(self, client, supervisor_headers):
        plan = await _create_plan(client, supervisor_headers)
        response = await client.post(
            f"{BASE}/entries",
            json={"plan_id": plan["plan_id"], "sku": "SKU-1", "bin_location": "A-01", "counted_quantity": -1},
            headers=supervisor_headers,
        )
        assert response.status_code == 422

    async def test_unknown_entry(self, client, supervisor_headers):
        response = await client.patch(
            f"{BASE}/entries/CCE-NOPE/variance-status", json={"status": "APPROVED"}, headers=supervisor_headers
        )
        assert response.status_code == 404

    async def test_bulk_status(self, client, db, supervisor_headers):
        await add_stock(db, "SKU-1", "A-01", 6)
        await add_stock(db, "SKU-2", "A-01", 3)
        plan = await _create_plan(client, supervisor_headers)
        await client.post(f"{BASE}/plans/{plan['plan_id']}/start", headers=supervisor_headers)

        response = await client.post(
            f"{BASE}/plans/{plan['plan_id']}/variances/bulk-status",
            json={"status": "REJECTED", "notes": "Recount tomorrow"},
            headers=supervisor_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"updated": 2, "skipped": 0, "adjustments": []}


class TestToleranceAndKpiEndpoints:

    async def test_list_and_create_tolerances(self, client, db, supervisor_headers):
        await seed_defaults(db)

        response = await client.get(f"{BASE}/tolerances", headers=supervisor_headers)
        assert len(response.json()) == 4

        response = await client.post(
            f"{BASE}/tolerances",
            json={
                "tolerance_name": "Zone F",
                "location_zone": "F",
                "allowable_variance_percent": "2",
                "allowable_variance_amount": "1",
                "auto_adjust_threshold": "1",
                "requires_approval_threshold": "2",
            },
            headers=supervisor_headers,
        )
        assert response.status_code == 201
        tolerance_id = response.json()["tolerance_id"]

        response = await client.get(f"{BASE}/tolerances/{tolerance_id}", headers=supervisor_headers)
        assert response.json()["location_zone"] == "F"

        response = await client.get(f"{BASE}/tolerances/TOL-NOPE", headers=supervisor_headers)
        assert response.status_code == 404

    async def test_kpis(self, client, supervisor_headers):
        await _create_plan(client, supervisor_headers)

        response = await client.get(f"{BASE}/kpis", headers=supervisor_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["total_counts"] == 1
        assert body["scheduled_counts"] == 1
        assert body["completion_rate"] == 0.0

    async def test_kpi_breakdowns(self, client, supervisor_headers):
        response = await client.get(f"{BASE}/kpis/accuracy-trend", params={"days": 60}, headers=supervisor_headers)
        assert response.status_code == 200
        assert response.json() == []

        response = await client.get(
            f"{BASE}/kpis/top-discrepancies", params={"limit": 5}, headers=supervisor_headers
        )
        assert response.status_code == 200
        assert response.json() == []

        response = await client.get(f"{BASE}/kpis/top-discrepancies", params={"limit": 0}, headers=supervisor_headers)
        assert response.status_code == 422


class TestScheduleEndpoints:

    async def test_schedule_flow(self, client, supervisor_headers):
        response = await client.post(
            f"{BASE}/schedules",
            json={
                "schedule_name": "Zone A daily",
                "count_type": "SPOT_CHECK",
                "frequency_type": "DAILY",
                "location": "A-01",
                "assigned_to": "counter-1",
                "start_date": "2024-01-01T08:00:00",
            },
            headers=supervisor_headers,
        )
        assert response.status_code == 201
        schedule_id = response.json()["schedule_id"]

        response = await client.patch(
            f"{BASE}/schedules/{schedule_id}", json={"notes": "Use scanner"}, headers=supervisor_headers
        )
        assert response.json()["notes"] == "Use scanner"

        response = await client.post(f"{BASE}/schedules/process-due", headers=supervisor_headers)
        body = response.json()
        assert body["processed"] == 1
        assert len(body["plans_created"]) == 1

        response = await client.delete(f"{BASE}/schedules/{schedule_id}", headers=supervisor_headers)
        assert response.json()["is_active"] is False

        response = await client.get(f"{BASE}/schedules", params={"is_active": True}, headers=supervisor_headers)
        assert response.json() == []

    async def test_unknown_schedule(self, client, supervisor_headers):
        response = await client.get(f"{BASE}/schedules/RCS-NOPE", headers=supervisor_headers)
        assert response.status_code == 404


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code in (200, 503)
    assert "checks" in response.json()
