"""API endpoint tests against an in-memory database."""

from collections.abc import AsyncGenerator
from datetime import date
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from locum_billing.api.app import create_app
from locum_billing.api.dependencies import get_billing_config, get_session_factory

from tests.conftest import add_shift


@pytest.fixture
async def client(session_factory, billing_config) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the test database."""
    app = create_app()
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_billing_config] = lambda: billing_config

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


class TestHealthEndpoints:
    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"

    async def test_ready_with_reference_data(self, client: AsyncClient, reference_data):
        response = await client.get("/ready")
        assert response.status_code == 200
        # The inactive role is not counted
        assert response.json() == {"status": "ready", "active_roles": 2, "active_multipliers": 4}

    async def test_not_ready_without_rate_cards(self, client: AsyncClient):
        response = await client.get("/ready")
        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"

    async def test_liveness(self, client: AsyncClient):
        assert (await client.get("/live")).json() == {"status": "alive"}


class TestRateEndpoints:
    async def test_calculate_bank_holiday_shift(self, client: AsyncClient, reference_data):
        response = await client.post(
            "/api/v1/rates/calculate",
            json={
                "role": "Agency Nurse",
                "shift_date": "2024-12-25",
                "start_time": "08:00",
                "end_time": "16:00",
            },
        )
        assert response.status_code == 200

        data = response.json()
        assert data["shift_type"] == "day"
        assert [m["name"] for m in data["applied_multipliers"]] == ["bank_holiday"]
        assert data["final_internal_rate"] == "36.00"
        assert data["final_external_rate"] == "56.00"
        assert data["total_internal_cost"] == "288.00"
        assert data["total_external_cost"] == "448.00"
        assert data["rate_calculation_log_id"] is None

    async def test_persisted_calculation_is_listed(
        self, client: AsyncClient, session, reference_data, practice, nurse
    ):
        shift = await add_shift(session, practice, nurse, date(2024, 6, 8))

        response = await client.post(
            "/api/v1/rates/calculate",
            json={
                "role": "Agency Nurse",
                "shift_date": "2024-06-08",
                "start_time": "08:00",
                "end_time": "16:00",
                "shift_id": str(shift.shift_id),
                "persist": True,
            },
        )
        assert response.status_code == 200
        log_id = response.json()["rate_calculation_log_id"]
        assert log_id is not None

        logs = await client.get("/api/v1/rates/logs", params={"shift_id": str(shift.shift_id)})
        assert logs.status_code == 200
        assert [entry["rate_calculation_log_id"] for entry in logs.json()] == [log_id]

    async def test_persist_against_missing_shift(self, client: AsyncClient, reference_data):
        shift_id = str(uuid4())
        response = await client.post(
            "/api/v1/rates/calculate",
            json={
                "role": "Agency Nurse",
                "shift_date": "2024-06-04",
                "start_time": "08:00",
                "end_time": "16:00",
                "shift_id": shift_id,
                "persist": True,
            },
        )
        assert response.status_code == 404
        assert response.json()["code"] == "SHIFT_NOT_FOUND"

        logs = await client.get("/api/v1/rates/logs", params={"shift_id": shift_id})
        assert logs.json() == []

    async def test_unknown_role(self, client: AsyncClient, reference_data):
        response = await client.post(
            "/api/v1/rates/calculate",
            json={
                "role": "Surgeon",
                "shift_date": "2024-06-04",
                "start_time": "08:00",
                "end_time": "16:00",
            },
        )
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_malformed_time_rejected(self, client: AsyncClient, reference_data):
        response = await client.post(
            "/api/v1/rates/calculate",
            json={
                "role": "Agency Nurse",
                "shift_date": "2024-06-04",
                "start_time": "8am",
                "end_time": "16:00",
            },
        )
        assert response.status_code == 422


class TestBillingPeriodEndpoints:
    async def test_create_and_get(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/billing-periods",
            json={"start_date": "2024-07-01", "end_date": "2024-07-31"},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["period_name"] == "July 2024"
        assert data["status"] == "open"

        fetched = await client.get(f"/api/v1/billing-periods/{data['billing_period_id']}")
        assert fetched.status_code == 200
        assert fetched.json()["billing_period_id"] == data["billing_period_id"]

    async def test_overlapping_period_conflict(self, client: AsyncClient, period):
        response = await client.post(
            "/api/v1/billing-periods",
            json={"start_date": "2024-06-08", "end_date": "2024-06-14"},
        )
        assert response.status_code == 409
        assert response.json()["code"] == "OVERLAPPING_PERIOD"

    async def test_missing_period(self, client: AsyncClient):
        response = await client.get(f"/api/v1/billing-periods/{uuid4()}")
        assert response.status_code == 404
        assert response.json()["code"] == "BILLING_PERIOD_NOT_FOUND"

    async def test_close_refused_with_errors(
        self, client: AsyncClient, session, reference_data, period, practice, nurse
    ):
        await add_shift(session, practice, nurse, date(2024, 6, 4), role="Surgeon")

        response = await client.post(f"/api/v1/billing-periods/{period.billing_period_id}/close")
        assert response.status_code == 409
        data = response.json()
        assert data["code"] == "UNRESOLVED_SHIFT_ERRORS"
        assert {e["invoice_type"] for e in data["errors"]} == {"client", "payroll"}


class TestInvoiceEndpoints:
    async def test_generate_then_fetch_and_cancel(
        self, client: AsyncClient, session, reference_data, period, practice, nurse
    ):
        await add_shift(session, practice, nurse, date(2024, 6, 3))
        base = f"/api/v1/billing-periods/{period.billing_period_id}"

        preview = await client.get(f"{base}/aggregate", params={"invoice_type": "client"})
        assert preview.status_code == 200
        assert preview.json()["line_count"] == 1

        response = await client.post(f"{base}/invoices/client")
        assert response.status_code == 201
        (invoice,) = response.json()
        assert invoice["invoice_number"] == "CLI-1000"
        assert invoice["recipient_name"] == "Riverside Surgery"
        assert invoice["subtotal_amount"] == "224.00"

        again = await client.post(f"{base}/invoices/client")
        assert again.status_code == 409
        assert again.json()["code"] == "ALREADY_GENERATED"

        detail = await client.get(f"/api/v1/invoices/{invoice['invoice_id']}")
        assert detail.status_code == 200
        assert len(detail.json()["line_items"]) == 1

        cancelled = await client.post(
            f"/api/v1/invoices/{invoice['invoice_id']}/cancel",
            json={"reason": "Duplicate booking"},
        )
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"

        regenerated = await client.post(f"{base}/invoices/client")
        assert regenerated.status_code == 201
        assert regenerated.json()[0]["invoice_number"] == "CLI-1001"

    async def test_invalid_status_transition(
        self, client: AsyncClient, session, reference_data, period, practice, nurse
    ):
        await add_shift(session, practice, nurse, date(2024, 6, 3))
        response = await client.post(
            f"/api/v1/billing-periods/{period.billing_period_id}/invoices/client"
        )
        invoice_id = response.json()[0]["invoice_id"]

        paid = await client.post(f"/api/v1/invoices/{invoice_id}/status", json={"status": "paid"})
        assert paid.status_code == 409
        assert paid.json()["code"] == "INVALID_TRANSITION"
