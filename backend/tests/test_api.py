"""HTTP surface tests using FastAPI's TestClient.

The database session and tenant resolution are overridden; service calls
that would reach the database are patched.  Covers status codes, the error
body shape, validation handling and the portal's uniform responses.
"""

import pytest
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from tally.config import settings
from tally.database import get_db
from tally.main import app
from tally.services.errors import ExpiredOrInvalidToken, NotFound
from tally.tenant_utils import get_current_tenant

BASE = "/api/tenants/acme"


async def _fake_db():
    yield AsyncMock()


def _fake_tenant():
    return SimpleNamespace(id="acme", name="Acme", financing_offers=None, daily_penalty_rate=None)


@pytest.fixture
def client():
    app.dependency_overrides[get_db] = _fake_db
    app.dependency_overrides[get_current_tenant] = _fake_tenant
    with patch("tally.middleware.error_capture.log_error_standalone", new_callable=AsyncMock):
        yield TestClient(app)
    app.dependency_overrides.clear()


# ── Service health ────────────────────────────────────────────────

class TestHealth:

    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"
        assert resp.headers["X-Content-Type-Options"] == "nosniff"


# ── Tenants ───────────────────────────────────────────────────────

class TestTenants:

    def test_unknown_tenant_is_404(self, client):
        app.dependency_overrides.pop(get_current_tenant)
        with patch("tally.tenant_utils.tenants.get_tenant", side_effect=NotFound("Tenant ghost not found")):
            resp = client.get("/api/tenants/ghost/credits")
        assert resp.status_code == 404
        assert resp.json()["detail"]["error"] == "NotFound"

    def test_invalid_tenant_id_is_rejected(self, client):
        resp = client.post("/api/tenants", json={"id": "Bad Id!", "name": "Acme"})
        assert resp.status_code == 400
        assert resp.json()["detail"]["error"] == "InvalidAmount"


# ── Credits ───────────────────────────────────────────────────────

class TestSimulate:

    def test_simulation_uses_configured_offers(self, client):
        resp = client.post(f"{BASE}/credits/simulate", json={"amount": "10000", "down_payment": "1000"})
        assert resp.status_code == 200
        data = resp.json()
        assert Decimal(str(data["financed_amount"])) == Decimal("9000.00")
        terms = [o["installments"] for o in data["options"]]
        assert terms == sorted(settings.financing_offers)

    def test_down_payment_too_large(self, client):
        resp = client.post(f"{BASE}/credits/simulate", json={"amount": "1000", "down_payment": "1000"})
        assert resp.status_code == 400
        assert resp.json()["detail"]["error"] == "InvalidAmount"


# ── Journal ───────────────────────────────────────────────────────

class TestOperations:

    def test_dry_run_preview(self, client):
        resp = client.post(f"{BASE}/operations?dry_run=true", json={
            "operation_type": "cash_in",
            "operation_id": "pos-1",
            "amount": "120.00",
            "operation_date": "2024-06-01",
            "payment_method": "cash",
            "category": "sales",
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["is_balanced"] is True
        assert [ln["account_code"] for ln in data["lines"]] == ["1.1.01.001", "4.1.01.001"]

    def test_unmapped_category(self, client):
        resp = client.post(f"{BASE}/operations?dry_run=true", json={
            "operation_type": "cash_in",
            "operation_id": "pos-2",
            "amount": "120.00",
            "operation_date": "2024-06-01",
            "payment_method": "cash",
            "category": "lottery",
        })
        assert resp.status_code == 400
        assert resp.json()["detail"]["error"] == "UnmappedCategory"

    def test_unknown_operation_type_fails_validation(self, client):
        resp = client.post(f"{BASE}/operations", json={
            "operation_type": "donation",
            "operation_id": "pos-3",
            "amount": "1",
            "operation_date": "2024-06-01",
        })
        assert resp.status_code == 400
        assert "fields" in resp.json()["detail"]

    def test_manual_operational_entry_rejected(self, client):
        resp = client.post(f"{BASE}/journal-entries", json={
            "description": "Sneaky",
            "entry_type": "operational",
            "lines": [
                {"account_code": "1.1.01.001", "debit": "10"},
                {"account_code": "3.1.01.001", "credit": "10"},
            ],
        })
        assert resp.status_code == 400
        assert resp.json()["detail"]["error"] == "InvalidAccount"


# ── Payments ──────────────────────────────────────────────────────

class TestPayments:

    def test_unknown_method(self, client):
        resp = client.post(f"{BASE}/payments/confirm", json={
            "client_id": 4, "amount": "100", "method": "bitcoin",
        })
        assert resp.status_code == 400
        assert resp.json()["detail"]["error"] == "UnmappedCategory"

    def test_non_positive_amount(self, client):
        resp = client.post(f"{BASE}/payments/confirm", json={
            "client_id": 4, "amount": "0", "method": "cash",
        })
        assert resp.status_code == 400
        assert resp.json()["detail"]["error"] == "InvalidAmount"


# ── Client portal ─────────────────────────────────────────────────

class TestPortal:

    def test_access_link_response_is_uniform(self, client):
        with patch("tally.api.clients.portal_access.request_access_link", return_value=None):
            resp = client.post(f"{BASE}/clients/access-link", json={"document_id": "99999999"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["message"].startswith("If the document is registered")
        assert data["portal_url"] is None

    def test_invalid_token(self, client):
        with patch(
            "tally.api.clients.portal_access.resolve_portal_client",
            side_effect=ExpiredOrInvalidToken("The access link is invalid or has expired"),
        ):
            resp = client.get(f"{BASE}/portal", params={"token": "stale"})
        assert resp.status_code == 401
        assert resp.json()["detail"]["error"] == "ExpiredOrInvalidToken"
