from __future__ import annotations

from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from src.api.main import app
from src.core.deps import get_current_active_user, get_current_user_roles, get_session
from src.schemas.reconciliation import VarianceAnalytics
from src.services.errors import EditLimitExceededError
from src.services.reconciliation import EDIT_LIMIT_MESSAGE, REPORT_COLUMNS, ReconciliationService


@pytest.fixture
def roles():
    return ["admin"]


@pytest.fixture
def client(roles):
    async def _session():
        yield None

    user = SimpleNamespace(id=uuid4(), is_active=True)
    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_current_active_user] = lambda: user
    app.dependency_overrides[get_current_user_roles] = lambda: roles
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def empty_report(monkeypatch):
    async def report(self, **kwargs):
        return []

    monkeypatch.setattr(ReconciliationService, "report", report)


def test_health_echoes_correlation_id(client):
    res = client.get("/api/v1/health", headers={"X-Correlation-ID": "abc-123"})
    assert res.status_code == 200
    assert res.json()["message"] == "Healthy"
    assert res.headers["X-Correlation-ID"] == "abc-123"


@pytest.mark.parametrize("roles", [["operator"]])
def test_reports_need_manager_or_reviewer(client, empty_report):
    res = client.get("/api/v1/reports/production-reconciliation")
    assert res.status_code == 403
    body = res.json()
    assert body["error"]["type"] == "http_error"
    assert body["path"] == "/api/v1/reports/production-reconciliation"


@pytest.mark.parametrize("roles", [["reviewer"]])
def test_csv_export_download(client, empty_report):
    res = client.get("/api/v1/reports/production-reconciliation/export", params={"format": "csv"})
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/csv")
    assert 'filename="production_reconciliation.csv"' in res.headers["content-disposition"]
    assert res.text.splitlines()[0] == ",".join(REPORT_COLUMNS)


def test_unsupported_export_format(client, empty_report):
    res = client.get("/api/v1/reports/production-reconciliation/export", params={"format": "docx"})
    assert res.status_code == 422
    assert res.json()["error"]["type"] == "business_rule_violation"


def test_validation_errors_use_envelope(client):
    res = client.post("/api/v1/production/bom-suggestions", json={"planned_output": 100})
    assert res.status_code == 422
    body = res.json()
    assert body["status"] == 422
    assert body["error"]["type"] == "validation_error"
    assert body["method"] == "POST"


@pytest.mark.parametrize("roles", [["operator"]])
def test_edit_limit_maps_to_403(client, monkeypatch):
    seen = {}

    async def update(self, reconciliation_id, payload, user_id=None, is_admin=False):
        seen["is_admin"] = is_admin
        raise EditLimitExceededError(EDIT_LIMIT_MESSAGE, details={"edit_count": 3, "limit": 3})

    monkeypatch.setattr(ReconciliationService, "update", update)

    res = client.patch(f"/api/v1/production/reconciliations/{uuid4()}", json={"remarks": "again"})

    assert res.status_code == 403
    body = res.json()
    assert body["error"] == {
        "type": "edit_limit_exceeded",
        "message": EDIT_LIMIT_MESSAGE,
        "details": {"edit_count": 3, "limit": 3},
    }
    assert seen["is_admin"] is False


@pytest.mark.parametrize("roles", [["operator"]])
def test_reconciliation_delete_is_admin_only(client):
    res = client.delete(f"/api/v1/production/reconciliations/{uuid4()}")
    assert res.status_code == 403


@pytest.mark.parametrize("roles", [["manager"]])
def test_variance_analytics_query(client, monkeypatch):
    seen = {}

    async def variance_analytics(self, *, period, year):
        seen.update(period=period, year=year)
        return VarianceAnalytics(year=year, period=period)

    monkeypatch.setattr(ReconciliationService, "variance_analytics", variance_analytics)

    res = client.get("/api/v1/reports/variance-analytics", params={"period": "quarterly", "year": 2024})

    assert res.status_code == 200
    assert seen == {"period": "quarterly", "year": 2024}
    body = res.json()
    assert body["analytics"] == []
    assert body["totals"]["total_reconciliations"] == 0


def test_variance_analytics_rejects_unknown_period(client):
    res = client.get("/api/v1/reports/variance-analytics", params={"period": "daily"})
    assert res.status_code == 422
    assert res.json()["error"]["type"] == "validation_error"
