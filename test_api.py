"""
API Endpoint Tests

Exercises the FastAPI routes through TestClient with small in-memory
datasets.
"""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from api.server import create_app


PROFILE_KEY = "ram kumar|shyam lal|rampur"

TRANSACTIONS = [
    {"srNo": "S00010", "date": "2024-01-05", "name": "Ram Kumar", "fatherName": "Shyam Lal",
     "address": "Rampur", "originalNetAmount": 1000},
    {"srNo": "S00011", "date": "2024-01-06", "name": "Mohan Das", "fatherName": "Hari Das",
     "address": "Sitapur", "originalNetAmount": 400},
]

PAYMENTS = [
    {"id": "doc-1", "paymentId": "P-DUP", "date": "2024-01-10", "receiptType": "Cash",
     "amount": 600, "paidFor": [{"srNo": "S00010", "amount": 600}]},
    {"id": "doc-2", "paymentId": "P-DUP", "date": "2024-01-20", "receiptType": "Cash",
     "amount": 600, "paidFor": [{"srNo": "S00010", "amount": 600}]},
]


@pytest.fixture
def client():
    with TestClient(create_app()) as test_client:
        yield test_client


def body(**extra):
    data = {"transactions": TRANSACTIONS, "payments": PAYMENTS}
    data.update(extra)
    return data


class TestHealthEndpoints:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] in ("healthy", "degraded")
        assert data["default_strategy"] == "strict"
        assert data["version"] == "1.0.0"

    def test_health_counts_runs(self, client):
        before = client.get("/health").json()["runs_completed"]
        client.post("/reconcile", json=body())
        data = client.get("/health").json()
        assert data["runs_completed"] == before + 1
        assert data["last_run_at"] is not None

    def test_probes(self, client):
        assert client.get("/ready").json() == {"status": "ready"}
        assert client.get("/live").json() == {"status": "alive"}

    def test_not_ready_with_bad_config(self, client, monkeypatch):
        monkeypatch.setenv("RECON_ANOMALY_TOLERANCE", "lots")
        assert client.get("/ready").status_code == 503

    def test_metrics(self, client):
        client.post("/reconcile", json=body())
        data = client.get("/metrics").json()
        assert data["runs"]["completed"] >= 1
        assert "resolve" in data["timings"]["by_stage"]


class TestReconcileEndpoint:

    def test_reconcile(self, client):
        response = client.post("/reconcile", json=body(strategy="strict"))
        assert response.status_code == 200

        data = response.json()
        assert data["strategy"] == "strict"
        assert set(data["summaries"]) == {PROFILE_KEY, "mohan das|hari das|sitapur", "mill-overview"}
        assert data["summaries"][PROFILE_KEY]["total_outstanding"] == "-200.00"

    def test_invalid_strategy(self, client):
        response = client.post("/reconcile", json=body(strategy="nearest"))
        assert response.status_code == 422

    def test_missing_identifier(self, client):
        response = client.post("/reconcile", json={"transactions": [{"name": "x"}], "payments": []})
        assert response.status_code == 422
        assert "serial number" in response.json()["detail"]


class TestAnomalyEndpoints:

    def test_anomalies(self, client):
        response = client.post("/anomalies", json=body())
        assert response.status_code == 200

        data = response.json()
        assert len(data["entries"]) == 1
        entry = data["entries"][0]
        assert entry["sr_no"] == "S00010"
        assert "Duplicate paymentId P-DUP" in entry["reasons"]
        assert data["counts"]["duplicate"] == 1

    def test_search_filters(self, client):
        data = client.post("/anomalies", json=body(search="mohan")).json()
        assert data["entries"] == []
        assert data["counts"]["duplicate"] == 0

    def test_fix_plan(self, client):
        response = client.post("/anomalies/plan", json=body())
        assert response.status_code == 200

        plans = response.json()
        assert [p["payment_doc_id"] for p in plans] == ["doc-2"]
        assert plans[0]["after_paid_for"][0]["amount"] == "400"


class TestStatementEndpoint:

    def test_statement(self, client):
        response = client.post("/statement", json=body(profile_key=PROFILE_KEY, chunk_size=1))
        assert response.status_code == 200

        data = response.json()
        assert [line["ref"] for line in data["lines"]] == ["S00010", "P-DUP", "P-DUP"]
        assert Decimal(data["lines"][-1]["balance"]) == Decimal("-200")
        assert Decimal(data["totals"]["outstanding"]) == 0

    def test_unknown_profile(self, client):
        response = client.post("/statement", json=body(profile_key="nobody"))
        assert response.status_code == 404
        assert response.json()["detail"] == "Profile not found"
