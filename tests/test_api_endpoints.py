from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from driftgate.dependencies import (
    get_event_sink,
    get_governance_service,
    get_history_store,
    get_pipeline_service,
)
from driftgate.main import create_app
from driftgate.repositories.history_store import FileDecisionHistoryStore
from driftgate.services.governance import GovernanceService
from driftgate.services.pipeline import PipelineService
from driftgate.services.receipts import create_receipt
from driftgate.telemetry import MemoryEventSink
from tests.factories import API_ID, PAYMENT_ID, SERVICE_ID

SIGNING_KEY = "api-test-key"


class StaticTransport:
    def __init__(self, decision: str):
        self.text = json.dumps({"decision": decision, "risk_level": "low", "reasoning": ["ok"], "conditions": []})

    async def generate(self, prompt: str, *, api_key: str) -> str:
        return self.text


@pytest.fixture
def sink() -> MemoryEventSink:
    return MemoryEventSink()


@pytest.fixture
def client(tmp_path, sink, monkeypatch) -> TestClient:
    # Reset cached dependencies to avoid cross-test contamination.
    get_event_sink.cache_clear()
    get_history_store.cache_clear()
    get_governance_service.cache_clear()
    get_pipeline_service.cache_clear()
    monkeypatch.setattr("driftgate.core.config.settings.signing_key", SIGNING_KEY)

    app = create_app()
    governance = GovernanceService(StaticTransport("approve"), credentials=["key"], sink=sink)
    history = FileDecisionHistoryStore(tmp_path / "memory" / "decisions.json")
    pipeline = PipelineService(governance, history, sink=sink)

    app.dependency_overrides[get_event_sink] = lambda: sink
    app.dependency_overrides[get_pipeline_service] = lambda: pipeline
    return TestClient(app)


def test_healthcheck(client):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_evaluation_returns_decision_and_receipt(client, artifacts_dir, policy_path):
    response = client.post(
        "/v1/evaluations",
        json={"artifacts_dir": str(artifacts_dir), "policy_path": str(policy_path), "change_id": "chg_api"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["decision"] == "approve"
    assert body["change_id"] == "chg_api"
    assert body["receipt"]["ruling"] == "approve"
    assert (artifacts_dir / "authorization-receipt.json").exists()


def test_evaluation_with_missing_artifacts_escalates(client, tmp_path, policy_path):
    response = client.post(
        "/v1/evaluations",
        json={"artifacts_dir": str(tmp_path / "missing"), "policy_path": str(policy_path)},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["decision"] == "escalate"
    assert body["risk_level"] == "high"
    assert body["receipt"] is None


def test_feedback_records_final_ruling(client, artifacts_dir, sink):
    response = client.post(
        "/v1/feedback",
        json={
            "change_id": "chg_api",
            "governor": {"decision": "block", "risk_level": "high", "reasoning": ["type change"]},
            "human": {"outcome": "overridden", "override_decision": "approve", "notes": "migration shipped"},
            "artifacts_dir": str(artifacts_dir),
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["final_ruling"] == "approve"
    assert body["receipt"]["ruling"] == "approve"
    assert any(event["event_type"] == "human_feedback" for event in sink.events)


def test_feedback_rejects_empty_change_id(client):
    response = client.post(
        "/v1/feedback",
        json={
            "change_id": "",
            "governor": {"decision": "block", "risk_level": "high"},
            "human": {"outcome": "accepted"},
        },
    )

    assert response.status_code == 422


def test_verify_receipt_endpoint(client, sink):
    receipt = create_receipt("chg_v", "approve", "low", False, {"graph": {}}, key=SIGNING_KEY).model_dump(mode="json")

    ok = client.post("/v1/receipts/verify", json={"receipt": receipt})
    tampered = client.post("/v1/receipts/verify", json={"receipt": {**receipt, "ruling": "block"}})
    missing = client.post("/v1/receipts/verify", json={})

    assert ok.json()["valid"] is True
    assert tampered.json()["reason"] == "invalid_signature"
    assert missing.json()["reason"] == "no_receipt"
    assert [event["reason"] for event in sink.events] == ["verified", "invalid_signature", "no_receipt"]


def test_verify_receipt_can_skip_approval_requirement(client):
    receipt = create_receipt("chg_v", "block", "high", False, {}, key=SIGNING_KEY).model_dump(mode="json")

    strict = client.post("/v1/receipts/verify", json={"receipt": receipt})
    relaxed = client.post("/v1/receipts/verify", json={"receipt": receipt, "require_approval": False})

    assert strict.json()["reason"] == "not_approved"
    assert relaxed.json()["valid"] is True


def test_impact_endpoint(client, artifacts_dir):
    response = client.post("/v1/impact", json={"node_id": PAYMENT_ID, "artifacts_dir": str(artifacts_dir)})

    assert response.status_code == 200
    impacted = {item["node_id"]: item for item in response.json()["impacted"]}
    assert set(impacted) == {SERVICE_ID, API_ID}
    assert impacted[SERVICE_ID]["distance"] == 1


def test_impact_unknown_node_is_404(client, artifacts_dir):
    response = client.post("/v1/impact", json={"node_id": "nope", "artifacts_dir": str(artifacts_dir)})

    assert response.status_code == 404


def test_impact_without_graph_is_422(client, tmp_path):
    response = client.post("/v1/impact", json={"node_id": PAYMENT_ID, "artifacts_dir": str(tmp_path)})

    assert response.status_code == 422


def test_impact_rejects_negative_depth(client, artifacts_dir):
    response = client.post(
        "/v1/impact", json={"node_id": PAYMENT_ID, "max_depth": -1, "artifacts_dir": str(artifacts_dir)}
    )

    assert response.status_code == 422


def _production_without_key(monkeypatch):
    monkeypatch.setattr("driftgate.core.config.settings.environment", "production")
    monkeypatch.setattr("driftgate.core.config.settings.signing_key", None)


def test_verify_ignore_expiry_reports_the_bypass(client, sink):
    past = datetime.now(timezone.utc) - timedelta(days=2)
    receipt = create_receipt("chg_old", "approve", "low", False, {}, key=SIGNING_KEY, now=past).model_dump(mode="json")

    strict = client.post("/v1/receipts/verify", json={"receipt": receipt})
    relaxed = client.post("/v1/receipts/verify", json={"receipt": receipt, "ignore_expiry": True})

    assert strict.json()["reason"] == "expired"
    assert strict.json()["warnings"] == []
    body = relaxed.json()
    assert body["valid"] is True
    assert "ignore_expiry" in body["warnings"][0]
    assert [event["expiry_bypassed"] for event in sink.events] == [False, True]


def test_verify_without_signing_key_in_production_is_invalid(client, monkeypatch):
    receipt = create_receipt("chg_v", "approve", "low", False, {}, key=SIGNING_KEY).model_dump(mode="json")
    _production_without_key(monkeypatch)

    response = client.post("/v1/receipts/verify", json={"receipt": receipt})

    assert response.status_code == 200
    assert response.json()["valid"] is False
    assert response.json()["reason"] == "invalid_signature"


def test_feedback_without_signing_key_in_production_is_503(client, artifacts_dir, tmp_path, monkeypatch):
    _production_without_key(monkeypatch)

    response = client.post(
        "/v1/feedback",
        json={
            "change_id": "chg_api",
            "governor": {"decision": "block", "risk_level": "high"},
            "human": {"outcome": "accepted"},
            "artifacts_dir": str(artifacts_dir),
        },
    )

    assert response.status_code == 503
    body = response.json()
    assert body["ok"] is False
    assert body["receipt"] is None
    assert "DRIFTGATE_SIGNING_KEY" in body["error"]
    assert not (tmp_path / "memory" / "decisions.json").exists()
