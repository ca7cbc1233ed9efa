"""Tests for the HTTP API."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from commission_engine.api import config as api_config
from commission_engine.api.main import create_app
from commission_engine.services import CommissionService
from commission_engine.storage.memory import (
    InMemoryAgentStore,
    InMemoryCommissionLedger,
    InMemoryLeadStore,
)
from commission_engine.storage.models import Agent, Lead

NOW = datetime(2024, 3, 20, 12, 0, tzinfo=timezone.utc)


class SilentNotifier:
    def notify(self, agent_id, event_type, payload):
        pass


@pytest.fixture
def service():
    service = CommissionService(
        InMemoryAgentStore(),
        InMemoryLeadStore(),
        InMemoryCommissionLedger(),
        notifier=SilentNotifier(),
        clock=lambda: NOW,
    )
    service.agents.add(Agent(id="a1", name="Ada", tier="gold", region="north"))
    service.leads.add(Lead(id="l1", agent_id="a1", assigned_at=NOW - timedelta(days=5)))
    service.leads.add(Lead(id="l2", agent_id="a1", assigned_at=NOW - timedelta(days=40)))
    return service


@pytest.fixture
def client(service, monkeypatch):
    monkeypatch.delenv("CE_API_SECRET", raising=False)
    monkeypatch.setenv("CE_SCHEDULER_ENABLED", "false")
    monkeypatch.setattr(api_config, "_settings", None)
    with TestClient(create_app(service=service)) as client:
        yield client


class TestCommissionRoutes:
    """Tests for /v1/commissions."""

    def test_calculate(self, client):
        """Calculating returns the stored award."""
        response = client.post("/v1/commissions", json={
            "lead_id": "l1",
            "final_amount": 12000,
            "days_to_convert": 5,
        })
        assert response.status_code == 201
        body = response.json()
        assert body["total_amount"] == 2075
        assert body["status"] == "pending"
        assert [b["kind"] for b in body["bonuses"]] == ["fast_conversion", "high_value", "first_conversion"]

    def test_unknown_lead(self, client):
        """Unknown leads map to 404."""
        response = client.post("/v1/commissions", json={"lead_id": "ghost", "final_amount": 100})
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_negative_amount(self, client):
        """Negative amounts map to 422."""
        response = client.post("/v1/commissions", json={"lead_id": "l1", "final_amount": -1})
        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    def test_dispute_flow(self, client):
        """Disputing and cancelling goes through the API."""
        award_id = client.post("/v1/commissions", json={"lead_id": "l1", "final_amount": 1000}).json()["id"]

        disputed = client.post(f"/v1/commissions/{award_id}/dispute", json={"reason": "Wrong buyer"})
        assert disputed.json()["status"] == "disputed"

        resolved = client.post(f"/v1/commissions/{award_id}/resolve", json={"approve": False})
        assert resolved.json()["status"] == "cancelled"

        listed = client.get("/v1/commissions", params={"agent_id": "a1", "status": "cancelled"}).json()
        assert listed["total"] == 1

    def test_resolve_without_dispute(self, client):
        """Resolving an undisputed award is a validation error."""
        award_id = client.post("/v1/commissions", json={"lead_id": "l1", "final_amount": 1000}).json()["id"]
        response = client.post(f"/v1/commissions/{award_id}/resolve", json={"approve": True})
        assert response.status_code == 422


class TestAgentAndPayoutRoutes:
    """Tests for agent metrics, payouts and leaderboards."""

    def test_unknown_agent_metrics(self, client):
        """Metrics for an unknown agent map to 404."""
        assert client.get("/v1/agents/ghost/metrics").status_code == 404

    def test_metrics(self, client):
        """Metrics reflect recorded commissions."""
        client.post("/v1/commissions", json={"lead_id": "l1", "final_amount": 12000})
        body = client.get("/v1/agents/a1/metrics").json()
        assert body["revenue"]["total_revenue"] == 12000
        assert body["period"]["type"] == "monthly"

    def test_invalid_period(self, client):
        """Unknown period types map to 422."""
        response = client.get("/v1/agents/a1/metrics", params={"period_type": "hourly"})
        assert response.status_code == 422

    def test_leaderboards(self, client):
        """Leaderboards include every tier board."""
        client.post("/v1/commissions", json={"lead_id": "l1", "final_amount": 5000})
        body = client.get("/v1/leaderboards", params={"metric": "revenue"}).json()
        assert body["overall"][0] == {
            "rank": 1,
            "agent_id": "a1",
            "agent_name": "Ada",
            "tier": "gold",
            "region": "north",
            "score": 5000,
        }
        assert set(body["by_tier"]) == {"bronze", "silver", "gold", "platinum"}

    def test_process_payouts(self, client):
        """Due commissions are batched and can be marked paid."""
        client.post("/v1/commissions", json={
            "lead_id": "l2",
            "final_amount": 1000,
            "converted_at": (NOW - timedelta(days=30)).isoformat(),
        })
        run = client.post("/v1/payouts/process", json={}).json()
        assert len(run["batches"]) == 1

        batch_id = run["batches"][0]["id"]
        paid = client.post(f"/v1/payouts/{batch_id}/paid", json={"payment_reference": "TX-9"})
        assert paid.status_code == 200
        assert paid.json()["status"] == "paid"

        again = client.post("/v1/payouts/process", json={}).json()
        assert again["batches"] == []


class TestHealthAndAuth:
    """Tests for health checks and authentication."""

    def test_health(self, client):
        """Health endpoint reports the version."""
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert "version" in body

    def test_ready(self, client):
        """Readiness lists the tier catalog."""
        body = client.get("/ready").json()
        assert body["tiers"] == ["bronze", "silver", "gold", "platinum"]
        assert body["active_agents"] == 1

    def test_secret_required_when_configured(self, service, monkeypatch):
        """With CE_API_SECRET set, writes need the X-CE-Secret header."""
        monkeypatch.setenv("CE_API_SECRET", "s3cret")
        monkeypatch.setattr(api_config, "_settings", None)
        client = TestClient(create_app(service=service))
        payload = {"lead_id": "l1", "final_amount": 100}

        assert client.post("/v1/commissions", json=payload).status_code == 401
        assert client.post("/v1/commissions", json=payload, headers={"X-CE-Secret": "wrong"}).status_code == 401
        assert client.post("/v1/commissions", json=payload, headers={"X-CE-Secret": "s3cret"}).status_code == 201
        assert client.get("/v1/commissions").status_code == 200


class TestFollowUpRoutes:
    """Tests for approvals, summaries, reassignment and tier points."""

    def test_second_award_for_lead_rejected(self, client):
        """A lead pays out once."""
        assert client.post("/v1/commissions", json={"lead_id": "l1", "final_amount": 1000}).status_code == 201
        again = client.post("/v1/commissions", json={"lead_id": "l1", "final_amount": 1000})
        assert again.status_code == 422
        assert again.json()["error"] == "validation_error"

    def test_auto_approve_and_overdue(self, client):
        """Small awards are approved in bulk; fresh approvals are not overdue."""
        client.post("/v1/commissions", json={"lead_id": "l1", "final_amount": 1000})
        body = client.post("/v1/commissions/auto-approve", json={}).json()
        assert body["approved"] == 1
        assert body["commissions"][0]["status"] == "approved"

        assert client.get("/v1/commissions/overdue").json()["total"] == 0

    def test_commission_summary(self, client):
        """The summary splits earnings by status."""
        award_id = client.post("/v1/commissions", json={"lead_id": "l1", "final_amount": 1000}).json()["id"]
        client.post(f"/v1/commissions/{award_id}/approve")
        client.post("/v1/commissions", json={"lead_id": "l2", "final_amount": 1000})

        body = client.get("/v1/agents/a1/commissions/summary").json()
        assert body["total"]["total_commissions"] == 2
        assert body["by_status"]["approved"]["count"] == 1
        assert body["by_status"]["pending"]["count"] == 1
        assert body["total"]["paid_amount"] == 0

    def test_reassign_lead(self, client, service):
        """Leads can move between agents."""
        service.agents.add(Agent(id="a2", name="Grace"))
        response = client.post("/v1/leads/l1/reassign", json={"agent_id": "a2", "reason": "Coverage"})
        assert response.status_code == 200
        assert response.json()["agent_id"] == "a2"

        same = client.post("/v1/leads/l1/reassign", json={"agent_id": "a2", "reason": "Again"})
        assert same.status_code == 422

    def test_tier_points(self, client):
        """Tier points can be granted but never go negative."""
        body = client.post("/v1/agents/a1/tier/points", json={"points": 25, "reason": "Referral drive"}).json()
        assert body["tier_points"] == 25

        response = client.post("/v1/agents/a1/tier/points", json={"points": -50, "reason": "Correction"})
        assert response.status_code == 422
