"""Tests for the HTTP entry points and error mapping."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from agent_crm.api import routes
from agent_crm.core.database import DatabaseService
from agent_crm.core.exceptions import (
    ActionNotApproved,
    AgentCRMError,
    DatastoreError,
    DuplicateActiveDeal,
    EmailDeliveryError,
    InferenceError,
    InvalidTransition,
    NotFoundError,
    RunClosedError,
)
from agent_crm.models import AgentType, FollowupEmailPayload, RunResult, RunStatus
from agent_crm.services.orchestrator import Orchestrator


class StubAgent:
    def __init__(self, agent_type: AgentType, error: Exception = None):
        self.agent_type = agent_type
        self.error = error

    async def run(self) -> RunResult:
        if self.error is not None:
            raise self.error
        return RunResult(agent_type=self.agent_type.value, run_id="run-1", status=RunStatus.COMPLETED, actions_count=2)


@pytest.fixture
def pending_action(actions, make_lead):
    lead = make_lead()
    return asyncio.run(actions.propose(
        FollowupEmailPayload(campaign_id="email_campaigns-1", lead_id=lead["id"]),
        "follow_up"
    ))


class TestStatusCodes:
    """Tests for status_code_for()."""

    @pytest.mark.parametrize("error,expected", [
        (InvalidTransition("x"), 409),
        (ActionNotApproved("x"), 409),
        (DuplicateActiveDeal("x"), 409),
        (RunClosedError("x"), 409),
        (NotFoundError("x"), 404),
        (DatastoreError("x"), 502),
        (InferenceError("x"), 502),
        (EmailDeliveryError("x"), 502),
        (AgentCRMError("x"), 500),
    ])
    def test_mapping(self, error, expected):
        assert routes.status_code_for(error) == expected


class TestRootAndHealth:
    """Tests for service metadata endpoints."""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        body = response.json()
        assert body["service"] == "Agent CRM Engine"
        assert body["endpoints"]["replies"] == "POST /replies"

    def test_health_ok(self, client, db):
        with patch.object(routes, "db_service", db):
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "lead_scoring" in response.json()["agents"]
        assert "meeting_voice_agent" not in response.json()["agents"]
        assert "email_assistant" not in response.json()["agents"]

    def test_health_lists_dispatchable_agents(self, client, db):
        orchestrator = Orchestrator(agents={AgentType.LEAD_SCORING: StubAgent(AgentType.LEAD_SCORING)})
        with patch.object(routes, "db_service", db), patch.object(routes, "orchestrator", orchestrator):
            response = client.get("/health")

        assert response.json()["agents"] == ["lead_scoring"]

    def test_health_degraded(self, client, fake_supabase):
        fake_supabase.fail_on("leads", "select")
        with patch.object(routes, "db_service", DatabaseService(client=fake_supabase)):
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["database"] == "unavailable"


class TestAgentRoutes:
    """Tests for POST /agents/run."""

    def test_run_default_agents(self, client):
        orchestrator = Orchestrator(agents={
            AgentType.LEAD_SCORING: StubAgent(AgentType.LEAD_SCORING),
            AgentType.DEAL_PIPELINE: StubAgent(AgentType.DEAL_PIPELINE, DatastoreError("down")),
        })
        with patch.object(routes, "orchestrator", orchestrator):
            response = client.post("/agents/run", json={})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "partial"
        assert body["data"]["results"]["lead_scoring"]["success"] is True
        assert body["data"]["results"]["deal_pipeline"]["error"] == "down"

    def test_unknown_agent(self, client):
        response = client.post("/agents/run", json={"agent_type": "nonsense"})
        assert response.status_code == 400

    def test_recalculate_uses_probability_agent(self, client):
        orchestrator = Orchestrator(agents={
            AgentType.DEAL_PROBABILITY: StubAgent(AgentType.DEAL_PROBABILITY),
        })
        with patch.object(routes, "orchestrator", orchestrator):
            response = client.post("/deals/recalculate")

        assert response.status_code == 200
        assert response.json()["message"] == "Recomputed probabilities (2 changed)"


class TestActionRoutes:
    """Tests for the approval queue endpoints."""

    def test_list_pending(self, client, actions, pending_action):
        with patch.object(routes, "action_queue", actions):
            response = client.get("/actions/pending")

        assert response.status_code == 200
        assert response.json()["count"] == 1
        assert response.json()["actions"][0]["id"] == pending_action.id

    def test_execute_pending_is_conflict(self, client, actions, pending_action):
        with patch.object(routes, "action_queue", actions):
            response = client.post(f"/actions/{pending_action.id}/execute")

        assert response.status_code == 409
        assert response.json()["details"] == {"action_id": pending_action.id}

    def test_reject_then_approve(self, client, actions, pending_action):
        with patch.object(routes, "action_queue", actions):
            rejected = client.post(f"/actions/{pending_action.id}/reject", json={"reason": "Off-brand"})
            approved = client.post(f"/actions/{pending_action.id}/approve")

        assert rejected.status_code == 200
        assert rejected.json()["data"]["status"] == "rejected"
        assert approved.status_code == 409

    def test_unknown_action(self, client, actions):
        with patch.object(routes, "action_queue", actions):
            response = client.post("/actions/agent_actions-404/approve")

        assert response.status_code == 404
        assert response.json()["error"] == "Action not found: agent_actions-404"


class TestMeetingRoutes:
    """Tests for the meeting lifecycle endpoints."""

    def test_prepare_inference_failure_is_bad_gateway(self, client, meetings, make_lead, make_meeting):
        meeting = make_meeting(make_lead()["id"])
        with patch.object(routes, "meeting_controller", meetings):
            response = client.post(f"/meetings/{meeting['id']}/prepare")

        assert response.status_code == 502

    def test_join_then_analyze(self, client, meetings, inference, make_lead, make_meeting, low_confidence_analysis):
        meeting = make_meeting(make_lead()["id"])
        inference.queue(low_confidence_analysis)
        with patch.object(routes, "meeting_controller", meetings):
            joined = client.post(f"/meetings/{meeting['id']}/join")
            analyzed = client.post(
                f"/meetings/{meeting['id']}/analyze",
                json={"transcript": "Prospect: we're also talking to another vendor", "duration": 300}
            )

        assert joined.status_code == 200
        assert "system_instruction" in joined.json()["data"]["live_config"]
        assert analyzed.status_code == 200
        assert analyzed.json()["message"] == "Manager alerted"
        assert analyzed.json()["data"]["alert_triggered"] is True

    def test_analyze_blank_transcript(self, client, meetings, make_lead, make_meeting):
        meeting = make_meeting(make_lead()["id"], status="in_progress")
        with patch.object(routes, "meeting_controller", meetings):
            missing = client.post(f"/meetings/{meeting['id']}/analyze", json={"transcript": ""})
            blank = client.post(f"/meetings/{meeting['id']}/analyze", json={"transcript": "   "})

        assert missing.status_code == 422
        assert blank.status_code == 400


class TestDealAndReplyRoutes:
    """Tests for /deals/analyze-email and /replies."""

    def test_analyze_email_unknown_lead(self, client, deals):
        with patch.object(routes, "deal_service", deals):
            response = client.post("/deals/analyze-email", json={"lead_id": "leads-404", "email_content": "hi"})

        assert response.status_code == 404

    def test_analyze_email_creates_deal(self, client, deals, inference, make_lead):
        lead = make_lead(lead_score=75)
        inference.queue('{"budget_amount": "$9,000", "sentiment": "neutral"}')
        with patch.object(routes, "deal_service", deals):
            response = client.post(
                "/deals/analyze-email",
                json={"lead_id": lead["id"], "email_content": "We have about $9,000 set aside."}
            )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["deal_created"] is True
        assert data["update"]["value"] == 9000.0

    def test_reply(self, client, replies, inference, make_lead):
        lead = make_lead()
        inference.queue("0.85", "Great, talk soon!", '{"sentiment": "positive"}')
        with patch.object(routes, "reply_handler", replies):
            response = client.post("/replies", json={"lead_id": lead["id"], "reply_content": "Sounds great"})

        assert response.status_code == 200
        assert response.json()["message"] == "Reply auto-approved"

    def test_analyze_email_datastore_failure(self, client):
        """Test an upstream failure escaping a route maps to 502."""
        with patch(
            "agent_crm.api.routes.deal_service.analyze_email",
            new_callable=AsyncMock,
            side_effect=DatastoreError("Datastore error during find_active_deal(l1)")
        ):
            response = client.post("/deals/analyze-email", json={"lead_id": "l1", "email_content": "hello"})

        assert response.status_code == 502
        assert response.json()["error"] == "Datastore error during find_active_deal(l1)"
