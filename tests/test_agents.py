"""Tests for the batch agents."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from fakes import days_ago

from agent_crm.models import Lead, LeadStatus, RunStatus
from agent_crm.services.agents import (
    DealPipelineAgent,
    FollowUpAgent,
    LeadScoringAgent,
    next_lead_status,
    score_lead,
)

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


def lead(**overrides) -> Lead:
    data = {"id": "lead-1", "status": "contacted", "lead_score": 50, "last_contacted_at": NOW - timedelta(days=3)}
    data.update(overrides)
    return Lead(**data)


class TestScoring:
    """Tests for score_lead()."""

    def test_engaged_lead_clamped_to_100(self):
        engaged = lead(
            lead_score=95,
            last_reply_at=NOW,
            sentiment_score=0.9,
            status="qualified",
            website="https://brightpath.io"
        )
        assert score_lead(engaged, NOW) == 100

    def test_dormant_lead_clamped_to_zero(self):
        assert score_lead(lead(lead_score=10, last_contacted_at=NOW - timedelta(days=40)), NOW) == 0

    def test_never_contacted_counts_as_dormant(self):
        assert score_lead(lead(lead_score=50, last_contacted_at=None), NOW) == 20

    def test_recent_contact_unchanged(self):
        assert score_lead(lead(lead_score=50), NOW) == 50


class TestPipelineRules:
    """Tests for next_lead_status()."""

    def test_first_contact(self):
        status, _ = next_lead_status(lead(status="new"), False)
        assert status == LeadStatus.CONTACTED

    def test_reply_qualifies(self):
        status, reason = next_lead_status(lead(last_reply_at=NOW), False)
        assert status == LeadStatus.QUALIFIED
        assert reason == "Lead responded to outreach"

    def test_unresponsive_lost(self):
        status, _ = next_lead_status(lead(unresponsive_days=31), False)
        assert status == LeadStatus.LOST

    def test_negative_sentiment_lost(self):
        status, reason = next_lead_status(lead(status="qualified", sentiment_score=0.2), False)
        assert status == LeadStatus.LOST
        assert reason == "Negative sentiment detected"

    def test_scheduled_meeting_wins(self):
        status, _ = next_lead_status(lead(status="qualified", sentiment_score=0.2), True)
        assert status == LeadStatus.MEETING_SCHEDULED

    def test_no_change(self):
        status, _ = next_lead_status(lead(status="proposal"), False)
        assert status == LeadStatus.PROPOSAL


class TestLeadScoringAgent:
    """Tests for LeadScoringAgent.run()."""

    def test_rescores_every_lead(self, db, ledger, fake_supabase, make_lead):
        replied = make_lead(lead_score=60, last_reply_at=days_ago(1))
        quiet = make_lead(lead_score=60, last_contacted_at=days_ago(20))

        result = asyncio.run(LeadScoringAgent(db=db, ledger=ledger).run())

        assert result.success
        assert result.actions_count == 2
        assert fake_supabase.get("leads", replied["id"])["lead_score"] == 80
        assert fake_supabase.get("leads", quiet["id"])["lead_score"] == 50
        assert fake_supabase.rows("agent_runs")[0]["agent_type"] == "lead_scoring"

    def test_listing_failure_fails_run(self, db, ledger, fake_supabase):
        """Test a batch-level failure is converted into a failed run."""
        fake_supabase.fail_on("leads", "select")

        result = asyncio.run(LeadScoringAgent(db=db, ledger=ledger).run())

        assert result.status == RunStatus.FAILED
        assert fake_supabase.rows("agent_runs")[0]["status"] == "failed"


class TestDealPipelineAgent:
    """Tests for DealPipelineAgent.run()."""

    def test_advances_statuses(self, db, ledger, fake_supabase, make_lead, make_meeting):
        new_lead = make_lead(status="new")
        replied = make_lead(last_reply_at=days_ago(1))
        booked = make_lead(status="qualified")
        make_meeting(booked["id"])
        won = make_lead(status="won", sentiment_score=0.1)

        result = asyncio.run(DealPipelineAgent(db=db, ledger=ledger).run())

        assert result.success
        assert fake_supabase.get("leads", new_lead["id"])["status"] == "contacted"
        assert fake_supabase.get("leads", replied["id"])["status"] == "qualified"
        assert fake_supabase.get("leads", booked["id"])["status"] == "meeting_scheduled"
        assert fake_supabase.get("leads", won["id"])["status"] == "won"
        assert result.actions_count == 3


class TestFollowUpAgent:
    """Tests for FollowUpAgent.run()."""

    @pytest.fixture
    def agent(self, db, ledger, extractor, actions):
        return FollowUpAgent(db=db, ledger=ledger, extractor=extractor, actions=actions)

    def test_drafts_followup_for_unresponsive_lead(self, agent, inference, fake_supabase, make_lead):
        stale = make_lead(last_contacted_at=days_ago(10))
        make_lead(last_contacted_at=days_ago(3))
        inference.queue('{"subject": "Still on your radar?", "body": "Hi Dana, quick check-in."}')

        result = asyncio.run(agent.run())

        assert result.success
        campaigns = fake_supabase.rows("email_campaigns")
        assert len(campaigns) == 1
        assert campaigns[0]["lead_id"] == stale["id"]
        assert campaigns[0]["draft_status"] == "draft"
        assert campaigns[0]["followup_sequence_number"] == 1
        actions = fake_supabase.rows("agent_actions")
        assert len(actions) == 1
        assert actions[0]["status"] == "pending"
        assert actions[0]["data"]["campaign_id"] == campaigns[0]["id"]
        assert fake_supabase.get("leads", stale["id"])["unresponsive_days"] == 10

    def test_sequence_continues_from_last_campaign(self, agent, inference, fake_supabase, make_lead):
        stale = make_lead(last_contacted_at=days_ago(15))
        fake_supabase.seed(
            "email_campaigns",
            lead_id=stale["id"],
            subject="Checking in",
            body="...",
            followup_sequence_number=2,
        )
        inference.queue('{"subject": "One more thing", "body": "Hi again."}')

        asyncio.run(agent.run())

        newest = fake_supabase.rows("email_campaigns")[-1]
        assert newest["followup_sequence_number"] == 3
        assert "Previous email subject: Checking in" in inference.calls[0]["user_prompt"]

    def test_bad_draft_isolated(self, agent, inference, fake_supabase, make_lead):
        """Test one undecodable draft fails that lead only."""
        first = make_lead(last_contacted_at=days_ago(10))
        second = make_lead(status="qualified", last_contacted_at=days_ago(12), last_reply_at=days_ago(9))
        inference.queue("Sorry, I can't write that.", '{"subject": "Hi", "body": "Checking in."}')

        result = asyncio.run(agent.run())

        assert result.status == RunStatus.FAILED
        assert result.failed_items == 1
        assert [row["lead_id"] for row in fake_supabase.rows("email_campaigns")] == [second["id"]]
        run = fake_supabase.rows("agent_runs")[0]
        assert run["errors"]["items"][0]["entity_id"] == first["id"]
