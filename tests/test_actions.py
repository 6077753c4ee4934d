"""Tests for the Agent Action Queue state machine and executors."""

import asyncio

import pytest

from fakes import FakeEmail

from agent_crm.core.exceptions import (
    ActionNotApproved,
    EmailDeliveryError,
    InvalidTransition,
    NotFoundError,
)
from agent_crm.models import (
    ActionStatus,
    ActionType,
    EmailReplyPayload,
    FollowupEmailPayload,
    ManagerAlertPayload,
)
from agent_crm.services.actions import ActionQueue


@pytest.fixture
def followup(actions, fake_supabase, make_lead):
    """Pending follow-up action for a new lead with a drafted campaign."""
    lead = make_lead(status="new")
    campaign = fake_supabase.seed(
        "email_campaigns",
        lead_id=lead["id"],
        subject="Quick follow-up",
        body="Hi Dana, checking in.",
        draft_status="draft",
        followup_sequence_number=1,
    )
    action = asyncio.run(actions.propose(
        FollowupEmailPayload(campaign_id=campaign["id"], lead_id=lead["id"], lead_name="Dana"),
        "follow_up"
    ))
    return {"lead": lead, "campaign": campaign, "action": action}


def alert_payload() -> ManagerAlertPayload:
    return ManagerAlertPayload(meeting_id="meetings-1", confidence=0.3, reason="Stalled")


class TestPropose:
    """Tests for ActionQueue.propose()."""

    def test_requires_approval_starts_pending(self, followup, fake_supabase):
        action = followup["action"]
        assert action.status == ActionStatus.PENDING
        assert action.requires_approval is True
        assert action.approved_at is None
        assert fake_supabase.get("agent_actions", action.id)["action_type"] == "followup_email_approval"

    def test_no_approval_starts_auto_approved(self, actions):
        action = asyncio.run(actions.propose(alert_payload(), "meeting_voice_agent", requires_approval=False))

        assert action.status == ActionStatus.AUTO_APPROVED
        assert action.approved_at is not None
        assert isinstance(action.data, ManagerAlertPayload)

    def test_list_pending(self, actions, followup):
        asyncio.run(actions.propose(alert_payload(), "meeting_voice_agent", requires_approval=False))

        pending = asyncio.run(actions.list_pending())

        assert [action.id for action in pending] == [followup["action"].id]


class TestTransitions:
    """Tests for approve(), reject() and execute() guards."""

    def test_approve(self, actions, followup):
        approved = asyncio.run(actions.approve(followup["action"].id))

        assert approved.status == ActionStatus.APPROVED
        assert approved.approved_at is not None

    def test_approve_twice(self, actions, followup):
        asyncio.run(actions.approve(followup["action"].id))

        with pytest.raises(InvalidTransition):
            asyncio.run(actions.approve(followup["action"].id))

    def test_reject_is_terminal(self, actions, followup, email):
        """Test a rejected action can never be approved or executed."""
        action_id = followup["action"].id
        rejected = asyncio.run(actions.reject(action_id, "Tone is off"))

        assert rejected.status == ActionStatus.REJECTED
        assert rejected.error_message == "Tone is off"
        with pytest.raises(InvalidTransition):
            asyncio.run(actions.approve(action_id))
        with pytest.raises(InvalidTransition):
            asyncio.run(actions.execute(action_id))
        assert email.sent == []

    def test_execute_pending_rejected(self, actions, followup, fake_supabase, email):
        """Test a pending action cannot skip approval."""
        with pytest.raises(ActionNotApproved):
            asyncio.run(actions.execute(followup["action"].id))

        assert fake_supabase.get("agent_actions", followup["action"].id)["status"] == "pending"
        assert email.sent == []

    def test_unknown_action(self, actions):
        with pytest.raises(NotFoundError):
            asyncio.run(actions.approve("agent_actions-404"))

    def test_lost_race_reported(self, actions, followup, fake_supabase):
        """Test a conditional update that matches nothing is an invalid transition."""
        action_id = followup["action"].id
        original = actions.db.transition_action

        async def racing(action_id_, expected, updates):
            fake_supabase.get("agent_actions", action_id_)["status"] = "rejected"
            return await original(action_id_, expected, updates)

        actions.db.transition_action = racing

        with pytest.raises(InvalidTransition):
            asyncio.run(actions.approve(action_id))
        assert fake_supabase.get("agent_actions", action_id)["status"] == "rejected"


class TestExecute:
    """Tests for execution and the built-in executors."""

    def test_followup_sent_after_approval(self, actions, followup, fake_supabase, email):
        action_id = followup["action"].id
        asyncio.run(actions.approve(action_id))

        executed = asyncio.run(actions.execute(action_id))

        assert executed.status == ActionStatus.EXECUTED
        assert executed.executed_at is not None
        assert email.sent == [{
            "to": ["dana@brightpath.io"],
            "subject": "Quick follow-up",
            "body": "Hi Dana, checking in.",
        }]
        campaign = fake_supabase.get("email_campaigns", followup["campaign"]["id"])
        assert campaign["draft_status"] == "sent"
        assert campaign["sent_at"] is not None
        lead = fake_supabase.get("leads", followup["lead"]["id"])
        assert lead["status"] == "contacted"

    def test_execute_twice(self, actions, followup, email):
        """Test an executed action cannot run again."""
        action_id = followup["action"].id
        asyncio.run(actions.approve(action_id))
        asyncio.run(actions.execute(action_id))

        with pytest.raises(InvalidTransition):
            asyncio.run(actions.execute(action_id))
        assert len(email.sent) == 1

    def test_executor_failure_keeps_status(self, db, followup, fake_supabase):
        """Test a failed send records the error and leaves the action approved."""
        failing = ActionQueue(db=db, email=FakeEmail(fail=True))
        action_id = followup["action"].id
        asyncio.run(failing.approve(action_id))

        with pytest.raises(EmailDeliveryError):
            asyncio.run(failing.execute(action_id))

        row = fake_supabase.get("agent_actions", action_id)
        assert row["status"] == "approved"
        assert row["error_message"] == "Email provider rejected the send"

    def test_auto_approved_without_executor(self, actions):
        """Test action types with no executor still move to executed."""
        action = asyncio.run(actions.propose(alert_payload(), "meeting_voice_agent", requires_approval=False))

        executed = asyncio.run(actions.execute(action.id))

        assert executed.status == ActionStatus.EXECUTED

    def test_custom_executor(self, actions):
        calls = []

        async def notify(action):
            calls.append(action.data.meeting_id)

        actions.register_executor(ActionType.MANAGER_ALERT, notify)
        action = asyncio.run(actions.propose(alert_payload(), "meeting_voice_agent", requires_approval=False))

        asyncio.run(actions.execute(action.id))

        assert calls == ["meetings-1"]

    def test_reply_uses_campaign_subject(self, actions, fake_supabase, make_lead, email):
        lead = make_lead()
        campaign = fake_supabase.seed("email_campaigns", lead_id=lead["id"], subject="Pilot pricing", body="...")
        reply = fake_supabase.seed(
            "email_replies",
            lead_id=lead["id"],
            campaign_id=campaign["id"],
            reply_content="Sounds good",
            draft_response="Great, I'll send the contract.",
            status="pending",
        )
        action = asyncio.run(actions.propose(
            EmailReplyPayload(email_reply_id=reply["id"], lead_id=lead["id"], sentiment_score=0.9),
            "email_assistant",
            requires_approval=False
        ))

        asyncio.run(actions.execute(action.id))

        assert email.sent[0]["subject"] == "Re: Pilot pricing"
        assert email.sent[0]["body"] == "Great, I'll send the contract."
        assert fake_supabase.get("email_replies", reply["id"])["status"] == "sent"
