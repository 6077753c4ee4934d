"""
Batch agents.

Each agent opens one ledger run per invocation and works through its
entities inside run.item() so a single failure is recorded, not fatal.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple

from agent_crm.core.config import (
    DORMANT_DAYS,
    FOLLOWUP_AFTER_DAYS,
    FOLLOWUP_BATCH_LIMIT,
    NEVER_CONTACTED_DAYS,
    SENTIMENT_HIGH,
    SENTIMENT_LOW,
    STALE_DAYS,
    UNRESPONSIVE_LOST_DAYS,
    CompanyProfile,
)
from agent_crm.core.database import DatabaseService, db_service, utcnow
from agent_crm.intelligence import prompts
from agent_crm.intelligence.signals import SignalExtractor, signal_extractor
from agent_crm.models import (
    AgentType,
    FollowupEmailPayload,
    Lead,
    LeadStatus,
    RunResult,
)
from agent_crm.services.actions import ActionQueue, action_queue
from agent_crm.services.deal_stage import days_since
from agent_crm.services.deals import DealService, deal_service
from agent_crm.services.ledger import AgentRunLedger, run_ledger

logger = logging.getLogger(__name__)


# ===========================================
# Scoring and pipeline rules
# ===========================================

def score_lead(lead: Lead, now: datetime) -> int:
    """Engagement-adjusted score, clamped to 0-100."""
    score = lead.lead_score

    if lead.last_reply_at is not None:
        score += 20
    if lead.sentiment_score > SENTIMENT_HIGH:
        score += 15
    if lead.status == LeadStatus.QUALIFIED:
        score += 10
    if lead.linkedin_url:
        score += 5
    if lead.website:
        score += 5

    days = days_since(lead.last_contacted_at, now)
    if days is None:
        days = NEVER_CONTACTED_DAYS
    if days > STALE_DAYS:
        score -= 10
    if days > DORMANT_DAYS:
        score -= 20

    return max(0, min(100, score))


def next_lead_status(lead: Lead, has_scheduled_meeting: bool) -> Tuple[LeadStatus, str]:
    """Status the lead should move to, with the reason. Unchanged status means no move."""
    status, reason = lead.status, ""

    if lead.status == LeadStatus.NEW and lead.last_contacted_at is not None:
        status, reason = LeadStatus.CONTACTED, "First contact made"
    elif lead.status == LeadStatus.CONTACTED and lead.last_reply_at is not None:
        status, reason = LeadStatus.QUALIFIED, "Lead responded to outreach"
    elif lead.status == LeadStatus.CONTACTED and (lead.unresponsive_days or 0) > UNRESPONSIVE_LOST_DAYS:
        status, reason = LeadStatus.LOST, f"No response after {UNRESPONSIVE_LOST_DAYS} days"
    elif lead.sentiment_score < SENTIMENT_LOW:
        status, reason = LeadStatus.LOST, "Negative sentiment detected"

    if has_scheduled_meeting and lead.status != LeadStatus.MEETING_SCHEDULED:
        status, reason = LeadStatus.MEETING_SCHEDULED, "Meeting scheduled with lead"

    return status, reason


# ===========================================
# Agents
# ===========================================

class BatchAgent:
    """Base for agents that run inside a ledger run."""

    agent_type: AgentType

    def __init__(
        self,
        db: Optional[DatabaseService] = None,
        ledger: Optional[AgentRunLedger] = None
    ):
        self.db = db or db_service
        self.ledger = ledger or run_ledger

    async def run(self) -> RunResult:
        logger.info(f"Running {self.agent_type.value} agent...")
        async with self.ledger.run(self.agent_type.value) as run:
            await self.process(run)
        return run.outcome()

    async def process(self, run) -> None:
        raise NotImplementedError


class LeadScoringAgent(BatchAgent):
    """Rescores every lead from engagement and recency."""

    agent_type = AgentType.LEAD_SCORING

    async def process(self, run) -> None:
        now = utcnow()
        leads = await self.db.list_leads()
        for lead in leads:
            async with run.item(lead.id):
                new_score = score_lead(lead, now)
                await self.db.update_lead(lead.id, {"lead_score": new_score})
                run.record({
                    "lead_id": lead.id,
                    "lead_name": lead.name,
                    "old_score": lead.lead_score,
                    "new_score": new_score,
                })


class DealPipelineAgent(BatchAgent):
    """Advances lead statuses from activity."""

    agent_type = AgentType.DEAL_PIPELINE

    async def process(self, run) -> None:
        leads = await self.db.list_leads()
        for lead in leads:
            if lead.status.is_terminal:
                continue
            async with run.item(lead.id):
                has_meeting = await self.db.has_scheduled_meeting(lead.id)
                new_status, reason = next_lead_status(lead, has_meeting)
                if new_status == lead.status:
                    continue

                await self.db.update_lead(lead.id, {"status": new_status.value})
                logger.info(f"Lead {lead.id}: {lead.status.value} -> {new_status.value} ({reason})")
                run.record({
                    "lead_id": lead.id,
                    "lead_name": lead.name,
                    "old_status": lead.status.value,
                    "new_status": new_status.value,
                    "reason": reason,
                })


class FollowUpAgent(BatchAgent):
    """Drafts follow-up emails for unresponsive leads and queues them for approval."""

    agent_type = AgentType.FOLLOW_UP
    STATUSES = (LeadStatus.CONTACTED.value, LeadStatus.QUALIFIED.value)

    def __init__(
        self,
        db: Optional[DatabaseService] = None,
        ledger: Optional[AgentRunLedger] = None,
        extractor: Optional[SignalExtractor] = None,
        actions: Optional[ActionQueue] = None,
        profile: Optional[CompanyProfile] = None
    ):
        super().__init__(db, ledger)
        self.extractor = extractor or signal_extractor
        self.actions = actions or action_queue
        self.profile = profile or CompanyProfile.default()

    async def process(self, run) -> None:
        now = utcnow()
        cutoff = now - timedelta(days=FOLLOWUP_AFTER_DAYS)
        leads = await self.db.list_unresponsive_leads(cutoff, self.STATUSES, FOLLOWUP_BATCH_LIMIT)
        logger.info(f"Found {len(leads)} unresponsive leads")

        for lead in leads:
            async with run.item(lead.id):
                await self._follow_up(run, lead, now)

    async def _follow_up(self, run, lead: Lead, now: datetime) -> None:
        days = days_since(lead.last_contacted_at or lead.created_at, now) or 0
        await self.db.update_lead(lead.id, {"unresponsive_days": days})

        previous = await self.db.list_recent_campaigns(lead.id, limit=1)
        last = previous[0] if previous else None
        sequence = (last.followup_sequence_number if last else 0) + 1

        draft = await self.extractor.draft_object(
            prompts.followup_draft_prompt(lead, days, sequence, last, self.profile)
        )
        subject = str(draft.get("subject") or "").strip()
        body = str(draft.get("body") or "").strip()
        if not subject or not body:
            raise ValueError("Follow-up draft is missing a subject or body")

        campaign = await self.db.insert_campaign({
            "lead_id": lead.id,
            "subject": subject,
            "body": body,
            "draft_status": "draft",
            "is_automated_followup": True,
            "followup_sequence_number": sequence,
            "agent_notes": f"Auto-generated follow-up after {days} days of no response",
        })

        action = await self.actions.propose(
            FollowupEmailPayload(
                campaign_id=campaign.id,
                lead_id=lead.id,
                lead_name=lead.name,
                days_since_contact=days,
                followup_sequence=sequence,
            ),
            self.agent_type.value,
            requires_approval=True
        )

        run.record({
            "action": "created_followup_email",
            "lead_id": lead.id,
            "lead_name": lead.name,
            "campaign_id": campaign.id,
            "action_id": action.id,
            "days_since_contact": days,
        })
        logger.info(f"Created follow-up email for {lead.display_name}")


class DealCreationAgent(BatchAgent):
    """Opens deals for high-intent leads."""

    agent_type = AgentType.DEAL_CREATION

    def __init__(
        self,
        db: Optional[DatabaseService] = None,
        ledger: Optional[AgentRunLedger] = None,
        deals: Optional[DealService] = None
    ):
        super().__init__(db, ledger)
        self.deals = deals or deal_service

    async def process(self, run) -> None:
        created = await self.deals.auto_create_deals(run)
        logger.info(f"Deal creation agent created {created} deals")


class DealProbabilityAgent(BatchAgent):
    """Periodic probability recompute over open deals."""

    agent_type = AgentType.DEAL_PROBABILITY

    def __init__(
        self,
        db: Optional[DatabaseService] = None,
        ledger: Optional[AgentRunLedger] = None,
        deals: Optional[DealService] = None
    ):
        super().__init__(db, ledger)
        self.deals = deals or deal_service

    async def process(self, run) -> None:
        changed = await self.deals.recalculate_probabilities(run)
        logger.info(f"Probability recompute changed {changed} deals")
