"""Inbound email reply handling."""

import logging
from typing import Optional

from pydantic import ValidationError

from agent_crm.core.config import REPLY_REVIEW_SENTIMENT, CompanyProfile
from agent_crm.core.database import DatabaseService, db_service, utcnow
from agent_crm.core.exceptions import AgentCRMError, NotFoundError
from agent_crm.integrations.inference import InferenceService, inference_service
from agent_crm.intelligence import prompts
from agent_crm.intelligence.signals import SignalExtractor, signal_extractor
from agent_crm.models import AgentType, EmailReplyPayload, ReplyResult, SignalKind
from agent_crm.services.actions import ActionQueue, action_queue
from agent_crm.services.deals import DealService, deal_service

logger = logging.getLogger(__name__)


class ReplyHandler:
    """
    Scores a reply, drafts a response and gates it.

    Replies scoring below REPLY_REVIEW_SENTIMENT need a manager's approval
    before the draft goes out; the rest are auto-approved.
    """

    def __init__(
        self,
        db: Optional[DatabaseService] = None,
        extractor: Optional[SignalExtractor] = None,
        inference: Optional[InferenceService] = None,
        actions: Optional[ActionQueue] = None,
        deals: Optional[DealService] = None,
        profile: Optional[CompanyProfile] = None
    ):
        self.db = db or db_service
        self.extractor = extractor or signal_extractor
        self.inference = inference or inference_service
        self.actions = actions or action_queue
        self.deals = deals or deal_service
        self.profile = profile or CompanyProfile.default()

    async def handle_reply(
        self,
        lead_id: str,
        reply_content: str,
        campaign_id: Optional[str] = None
    ) -> ReplyResult:
        """
        Process one inbound reply.

        Args:
            lead_id: Lead who replied
            reply_content: Reply body
            campaign_id: Campaign being replied to, if known

        Returns:
            ReplyResult with the stored reply, gating decision and deal analysis
        """
        lead = await self.db.get_lead(lead_id)
        if lead is None:
            raise NotFoundError(f"Lead not found: {lead_id}", details={"lead_id": lead_id})

        signal = await self.extractor.extract(SignalKind.REPLY_SENTIMENT, reply_content)
        sentiment = signal.sentiment_score
        logger.info(f"Reply from {lead.display_name}: sentiment {sentiment:.2f}")

        draft = await self.inference.generate(
            prompts.SALES_ASSISTANT_SYSTEM,
            prompts.reply_draft_prompt(lead, reply_content, self.profile),
            temperature=0.7,
            max_tokens=512
        )

        requires_review = sentiment < REPLY_REVIEW_SENTIMENT
        reply = await self.db.insert_reply({
            "campaign_id": campaign_id,
            "lead_id": lead_id,
            "reply_content": reply_content,
            "sentiment_score": sentiment,
            "draft_response": draft,
            "status": "pending",
            "requires_manager_review": requires_review,
        })

        action = await self.actions.propose(
            EmailReplyPayload(
                email_reply_id=reply.id,
                lead_id=lead_id,
                lead_name=lead.name,
                sentiment_score=sentiment,
                draft_response=draft,
            ),
            AgentType.EMAIL_ASSISTANT.value,
            requires_approval=requires_review
        )

        await self.db.update_lead(lead_id, {
            "last_reply_at": utcnow().isoformat(),
            "sentiment_score": sentiment,
        })

        result = ReplyResult(
            email_reply_id=reply.id,
            sentiment_score=sentiment,
            requires_review=requires_review,
            action_id=action.id,
        )

        try:
            result.deal_analysis = await self.deals.analyze_email(lead_id, reply_content)
        except (AgentCRMError, ValidationError) as e:
            # The reply itself is already stored; deal analysis is best-effort.
            logger.error(f"Deal analysis failed for reply {reply.id}: {e}")
            result.errors.append(f"deal_analysis: {e}")

        return result


# Singleton instance
reply_handler = ReplyHandler()
