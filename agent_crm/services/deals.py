"""Deal intelligence - persists Deal Stage Engine decisions."""

import logging
from typing import Optional

from agent_crm.core.config import (
    DEAL_CREATION_SCORE_THRESHOLD,
    DEAL_CREATION_STATUSES,
    DEFAULT_DEAL_VALUE,
)
from agent_crm.core.database import DatabaseService, db_service, utcnow
from agent_crm.core.exceptions import DuplicateActiveDeal, NotFoundError
from agent_crm.intelligence import prompts
from agent_crm.intelligence.signals import SignalExtractor, sentiment_label, signal_extractor
from agent_crm.models import (
    Deal,
    DealUpdate,
    EmailAnalysisResult,
    Lead,
    Signal,
    SignalKind,
)
from agent_crm.services.deal_stage import apply_signal, recompute_probability
from agent_crm.services.ledger import RunHandle

logger = logging.getLogger(__name__)


class DealService:
    """
    Email analysis, automatic deal creation and probability recompute.

    Lead-to-deal uniqueness is enforced here: create_deal() looks for an
    active deal immediately before inserting. Two concurrent creators can
    still both pass the check; there is no datastore constraint behind it.
    """

    def __init__(
        self,
        db: Optional[DatabaseService] = None,
        extractor: Optional[SignalExtractor] = None
    ):
        self.db = db or db_service
        self.extractor = extractor or signal_extractor

    async def estimate_value(self, lead: Lead) -> float:
        """Lead's own value hint, else a model estimate, else the default."""
        if lead.deal_value:
            return max(0.0, float(lead.deal_value))
        value = await self.extractor.estimate_number(
            prompts.deal_value_prompt(lead, DEFAULT_DEAL_VALUE),
            default=DEFAULT_DEAL_VALUE
        )
        return max(0.0, value)

    async def create_deal(self, lead: Lead, update: DealUpdate, source: str) -> Deal:
        """
        Insert a deal for a lead that has no active one.

        Raises:
            DuplicateActiveDeal: the lead already owns a non-closed deal
        """
        existing = await self.db.find_active_deal(lead.id)
        if existing is not None:
            raise DuplicateActiveDeal(
                f"Lead {lead.id} already has active deal {existing.id}",
                details={"lead_id": lead.id, "deal_id": existing.id}
            )

        data = {
            "name": f"{lead.company or 'Unknown'} - Sales Opportunity",
            "lead_id": lead.id,
            "source": source,
            **update.changes(),
        }
        deal = await self.db.insert_deal(data)
        logger.info(
            f"Created {deal.stage.value} deal {deal.id} for {lead.display_name}: "
            f"value={deal.value}, probability={deal.probability}"
        )
        return deal

    async def analyze_email(self, lead_id: str, email_content: str) -> EmailAnalysisResult:
        """
        Fold an inbound email into the lead's deal.

        Args:
            lead_id: Lead the email came from
            email_content: Raw email text

        Returns:
            The extracted signal, the decision, and what was written
        """
        lead = await self.db.get_lead(lead_id)
        if lead is None:
            raise NotFoundError(f"Lead not found: {lead_id}", details={"lead_id": lead_id})

        signal = await self.extractor.extract(
            SignalKind.EMAIL_REPLY,
            email_content,
            {"company": lead.company, "lead_status": lead.status.value}
        )
        deal = await self.db.find_active_deal(lead_id)
        now = utcnow()
        update = apply_signal(deal, lead, signal, now=now)

        if update.operation == "create":
            if signal.budget_amount is None:
                estimated = await self.estimate_value(lead)
                update = apply_signal(None, lead, signal, now=now, estimated_value=estimated)
            created = await self.create_deal(lead, update, source="email_parsing")
            return EmailAnalysisResult(
                signal=signal, update=update, deal_id=created.id, deal_created=True
            )

        if update.operation == "update":
            updated = await self.db.update_deal(deal.id, update.changes())
            logger.info(f"Deal {updated.id} updated from email: {update.reason}")
            return EmailAnalysisResult(
                signal=signal, update=update, deal_id=updated.id, deal_updated=True
            )

        logger.info(f"No deal change for lead {lead_id}: {update.reason}")
        return EmailAnalysisResult(
            signal=signal, update=update, deal_id=deal.id if deal else None
        )

    async def auto_create_deals(self, run: RunHandle) -> int:
        """
        Create deals for high-intent leads that have none.

        Returns:
            Number of deals created
        """
        leads = await self.db.list_high_intent_leads(
            DEAL_CREATION_SCORE_THRESHOLD, DEAL_CREATION_STATUSES
        )
        logger.info(f"Found {len(leads)} high-intent leads")

        created = 0
        for lead in leads:
            async with run.item(lead.id):
                if await self.db.find_active_deal(lead.id) is not None:
                    continue

                signal = Signal(
                    kind=SignalKind.EMAIL_REPLY,
                    sentiment=sentiment_label(lead.sentiment_score),
                    sentiment_score=lead.sentiment_score,
                )
                update = apply_signal(
                    None, lead, signal, estimated_value=await self.estimate_value(lead)
                )
                if update.operation != "create":
                    continue

                deal = await self.create_deal(lead, update, source="auto_creation")
                created += 1
                run.record({
                    "action": "created_deal",
                    "deal_id": deal.id,
                    "lead_id": lead.id,
                    "lead_name": lead.name,
                    "stage": deal.stage.value,
                    "value": deal.value,
                    "probability": deal.probability,
                })
        return created

    async def recalculate_probabilities(self, run: RunHandle) -> int:
        """
        Recompute every open deal's probability from stage, inactivity and sentiment.

        Returns:
            Number of deals whose probability changed
        """
        deals = await self.db.list_open_deals()
        now = utcnow()

        changed = 0
        for deal in deals:
            async with run.item(deal.id):
                lead = await self.db.get_lead(deal.lead_id)
                sentiment = lead.sentiment_score if lead else 0.5
                probability = recompute_probability(
                    deal.stage,
                    deal.last_activity_at or deal.created_at,
                    sentiment,
                    now=now
                )
                if probability == deal.probability:
                    continue

                await self.db.update_deal(deal.id, {"probability": probability})
                changed += 1
                run.record({
                    "deal_id": deal.id,
                    "lead_id": deal.lead_id,
                    "old_probability": deal.probability,
                    "new_probability": probability,
                })
        return changed


# Singleton instance
deal_service = DealService()
