"""
Deal Stage Engine.

Pure functions that fold a Signal into deal state. Nothing here touches
the datastore; DealService decides what to persist.
"""

from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from agent_crm.core.config import (
    ACTIVE_DAYS,
    DEAL_CREATION_SCORE_THRESHOLD,
    DEAL_CREATION_STATUSES,
    DEFAULT_DEAL_VALUE,
    DORMANT_DAYS,
    SENTIMENT_HIGH,
    SENTIMENT_LOW,
    STALE_DAYS,
)
from agent_crm.models import Deal, DealStage, DealUpdate, Lead, LeadStatus, Signal


# Keyword -> (stage, base probability). Matched in order against the lowercased stage signal.
STAGE_TRANSITIONS: Dict[str, Tuple[DealStage, float]] = {
    "demo scheduled": (DealStage.QUALIFIED, 0.4),
    "proposal sent": (DealStage.PROPOSAL, 0.6),
    "contract sent": (DealStage.PROPOSAL, 0.75),
    "pricing discussed": (DealStage.NEGOTIATION, 0.75),
    "final approval": (DealStage.NEGOTIATION, 0.85),
    "signed agreement": (DealStage.CLOSED_WON, 1.0),
    "another vendor": (DealStage.CLOSED_LOST, 0.0),
    "not interested": (DealStage.CLOSED_LOST, 0.0),
}

STAGE_BASELINES: Dict[DealStage, float] = {
    DealStage.PROSPECT: 0.2,
    DealStage.QUALIFIED: 0.4,
    DealStage.PROPOSAL: 0.6,
    DealStage.NEGOTIATION: 0.8,
    DealStage.CLOSED_WON: 1.0,
    DealStage.CLOSED_LOST: 0.0,
}

INITIAL_PROBABILITY = 0.3


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def bounded_probability(value: float) -> float:
    """Clamp to [0, 1]. Always the last step of any probability calculation."""
    return round(max(0.0, min(1.0, value)), 4)


def days_since(timestamp: Optional[datetime], now: datetime) -> Optional[int]:
    """Whole days elapsed since timestamp, or None if there is no timestamp."""
    if timestamp is None:
        return None
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return int((now - timestamp).total_seconds() // 86400)


def match_stage_keyword(stage_signal: Optional[str]) -> Optional[Tuple[str, DealStage, float]]:
    """First transition keyword contained in the stage signal."""
    if not stage_signal:
        return None
    text = stage_signal.lower()
    for keyword, (stage, probability) in STAGE_TRANSITIONS.items():
        if keyword in text:
            return keyword, stage, probability
    return None


def sentiment_adjustment(sentiment: float) -> float:
    if sentiment > SENTIMENT_HIGH:
        return 0.1
    if sentiment < SENTIMENT_LOW:
        return -0.2
    return 0.0


def staleness_adjustment(days_inactive: Optional[int]) -> float:
    if days_inactive is None:
        return 0.0
    if days_inactive > DORMANT_DAYS:
        return -0.3
    if days_inactive > STALE_DAYS:
        return -0.2
    if days_inactive < ACTIVE_DAYS:
        return 0.1
    return 0.0


def qualifies_by_score(lead: Lead) -> bool:
    return (
        lead.lead_score >= DEAL_CREATION_SCORE_THRESHOLD
        and lead.status.value in DEAL_CREATION_STATUSES
    )


def initial_deal_state(lead: Lead) -> Tuple[DealStage, float]:
    """
    Starting stage and probability for a new deal, before sentiment blending.

    Qualified leads start further along; strong scores add a small bonus.
    """
    stage, probability = DealStage.PROSPECT, INITIAL_PROBABILITY

    if lead.status == LeadStatus.QUALIFIED:
        stage, probability = DealStage.QUALIFIED, 0.4
    elif lead.status == LeadStatus.CONTACTED and lead.last_reply_at is not None:
        stage, probability = DealStage.QUALIFIED, 0.35

    if lead.lead_score >= 90:
        probability += 0.1
    elif lead.lead_score >= 80:
        probability += 0.05

    return stage, probability


def apply_signal(
    deal: Optional[Deal],
    lead: Lead,
    signal: Signal,
    now: Optional[datetime] = None,
    estimated_value: Optional[float] = None
) -> DealUpdate:
    """
    Decide how a signal changes the lead's deal.

    Args:
        deal: The lead's active deal, or None
        lead: Owning lead
        signal: Interpreted email or lead state
        now: Evaluation time (defaults to current UTC)
        estimated_value: Value to use for a new deal when the signal has no budget

    Returns:
        DealUpdate with operation "create", "update" or "none"
    """
    now = now or utcnow()
    match = match_stage_keyword(signal.stage_signal)

    if deal is not None and deal.is_closed:
        return DealUpdate(operation="none", reason=f"Deal is {deal.stage.value}")

    if deal is None:
        if match and match[1] == DealStage.CLOSED_LOST:
            return DealUpdate(operation="none", reason=f"Lead signalled '{match[0]}'")
        if not match and not qualifies_by_score(lead):
            return DealUpdate(
                operation="none",
                reason=f"Score {lead.lead_score} below {DEAL_CREATION_SCORE_THRESHOLD} or status {lead.status.value}"
            )

        stage, probability = initial_deal_state(lead)
        value = signal.budget_amount
        if value is None:
            value = estimated_value if estimated_value is not None else DEFAULT_DEAL_VALUE

        return DealUpdate(
            operation="create",
            stage=stage,
            probability=bounded_probability(probability + sentiment_adjustment(signal.sentiment_score)),
            value=max(0.0, float(value)),
            close_date=signal.close_date,
            last_activity_at=now,
            reason=f"Stage keyword '{match[0]}'" if match else f"Lead score {lead.lead_score}",
        )

    stage = None
    if match:
        _, stage, probability = match
        reason = f"Stage keyword '{match[0]}'"
    else:
        probability = deal.probability
        reason = "Sentiment update"

    if stage is None or not stage.is_closed:
        probability += sentiment_adjustment(signal.sentiment_score)

    value = max(0.0, signal.budget_amount) if signal.budget_amount is not None else None

    return DealUpdate(
        operation="update",
        stage=stage,
        probability=bounded_probability(probability),
        value=value,
        close_date=signal.close_date,
        last_activity_at=now,
        reason=reason,
    )


def recompute_probability(
    stage: DealStage,
    last_activity_at: Optional[datetime],
    sentiment: float,
    now: Optional[datetime] = None
) -> float:
    """
    Probability derived only from stage baseline, inactivity and sentiment.

    Depends on nothing but its arguments, so repeated passes over an
    unchanged deal give the same result.
    """
    if stage.is_closed:
        return STAGE_BASELINES[stage]

    now = now or utcnow()
    probability = STAGE_BASELINES[stage]
    probability += staleness_adjustment(days_since(last_activity_at, now))
    probability += sentiment_adjustment(sentiment)
    return bounded_probability(probability)
