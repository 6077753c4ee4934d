"""Enumeration types for the CRM engine."""

from enum import Enum


class LeadStatus(str, Enum):
    """Status progression for leads through the pipeline."""
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    MEETING_SCHEDULED = "meeting_scheduled"
    PROPOSAL = "proposal"
    NEGOTIATION = "negotiation"
    WON = "won"
    LOST = "lost"

    @property
    def is_terminal(self) -> bool:
        return self in (LeadStatus.WON, LeadStatus.LOST)


class DealStage(str, Enum):
    """Deal pipeline stages. Closed stages are absorbing."""
    PROSPECT = "prospect"
    QUALIFIED = "qualified"
    PROPOSAL = "proposal"
    NEGOTIATION = "negotiation"
    CLOSED_WON = "closed_won"
    CLOSED_LOST = "closed_lost"

    @property
    def is_closed(self) -> bool:
        return self in (DealStage.CLOSED_WON, DealStage.CLOSED_LOST)


CLOSED_STAGES = (DealStage.CLOSED_WON.value, DealStage.CLOSED_LOST.value)


class RunStatus(str, Enum):
    """Agent run status. Terminal once completed or failed."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ActionStatus(str, Enum):
    """Agent action approval state machine."""
    PENDING = "pending"
    APPROVED = "approved"
    AUTO_APPROVED = "auto_approved"
    REJECTED = "rejected"
    EXECUTED = "executed"

    @property
    def is_executable(self) -> bool:
        return self in (ActionStatus.APPROVED, ActionStatus.AUTO_APPROVED)


class ActionType(str, Enum):
    """Kinds of effects an agent can propose."""
    MANAGER_ALERT = "manager_alert"
    FOLLOWUP_EMAIL_APPROVAL = "followup_email_approval"
    EMAIL_REPLY_APPROVAL = "email_reply_approval"


class AgentType(str, Enum):
    """Autonomous processes that open runs or propose actions."""
    LEAD_SCORING = "lead_scoring"
    DEAL_PIPELINE = "deal_pipeline"
    DEAL_CREATION = "deal_creation"
    DEAL_PROBABILITY = "deal_probability"
    FOLLOW_UP = "follow_up"
    MEETING_VOICE_AGENT = "meeting_voice_agent"
    EMAIL_ASSISTANT = "email_assistant"


class MeetingStatus(str, Enum):
    """Meeting lifecycle states."""
    SCHEDULED = "scheduled"
    PREPARED = "prepared"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Sentiment(str, Enum):
    """Sentiment labels returned by the inference model."""
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class SignalKind(str, Enum):
    """What a piece of free text is being interpreted as."""
    MEETING_TRANSCRIPT = "meeting_transcript"
    EMAIL_REPLY = "email_reply"
    REPLY_SENTIMENT = "reply_sentiment"
