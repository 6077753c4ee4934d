"""Signal - the bounded result of interpreting free text."""

from typing import List, Optional

from pydantic import BaseModel, Field

from agent_crm.models.enums import Sentiment, SignalKind


class AlertRequest(BaseModel):
    """Model-side request to escalate to a manager."""
    needed: bool = Field(False, description="Whether the model asked for a manager")
    reason: str = Field("", description="Model's explanation")

    class Config:
        frozen = True


class Signal(BaseModel):
    """
    Structured, bounded interpretation of an email reply or transcript.

    Every field has a neutral default so a partially decoded model response,
    or no response at all, still yields a usable value.
    """
    kind: SignalKind = Field(..., description="What the text was interpreted as")
    confidence: float = Field(0.5, ge=0.0, le=1.0, description="How well the conversation is going")
    sentiment: Sentiment = Field(Sentiment.NEUTRAL, description="Sentiment label")
    sentiment_score: float = Field(0.5, ge=0.0, le=1.0, description="Sentiment on a 0-1 scale")
    concerns: List[str] = Field(default_factory=list)
    next_actions: List[str] = Field(default_factory=list)
    alert_manager: AlertRequest = Field(default_factory=AlertRequest)

    stage_signal: Optional[str] = Field(None, description="Stage keyword, e.g. 'proposal sent'")
    budget_amount: Optional[float] = Field(None, description="Budget mentioned, if any")
    close_date: Optional[str] = Field(None, description="Close date mentioned, if any")
    next_action: Optional[str] = Field(None)

    degraded: bool = Field(False, description="True when this is the fallback value")

    class Config:
        frozen = True

    @property
    def requests_escalation(self) -> bool:
        return self.alert_manager.needed
