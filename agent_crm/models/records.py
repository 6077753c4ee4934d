"""Datastore records - one model per table row."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from agent_crm.models.actions import ActionPayload
from agent_crm.models.enums import (
    ActionStatus,
    DealStage,
    LeadStatus,
    MeetingStatus,
    RunStatus,
)


class Lead(BaseModel):
    """Prospective customer tracked through the status pipeline."""
    id: str = Field(..., description="Database record ID")
    name: Optional[str] = Field(None, description="Contact name")
    email: Optional[str] = Field(None, description="Contact email")
    company: Optional[str] = Field(None, description="Company name")
    industry: Optional[str] = Field(None, description="Company industry")
    notes: Optional[str] = Field(None, description="Free-form notes")
    intent: Optional[str] = Field(None, description="What the lead is looking for")
    website: Optional[str] = Field(None, description="Company website")
    linkedin_url: Optional[str] = Field(None, description="LinkedIn profile")
    deal_value: Optional[float] = Field(None, description="Value hint captured at lead creation")

    status: LeadStatus = Field(LeadStatus.NEW, description="Pipeline status")
    lead_score: int = Field(0, description="Lead score 0-100")
    sentiment_score: float = Field(0.5, description="Latest sentiment 0-1")

    last_contacted_at: Optional[datetime] = Field(None, description="Last outbound contact")
    last_reply_at: Optional[datetime] = Field(None, description="Last inbound reply")
    next_followup_at: Optional[datetime] = Field(None, description="Scheduled follow-up")
    unresponsive_days: Optional[int] = Field(None, description="Derived, recomputed by the follow-up agent")
    created_at: Optional[datetime] = Field(None, description="Record creation time")

    class Config:
        extra = "ignore"

    @field_validator("lead_score", mode="before")
    @classmethod
    def _score_default(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("sentiment_score", mode="before")
    @classmethod
    def _sentiment_default(cls, value: Any) -> Any:
        return 0.5 if value is None else value

    @property
    def display_name(self) -> str:
        return self.name or self.company or self.id


class Deal(BaseModel):
    """Monetary opportunity owned by a lead."""
    id: str = Field(..., description="Database record ID")
    lead_id: str = Field(..., description="Owning lead")
    name: Optional[str] = Field(None, description="Deal name")
    stage: DealStage = Field(DealStage.PROSPECT, description="Pipeline stage")
    value: float = Field(0.0, ge=0.0, description="Monetary value")
    probability: float = Field(0.0, ge=0.0, le=1.0, description="Win probability")
    close_date: Optional[str] = Field(None, description="Expected close date")
    source: Optional[str] = Field(None, description="What created the deal")
    last_activity_at: Optional[datetime] = Field(None, description="Last signal applied")
    created_at: Optional[datetime] = Field(None, description="Record creation time")

    class Config:
        extra = "ignore"

    @field_validator("value", "probability", mode="before")
    @classmethod
    def _numeric_default(cls, value: Any) -> Any:
        return 0.0 if value is None else value

    @property
    def is_closed(self) -> bool:
        return self.stage.is_closed


class AgentRun(BaseModel):
    """One execution of a batch job."""
    id: str = Field(..., description="Database record ID")
    agent_type: str = Field(..., description="Which agent ran")
    status: RunStatus = Field(RunStatus.RUNNING, description="Run status")
    started_at: Optional[datetime] = Field(None)
    completed_at: Optional[datetime] = Field(None)
    actions_taken: List[Dict[str, Any]] = Field(default_factory=list)
    errors: Optional[Any] = Field(None, description="Failure details when status is failed")

    class Config:
        extra = "ignore"

    @field_validator("actions_taken", mode="before")
    @classmethod
    def _actions_default(cls, value: Any) -> Any:
        return [] if value is None else value


class AgentAction(BaseModel):
    """A proposed effect gated by the approval state machine."""
    id: str = Field(..., description="Database record ID")
    agent_type: str = Field(..., description="Proposing agent")
    action_type: str = Field(..., description="Payload tag")
    requires_approval: bool = Field(True, description="Decided at creation, immutable")
    status: ActionStatus = Field(ActionStatus.PENDING)
    data: ActionPayload = Field(..., description="Replayable payload")
    error_message: Optional[str] = Field(None)
    created_at: Optional[datetime] = Field(None)
    approved_at: Optional[datetime] = Field(None)
    executed_at: Optional[datetime] = Field(None)

    class Config:
        extra = "ignore"

    @model_validator(mode="before")
    @classmethod
    def _tag_payload(cls, values: Any) -> Any:
        # Rows written before payloads carried their own tag fall back to the column.
        if isinstance(values, dict):
            data = values.get("data")
            if isinstance(data, dict) and "action_type" not in data:
                values = {**values, "data": {**data, "action_type": values.get("action_type")}}
        return values


class Meeting(BaseModel):
    """A live sales conversation with a lead."""
    id: str = Field(..., description="Database record ID")
    lead_id: str = Field(..., description="Owning lead")
    title: Optional[str] = Field(None)
    scheduled_at: Optional[datetime] = Field(None)
    status: MeetingStatus = Field(MeetingStatus.SCHEDULED)

    agent_notes: Optional[str] = Field(None, description="Preparation output")
    agent_joined_at: Optional[datetime] = Field(None)
    manager_joined_at: Optional[datetime] = Field(None)

    real_time_transcript: Optional[str] = Field(None)
    ai_agent_confidence_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    sentiment_analysis: Optional[Dict[str, Any]] = Field(None)
    meeting_duration: Optional[int] = Field(None)
    manager_alert_triggered: bool = Field(False)
    manager_alert_reason: Optional[str] = Field(None)

    transcript: Optional[str] = Field(None)
    conversation_summary: Optional[str] = Field(None)
    outcome: Optional[str] = Field(None)

    class Config:
        extra = "ignore"

    @field_validator("manager_alert_triggered", mode="before")
    @classmethod
    def _flag_default(cls, value: Any) -> Any:
        return False if value is None else value


class EmailCampaign(BaseModel):
    """Outbound email draft or sent message."""
    id: str
    lead_id: str
    subject: str = ""
    body: str = ""
    draft_status: str = "draft"
    is_automated_followup: bool = False
    followup_sequence_number: int = 0
    agent_notes: Optional[str] = None
    sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        extra = "ignore"

    @field_validator("followup_sequence_number", mode="before")
    @classmethod
    def _sequence_default(cls, value: Any) -> Any:
        return 0 if value is None else value


class EmailReply(BaseModel):
    """Inbound reply with its drafted response."""
    id: str
    lead_id: str
    campaign_id: Optional[str] = None
    reply_content: str = ""
    sentiment_score: float = 0.5
    draft_response: str = ""
    status: str = "pending"
    requires_manager_review: bool = False

    class Config:
        extra = "ignore"
