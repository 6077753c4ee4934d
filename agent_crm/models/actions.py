"""Agent action payloads, tagged by action type."""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field


class ManagerAlertPayload(BaseModel):
    """Request for a manager to join a live meeting."""
    action_type: Literal["manager_alert"] = "manager_alert"
    meeting_id: str = Field(..., description="Meeting that needs attention")
    lead_name: Optional[str] = Field(None)
    confidence: float = Field(..., ge=0.0, le=1.0)
    reason: str = Field("", description="Why the agent escalated")
    summary: str = Field("", description="One-line alert text")


class FollowupEmailPayload(BaseModel):
    """Drafted follow-up email waiting to be sent."""
    action_type: Literal["followup_email_approval"] = "followup_email_approval"
    campaign_id: str = Field(..., description="Draft in email_campaigns")
    lead_id: str
    lead_name: Optional[str] = None
    days_since_contact: int = 0
    followup_sequence: int = 1


class EmailReplyPayload(BaseModel):
    """Drafted response to an inbound reply."""
    action_type: Literal["email_reply_approval"] = "email_reply_approval"
    email_reply_id: str = Field(..., description="Row in email_replies")
    lead_id: str
    lead_name: Optional[str] = None
    sentiment_score: float = Field(..., ge=0.0, le=1.0)
    draft_response: str = ""


ActionPayload = Annotated[
    Union[ManagerAlertPayload, FollowupEmailPayload, EmailReplyPayload],
    Field(discriminator="action_type"),
]
