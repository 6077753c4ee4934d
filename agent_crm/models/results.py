"""Result models returned by engine operations."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from agent_crm.models.enums import DealStage, RunStatus
from agent_crm.models.signal import Signal


class DealUpdate(BaseModel):
    """Outcome of applying a signal to a lead's deal state."""
    operation: Literal["create", "update", "none"] = Field("none")
    stage: Optional[DealStage] = Field(None)
    probability: Optional[float] = Field(None, ge=0.0, le=1.0)
    value: Optional[float] = Field(None, ge=0.0)
    close_date: Optional[str] = Field(None)
    last_activity_at: Optional[datetime] = Field(None)
    reason: str = Field("", description="Why the engine decided this")

    def changes(self) -> Dict[str, Any]:
        """Column updates for the deals table."""
        fields: Dict[str, Any] = {}
        if self.stage is not None:
            fields["stage"] = self.stage.value
        if self.probability is not None:
            fields["probability"] = self.probability
        if self.value is not None:
            fields["value"] = self.value
        if self.close_date is not None:
            fields["close_date"] = self.close_date
        if self.last_activity_at is not None:
            fields["last_activity_at"] = self.last_activity_at.isoformat()
        return fields


class EmailAnalysisResult(BaseModel):
    """Result of folding an email into deal state."""
    signal: Signal
    update: DealUpdate
    deal_id: Optional[str] = None
    deal_updated: bool = False
    deal_created: bool = False


class RunResult(BaseModel):
    """Aggregated outcome of one agent run."""
    agent_type: str
    run_id: Optional[str] = None
    status: RunStatus = RunStatus.FAILED
    actions_count: int = 0
    failed_items: int = 0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == RunStatus.COMPLETED


class OrchestrationResult(BaseModel):
    """Per-branch outcomes of an orchestrator dispatch."""
    results: Dict[str, RunResult] = Field(default_factory=dict)

    @property
    def success(self) -> bool:
        return all(result.success for result in self.results.values())

    def summary(self) -> Dict[str, Any]:
        return {
            agent_type: {
                "success": result.success,
                "run_id": result.run_id,
                "actions": result.actions_count,
                "failed_items": result.failed_items,
                "error": result.error,
            }
            for agent_type, result in self.results.items()
        }


class MeetingPreparation(BaseModel):
    """Output of the prepare transition."""
    meeting_id: str
    notes: str
    context: Dict[str, Any] = Field(default_factory=dict)


class LiveSessionConfig(BaseModel):
    """Configuration handed to the voice collaborator on join."""
    model: str
    system_instruction: str
    temperature: float
    max_output_tokens: int


class MeetingAnalysis(BaseModel):
    """Output of one analyze pass."""
    meeting_id: str
    signal: Signal
    alert_triggered: bool = False
    alert_action_id: Optional[str] = None


class ReplyResult(BaseModel):
    """Output of handling an inbound email reply."""
    email_reply_id: str
    sentiment_score: float
    requires_review: bool
    action_id: Optional[str] = None
    deal_analysis: Optional[EmailAnalysisResult] = None
    errors: List[str] = Field(default_factory=list)
