"""Models package - All Pydantic models organized by domain."""

from agent_crm.models.enums import (
    ActionStatus,
    ActionType,
    AgentType,
    DealStage,
    LeadStatus,
    MeetingStatus,
    RunStatus,
    Sentiment,
    SignalKind,
    CLOSED_STAGES,
)
from agent_crm.models.actions import (
    ActionPayload,
    EmailReplyPayload,
    FollowupEmailPayload,
    ManagerAlertPayload,
)
from agent_crm.models.signal import AlertRequest, Signal
from agent_crm.models.records import (
    AgentAction,
    AgentRun,
    Deal,
    EmailCampaign,
    EmailReply,
    Lead,
    Meeting,
)
from agent_crm.models.results import (
    DealUpdate,
    EmailAnalysisResult,
    LiveSessionConfig,
    MeetingAnalysis,
    MeetingPreparation,
    OrchestrationResult,
    ReplyResult,
    RunResult,
)

__all__ = [
    # Enums
    "ActionStatus",
    "ActionType",
    "AgentType",
    "DealStage",
    "LeadStatus",
    "MeetingStatus",
    "RunStatus",
    "Sentiment",
    "SignalKind",
    "CLOSED_STAGES",
    # Action payloads
    "ActionPayload",
    "EmailReplyPayload",
    "FollowupEmailPayload",
    "ManagerAlertPayload",
    # Signal
    "AlertRequest",
    "Signal",
    # Records
    "AgentAction",
    "AgentRun",
    "Deal",
    "EmailCampaign",
    "EmailReply",
    "Lead",
    "Meeting",
    # Results
    "DealUpdate",
    "EmailAnalysisResult",
    "LiveSessionConfig",
    "MeetingAnalysis",
    "MeetingPreparation",
    "OrchestrationResult",
    "ReplyResult",
    "RunResult",
]
