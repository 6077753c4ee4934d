"""API Routes - One entry point per externally-triggered unit of work."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from agent_crm.core.database import db_service
from agent_crm.core.exceptions import (
    AgentCRMError,
    DatastoreError,
    EmailDeliveryError,
    InferenceError,
    InvariantViolation,
    NotFoundError,
)
from agent_crm.models import AgentType
from agent_crm.services.actions import action_queue
from agent_crm.services.deals import deal_service
from agent_crm.services.meetings import meeting_controller
from agent_crm.services.orchestrator import orchestrator
from agent_crm.services.replies import reply_handler

logger = logging.getLogger(__name__)


def status_code_for(error: AgentCRMError) -> int:
    """HTTP status for an engine error."""
    if isinstance(error, InvariantViolation):
        return 409
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, (DatastoreError, InferenceError, EmailDeliveryError)):
        return 502
    return 500


# ===========================================
# Request / Response Models
# ===========================================

class ApiResponse(BaseModel):
    """Structured success envelope."""
    status: str
    message: str
    data: Dict[str, Any] = {}


class AgentRunRequest(BaseModel):
    agent_type: Optional[str] = Field(None, description="Single agent to run; default set if omitted")


class AnalyzeEmailRequest(BaseModel):
    lead_id: str = Field(..., min_length=1)
    email_content: str = Field(..., min_length=1)


class TranscriptRequest(BaseModel):
    transcript: str = Field(..., min_length=1)
    duration: Optional[int] = Field(None, ge=0, description="Seconds elapsed")


class CompleteMeetingRequest(BaseModel):
    transcript: str = Field(..., min_length=1)
    outcome: Optional[str] = Field(None)


class RejectActionRequest(BaseModel):
    reason: Optional[str] = Field(None)


class ReplyRequest(BaseModel):
    lead_id: str = Field(..., min_length=1)
    reply_content: str = Field(..., min_length=1)
    campaign_id: Optional[str] = Field(None)


# ===========================================
# Agents
# ===========================================

agents_router = APIRouter(prefix="/agents", tags=["agents"])


@agents_router.post("/run", response_model=ApiResponse, summary="Run Batch Agents")
async def run_agents(request: AgentRunRequest) -> ApiResponse:
    """
    Dispatch one agent, or the default set concurrently.

    Per-agent failures are reported in the response, never raised.
    """
    try:
        result = await orchestrator.run(request.agent_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ApiResponse(
        status="success" if result.success else "partial",
        message="Agent orchestrator completed",
        data={"results": result.summary()}
    )


# ===========================================
# Deals
# ===========================================

deals_router = APIRouter(prefix="/deals", tags=["deals"])


@deals_router.post("/analyze-email", response_model=ApiResponse, summary="Analyze Email For Deal Signals")
async def analyze_email(request: AnalyzeEmailRequest) -> ApiResponse:
    """Fold an email into the lead's deal."""
    result = await deal_service.analyze_email(request.lead_id, request.email_content)
    return ApiResponse(
        status="success",
        message=result.update.reason or "Email analyzed",
        data=result.model_dump(mode="json")
    )


@deals_router.post("/recalculate", response_model=ApiResponse, summary="Recalculate Deal Probabilities")
async def recalculate_probabilities() -> ApiResponse:
    """Periodic probability recompute over all open deals."""
    result = await orchestrator.agents[AgentType.DEAL_PROBABILITY].run()
    return ApiResponse(
        status="success" if result.success else "partial",
        message=f"Recomputed probabilities ({result.actions_count} changed)",
        data=result.model_dump(mode="json")
    )


@deals_router.post("/auto-create", response_model=ApiResponse, summary="Create Deals For High-Intent Leads")
async def auto_create_deals() -> ApiResponse:
    """Create deals for high-intent leads without an active deal."""
    result = await orchestrator.agents[AgentType.DEAL_CREATION].run()
    return ApiResponse(
        status="success" if result.success else "partial",
        message=f"Created {result.actions_count} deals",
        data=result.model_dump(mode="json")
    )


# ===========================================
# Meetings
# ===========================================

meetings_router = APIRouter(prefix="/meetings", tags=["meetings"])


@meetings_router.post("/{meeting_id}/prepare", response_model=ApiResponse, summary="Prepare Meeting")
async def prepare_meeting(meeting_id: str) -> ApiResponse:
    preparation = await meeting_controller.prepare(meeting_id)
    return ApiResponse(
        status="success",
        message="Meeting prepared",
        data=preparation.model_dump(mode="json")
    )


@meetings_router.post("/{meeting_id}/join", response_model=ApiResponse, summary="Agent Joins Meeting")
async def join_meeting(meeting_id: str) -> ApiResponse:
    config = await meeting_controller.join(meeting_id)
    return ApiResponse(
        status="success",
        message="Agent joined meeting",
        data={"live_config": config.model_dump(mode="json")}
    )


@meetings_router.post("/{meeting_id}/analyze", response_model=ApiResponse, summary="Analyze Live Transcript")
async def analyze_meeting(meeting_id: str, request: TranscriptRequest) -> ApiResponse:
    """Repeatable while the meeting is in progress."""
    try:
        analysis = await meeting_controller.analyze(meeting_id, request.transcript, request.duration)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ApiResponse(
        status="success",
        message="Manager alerted" if analysis.alert_triggered else "Transcript analyzed",
        data=analysis.model_dump(mode="json")
    )


@meetings_router.post("/{meeting_id}/complete", response_model=ApiResponse, summary="Complete Meeting")
async def complete_meeting(meeting_id: str, request: CompleteMeetingRequest) -> ApiResponse:
    try:
        meeting = await meeting_controller.complete(meeting_id, request.transcript, request.outcome)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ApiResponse(
        status="success",
        message="Meeting completed",
        data={
            "meeting_id": meeting.id,
            "summary": meeting.conversation_summary,
            "outcome": meeting.outcome,
        }
    )


# ===========================================
# Actions
# ===========================================

actions_router = APIRouter(prefix="/actions", tags=["actions"])


@actions_router.get("/pending", summary="List Pending Actions")
async def list_pending_actions(limit: int = 100) -> Dict[str, Any]:
    actions = await action_queue.list_pending(limit=limit)
    return {
        "count": len(actions),
        "actions": [action.model_dump(mode="json") for action in actions]
    }


@actions_router.post("/{action_id}/approve", response_model=ApiResponse, summary="Approve Action")
async def approve_action(action_id: str) -> ApiResponse:
    action = await action_queue.approve(action_id)
    return ApiResponse(status="success", message="Action approved", data=action.model_dump(mode="json"))


@actions_router.post("/{action_id}/reject", response_model=ApiResponse, summary="Reject Action")
async def reject_action(action_id: str, request: Optional[RejectActionRequest] = None) -> ApiResponse:
    action = await action_queue.reject(action_id, request.reason if request else None)
    return ApiResponse(status="success", message="Action rejected", data=action.model_dump(mode="json"))


@actions_router.post("/{action_id}/execute", response_model=ApiResponse, summary="Execute Action")
async def execute_action(action_id: str) -> ApiResponse:
    action = await action_queue.execute(action_id)
    return ApiResponse(status="success", message="Action executed", data=action.model_dump(mode="json"))


# ===========================================
# Replies
# ===========================================

replies_router = APIRouter(prefix="/replies", tags=["replies"])


@replies_router.post("", response_model=ApiResponse, summary="Handle Email Reply")
async def handle_reply(request: ReplyRequest) -> ApiResponse:
    """Score the reply, draft a response and gate it on sentiment."""
    result = await reply_handler.handle_reply(
        request.lead_id,
        request.reply_content,
        request.campaign_id
    )
    return ApiResponse(
        status="success" if not result.errors else "partial",
        message="Reply queued for review" if result.requires_review else "Reply auto-approved",
        data=result.model_dump(mode="json")
    )


# ===========================================
# Health
# ===========================================

health_router = APIRouter(tags=["health"])


@health_router.get("/health")
async def health_check() -> Dict[str, Any]:
    """Health check endpoint."""
    database_ok = await db_service.health_check()
    return {
        "status": "healthy" if database_ok else "degraded",
        "service": "agent-crm-engine",
        "database": "ok" if database_ok else "unavailable",
        "agents": [agent_type.value for agent_type in orchestrator.agents],
    }


routers = [
    agents_router,
    deals_router,
    meetings_router,
    actions_router,
    replies_router,
    health_router,
]
