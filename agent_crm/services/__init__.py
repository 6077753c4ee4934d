"""Services module - Engine components and batch agents."""

from agent_crm.services.actions import ActionQueue, action_queue
from agent_crm.services.deals import DealService, deal_service
from agent_crm.services.ledger import AgentRunLedger, RunHandle, run_ledger
from agent_crm.services.meetings import MeetingController, meeting_controller
from agent_crm.services.orchestrator import Orchestrator, orchestrator
from agent_crm.services.replies import ReplyHandler, reply_handler

__all__ = [
    "ActionQueue",
    "action_queue",
    "DealService",
    "deal_service",
    "AgentRunLedger",
    "RunHandle",
    "run_ledger",
    "MeetingController",
    "meeting_controller",
    "Orchestrator",
    "orchestrator",
    "ReplyHandler",
    "reply_handler",
]
