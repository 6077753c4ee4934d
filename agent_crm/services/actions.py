"""
Agent Action Queue.

pending --approve--> approved --execute--> executed
pending --reject--> rejected

Actions proposed with requires_approval=False are created auto_approved
and may be executed immediately. Every status change is a conditional
update on the expected current status.
"""

import logging
from typing import Awaitable, Callable, Dict, List, Optional

from agent_crm.core.database import DatabaseService, db_service, utcnow
from agent_crm.core.exceptions import (
    ActionNotApproved,
    AgentCRMError,
    EmailDeliveryError,
    InvalidTransition,
    NotFoundError,
)
from agent_crm.integrations.email import EmailService, email_service
from agent_crm.models import (
    ActionPayload,
    ActionStatus,
    ActionType,
    AgentAction,
    EmailReplyPayload,
    FollowupEmailPayload,
    LeadStatus,
)

logger = logging.getLogger(__name__)

Executor = Callable[[AgentAction], Awaitable[None]]


class ActionQueue:
    """Gating state machine for agent-proposed effects, plus an executor registry."""

    def __init__(
        self,
        db: Optional[DatabaseService] = None,
        email: Optional[EmailService] = None
    ):
        self.db = db or db_service
        self.email = email or email_service
        self._executors: Dict[str, Executor] = {}

        self.register_executor(ActionType.FOLLOWUP_EMAIL_APPROVAL, self._send_followup)
        self.register_executor(ActionType.EMAIL_REPLY_APPROVAL, self._send_reply)

    def register_executor(self, action_type: ActionType, executor: Executor) -> None:
        """Route execution of an action type to a consumer."""
        self._executors[action_type.value] = executor

    # ===========================================
    # State machine
    # ===========================================

    async def propose(
        self,
        payload: ActionPayload,
        agent_type: str,
        requires_approval: bool = True
    ) -> AgentAction:
        """
        Create an action.

        Args:
            payload: Tagged payload; its action_type becomes the row's action_type
            agent_type: Proposing agent
            requires_approval: False creates the action already auto_approved

        Returns:
            The stored action
        """
        status = ActionStatus.PENDING if requires_approval else ActionStatus.AUTO_APPROVED
        data = {
            "action_type": payload.action_type,
            "agent_type": agent_type,
            "requires_approval": requires_approval,
            "status": status.value,
            "data": payload.model_dump(mode="json"),
        }
        if not requires_approval:
            data["approved_at"] = utcnow().isoformat()

        action = await self.db.insert_action(data)
        logger.info(
            f"Proposed {payload.action_type} action {action.id} from {agent_type} "
            f"({status.value})"
        )
        return action

    async def _load(self, action_id: str) -> AgentAction:
        action = await self.db.get_action(action_id)
        if action is None:
            raise NotFoundError(f"Action not found: {action_id}", details={"action_id": action_id})
        return action

    async def _transition(
        self,
        action: AgentAction,
        updates: Dict,
        verb: str
    ) -> AgentAction:
        updated = await self.db.transition_action(action.id, action.status.value, updates)
        if updated is None:
            raise InvalidTransition(
                f"Action {action.id} changed before it could be {verb}",
                details={"action_id": action.id, "expected_status": action.status.value}
            )
        logger.info(f"Action {action.id} {verb}: {action.status.value} -> {updated.status.value}")
        return updated

    async def approve(self, action_id: str) -> AgentAction:
        """pending -> approved."""
        action = await self._load(action_id)
        if action.status != ActionStatus.PENDING:
            raise InvalidTransition(
                f"Cannot approve action in status {action.status.value}",
                details={"action_id": action_id, "status": action.status.value}
            )
        return await self._transition(
            action,
            {"status": ActionStatus.APPROVED.value, "approved_at": utcnow().isoformat()},
            "approved"
        )

    async def reject(self, action_id: str, reason: Optional[str] = None) -> AgentAction:
        """pending -> rejected. Terminal."""
        action = await self._load(action_id)
        if action.status != ActionStatus.PENDING:
            raise InvalidTransition(
                f"Cannot reject action in status {action.status.value}",
                details={"action_id": action_id, "status": action.status.value}
            )
        updates = {"status": ActionStatus.REJECTED.value}
        if reason:
            updates["error_message"] = reason
        return await self._transition(action, updates, "rejected")

    async def execute(self, action_id: str) -> AgentAction:
        """
        approved | auto_approved -> executed, running the registered executor first.

        Raises:
            ActionNotApproved: the action is still pending
            InvalidTransition: the action was rejected or already executed
        """
        action = await self._load(action_id)

        if action.status == ActionStatus.PENDING:
            raise ActionNotApproved(
                f"Action {action_id} requires approval before execution",
                details={"action_id": action_id}
            )
        if not action.status.is_executable:
            raise InvalidTransition(
                f"Cannot execute action in status {action.status.value}",
                details={"action_id": action_id, "status": action.status.value}
            )

        executor = self._executors.get(action.action_type)
        if executor is not None:
            try:
                await executor(action)
            except AgentCRMError as e:
                logger.error(f"Executor for action {action_id} failed: {e.message}")
                await self.db.transition_action(
                    action.id, action.status.value, {"error_message": e.message}
                )
                raise

        return await self._transition(
            action,
            {"status": ActionStatus.EXECUTED.value, "executed_at": utcnow().isoformat()},
            "executed"
        )

    async def list_pending(self, limit: int = 100) -> List[AgentAction]:
        """Actions waiting for a human decision, newest first."""
        return await self.db.list_actions(status=ActionStatus.PENDING.value, limit=limit)

    # ===========================================
    # Built-in executors
    # ===========================================

    async def _send_followup(self, action: AgentAction) -> None:
        """Send the referenced follow-up draft and mark it sent."""
        payload: FollowupEmailPayload = action.data
        campaign = await self.db.get_campaign(payload.campaign_id)
        if campaign is None:
            raise NotFoundError(f"Campaign not found: {payload.campaign_id}")

        lead = await self.db.get_lead(payload.lead_id)
        if lead is None or not lead.email:
            raise EmailDeliveryError(
                "Lead has no email address",
                details={"lead_id": payload.lead_id}
            )

        await self.email.send_email([lead.email], campaign.subject, campaign.body)

        now = utcnow().isoformat()
        await self.db.update_campaign(campaign.id, {"draft_status": "sent", "sent_at": now})

        lead_updates = {"last_contacted_at": now}
        if lead.status == LeadStatus.NEW:
            lead_updates["status"] = LeadStatus.CONTACTED.value
        await self.db.update_lead(lead.id, lead_updates)

    async def _send_reply(self, action: AgentAction) -> None:
        """Send the drafted response to an inbound reply."""
        payload: EmailReplyPayload = action.data
        reply = await self.db.get_reply(payload.email_reply_id)
        if reply is None:
            raise NotFoundError(f"Email reply not found: {payload.email_reply_id}")

        lead = await self.db.get_lead(payload.lead_id)
        if lead is None or not lead.email:
            raise EmailDeliveryError(
                "Lead has no email address",
                details={"lead_id": payload.lead_id}
            )

        subject = "Re: your message"
        if reply.campaign_id:
            campaign = await self.db.get_campaign(reply.campaign_id)
            if campaign is not None and campaign.subject:
                subject = f"Re: {campaign.subject}"

        body = reply.draft_response or payload.draft_response
        await self.email.send_email([lead.email], subject, body)

        await self.db.update_reply(reply.id, {"status": "sent"})
        await self.db.update_lead(lead.id, {"last_contacted_at": utcnow().isoformat()})


# Singleton instance
action_queue = ActionQueue()
