"""Supabase database service for the Agent CRM engine."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from supabase import Client, create_client
from supabase.lib.client_options import ClientOptions

from agent_crm.core.config import get_settings
from agent_crm.core.exceptions import DatastoreError, NotFoundError
from agent_crm.models import (
    CLOSED_STAGES,
    AgentAction,
    AgentRun,
    Deal,
    EmailCampaign,
    EmailReply,
    Lead,
    Meeting,
    MeetingStatus,
    RunStatus,
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DatabaseService:
    """
    Service for Supabase database operations.

    Every statement is its own unit of work; there are no transactions.
    Cross-row invariants are enforced by callers with read-then-conditionally-write
    sequences, using the conditional updates exposed here.

    Uses sync Supabase client but exposed through async interface
    for consistency with the rest of the application.
    """

    LEADS = "leads"
    DEALS = "deals"
    AGENT_RUNS = "agent_runs"
    AGENT_ACTIONS = "agent_actions"
    MEETINGS = "meetings"
    EMAIL_CAMPAIGNS = "email_campaigns"
    EMAIL_REPLIES = "email_replies"

    def __init__(self, client: Optional[Client] = None):
        """Initialize with an optional pre-built client (tests inject one)."""
        self._client: Optional[Client] = client

    @property
    def client(self) -> Client:
        """Lazy initialization of Supabase client."""
        if self._client is None:
            settings = get_settings()
            if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
                raise DatastoreError("Supabase credentials not configured")

            self._client = create_client(
                settings.SUPABASE_URL,
                settings.SUPABASE_KEY,
                options=ClientOptions(
                    postgrest_client_timeout=30,
                    storage_client_timeout=30
                )
            )
            logger.info("Supabase client initialized")
        return self._client

    def _execute(self, query: Any, operation: str) -> Any:
        """Run a built query, converting client failures into DatastoreError."""
        try:
            return query.execute()
        except Exception as e:
            logger.error(f"Datastore error during {operation}: {e}")
            raise DatastoreError(
                f"Datastore error during {operation}",
                details={"cause": str(e)}
            ) from e

    def _first(self, response: Any) -> Optional[Dict[str, Any]]:
        if response is not None and response.data:
            return response.data[0]
        return None

    def _require(self, row: Optional[Dict[str, Any]], table: str, row_id: str) -> Dict[str, Any]:
        if row is None:
            raise NotFoundError(f"{table} row not found: {row_id}", details={"id": row_id})
        return row

    # ===========================================
    # Leads
    # ===========================================

    async def get_lead(self, lead_id: str) -> Optional[Lead]:
        """Fetch lead by ID."""
        response = self._execute(
            self.client.table(self.LEADS).select("*").eq("id", lead_id).limit(1),
            f"get_lead({lead_id})"
        )
        row = self._first(response)
        if row is None:
            logger.warning(f"Lead not found: {lead_id}")
            return None
        return Lead(**row)

    async def list_leads(self) -> List[Lead]:
        """Fetch every lead."""
        response = self._execute(
            self.client.table(self.LEADS).select("*").order("created_at"),
            "list_leads"
        )
        return [Lead(**row) for row in response.data or []]

    async def list_high_intent_leads(
        self,
        min_score: int,
        statuses: Iterable[str]
    ) -> List[Lead]:
        """Fetch leads at or above a score within the given statuses."""
        response = self._execute(
            self.client.table(self.LEADS)
            .select("*")
            .gte("lead_score", min_score)
            .in_("status", list(statuses)),
            "list_high_intent_leads"
        )
        return [Lead(**row) for row in response.data or []]

    async def list_unresponsive_leads(
        self,
        cutoff: datetime,
        statuses: Iterable[str],
        limit: int
    ) -> List[Lead]:
        """Leads last contacted before cutoff with no reply since cutoff."""
        iso = cutoff.isoformat()
        response = self._execute(
            self.client.table(self.LEADS)
            .select("*")
            .lt("last_contacted_at", iso)
            .or_(f"last_reply_at.is.null,last_reply_at.lt.{iso}")
            .in_("status", list(statuses))
            .limit(limit),
            "list_unresponsive_leads"
        )
        return [Lead(**row) for row in response.data or []]

    async def update_lead(self, lead_id: str, updates: Dict[str, Any]) -> Lead:
        """Update lead with partial data."""
        response = self._execute(
            self.client.table(self.LEADS).update(updates).eq("id", lead_id),
            f"update_lead({lead_id})"
        )
        row = self._require(self._first(response), self.LEADS, lead_id)
        logger.info(f"Updated lead {lead_id}: {list(updates.keys())}")
        return Lead(**row)

    # ===========================================
    # Deals
    # ===========================================

    async def find_active_deal(self, lead_id: str) -> Optional[Deal]:
        """Most recent deal for the lead outside the closed stages."""
        response = self._execute(
            self.client.table(self.DEALS)
            .select("*")
            .eq("lead_id", lead_id)
            .not_.in_("stage", list(CLOSED_STAGES))
            .order("created_at", desc=True)
            .limit(1),
            f"find_active_deal({lead_id})"
        )
        row = self._first(response)
        return Deal(**row) if row else None

    async def list_open_deals(self) -> List[Deal]:
        """Every deal outside the closed stages."""
        response = self._execute(
            self.client.table(self.DEALS)
            .select("*")
            .not_.in_("stage", list(CLOSED_STAGES)),
            "list_open_deals"
        )
        return [Deal(**row) for row in response.data or []]

    async def insert_deal(self, data: Dict[str, Any]) -> Deal:
        """Create a deal row."""
        response = self._execute(
            self.client.table(self.DEALS).insert(data),
            "insert_deal"
        )
        row = self._first(response)
        if row is None:
            raise DatastoreError("Deal insert returned no data")
        logger.info(f"Created deal {row.get('id')} for lead {data.get('lead_id')}")
        return Deal(**row)

    async def update_deal(self, deal_id: str, updates: Dict[str, Any]) -> Deal:
        """Update deal with partial data, refusing to touch closed deals."""
        response = self._execute(
            self.client.table(self.DEALS)
            .update(updates)
            .eq("id", deal_id)
            .not_.in_("stage", list(CLOSED_STAGES)),
            f"update_deal({deal_id})"
        )
        row = self._require(self._first(response), self.DEALS, deal_id)
        logger.info(f"Updated deal {deal_id}: {list(updates.keys())}")
        return Deal(**row)

    # ===========================================
    # Agent runs
    # ===========================================

    async def insert_run(self, agent_type: str) -> AgentRun:
        """Open a run record in the running state."""
        response = self._execute(
            self.client.table(self.AGENT_RUNS).insert({
                "agent_type": agent_type,
                "status": RunStatus.RUNNING.value,
                "started_at": utcnow().isoformat(),
            }),
            f"insert_run({agent_type})"
        )
        row = self._first(response)
        if row is None:
            raise DatastoreError(f"Run insert returned no data for {agent_type}")
        return AgentRun(**row)

    async def finish_run(
        self,
        run_id: str,
        status: RunStatus,
        actions_taken: List[Dict[str, Any]],
        errors: Optional[Any] = None
    ) -> bool:
        """Move a running run to a terminal status. False if it was already terminal."""
        updates: Dict[str, Any] = {
            "status": status.value,
            "completed_at": utcnow().isoformat(),
            "actions_taken": actions_taken,
        }
        if errors is not None:
            updates["errors"] = errors

        response = self._execute(
            self.client.table(self.AGENT_RUNS)
            .update(updates)
            .eq("id", run_id)
            .eq("status", RunStatus.RUNNING.value),
            f"finish_run({run_id})"
        )
        return bool(response.data)

    async def get_run(self, run_id: str) -> Optional[AgentRun]:
        """Fetch run by ID."""
        response = self._execute(
            self.client.table(self.AGENT_RUNS).select("*").eq("id", run_id).limit(1),
            f"get_run({run_id})"
        )
        row = self._first(response)
        return AgentRun(**row) if row else None

    # ===========================================
    # Agent actions
    # ===========================================

    async def insert_action(self, data: Dict[str, Any]) -> AgentAction:
        """Create an action row."""
        response = self._execute(
            self.client.table(self.AGENT_ACTIONS).insert(data),
            "insert_action"
        )
        row = self._first(response)
        if row is None:
            raise DatastoreError("Action insert returned no data")
        return AgentAction(**row)

    async def get_action(self, action_id: str) -> Optional[AgentAction]:
        """Fetch action by ID."""
        response = self._execute(
            self.client.table(self.AGENT_ACTIONS).select("*").eq("id", action_id).limit(1),
            f"get_action({action_id})"
        )
        row = self._first(response)
        return AgentAction(**row) if row else None

    async def transition_action(
        self,
        action_id: str,
        expected_status: str,
        updates: Dict[str, Any]
    ) -> Optional[AgentAction]:
        """
        Compare-and-swap on action status.

        Applies updates only if the row is still in expected_status.
        Returns the updated action, or None if another writer got there first.
        """
        response = self._execute(
            self.client.table(self.AGENT_ACTIONS)
            .update(updates)
            .eq("id", action_id)
            .eq("status", expected_status),
            f"transition_action({action_id})"
        )
        row = self._first(response)
        return AgentAction(**row) if row else None

    async def list_actions(
        self,
        status: Optional[str] = None,
        action_type: Optional[str] = None,
        limit: int = 100
    ) -> List[AgentAction]:
        """Fetch actions, newest first."""
        query = self.client.table(self.AGENT_ACTIONS).select("*")
        if status:
            query = query.eq("status", status)
        if action_type:
            query = query.eq("action_type", action_type)
        response = self._execute(
            query.order("created_at", desc=True).limit(limit),
            "list_actions"
        )
        return [AgentAction(**row) for row in response.data or []]

    # ===========================================
    # Meetings
    # ===========================================

    async def get_meeting(self, meeting_id: str) -> Optional[Meeting]:
        """Fetch meeting by ID."""
        response = self._execute(
            self.client.table(self.MEETINGS).select("*").eq("id", meeting_id).limit(1),
            f"get_meeting({meeting_id})"
        )
        row = self._first(response)
        return Meeting(**row) if row else None

    async def update_meeting(
        self,
        meeting_id: str,
        updates: Dict[str, Any],
        expected_status: Optional[MeetingStatus] = None
    ) -> Optional[Meeting]:
        """
        Update meeting with partial data.

        With expected_status the update is conditional and returns None when
        the meeting has moved on in the meantime.
        """
        query = self.client.table(self.MEETINGS).update(updates).eq("id", meeting_id)
        if expected_status is not None:
            query = query.eq("status", expected_status.value)

        response = self._execute(query, f"update_meeting({meeting_id})")
        row = self._first(response)
        if row is None:
            if expected_status is None:
                raise NotFoundError(f"meetings row not found: {meeting_id}", details={"id": meeting_id})
            return None
        logger.info(f"Updated meeting {meeting_id}: {list(updates.keys())}")
        return Meeting(**row)

    async def has_scheduled_meeting(self, lead_id: str) -> bool:
        """Whether the lead has a meeting still in the scheduled state."""
        response = self._execute(
            self.client.table(self.MEETINGS)
            .select("id")
            .eq("lead_id", lead_id)
            .eq("status", MeetingStatus.SCHEDULED.value)
            .limit(1),
            f"has_scheduled_meeting({lead_id})"
        )
        return bool(response.data)

    # ===========================================
    # Email campaigns and replies
    # ===========================================

    async def list_recent_campaigns(self, lead_id: str, limit: int = 3) -> List[EmailCampaign]:
        """Most recent campaigns sent or drafted for a lead."""
        response = self._execute(
            self.client.table(self.EMAIL_CAMPAIGNS)
            .select("*")
            .eq("lead_id", lead_id)
            .order("created_at", desc=True)
            .limit(limit),
            f"list_recent_campaigns({lead_id})"
        )
        return [EmailCampaign(**row) for row in response.data or []]

    async def get_campaign(self, campaign_id: str) -> Optional[EmailCampaign]:
        """Fetch campaign by ID."""
        response = self._execute(
            self.client.table(self.EMAIL_CAMPAIGNS).select("*").eq("id", campaign_id).limit(1),
            f"get_campaign({campaign_id})"
        )
        row = self._first(response)
        return EmailCampaign(**row) if row else None

    async def insert_campaign(self, data: Dict[str, Any]) -> EmailCampaign:
        """Create a campaign row."""
        response = self._execute(
            self.client.table(self.EMAIL_CAMPAIGNS).insert(data),
            "insert_campaign"
        )
        row = self._first(response)
        if row is None:
            raise DatastoreError("Campaign insert returned no data")
        return EmailCampaign(**row)

    async def update_campaign(self, campaign_id: str, updates: Dict[str, Any]) -> EmailCampaign:
        """Update campaign with partial data."""
        response = self._execute(
            self.client.table(self.EMAIL_CAMPAIGNS).update(updates).eq("id", campaign_id),
            f"update_campaign({campaign_id})"
        )
        row = self._require(self._first(response), self.EMAIL_CAMPAIGNS, campaign_id)
        return EmailCampaign(**row)

    async def insert_reply(self, data: Dict[str, Any]) -> EmailReply:
        """Create an email reply row."""
        response = self._execute(
            self.client.table(self.EMAIL_REPLIES).insert(data),
            "insert_reply"
        )
        row = self._first(response)
        if row is None:
            raise DatastoreError("Reply insert returned no data")
        return EmailReply(**row)

    async def get_reply(self, reply_id: str) -> Optional[EmailReply]:
        """Fetch email reply by ID."""
        response = self._execute(
            self.client.table(self.EMAIL_REPLIES).select("*").eq("id", reply_id).limit(1),
            f"get_reply({reply_id})"
        )
        row = self._first(response)
        return EmailReply(**row) if row else None

    async def update_reply(self, reply_id: str, updates: Dict[str, Any]) -> EmailReply:
        """Update email reply with partial data."""
        response = self._execute(
            self.client.table(self.EMAIL_REPLIES).update(updates).eq("id", reply_id),
            f"update_reply({reply_id})"
        )
        row = self._require(self._first(response), self.EMAIL_REPLIES, reply_id)
        return EmailReply(**row)

    # ===========================================
    # Health Check
    # ===========================================

    async def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            self.client.table(self.LEADS).select("id").limit(1).execute()
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False


# Singleton instance
db_service = DatabaseService()
