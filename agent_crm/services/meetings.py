"""
Meeting Lifecycle Controller.

scheduled -> prepared -> in_progress -> completed
(join may also go straight from scheduled to in_progress)

Transitions are conditional updates on the status the meeting was read in,
so a meeting that moved on in the meantime is reported as InvalidTransition
instead of being overwritten.
"""

import logging
from typing import Any, Dict, Iterable, Optional

from agent_crm.core.config import (
    CONFIDENCE_ALERT_THRESHOLD,
    LIVE_SESSION_MAX_TOKENS,
    LIVE_SESSION_TEMPERATURE,
    get_settings,
)
from agent_crm.core.database import DatabaseService, db_service, utcnow
from agent_crm.core.exceptions import InvalidTransition, NotFoundError
from agent_crm.integrations.inference import InferenceService, inference_service
from agent_crm.intelligence import prompts
from agent_crm.intelligence.signals import SignalExtractor, signal_extractor
from agent_crm.models import (
    AgentType,
    Lead,
    LiveSessionConfig,
    ManagerAlertPayload,
    Meeting,
    MeetingAnalysis,
    MeetingPreparation,
    MeetingStatus,
    Signal,
    SignalKind,
)
from agent_crm.services.actions import ActionQueue, action_queue

logger = logging.getLogger(__name__)


def analysis_record(signal: Signal) -> Dict[str, Any]:
    """Stored form of a transcript analysis."""
    return {
        "confidence": signal.confidence,
        "sentiment": signal.sentiment.value,
        "concerns": list(signal.concerns),
        "nextActions": list(signal.next_actions),
        "alertManager": {
            "needed": signal.alert_manager.needed,
            "reason": signal.alert_manager.reason,
        },
        "degraded": signal.degraded,
    }


def needs_manager(signal: Signal) -> bool:
    return signal.confidence < CONFIDENCE_ALERT_THRESHOLD or signal.requests_escalation


class MeetingController:
    """Drives a meeting through its lifecycle."""

    def __init__(
        self,
        db: Optional[DatabaseService] = None,
        extractor: Optional[SignalExtractor] = None,
        inference: Optional[InferenceService] = None,
        actions: Optional[ActionQueue] = None
    ):
        self.db = db or db_service
        self.extractor = extractor or signal_extractor
        self.inference = inference or inference_service
        self.actions = actions or action_queue

    async def _load(self, meeting_id: str, allowed: Iterable[MeetingStatus], verb: str) -> Meeting:
        meeting = await self.db.get_meeting(meeting_id)
        if meeting is None:
            raise NotFoundError(f"Meeting not found: {meeting_id}", details={"meeting_id": meeting_id})

        allowed = tuple(allowed)
        if meeting.status not in allowed:
            raise InvalidTransition(
                f"Cannot {verb} a meeting that is {meeting.status.value}",
                details={
                    "meeting_id": meeting_id,
                    "status": meeting.status.value,
                    "allowed": [status.value for status in allowed],
                }
            )
        return meeting

    async def _lead(self, meeting: Meeting) -> Lead:
        lead = await self.db.get_lead(meeting.lead_id)
        if lead is None:
            raise NotFoundError(f"Lead not found for meeting {meeting.id}", details={"lead_id": meeting.lead_id})
        return lead

    async def _write(self, meeting: Meeting, updates: Dict[str, Any], verb: str) -> Meeting:
        updated = await self.db.update_meeting(meeting.id, updates, expected_status=meeting.status)
        if updated is None:
            raise InvalidTransition(
                f"Meeting {meeting.id} changed state before it could be {verb}",
                details={"meeting_id": meeting.id, "expected_status": meeting.status.value}
            )
        return updated

    # ===========================================
    # Transitions
    # ===========================================

    async def prepare(self, meeting_id: str) -> MeetingPreparation:
        """
        scheduled -> prepared, storing generated talking points as agent_notes.

        Inference failure is surfaced and the meeting stays scheduled.
        """
        meeting = await self._load(meeting_id, [MeetingStatus.SCHEDULED], "prepare")
        lead = await self._lead(meeting)
        previous = await self.db.list_recent_campaigns(lead.id, limit=3)

        notes = await self.inference.generate(
            prompts.SALES_ASSISTANT_SYSTEM,
            prompts.meeting_preparation_prompt(lead, previous),
            temperature=0.7,
            max_tokens=1024
        )

        await self._write(
            meeting,
            {"agent_notes": notes, "status": MeetingStatus.PREPARED.value},
            "prepared"
        )
        logger.info(f"Meeting {meeting_id} prepared for {lead.display_name}")

        return MeetingPreparation(
            meeting_id=meeting_id,
            notes=notes,
            context={
                "lead_name": lead.name,
                "company": lead.company,
                "lead_score": lead.lead_score,
                "status": lead.status.value,
                "previous_interactions": len(previous),
                "meeting_title": meeting.title,
            }
        )

    async def join(self, meeting_id: str) -> LiveSessionConfig:
        """scheduled | prepared -> in_progress. Returns the live-session configuration."""
        meeting = await self._load(
            meeting_id,
            [MeetingStatus.SCHEDULED, MeetingStatus.PREPARED],
            "join"
        )
        lead = await self._lead(meeting)

        meeting = await self._write(
            meeting,
            {
                "agent_joined_at": utcnow().isoformat(),
                "status": MeetingStatus.IN_PROGRESS.value,
            },
            "joined"
        )
        logger.info(f"Agent joined meeting {meeting_id}")

        return LiveSessionConfig(
            model=get_settings().LLM_MODEL,
            system_instruction=prompts.live_session_instruction(
                lead, meeting, CONFIDENCE_ALERT_THRESHOLD
            ),
            temperature=LIVE_SESSION_TEMPERATURE,
            max_output_tokens=LIVE_SESSION_MAX_TOKENS,
        )

    async def analyze(
        self,
        meeting_id: str,
        transcript: str,
        duration: Optional[int] = None
    ) -> MeetingAnalysis:
        """
        Re-score the running conversation. Repeatable while in_progress.

        Bad or missing model output yields the neutral fallback signal rather
        than an error. A low confidence or an explicit escalation request sets
        the sticky manager alert and proposes a manager_alert action.
        """
        if not transcript or not transcript.strip():
            raise ValueError("Transcript is required for analysis")

        meeting = await self._load(meeting_id, [MeetingStatus.IN_PROGRESS], "analyze")
        lead = await self.db.get_lead(meeting.lead_id)

        signal = await self.extractor.extract(SignalKind.MEETING_TRANSCRIPT, transcript)
        alert = needs_manager(signal)

        updates: Dict[str, Any] = {
            "real_time_transcript": transcript,
            "ai_agent_confidence_score": signal.confidence,
            "sentiment_analysis": analysis_record(signal),
        }
        if duration is not None:
            updates["meeting_duration"] = duration

        reason = signal.alert_manager.reason or "Low confidence in deal closure"
        if alert:
            # Only ever written as True; a later confident pass leaves it alone.
            updates["manager_alert_triggered"] = True
            updates["manager_alert_reason"] = reason

        await self._write(meeting, updates, "analyzed")

        alert_action_id = None
        if alert:
            lead_name = lead.display_name if lead else None
            action = await self.actions.propose(
                ManagerAlertPayload(
                    meeting_id=meeting_id,
                    lead_name=lead_name,
                    confidence=signal.confidence,
                    reason=reason,
                    summary=(
                        f"Meeting with {lead_name or 'lead'} needs attention. "
                        f"Confidence: {signal.confidence * 100:.0f}%. {reason}"
                    ),
                ),
                AgentType.MEETING_VOICE_AGENT.value,
                requires_approval=False
            )
            alert_action_id = action.id
            logger.warning(
                f"Manager alert on meeting {meeting_id}: confidence {signal.confidence:.2f} - {reason}"
            )

        return MeetingAnalysis(
            meeting_id=meeting_id,
            signal=signal,
            alert_triggered=alert,
            alert_action_id=alert_action_id,
        )

    async def complete(
        self,
        meeting_id: str,
        transcript: str,
        outcome: Optional[str] = None
    ) -> Meeting:
        """
        in_progress -> completed, storing the summary and outcome.

        Inference failure is surfaced and the meeting stays in_progress.
        """
        if not transcript or not transcript.strip():
            raise ValueError("Transcript is required to complete a meeting")

        meeting = await self._load(meeting_id, [MeetingStatus.IN_PROGRESS], "complete")

        summary = await self.inference.generate(
            prompts.SALES_ANALYST_SYSTEM,
            prompts.meeting_summary_prompt(transcript),
            temperature=0.3,
            max_tokens=512
        )

        completed = await self._write(
            meeting,
            {
                "status": MeetingStatus.COMPLETED.value,
                "conversation_summary": summary,
                "outcome": outcome,
                "transcript": transcript,
            },
            "completed"
        )
        logger.info(f"Meeting {meeting_id} completed")
        return completed


# Singleton instance
meeting_controller = MeetingController()
