"""Orchestrator - dispatches batch agents concurrently with per-branch isolation."""

import asyncio
import logging
from typing import Dict, Iterable, Optional

from agent_crm.core.exceptions import AgentCRMError
from agent_crm.models import AgentType, OrchestrationResult, RunResult, RunStatus
from agent_crm.services.agents import (
    BatchAgent,
    DealCreationAgent,
    DealPipelineAgent,
    DealProbabilityAgent,
    FollowUpAgent,
    LeadScoringAgent,
)

logger = logging.getLogger(__name__)


DEFAULT_AGENTS = (AgentType.LEAD_SCORING, AgentType.DEAL_PIPELINE)


class Orchestrator:
    """
    Runs one or more agents as independent branches.

    A branch that raises (for example because its run record could not be
    opened) is reported as a failed RunResult; siblings are not cancelled.
    """

    def __init__(self, agents: Optional[Dict[AgentType, BatchAgent]] = None):
        self.agents: Dict[AgentType, BatchAgent] = agents or {
            AgentType.LEAD_SCORING: LeadScoringAgent(),
            AgentType.DEAL_PIPELINE: DealPipelineAgent(),
            AgentType.FOLLOW_UP: FollowUpAgent(),
            AgentType.DEAL_CREATION: DealCreationAgent(),
            AgentType.DEAL_PROBABILITY: DealProbabilityAgent(),
        }

    def resolve(self, agent_type: Optional[str]) -> Iterable[AgentType]:
        """
        Agent types to dispatch for a request.

        Raises:
            ValueError: unknown or non-dispatchable agent type
        """
        if not agent_type:
            return DEFAULT_AGENTS
        try:
            selected = AgentType(agent_type)
        except ValueError:
            raise ValueError(f"Unknown agent type: {agent_type}")
        if selected not in self.agents:
            raise ValueError(f"Agent type is not dispatchable: {agent_type}")
        return (selected,)

    async def run(self, agent_type: Optional[str] = None) -> OrchestrationResult:
        """
        Dispatch agents and wait for all of them to settle.

        Args:
            agent_type: A single agent to run, or None for the default set

        Returns:
            Per-agent RunResult, keyed by agent type
        """
        selected = list(self.resolve(agent_type))
        logger.info(f"Starting agent orchestrator for: {agent_type or 'default agents'}")

        outcomes = await asyncio.gather(
            *(self.agents[selected_type].run() for selected_type in selected),
            return_exceptions=True
        )

        results: Dict[str, RunResult] = {}
        for selected_type, outcome in zip(selected, outcomes):
            if isinstance(outcome, RunResult):
                results[selected_type.value] = outcome
                continue

            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome

            message = outcome.message if isinstance(outcome, AgentCRMError) else str(outcome)
            logger.error(f"Agent {selected_type.value} failed before completing a run: {message}")
            results[selected_type.value] = RunResult(
                agent_type=selected_type.value,
                status=RunStatus.FAILED,
                error=message,
            )

        result = OrchestrationResult(results=results)
        logger.info(f"Agent orchestrator completed: {result.summary()}")
        return result


# Singleton instance
orchestrator = Orchestrator()
