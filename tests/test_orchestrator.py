"""Tests for the Orchestrator."""

import asyncio

import pytest

from agent_crm.core.exceptions import DatastoreError
from agent_crm.models import AgentType, RunResult, RunStatus
from agent_crm.services.agents import DealPipelineAgent, LeadScoringAgent
from agent_crm.services.orchestrator import Orchestrator


class StubAgent:
    """Agent double that returns a fixed outcome or raises."""

    def __init__(self, agent_type: AgentType, error: Exception = None, status: RunStatus = RunStatus.COMPLETED):
        self.agent_type = agent_type
        self.error = error
        self.status = status
        self.calls = 0

    async def run(self) -> RunResult:
        self.calls += 1
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return RunResult(agent_type=self.agent_type.value, run_id=f"run-{self.agent_type.value}", status=self.status)


def stub_orchestrator(**errors):
    agents = {
        agent_type: StubAgent(agent_type, errors.get(agent_type.value))
        for agent_type in (
            AgentType.LEAD_SCORING,
            AgentType.DEAL_PIPELINE,
            AgentType.FOLLOW_UP,
            AgentType.DEAL_CREATION,
            AgentType.DEAL_PROBABILITY,
        )
    }
    return Orchestrator(agents=agents)


class TestOrchestrator:
    """Tests for Orchestrator.run()."""

    def test_default_set(self):
        """Test scoring and pipeline run when no agent is named."""
        orchestrator = stub_orchestrator()

        result = asyncio.run(orchestrator.run())

        assert set(result.results) == {"lead_scoring", "deal_pipeline"}
        assert result.success
        assert orchestrator.agents[AgentType.FOLLOW_UP].calls == 0

    def test_single_agent(self):
        orchestrator = stub_orchestrator()

        result = asyncio.run(orchestrator.run("follow_up"))

        assert list(result.results) == ["follow_up"]

    def test_branch_failure_isolated(self):
        """Test one branch raising does not cancel or hide the other."""
        orchestrator = stub_orchestrator(lead_scoring=DatastoreError("Run insert returned no data for lead_scoring"))

        result = asyncio.run(orchestrator.run())

        assert result.success is False
        scoring = result.results["lead_scoring"]
        assert scoring.status == RunStatus.FAILED
        assert scoring.error == "Run insert returned no data for lead_scoring"
        assert result.results["deal_pipeline"].success
        assert orchestrator.agents[AgentType.DEAL_PIPELINE].calls == 1

    def test_summary_shape(self):
        orchestrator = stub_orchestrator(deal_pipeline=RuntimeError("boom"))

        summary = asyncio.run(orchestrator.run()).summary()

        assert summary["lead_scoring"]["success"] is True
        assert summary["lead_scoring"]["run_id"] == "run-lead_scoring"
        assert summary["deal_pipeline"] == {
            "success": False,
            "run_id": None,
            "actions": 0,
            "failed_items": 0,
            "error": "boom",
        }

    @pytest.mark.parametrize("agent_type", ["nonsense", "email_assistant"])
    def test_unknown_agent(self, agent_type):
        with pytest.raises(ValueError):
            asyncio.run(stub_orchestrator().run(agent_type))


@pytest.mark.integration
class TestOrchestratorWithLedger:
    """Default dispatch against the in-memory datastore."""

    def test_each_branch_gets_its_own_run(self, db, ledger, fake_supabase, make_lead):
        make_lead(status="new", lead_score=40)
        orchestrator = Orchestrator(agents={
            AgentType.LEAD_SCORING: LeadScoringAgent(db=db, ledger=ledger),
            AgentType.DEAL_PIPELINE: DealPipelineAgent(db=db, ledger=ledger),
        })

        result = asyncio.run(orchestrator.run())

        assert result.success
        runs = fake_supabase.rows("agent_runs")
        assert sorted(run["agent_type"] for run in runs) == ["deal_pipeline", "lead_scoring"]
        assert all(run["status"] == "completed" for run in runs)
