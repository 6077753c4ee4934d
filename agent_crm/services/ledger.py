"""
Agent Run Ledger.

Every batch job runs inside `async with ledger.run(agent_type) as run:`.
The scope always moves the run to a terminal status before it exits,
and per-entity work wrapped in `run.item(entity_id)` is isolated so one
bad lead or deal does not stop the batch.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from agent_crm.core.database import DatabaseService, db_service
from agent_crm.core.exceptions import AgentCRMError, RunClosedError
from agent_crm.models import AgentRun, RunResult, RunStatus

logger = logging.getLogger(__name__)


def _error_entry(error: Exception, entity_id: Optional[str] = None) -> Dict[str, Any]:
    entry: Dict[str, Any] = {}
    if entity_id is not None:
        entry["entity_id"] = entity_id
    if isinstance(error, AgentCRMError):
        entry["error"] = error.message
        if error.details:
            entry["details"] = error.details
    else:
        entry["error"] = str(error) or error.__class__.__name__
    return entry


class RunHandle:
    """Open run. Accepts records until finish() moves it to a terminal status."""

    def __init__(self, db: DatabaseService, run: AgentRun):
        self.db = db
        self.run = run
        self.actions: List[Dict[str, Any]] = []
        self.errors: List[Dict[str, Any]] = []
        self.status = RunStatus.RUNNING
        self.result: Optional[RunResult] = None

    @property
    def id(self) -> str:
        return self.run.id

    @property
    def agent_type(self) -> str:
        return self.run.agent_type

    @property
    def is_closed(self) -> bool:
        return self.status != RunStatus.RUNNING

    def _ensure_open(self) -> None:
        if self.is_closed:
            raise RunClosedError(
                f"Run {self.id} is already {self.status.value}",
                details={"run_id": self.id, "agent_type": self.agent_type}
            )

    def record(self, entry: Dict[str, Any]) -> None:
        """Append a per-entity outcome to actions_taken."""
        self._ensure_open()
        self.actions.append(entry)

    @asynccontextmanager
    async def item(self, entity_id: str) -> AsyncIterator[None]:
        """
        Isolate the work for one entity.

        Errors raised inside are logged, recorded against the run and
        swallowed so the batch continues; the run will finish failed.
        """
        self._ensure_open()
        try:
            yield
        except RunClosedError:
            raise
        except Exception as e:
            logger.error(f"[{self.agent_type}] run {self.id}: {entity_id} failed: {e}")
            self.errors.append(_error_entry(e, entity_id))

    async def finish(self, error: Optional[Exception] = None) -> RunResult:
        """
        Move the run to completed, or failed if an item or the batch itself failed.

        Raises:
            RunClosedError: the run was already terminal
        """
        self._ensure_open()

        failure: Optional[Dict[str, Any]] = None
        if error is not None:
            failure = _error_entry(error)
        elif self.errors:
            failure = dict(self.errors[0])

        status = RunStatus.FAILED if failure else RunStatus.COMPLETED
        errors_payload = None
        if failure:
            errors_payload = {"message": failure["error"], "items": self.errors}
            if error is not None:
                errors_payload["cause"] = failure

        # Closed locally first so nothing else is written even if the update fails.
        self.status = status
        written = await self.db.finish_run(self.id, status, self.actions, errors_payload)
        if not written:
            logger.warning(f"[{self.agent_type}] run {self.id} was already terminal")
            raise RunClosedError(f"Run {self.id} was already terminal", details={"run_id": self.id})

        self.result = RunResult(
            agent_type=self.agent_type,
            run_id=self.id,
            status=status,
            actions_count=len(self.actions),
            failed_items=len(self.errors),
            error=failure["error"] if failure else None,
        )
        log = logger.error if failure else logger.info
        log(
            f"[{self.agent_type}] run {self.id} {status.value}: "
            f"{len(self.actions)} actions, {len(self.errors)} failed items"
        )
        return self.result

    def outcome(self) -> RunResult:
        """Result of finish(), or a failed result if the run never closed cleanly."""
        if self.result is not None:
            return self.result
        return RunResult(
            agent_type=self.agent_type,
            run_id=self.id,
            status=RunStatus.FAILED,
            actions_count=len(self.actions),
            failed_items=len(self.errors),
            error="Run was not finished by this handle",
        )


class AgentRunLedger:
    """Opens runs and guarantees they are closed."""

    def __init__(self, db: Optional[DatabaseService] = None):
        self.db = db or db_service

    async def start_run(self, agent_type: str) -> RunHandle:
        """
        Open a run in the running state.

        Raises:
            DatastoreError: the run record could not be created (fatal for the batch)
        """
        run = await self.db.insert_run(agent_type)
        logger.info(f"[{agent_type}] run {run.id} started")
        return RunHandle(self.db, run)

    @asynccontextmanager
    async def run(self, agent_type: str) -> AsyncIterator[RunHandle]:
        """
        Scope for one batch run.

        An exception escaping the body is converted into a failed run and not
        re-raised; the outcome is on handle.result.
        """
        handle = await self.start_run(agent_type)
        try:
            yield handle
        except Exception as e:
            logger.error(f"[{agent_type}] run {handle.id} aborted: {e}")
            if not handle.is_closed:
                await handle.finish(error=e)
            return

        if not handle.is_closed:
            await handle.finish()


# Singleton instance
run_ledger = AgentRunLedger()
