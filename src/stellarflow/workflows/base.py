"""Workflow runner shared by the ordered pipelines.

Steps run strictly in order. The first failing step aborts the run: later
steps are never attempted, nothing is retried or compensated, and the
failure is returned as a failed WorkflowResult carrying the structured
error payload.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from stellarflow.events import EventLog, StepStatus
from stellarflow.identity import Identity
from stellarflow.ledger.base import AccountState, Faucet, WorkflowError
from stellarflow.ledger.loader import AccountLoader

logger = logging.getLogger(__name__)


@dataclass
class StepResult:
    """Outcome of one workflow step."""

    name: str
    success: bool
    detail: dict[str, Any] = field(default_factory=dict)
    error: Optional[dict] = None

    def to_dict(self) -> dict:
        data = {"name": self.name, "success": self.success, "detail": self.detail}
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class WorkflowResult:
    """Outcome of a workflow run."""

    workflow: str
    success: bool = False
    steps: list[StepResult] = field(default_factory=list)
    summary: dict[str, Any] = field(default_factory=dict)
    error: Optional[WorkflowError] = None

    def step(self, name: str) -> Optional[StepResult]:
        for result in self.steps:
            if result.name == name:
                return result
        return None

    @property
    def failed_step(self) -> Optional[str]:
        for result in self.steps:
            if not result.success:
                return result.name
        return None

    @property
    def completed_steps(self) -> list[str]:
        return [s.name for s in self.steps if s.success]

    def to_dict(self) -> dict:
        return {
            "workflow": self.workflow,
            "success": self.success,
            "failed_step": self.failed_step,
            "steps": [s.to_dict() for s in self.steps],
            "summary": self.summary,
            "error": self.error.to_dict() if self.error else None,
        }


class Workflow(ABC):
    """Base class for an ordered, short-circuiting pipeline of steps."""

    name: str = "workflow"

    def __init__(self, events: Optional[EventLog] = None):
        self.events = events or EventLog()
        self._result: Optional[WorkflowResult] = None

    @abstractmethod
    async def execute(self) -> dict:
        """Run all steps in order and return the run summary."""
        pass

    async def run(self) -> WorkflowResult:
        """Run the workflow, turning the first WorkflowError into a failed result."""
        self._result = WorkflowResult(workflow=self.name)
        logger.info(f"Starting {self.name} workflow")

        try:
            self._result.summary = await self.execute()
            self._result.success = True
            logger.info(f"{self.name} workflow completed ({len(self._result.steps)} steps)")
        except WorkflowError as e:
            self._result.error = e
            logger.error(
                f"{self.name} workflow aborted at {self._result.failed_step}: "
                f"{e.kind}: {e} payload={e.payload}"
            )
        return self._result

    async def run_step(
        self,
        name: str,
        action: Callable[[], Awaitable[Optional[dict]]],
    ) -> dict:
        """Run one step, record its outcome and emit events.

        Any exception is recorded against the step and re-raised so the
        pipeline stops here.
        """
        if self._result is None:
            raise RuntimeError("run_step called outside of run()")

        self.events.emit(self.name, name, StepStatus.STARTED)
        try:
            detail = await action() or {}
        except WorkflowError as e:
            self._record_failure(name, e.to_dict())
            raise
        except Exception as e:
            self._record_failure(name, {"error": type(e).__name__, "message": str(e)})
            raise

        self._result.steps.append(StepResult(name=name, success=True, detail=detail))
        self.events.emit(self.name, name, StepStatus.COMPLETED, detail)
        return detail

    def _record_failure(self, name: str, error: dict) -> None:
        self._result.steps.append(StepResult(name=name, success=False, error=error))
        self.events.emit(self.name, name, StepStatus.FAILED, error)


async def fund_and_load(faucet: Faucet, loader: AccountLoader, identity: Identity) -> AccountState:
    """Fund a fresh account and wait until the ledger shows it."""
    logger.info(f"Funding {identity} via {faucet.name}")
    await faucet.fund(identity.public_key)
    return await loader.load_account(identity.public_key)
