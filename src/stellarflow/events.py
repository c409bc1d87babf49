"""Structured workflow events.

Progress is reported as (workflow, step, status, payload) events rather
than console narration; every event is also written to the log.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class StepStatus(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class WorkflowEvent:
    workflow: str
    step: str
    status: StepStatus
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "workflow": self.workflow,
            "step": self.step,
            "status": self.status.value,
            "payload": self.payload,
            "timestamp": self.timestamp,
        }


class EventLog:
    """Collects events in order and forwards them to the logger and listeners."""

    def __init__(self, listeners: Optional[list[Callable[[WorkflowEvent], None]]] = None):
        self.events: list[WorkflowEvent] = []
        self._listeners = list(listeners or [])

    def subscribe(self, listener: Callable[[WorkflowEvent], None]) -> None:
        self._listeners.append(listener)

    def emit(
        self,
        workflow: str,
        step: str,
        status: StepStatus,
        payload: Optional[dict] = None,
    ) -> WorkflowEvent:
        event = WorkflowEvent(workflow, step, status, payload or {})
        self.events.append(event)

        if status == StepStatus.FAILED:
            logger.error(f"[{workflow}] {step}: {status.value} {event.payload}")
        elif status == StepStatus.COMPLETED:
            logger.info(f"[{workflow}] {step}: {status.value} {event.payload}")
        else:
            logger.debug(f"[{workflow}] {step}: {status.value}")

        for listener in self._listeners:
            listener(event)
        return event

    def for_step(self, step: str) -> list[WorkflowEvent]:
        return [e for e in self.events if e.step == step]
