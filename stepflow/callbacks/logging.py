"""Structured JSON logging callback for STEPFLOW lifecycle events."""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from stepflow.callbacks.base import BaseCallback
from stepflow.types import RunStatus, StepStatus, StepTrace, WorkflowRun, WorkflowRunAttempt

logger = logging.getLogger("stepflow.audit")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _emit(level: int, record: dict) -> None:
    logger.log(level, json.dumps({"ts": _now(), **record}, default=str))


class LoggingCallback(BaseCallback):
    """Emits structured JSON log lines for every lifecycle event.

    Each log line is a self-contained JSON object with:
      - event: event type name
      - ts: ISO-8601 UTC timestamp
      - relevant fields depending on event

    Log level: INFO for normal events, WARNING for failed steps,
    ERROR for dead-lettered runs.
    Logger name: stepflow.audit (configure in your logging setup)

    Pass an instance anywhere a callback list is accepted:

        controller = RetryController(..., callbacks=[LoggingCallback()])
    """

    async def on_run_start(self, run: WorkflowRun, attempt_number: int, **kwargs: Any) -> None:
        _emit(logging.INFO, {
            "event": "run_started",
            "run_id": run.id,
            "tenant_id": run.tenant_id,
            "workflow": run.workflow_logical_name,
            "trigger_type": run.trigger_type.value,
            "attempt_number": attempt_number,
        })

    async def on_step_complete(self, run_id: str, trace: StepTrace, **kwargs: Any) -> None:
        failed = trace.status == StepStatus.FAILED
        record = {
            "event": "step_failed" if failed else "step_completed",
            "run_id": run_id,
            "step_path": trace.step_path,
            "step_type": trace.step_type,
            "duration_ms": trace.duration_ms,
        }
        if failed:
            record["error"] = (trace.error_message or "")[:500]
        _emit(logging.WARNING if failed else logging.INFO, record)

    async def on_attempt_recorded(self, run: WorkflowRun, attempt: WorkflowRunAttempt, **kwargs: Any) -> None:
        _emit(logging.INFO, {
            "event": "attempt_recorded",
            "run_id": run.id,
            "tenant_id": run.tenant_id,
            "attempt_number": attempt.attempt_number,
            "status": attempt.status.value,
            "run_status": run.status.value,
            "step_count": len(attempt.step_traces),
        })

    async def on_run_complete(self, run: WorkflowRun, **kwargs: Any) -> None:
        dead = run.status == RunStatus.DEAD_LETTERED
        record = {
            "event": "run_dead_lettered" if dead else "run_succeeded",
            "run_id": run.id,
            "tenant_id": run.tenant_id,
            "workflow": run.workflow_logical_name,
            "attempts": run.attempts,
            "started_at": run.started_at.isoformat(),
            "finished_at": run.finished_at.isoformat() if run.finished_at else None,
        }
        if dead:
            record["reason"] = run.dead_letter_reason
        _emit(logging.ERROR if dead else logging.INFO, record)

    async def on_run_reconciled(self, run: WorkflowRun, action: str, **kwargs: Any) -> None:
        _emit(logging.WARNING, {
            "event": "run_reconciled",
            "run_id": run.id,
            "tenant_id": run.tenant_id,
            "workflow": run.workflow_logical_name,
            "action": action,
            "attempts": run.attempts,
        })
