"""Base callback protocol for STEPFLOW lifecycle hooks.

Callbacks are called at key points in a run's lifecycle.
Implement this protocol to observe or instrument STEPFLOW without modifying core logic.

Usage:
    class MyCallback(BaseCallback):
        async def on_run_dead_lettered(self, run, **kw):
            page_someone(run.dead_letter_reason)

    controller = RetryController(..., callbacks=[MyCallback()])

The engine and retry controller call each callback as ``cb(event, data)``;
BaseCallback.__call__ routes that to the named hook.
"""

import inspect
import logging
from typing import Any, Iterable, Protocol, runtime_checkable

from stepflow.types import StepTrace, WorkflowRun, WorkflowRunAttempt

logger = logging.getLogger(__name__)

EVENT_RUN_STARTED = "run_started"
EVENT_STEP_COMPLETED = "step_completed"
EVENT_STEP_FAILED = "step_failed"
EVENT_ATTEMPT_RECORDED = "attempt_recorded"
EVENT_RUN_SUCCEEDED = "run_succeeded"
EVENT_RUN_DEAD_LETTERED = "run_dead_lettered"
EVENT_RUN_RECONCILED = "run_reconciled"


@runtime_checkable
class StepflowCallback(Protocol):
    """Protocol defining hooks for STEPFLOW lifecycle events.

    All methods are optional — implement only the hooks you need.
    All methods are async; callers await each registered callback in order.
    """

    async def on_run_start(self, run: WorkflowRun, attempt_number: int, **kwargs: Any) -> None:
        """Called before each attempt of a run starts walking its steps."""
        ...

    async def on_step_complete(self, run_id: str, trace: StepTrace, **kwargs: Any) -> None:
        """Called after a step finishes, whatever its status."""
        ...

    async def on_attempt_recorded(self, run: WorkflowRun, attempt: WorkflowRunAttempt, **kwargs: Any) -> None:
        """Called once the ledger has durably stored an attempt."""
        ...

    async def on_run_complete(self, run: WorkflowRun, **kwargs: Any) -> None:
        """Called when a run reaches succeeded or dead_lettered."""
        ...

    async def on_run_reconciled(self, run: WorkflowRun, action: str, **kwargs: Any) -> None:
        """Called when a stale run is re-driven or dead-lettered by reconciliation."""
        ...


class BaseCallback:
    """Concrete base with no-op implementations of all hooks.

    Subclass this instead of implementing the Protocol directly
    to avoid implementing every method.
    """

    async def __call__(self, event: str, data: dict) -> None:
        """Dispatch a lifecycle event to the matching named hook."""
        if event == EVENT_RUN_STARTED:
            await self.on_run_start(data["run"], data["attempt_number"])
        elif event in (EVENT_STEP_COMPLETED, EVENT_STEP_FAILED):
            await self.on_step_complete(data["run_id"], data["trace"])
        elif event == EVENT_ATTEMPT_RECORDED:
            await self.on_attempt_recorded(data["run"], data["attempt"])
        elif event in (EVENT_RUN_SUCCEEDED, EVENT_RUN_DEAD_LETTERED):
            await self.on_run_complete(data["run"])
        elif event == EVENT_RUN_RECONCILED:
            await self.on_run_reconciled(data["run"], data["action"])

    async def on_run_start(self, run: WorkflowRun, attempt_number: int, **kwargs: Any) -> None:
        pass

    async def on_step_complete(self, run_id: str, trace: StepTrace, **kwargs: Any) -> None:
        pass

    async def on_attempt_recorded(self, run: WorkflowRun, attempt: WorkflowRunAttempt, **kwargs: Any) -> None:
        pass

    async def on_run_complete(self, run: WorkflowRun, **kwargs: Any) -> None:
        pass

    async def on_run_reconciled(self, run: WorkflowRun, action: str, **kwargs: Any) -> None:
        pass


async def fire_callbacks(callbacks: Iterable, event: str, data: dict) -> None:
    """Invoke every callback for a lifecycle event. Callback errors are logged, never raised."""
    for cb in callbacks or ():
        try:
            result = cb(event, data)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(f"[Callbacks] Callback error on '{event}'")
