"""Execution engine. Walks one attempt of a step graph.

Depth-first, left-to-right; a condition runs exactly one of its branches.
The first failing step ends the attempt (fail-fast).  Side effects of steps
that already succeeded are not undone.

Every step error, expected or not, is caught here and turned into an
ExecutionOutcome; nothing a step raises escapes execute().
"""

import logging
import time
from typing import Any

from stepflow.callbacks.base import EVENT_STEP_COMPLETED, EVENT_STEP_FAILED, fire_callbacks
from stepflow.core.actions import ActionExecutor
from stepflow.exceptions import RecordStoreError, StepExecutionError
from stepflow.types import (
    ConditionStep,
    CreateRuntimeRecordStep,
    ExecutionContext,
    ExecutionOutcome,
    LogMessageStep,
    StepStatus,
    StepTrace,
)
from stepflow.workflows.conditions import MISSING, evaluate, resolve_field
from stepflow.workflows.steps import child_path
from stepflow.workflows.templating import interpolate_json

logger = logging.getLogger(__name__)


class _StepFailed(Exception):
    """Internal: unwinds nested branches once a step has failed."""

    def __init__(self, step_path: str, message: str):
        super().__init__(message)
        self.step_path = step_path
        self.message = message


def _describe(exc: Exception) -> str:
    if isinstance(exc, RecordStoreError):
        return f"[{exc.kind.value}] {exc}"
    if isinstance(exc, StepExecutionError):
        return str(exc)
    return f"{type(exc).__name__}: {exc}"


def _jsonable(value: Any) -> Any:
    return None if value is MISSING else value


class ExecutionEngine:
    """Runs a step graph once against an ExecutionContext."""

    def __init__(self, action_executor: ActionExecutor, callbacks: list = None):
        self.action_executor = action_executor
        self.callbacks = callbacks or []

    async def execute(self, steps, context: ExecutionContext) -> ExecutionOutcome:
        """Walk *steps* from the root.

        Returns:
            ExecutionOutcome with the ordered step traces.  On failure,
            error_message names the failing step path and type and carries
            that step's own error.
        """
        traces: list[StepTrace] = []
        try:
            await self._run_sequence(steps, "", context, traces)
        except _StepFailed as failed:
            return ExecutionOutcome(
                succeeded=False,
                error_message=failed.message,
                failed_step_path=failed.step_path,
                traces=traces,
            )
        return ExecutionOutcome(succeeded=True, traces=traces)

    async def _run_sequence(self, steps, prefix: str, context: ExecutionContext, traces: list[StepTrace]) -> None:
        for index, step in enumerate(steps):
            await self._run_step(step, child_path(prefix, index), context, traces)

    async def _run_step(self, step, path: str, context: ExecutionContext, traces: list[StepTrace]) -> None:
        step_type = getattr(step, "type", type(step).__name__)
        started = time.monotonic()
        branch = None
        step_input: dict = {}
        try:
            if isinstance(step, ConditionStep):
                step_input, output, branch = self._evaluate_condition(step, context)
            elif isinstance(step, LogMessageStep):
                step_input = {"message": step.message}
                output = await self.action_executor.execute(step, context, path)
            elif isinstance(step, CreateRuntimeRecordStep):
                step_input = {
                    "entity_logical_name": step.entity_logical_name,
                    "data": interpolate_json(step.data, context),
                }
                output = await self.action_executor.execute(step, context, path)
            else:
                raise StepExecutionError(
                    f"Unknown step type '{step_type}'", step_path=path, step_type=str(step_type)
                )
        except Exception as exc:
            if not isinstance(exc, StepExecutionError):
                logger.exception(f"[Engine] Unexpected error at step {path} ({step_type})")
            message = f"step {path} ({step_type}) failed: {_describe(exc)}"
            trace = StepTrace(
                step_path=path,
                step_type=str(step_type),
                status=StepStatus.FAILED,
                input=step_input,
                error_message=message,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
            traces.append(trace)
            await fire_callbacks(self.callbacks, EVENT_STEP_FAILED, {"run_id": context.run_id, "trace": trace})
            raise _StepFailed(path, message) from exc

        context.step_outputs[path] = output
        trace = StepTrace(
            step_path=path,
            step_type=step_type,
            status=StepStatus.SUCCEEDED,
            input=step_input,
            output=output,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        traces.append(trace)
        await fire_callbacks(self.callbacks, EVENT_STEP_COMPLETED, {"run_id": context.run_id, "trace": trace})

        if branch is not None:
            await self._run_sequence(
                step.then_steps if branch == "then" else step.else_steps,
                f"{path}.{branch}",
                context,
                traces,
            )

    def _evaluate_condition(self, step: ConditionStep, context: ExecutionContext):
        comparison = interpolate_json(step.value, context) if step.has_value else MISSING
        actual = resolve_field(context, step.field_path)
        passes = evaluate(actual, step.operator, comparison)
        branch = "then" if passes else "else"
        step_input = {"field_path": step.field_path, "operator": step.operator.value}
        if step.has_value:
            step_input["value"] = comparison
        output = {
            "field_value": _jsonable(actual),
            "field_present": actual is not MISSING,
            "passes": passes,
            "branch": branch,
        }
        logger.debug(f"[Engine] Condition {step.field_path} {step.operator.value} → {branch}")
        return step_input, output, branch
