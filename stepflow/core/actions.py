"""Executes one concrete step against its external collaborators.

The last stop before a side effect happens: template resolution, then the
log sink or the record store.  Never writes to the run ledger.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

from stepflow.exceptions import RecordErrorKind, RecordStoreError, StepExecutionError
from stepflow.records.base import RecordStore
from stepflow.types import CreateRuntimeRecordStep, ExecutionContext, LogMessageStep
from stepflow.workflows.templating import interpolate_json, interpolate_string

logger = logging.getLogger(__name__)
workflow_logger = logging.getLogger("stepflow.workflow")

# sink(context, step_path, message); may be sync or async
LogSink = Callable[[ExecutionContext, str, str], Any]


def default_log_sink(context: ExecutionContext, step_path: str, message: str) -> None:
    """Write a log_message step to the stepflow.workflow logger."""
    workflow_logger.info(
        f"[{context.tenant_id}/{context.workflow_logical_name}] "
        f"run={context.run_id} attempt={context.attempt_number} step={step_path}: {message}"
    )


def idempotency_key(run_id: str, step_path: str) -> str:
    """Stable across attempts, so a retry replays rather than duplicates a record."""
    return f"{run_id}:{step_path}"


class ActionExecutor:
    """Runs log_message and create_runtime_record steps."""

    def __init__(
        self,
        record_store: RecordStore,
        log_sink: Optional[LogSink] = None,
        record_timeout: float = 30.0,
    ):
        """
        Args:
            record_store:   Downstream record-creation interface.
            log_sink:       Observability sink for log_message steps.
                            Defaults to the stepflow.workflow logger.
            record_timeout: Upper bound in seconds on one record-store call.
        """
        self.record_store = record_store
        self.log_sink = log_sink or default_log_sink
        self.record_timeout = record_timeout

    async def execute(self, step, context: ExecutionContext, step_path: str) -> dict[str, Any]:
        """Execute one action step and return its output.

        Raises:
            StepExecutionError: the step failed; the message describes the cause.
        """
        if isinstance(step, LogMessageStep):
            return await self._log_message(step, context, step_path)
        if isinstance(step, CreateRuntimeRecordStep):
            return await self._create_record(step, context, step_path)
        raise StepExecutionError(
            f"Step type '{getattr(step, 'type', type(step).__name__)}' is not an action",
            step_path=step_path,
            step_type=getattr(step, "type", ""),
        )

    async def _log_message(self, step: LogMessageStep, context: ExecutionContext, step_path: str) -> dict[str, Any]:
        message = interpolate_string(step.message, context)
        try:
            result = self.log_sink(context, step_path, message)
            if inspect.isawaitable(result):
                await result
        except Exception:
            # fire-and-forget: a broken sink never fails the step
            logger.exception(f"[ActionExecutor] Log sink failed at step {step_path}")
        return {"message": message}

    async def _create_record(
        self, step: CreateRuntimeRecordStep, context: ExecutionContext, step_path: str
    ) -> dict[str, Any]:
        entity = interpolate_string(step.entity_logical_name, context).strip()
        data = interpolate_json(step.data, context)
        if not entity:
            raise RecordStoreError(
                "entity_logical_name resolved to an empty string",
                kind=RecordErrorKind.VALIDATION_REJECTED,
                step_path=step_path,
                step_type=step.type,
            )

        try:
            record_id = await asyncio.wait_for(
                self.record_store.create(
                    context.tenant_id,
                    entity,
                    data,
                    idempotency_key=idempotency_key(context.run_id, step_path),
                ),
                timeout=self.record_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise RecordStoreError(
                f"Creating '{entity}' record timed out after {self.record_timeout:g}s",
                kind=RecordErrorKind.TIMEOUT,
                entity_logical_name=entity,
                step_path=step_path,
                step_type=step.type,
            ) from exc
        except RecordStoreError as exc:
            exc.step_path = exc.step_path or step_path
            exc.step_type = exc.step_type or step.type
            raise

        if not isinstance(record_id, str) or not record_id.strip():
            raise RecordStoreError(
                f"Record store returned no id for '{entity}'",
                kind=RecordErrorKind.INVALID_RESPONSE,
                entity_logical_name=entity,
                step_path=step_path,
                step_type=step.type,
            )
        logger.debug(f"[ActionExecutor] Created {entity}/{record_id} at step {step_path}")
        return {"record_id": record_id, "entity_logical_name": entity}
