"""Retry & dead-letter controller.

Wraps the execution engine: one ledger-recorded attempt per cycle until an
attempt succeeds or `max_attempts` is reached, at which point the run is
dead-lettered with the last attempt's error as its reason.

    running(n) ── success ──────────────▶ succeeded
    running(n) ── failure, n < max ─────▶ running(n+1)
    running(n) ── failure, n == max ────▶ dead_lettered(reason = error of n)

Step errors never leave run(); ledger errors do.
"""

import asyncio
import logging
import random
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from stepflow.callbacks.base import (
    EVENT_ATTEMPT_RECORDED,
    EVENT_RUN_DEAD_LETTERED,
    EVENT_RUN_STARTED,
    EVENT_RUN_SUCCEEDED,
    fire_callbacks,
)
from stepflow.core.engine import ExecutionEngine
from stepflow.core.ledger import RunLedger
from stepflow.types import (
    AttemptStatus,
    ExecutionContext,
    ExecutionOutcome,
    RunStatus,
    WorkflowDefinition,
    WorkflowRun,
    WorkflowRunAttempt,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RetryPolicy(BaseModel):
    """Delay before each retry.  base_delay=0 means immediate retries."""
    model_config = ConfigDict(frozen=True)

    base_delay: float = Field(default=0.0, ge=0)
    max_delay: float = Field(default=30.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1)
    jitter: bool = False

    @classmethod
    def from_config(cls, config) -> "RetryPolicy":
        return cls(
            base_delay=config.retry_base_delay_seconds,
            max_delay=config.retry_max_delay_seconds,
            multiplier=config.retry_multiplier,
            jitter=config.retry_jitter,
        )

    def delay_for(self, attempt_number: int) -> float:
        """Seconds to wait before *attempt_number* (attempt 1 never waits)."""
        if attempt_number <= 1 or self.base_delay <= 0:
            return 0.0
        delay = min(self.base_delay * self.multiplier ** (attempt_number - 2), self.max_delay)
        if self.jitter:
            delay = random.uniform(0, delay)
        return max(delay, 0.0)


class RetryController:
    """Drives a run to a terminal status, recording every attempt."""

    def __init__(
        self,
        engine: ExecutionEngine,
        ledger: RunLedger,
        policy: Optional[RetryPolicy] = None,
        attempt_timeout: float = 300.0,
        clock: Callable[[], datetime] = _utcnow,
        callbacks: list = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            engine:          Walks one attempt of the step graph.
            ledger:          Where every attempt is recorded.
            policy:          Backoff between attempts (default: immediate).
            attempt_timeout: Upper bound in seconds on one whole attempt.
            clock:           Returns the current UTC time; injectable for tests.
            callbacks:       Lifecycle callbacks, ``cb(event, data)``.
            sleep:           Awaitable sleep used for backoff; injectable for tests.
        """
        self.engine = engine
        self.ledger = ledger
        self.policy = policy or RetryPolicy()
        self.attempt_timeout = attempt_timeout
        self.clock = clock
        self.callbacks = callbacks or []
        self._sleep = sleep

    def _context(self, run: WorkflowRun, attempt_number: int) -> ExecutionContext:
        # each attempt starts from a clean step context
        return ExecutionContext(
            tenant_id=run.tenant_id,
            run_id=run.id,
            workflow_logical_name=run.workflow_logical_name,
            attempt_number=attempt_number,
            trigger_type=run.trigger_type,
            trigger_entity_logical_name=run.trigger_entity_logical_name,
            trigger_payload=run.trigger_payload,
            now=self.clock(),
        )

    async def _attempt(self, definition: WorkflowDefinition, run: WorkflowRun, attempt_number: int) -> ExecutionOutcome:
        context = self._context(run, attempt_number)
        try:
            return await asyncio.wait_for(
                self.engine.execute(definition.steps, context), timeout=self.attempt_timeout
            )
        except asyncio.TimeoutError:
            return ExecutionOutcome(
                succeeded=False,
                error_message=f"attempt {attempt_number} timed out after {self.attempt_timeout:g}s",
            )

    async def run(self, definition: WorkflowDefinition, run: WorkflowRun) -> WorkflowRun:
        """
        Execute attempts attempts+1 .. max_attempts until one succeeds.

        Starting from ``run.attempts + 1`` lets a re-driven run pick up where
        its last recorded attempt left off.

        Returns:
            The run in its terminal state.

        Raises:
            LedgerError: a ledger write failed; the run stays as last recorded.
        """
        current = run
        if current.is_terminal:
            return current

        for attempt_number in range(current.attempts + 1, definition.max_attempts + 1):
            delay = self.policy.delay_for(attempt_number)
            if delay > 0:
                logger.info(f"[Retry] Run {current.id} waiting {delay:.2f}s before attempt {attempt_number}")
                await self._sleep(delay)

            await fire_callbacks(self.callbacks, EVENT_RUN_STARTED, {"run": current, "attempt_number": attempt_number})
            outcome = await self._attempt(definition, current, attempt_number)

            attempt = WorkflowRunAttempt(
                run_id=current.id,
                attempt_number=attempt_number,
                status=AttemptStatus.SUCCEEDED if outcome.succeeded else AttemptStatus.FAILED,
                error_message=outcome.error_message,
                executed_at=self.clock(),
                step_traces=outcome.traces,
            )
            if outcome.succeeded:
                run_status, reason = RunStatus.SUCCEEDED, None
            elif attempt_number >= definition.max_attempts:
                run_status, reason = RunStatus.DEAD_LETTERED, outcome.error_message
            else:
                run_status, reason = RunStatus.RUNNING, None
                logger.warning(
                    f"[Retry] Run {current.id} attempt {attempt_number}/{definition.max_attempts} "
                    f"failed: {outcome.error_message}"
                )

            current = await self.ledger.record_attempt(current.tenant_id, attempt, run_status, reason)
            await fire_callbacks(self.callbacks, EVENT_ATTEMPT_RECORDED, {"run": current, "attempt": attempt})

            if current.is_terminal:
                return await self._finish(current)

        # the last attempt in range always settles the run
        return current

    async def _finish(self, run: WorkflowRun) -> WorkflowRun:
        if run.status == RunStatus.SUCCEEDED:
            logger.info(f"[Retry] Run {run.id} succeeded after {run.attempts} attempt(s)")
            await fire_callbacks(self.callbacks, EVENT_RUN_SUCCEEDED, {"run": run})
        else:
            logger.error(f"[Retry] Run {run.id} dead-lettered after {run.attempts} attempt(s): {run.dead_letter_reason}")
            await fire_callbacks(self.callbacks, EVENT_RUN_DEAD_LETTERED, {"run": run})
        return run
