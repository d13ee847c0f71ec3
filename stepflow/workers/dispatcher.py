"""RunDispatcher — executes accepted runs inline or as background asyncio tasks."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Union

from stepflow.exceptions import LedgerError
from stepflow.types import ExecutionMode, WorkflowDefinition, WorkflowRun

logger = logging.getLogger(__name__)


class RunDispatcher:
    """Hands accepted runs to the RetryController.

    inline:     submit() awaits the run to its terminal state.
    background: submit() schedules an asyncio task and returns at once;
                at most *max_concurrent* runs execute at a time, the rest
                wait on a semaphore.
    """

    def __init__(
        self,
        controller,          # RetryController; untyped to avoid an import cycle
        mode: Union[ExecutionMode, str] = ExecutionMode.BACKGROUND,
        max_concurrent: int = 10,
    ) -> None:
        self._controller = controller
        self.mode = ExecutionMode(mode)
        self._semaphore = asyncio.Semaphore(max(1, max_concurrent))
        self._tasks: set[asyncio.Task] = set()

    # ── Public API ────────────────────────────────────────────────────────────

    @property
    def pending(self) -> int:
        """Background runs not yet finished."""
        return len(self._tasks)

    async def submit(self, definition: WorkflowDefinition, run: WorkflowRun) -> WorkflowRun:
        """Execute *run* according to the dispatch mode.

        Returns the terminal run (inline) or the accepted run (background).
        Inline mode lets ledger errors propagate to the caller.
        """
        if self.mode == ExecutionMode.INLINE:
            async with self._semaphore:
                return await self._controller.run(definition, run)

        task = asyncio.create_task(self._run_background(definition, run), name=f"stepflow-run-{run.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Queued run=%s workflow=%s tenant=%s", run.id, run.workflow_logical_name, run.tenant_id)
        return run

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for background runs to finish.  Returns False if *timeout* expired first."""
        if not self._tasks:
            return True
        done, still_running = await asyncio.wait(set(self._tasks), timeout=timeout)
        if still_running:
            logger.warning("Dispatcher drain timed out with %d run(s) still executing", len(still_running))
            return False
        return True

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """Drain, then cancel whatever is still running.

        A cancelled run stays `running` in the ledger until reconciled.
        """
        if await self.drain(timeout):
            return
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)

    # ── Private helpers ───────────────────────────────────────────────────────

    async def _run_background(self, definition: WorkflowDefinition, run: WorkflowRun) -> None:
        async with self._semaphore:
            try:
                await self._controller.run(definition, run)
            except LedgerError:
                logger.exception("Ledger write failed for run=%s; left for reconciliation", run.id)
            except Exception:
                logger.exception("Background run=%s raised unexpectedly", run.id)
