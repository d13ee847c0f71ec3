"""Operator-driven reconciliation of runs stranded in `running`.

A process crash mid-attempt leaves a run running with no one driving it.
Once its last ledger write is older than the staleness threshold the
reconciler either re-drives it (resume at attempt attempts+1; the
interrupted attempt was never recorded, so numbering stays gap-free) or
dead-letters it in place.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union

from stepflow.callbacks.base import EVENT_RUN_RECONCILED, fire_callbacks
from stepflow.core.ledger import RunLedger
from stepflow.core.retry import RetryController
from stepflow.exceptions import LedgerConflict
from stepflow.types import WorkflowRun

logger = logging.getLogger(__name__)

ACTION_REDRIVEN = "redriven"
ACTION_DEAD_LETTERED = "dead_lettered"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunReconciler:
    """Finds stale running runs and settles them."""

    def __init__(
        self,
        ledger: RunLedger,
        controller: RetryController,
        clock: Callable[[], datetime] = _utcnow,
        callbacks: list = None,
    ):
        """
        Args:
            ledger:     Run ledger to scan and write.
            controller: RetryController that resumes re-driven runs.
            clock:      Returns the current UTC time.
            callbacks:  Lifecycle callbacks, ``cb(event, data)``.
        """
        self.ledger = ledger
        self.controller = controller
        self.clock = clock
        self.callbacks = callbacks or []

    async def reconcile(
        self,
        stale_after: Union[timedelta, float],
        redrive: bool = False,
        tenant_id: Optional[str] = None,
    ) -> list[tuple[WorkflowRun, str]]:
        """
        Settle every stale run.

        Args:
            stale_after: Age (timedelta or seconds) of the last ledger write
                         past which a running run counts as stale.
            redrive:     Resume stale runs instead of dead-lettering them.
            tenant_id:   Restrict to one tenant; None scans all tenants.

        Returns:
            (run after reconciliation, action) for each run handled.
        """
        if not isinstance(stale_after, timedelta):
            stale_after = timedelta(seconds=stale_after)
        now = self.clock()
        stale = await self.ledger.list_stale_runs(now - stale_after, tenant_id=tenant_id)
        if stale:
            logger.warning(f"[Reconciler] {len(stale)} stale run(s) older than {stale_after}")

        settled: list[tuple[WorkflowRun, str]] = []
        for run in stale:
            try:
                if redrive:
                    result = await self._redrive(run, now)
                else:
                    result = await self._dead_letter(
                        run, f"stale run reconciled: no progress since {run.updated_at.isoformat()}", now
                    )
            except LedgerConflict:
                # another worker settled it between the scan and this write
                logger.info(f"[Reconciler] Run {run.id} moved on during reconciliation; skipped")
                continue
            settled.append(result)
            await fire_callbacks(
                self.callbacks, EVENT_RUN_RECONCILED, {"run": result[0], "action": result[1]}
            )
        return settled

    async def _dead_letter(self, run: WorkflowRun, reason: str, now: datetime) -> tuple[WorkflowRun, str]:
        updated = await self.ledger.dead_letter_stale(run.tenant_id, run.id, reason, now)
        logger.warning(f"[Reconciler] Run {run.id} dead-lettered: {reason}")
        return updated, ACTION_DEAD_LETTERED

    async def _redrive(self, run: WorkflowRun, now: datetime) -> tuple[WorkflowRun, str]:
        # resume against the definition the run was started with, never the current one
        definition = run.definition_snapshot
        if definition is None:
            return await self._dead_letter(
                run, "stale run reconciled: run has no definition snapshot to re-drive from", now
            )
        logger.info(f"[Reconciler] Re-driving run {run.id} from attempt {run.attempts + 1}")
        updated = await self.controller.run(definition, run)
        return updated, ACTION_REDRIVEN
