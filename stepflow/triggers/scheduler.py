"""ScheduleTicker — asyncio loop that emits schedule_tick events."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from stepflow.exceptions import StepflowError
from stepflow.types import TriggerEvent, TriggerType, WorkflowRun

logger = logging.getLogger(__name__)

_DEFAULT_TICK_SECONDS = 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScheduleTicker:
    """Every *interval_seconds*, sends one schedule_tick event to each tenant
    that has an enabled schedule_tick workflow.

    The tick payload carries only its timestamp.  The event id is derived
    from that timestamp, so a tick delivered twice starts runs once.
    """

    def __init__(
        self,
        trigger_manager,
        workflow_manager,
        interval_seconds: float = _DEFAULT_TICK_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._trigger_manager  = trigger_manager
        self._workflow_manager = workflow_manager
        self._interval         = interval_seconds
        self._clock            = clock
        self._task: Optional[asyncio.Task] = None

    # ── Lifecycle ────────────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background loop.  Calling start twice is a no-op."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="stepflow-schedule-ticker")
        logger.info("ScheduleTicker started (interval=%ss)", self._interval)

    async def stop(self) -> None:
        """Cancel the background loop."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("ScheduleTicker stopped")

    # ── Core tick ────────────────────────────────────────────────────────────

    async def tick(self, at: Optional[datetime] = None) -> list[WorkflowRun]:
        """Emit one tick to every tenant with a scheduled workflow.  Returns the runs started."""
        at = at or self._clock()
        definitions = await self._workflow_manager.list(
            None, trigger_type=TriggerType.SCHEDULE_TICK, enabled=True
        )
        tenants = sorted({d.tenant_id for d in definitions})

        runs: list[WorkflowRun] = []
        for tenant_id in tenants:
            event = TriggerEvent(
                trigger_type=TriggerType.SCHEDULE_TICK,
                tenant_id=tenant_id,
                payload={"scheduled_at": at.isoformat()},
                event_id=f"schedule_tick:{at.isoformat()}",
                occurred_at=at,
            )
            try:
                runs.extend(await self._trigger_manager.handle_event(event))
            except StepflowError as exc:
                logger.warning("Schedule tick for tenant '%s' failed: %s", tenant_id, exc)
        return runs

    # ── Internal ─────────────────────────────────────────────────────────────

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.tick()
            except Exception:
                logger.exception("ScheduleTicker tick raised unexpectedly")
