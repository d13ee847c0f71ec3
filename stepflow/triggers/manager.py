"""TriggerManager — turns trigger events into accepted runs.

Responsibilities:
- Manual execution of one named definition
- Routing record-created and schedule-tick events through the TriggerMatcher
- Suppressing duplicate deliveries of the same event id
- Creating each run in the ledger, then handing it to the RunDispatcher
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any, Optional

from stepflow.exceptions import TriggerError
from stepflow.triggers.event_bus import EVENT_RUNTIME_RECORD_CREATED, EVENT_SCHEDULE_TICK
from stepflow.types import TriggerEvent, TriggerType, WorkflowDefinition, WorkflowRun

logger = logging.getLogger(__name__)


class TriggerManager:
    """Starts runs for manual invocations and inbound trigger events."""

    def __init__(
        self,
        workflow_manager,
        matcher,
        ledger,
        dispatcher,
        dedupe_capacity: int = 10_000,
    ) -> None:
        self._workflow_manager = workflow_manager
        self._matcher          = matcher
        self._ledger           = ledger
        self._dispatcher       = dispatcher
        self._dedupe_capacity  = max(0, dedupe_capacity)

        # (tenant_id, event_id) → None, oldest first
        self._seen: OrderedDict[tuple[str, str], None] = OrderedDict()

    # ── Event bus wiring ─────────────────────────────────────────────────────

    def attach(self, event_bus) -> None:
        """Subscribe to record-created and schedule-tick events on *event_bus*."""
        event_bus.subscribe(EVENT_RUNTIME_RECORD_CREATED, self._on_bus_event)
        event_bus.subscribe(EVENT_SCHEDULE_TICK, self._on_bus_event)

    async def _on_bus_event(self, data: Any) -> None:
        event = data if isinstance(data, TriggerEvent) else TriggerEvent.model_validate(data)
        await self.handle_event(event)

    # ── Manual ───────────────────────────────────────────────────────────────

    async def execute_manual(
        self,
        tenant_id: str,
        logical_name: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> WorkflowRun:
        """Start a run of one definition.

        Returns:
            The accepted run (background mode) or the finished run (inline mode).

        Raises:
            WorkflowNotFound: no such definition for the tenant.
            WorkflowDisabled: the definition exists but is disabled.
        """
        definition = await self._workflow_manager.get_enabled(tenant_id, logical_name)
        event = TriggerEvent(
            trigger_type=TriggerType.MANUAL,
            tenant_id=tenant_id,
            payload=dict(payload or {}),
        )
        return await self._start(definition, event)

    # ── Events ───────────────────────────────────────────────────────────────

    async def handle_event(self, event: TriggerEvent) -> list[WorkflowRun]:
        """Start one run per matching definition.

        A repeated event id (within the dedupe window) starts nothing and
        returns an empty list.  No match is not an error.
        """
        if event.trigger_type == TriggerType.MANUAL:
            raise TriggerError("Manual triggers go through execute_manual()", trigger_type=event.trigger_type.value)
        if event.trigger_type == TriggerType.RUNTIME_RECORD_CREATED and not event.entity_logical_name:
            raise TriggerError(
                "runtime_record_created events require entity_logical_name",
                trigger_type=event.trigger_type.value,
            )

        if self._is_duplicate(event):
            logger.info("Duplicate event tenant=%s event_id=%s ignored", event.tenant_id, event.event_id)
            return []

        try:
            definitions = await self._matcher.match(event)
            if not definitions:
                logger.debug(
                    "No workflows match trigger=%s tenant=%s entity=%s",
                    event.trigger_type.value, event.tenant_id, event.entity_logical_name,
                )
                return []

            runs: list[WorkflowRun] = []
            for definition in definitions:
                runs.append(await self._start(definition, event))
            return runs
        except Exception:
            # the sender redelivers on failure; that redelivery must not be suppressed
            self._forget(event)
            raise

    async def record_created(
        self,
        tenant_id: str,
        entity_logical_name: str,
        record_id: str,
        data: Optional[dict[str, Any]] = None,
        event_id: Optional[str] = None,
        triggered_by: Optional[str] = None,
    ) -> list[WorkflowRun]:
        """Convenience wrapper for the record store's at-least-once notification."""
        payload: dict[str, Any] = {
            "entity_logical_name": entity_logical_name,
            "record_id": record_id,
            "data": dict(data or {}),
        }
        if triggered_by:
            payload["triggered_by"] = triggered_by
        event = TriggerEvent(
            trigger_type=TriggerType.RUNTIME_RECORD_CREATED,
            tenant_id=tenant_id,
            entity_logical_name=entity_logical_name,
            payload=payload,
            event_id=event_id or f"{entity_logical_name}:{record_id}",
        )
        return await self.handle_event(event)

    # ── Internal helpers ─────────────────────────────────────────────────────

    def _is_duplicate(self, event: TriggerEvent) -> bool:
        if not event.event_id or self._dedupe_capacity == 0:
            return False
        key = (event.tenant_id, event.event_id)
        if key in self._seen:
            self._seen.move_to_end(key)
            return True
        self._seen[key] = None
        while len(self._seen) > self._dedupe_capacity:
            self._seen.popitem(last=False)
        return False

    def _forget(self, event: TriggerEvent) -> None:
        if event.event_id:
            self._seen.pop((event.tenant_id, event.event_id), None)

    async def _start(self, definition: WorkflowDefinition, event: TriggerEvent) -> WorkflowRun:
        run = WorkflowRun(
            tenant_id=definition.tenant_id,
            workflow_logical_name=definition.logical_name,
            trigger_type=event.trigger_type,
            trigger_entity_logical_name=event.entity_logical_name,
            trigger_payload=event.payload,
            definition_snapshot=definition,
        )
        run = await self._ledger.create_run(run)
        logger.info(
            "Run %s accepted for workflow=%s tenant=%s trigger=%s",
            run.id, definition.logical_name, definition.tenant_id, event.trigger_type.value,
        )
        return await self._dispatcher.submit(definition, run)
