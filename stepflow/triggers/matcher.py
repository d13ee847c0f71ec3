"""Trigger matching. A pure read: which enabled definitions does an event start?"""

from __future__ import annotations

from stepflow.types import TriggerEvent, TriggerType, WorkflowDefinition


def matches(definition: WorkflowDefinition, event: TriggerEvent) -> bool:
    """True when *event* should start a run of *definition*.

    Same tenant, definition enabled, same trigger type; for
    runtime_record_created the entity names must also be equal.
    Manual and schedule_tick triggers carry no entity filter.
    """
    if not definition.is_enabled:
        return False
    if definition.tenant_id != event.tenant_id:
        return False
    if definition.trigger_type != event.trigger_type:
        return False
    if event.trigger_type == TriggerType.RUNTIME_RECORD_CREATED:
        return (
            definition.trigger_entity_logical_name is not None
            and definition.trigger_entity_logical_name == event.entity_logical_name
        )
    return True


class TriggerMatcher:
    """Selects the enabled definitions an event matches.

    *store* is anything with ``async list(tenant_id, trigger_type=, enabled=)``,
    normally a WorkflowManager.  Matching never raises on an empty result.
    """

    def __init__(self, store) -> None:
        self._store = store

    async def match(self, event: TriggerEvent) -> list[WorkflowDefinition]:
        candidates = await self._store.list(
            event.tenant_id, trigger_type=event.trigger_type, enabled=True
        )
        return [d for d in candidates if matches(d, event)]
