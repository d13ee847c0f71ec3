"""Trigger matching."""

import pytest

from stepflow.triggers.matcher import TriggerMatcher, matches
from stepflow.types import TriggerEvent, TriggerType
from stepflow.workflows.manager import WorkflowManager


def _record_event(entity="invoice", tenant="acme"):
    return TriggerEvent(
        trigger_type=TriggerType.RUNTIME_RECORD_CREATED,
        tenant_id=tenant,
        entity_logical_name=entity,
        payload={"entity_logical_name": entity, "record_id": "r1", "data": {}},
    )


def test_matches_requires_same_tenant_type_and_entity(make_definition):
    on_invoice = make_definition(
        "on_invoice", trigger_type=TriggerType.RUNTIME_RECORD_CREATED, trigger_entity_logical_name="invoice"
    )
    assert matches(on_invoice, _record_event("invoice")) is True
    assert matches(on_invoice, _record_event("task")) is False
    assert matches(on_invoice, _record_event("invoice", tenant="beta")) is False
    assert matches(on_invoice, TriggerEvent(trigger_type=TriggerType.MANUAL, tenant_id="acme")) is False


def test_disabled_definition_never_matches(make_definition):
    disabled = make_definition(
        "off", trigger_type=TriggerType.RUNTIME_RECORD_CREATED,
        trigger_entity_logical_name="invoice", is_enabled=False,
    )
    assert matches(disabled, _record_event("invoice")) is False


def test_schedule_tick_has_no_entity_filter(make_definition):
    nightly = make_definition("nightly", trigger_type=TriggerType.SCHEDULE_TICK)
    tick = TriggerEvent(trigger_type=TriggerType.SCHEDULE_TICK, tenant_id="acme", payload={"scheduled_at": "x"})
    assert matches(nightly, tick) is True


@pytest.mark.asyncio
async def test_invoice_event_matches_only_enabled_invoice_workflows(make_definition, config):
    """An invoice record event starts enabled invoice workflows and nothing else."""
    manager = WorkflowManager(config=config)
    await manager.upsert(make_definition(
        "invoice_a", trigger_type=TriggerType.RUNTIME_RECORD_CREATED, trigger_entity_logical_name="invoice",
    ))
    await manager.upsert(make_definition(
        "invoice_b", trigger_type=TriggerType.RUNTIME_RECORD_CREATED, trigger_entity_logical_name="invoice",
    ))
    await manager.upsert(make_definition(
        "invoice_disabled", trigger_type=TriggerType.RUNTIME_RECORD_CREATED,
        trigger_entity_logical_name="invoice", is_enabled=False,
    ))
    await manager.upsert(make_definition(
        "task_created", trigger_type=TriggerType.RUNTIME_RECORD_CREATED, trigger_entity_logical_name="task",
    ))
    await manager.upsert(make_definition("manual_invoice"))
    await manager.upsert(make_definition(
        "other_tenant", tenant_id="beta",
        trigger_type=TriggerType.RUNTIME_RECORD_CREATED, trigger_entity_logical_name="invoice",
    ))

    matched = await TriggerMatcher(manager).match(_record_event("invoice"))
    assert sorted(d.logical_name for d in matched) == ["invoice_a", "invoice_b"]


@pytest.mark.asyncio
async def test_no_match_is_empty_not_error(config):
    assert await TriggerMatcher(WorkflowManager(config=config)).match(_record_event()) == []
