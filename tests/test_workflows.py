"""WorkflowValidator and WorkflowManager."""

import pytest
from pydantic import ValidationError

from stepflow.exceptions import WorkflowDisabled, WorkflowNotFound, WorkflowValidationError
from stepflow.types import (
    ConditionStep,
    CreateRuntimeRecordStep,
    LogMessageStep,
    TriggerType,
    WorkflowDefinition,
)
from stepflow.workflows.manager import WorkflowManager
from stepflow.workflows.validator import WorkflowValidator


def _hard(errors):
    return [e for e in errors if not e.startswith("WARNING:")]


# ── Validator ────────────────────────────────────────────────────────────────

def test_valid_definition_has_no_errors(make_definition, scenario_steps):
    assert WorkflowValidator().validate(make_definition(steps=scenario_steps)) == []


@pytest.mark.parametrize("max_attempts", [0, 11, -1])
def test_max_attempts_out_of_range_fails_construction(make_definition, max_attempts):
    with pytest.raises(ValidationError):
        make_definition(max_attempts=max_attempts)


def test_max_attempts_checked_even_when_construction_bypassed(make_definition):
    bypassed = WorkflowDefinition.model_construct(**{**make_definition().model_dump(), "max_attempts": 12})
    errors = WorkflowValidator().validate(bypassed)
    assert any("max_attempts" in e for e in errors)


@pytest.mark.parametrize("max_attempts", [1, 10])
def test_max_attempts_bounds_are_inclusive(make_definition, max_attempts):
    assert WorkflowValidator().validate(make_definition(max_attempts=max_attempts)) == []


def test_record_created_trigger_requires_entity(make_definition):
    errors = WorkflowValidator().validate(
        make_definition(trigger_type=TriggerType.RUNTIME_RECORD_CREATED)
    )
    assert any("requires trigger_entity_logical_name" in e for e in errors)


def test_manual_trigger_rejects_entity(make_definition):
    errors = WorkflowValidator().validate(make_definition(trigger_entity_logical_name="invoice"))
    assert any("does not take a trigger_entity_logical_name" in e for e in errors)


def test_identity_checks(make_definition):
    errors = WorkflowValidator().validate(make_definition(logical_name=" padded ", display_name=" "))
    assert any("leading or trailing whitespace" in e for e in errors)
    assert any("display_name" in e for e in errors)


def test_step_rules_report_every_violation_with_paths(make_definition):
    steps = (
        LogMessageStep(message="  "),
        ConditionStep(
            field_path="status",
            operator="eq",
            then=(CreateRuntimeRecordStep(entity_logical_name=""),),
        ),
        ConditionStep(field_path="flag", operator="exists", value=True),
    )
    errors = _hard(WorkflowValidator().validate(make_definition(steps=steps)))
    assert "Step 0: log_message requires a non-empty message." in errors
    assert "Step 1: eq operator requires a comparison value." in errors
    assert "Step 1.then.0: create_runtime_record requires entity_logical_name." in errors
    assert "Step 2: exists operator does not accept a value." in errors


def test_empty_branches_are_a_warning_only(make_definition):
    steps = (ConditionStep(field_path="status", operator="eq", value="open"),)
    errors = WorkflowValidator().validate(make_definition(steps=steps))
    assert errors and all(e.startswith("WARNING:") for e in errors)


def test_size_and_depth_limits(make_definition):
    many = tuple(LogMessageStep(message=str(i)) for i in range(6))
    errors = WorkflowValidator().validate(make_definition(steps=many), max_steps=5)
    assert any("maximum allowed is 5" in e for e in errors)

    nested = (LogMessageStep(message="leaf"),)
    for _ in range(3):
        nested = (ConditionStep(field_path="x", operator="exists", then=nested),)
    errors = WorkflowValidator().validate(make_definition(steps=nested), max_depth=2)
    assert any("nested 3 deep" in e for e in errors)


def test_empty_root_sequence_is_valid(make_definition):
    assert WorkflowValidator().validate(make_definition(steps=())) == []


def test_validate_or_raise_collects_violations(make_definition):
    with pytest.raises(WorkflowValidationError) as exc_info:
        WorkflowValidator().validate_or_raise(
            make_definition(trigger_type=TriggerType.RUNTIME_RECORD_CREATED, steps=(LogMessageStep(message=""),))
        )
    assert len(exc_info.value.violations) == 2


# ── Manager (in-memory) ──────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_upsert_get_and_replace_keeps_created_at(make_definition, config):
    manager = WorkflowManager(config=config)
    first = await manager.upsert(make_definition(max_attempts=2))
    second = await manager.upsert(make_definition(max_attempts=5))
    loaded = await manager.get("acme", "new_task")
    assert loaded.max_attempts == 5
    assert second.created_at == first.created_at
    assert second.updated_at >= first.updated_at


@pytest.mark.asyncio
async def test_upsert_rejects_invalid_definition(make_definition, config):
    manager = WorkflowManager(config=config)
    with pytest.raises(WorkflowValidationError):
        await manager.upsert(make_definition(trigger_type=TriggerType.RUNTIME_RECORD_CREATED))
    assert await manager.list("acme") == []


@pytest.mark.asyncio
async def test_get_is_tenant_scoped(make_definition, config):
    manager = WorkflowManager(config=config)
    await manager.upsert(make_definition())
    with pytest.raises(WorkflowNotFound):
        await manager.get("other-tenant", "new_task")


@pytest.mark.asyncio
async def test_get_enabled_raises_for_disabled(make_definition, config):
    manager = WorkflowManager(config=config)
    await manager.upsert(make_definition())
    await manager.set_enabled("acme", "new_task", False)
    with pytest.raises(WorkflowDisabled):
        await manager.get_enabled("acme", "new_task")
    await manager.set_enabled("acme", "new_task", True)
    assert (await manager.get_enabled("acme", "new_task")).is_enabled


@pytest.mark.asyncio
async def test_list_filters_and_orders(make_definition, config):
    manager = WorkflowManager(config=config)
    await manager.upsert(make_definition("b_flow"))
    await manager.upsert(make_definition("a_flow", trigger_type=TriggerType.SCHEDULE_TICK))
    await manager.upsert(make_definition("c_flow", is_enabled=False))
    await manager.upsert(make_definition("z_flow", tenant_id="beta"))

    assert [w.logical_name for w in await manager.list("acme")] == ["a_flow", "b_flow", "c_flow"]
    assert [w.logical_name for w in await manager.list("acme", enabled=True)] == ["a_flow", "b_flow"]
    scheduled = await manager.list("acme", trigger_type=TriggerType.SCHEDULE_TICK)
    assert [w.logical_name for w in scheduled] == ["a_flow"]
    assert [w.tenant_id for w in await manager.list(None)] == ["acme", "acme", "acme", "beta"]


@pytest.mark.asyncio
async def test_delete(make_definition, config):
    manager = WorkflowManager(config=config)
    await manager.upsert(make_definition())
    assert await manager.delete("acme", "new_task") is True
    assert await manager.delete("acme", "new_task") is False


# ── Manager (SQL) ────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_sql_manager_persists_step_graph(make_definition, config, session_factory):
    manager = WorkflowManager(session_factory=session_factory, config=config)
    steps = (
        ConditionStep(
            field_path="payload.status", operator="eq", value="open",
            then=(CreateRuntimeRecordStep(entity_logical_name="task", data={"title": "{{payload.title}}"}),),
            then_label="Open",
        ),
    )
    saved = await manager.upsert(make_definition(steps=steps, description="  "))
    loaded = await manager.get("acme", "new_task")
    assert loaded.description is None
    assert loaded.steps[0].then_steps[0].data == {"title": "{{payload.title}}"}
    assert loaded.steps[0].then_label == "Open"
    assert loaded.steps[0].has_value
    assert loaded.created_at == saved.created_at

    await manager.set_enabled("acme", "new_task", False)
    assert await manager.list("acme", enabled=True) == []
    assert await manager.delete("acme", "new_task") is True
