"""Step-graph model: parsing, aliases, paths, and JSON round trips."""

import json

import pytest
from pydantic import ValidationError

from stepflow.exceptions import WorkflowValidationError
from stepflow.types import ConditionOperator, ConditionStep, CreateRuntimeRecordStep, LogMessageStep
from stepflow.workflows.steps import count_steps, dump_steps, iter_steps, load_steps, nesting_depth, step_by_path

GRAPH = [
    {"type": "log_message", "message": "start"},
    {
        "type": "condition",
        "field_path": "payload.status",
        "operator": "eq",
        "value": "open",
        "then": [{"type": "create_runtime_record", "entity_logical_name": "task", "data": {"t": "{{payload.title}}"}}],
        "else": [
            {
                "type": "condition",
                "field_path": "priority",
                "operator": "exists",
                "then": [{"type": "log_message", "message": "prioritised"}],
            }
        ],
    },
]


def test_load_steps_builds_typed_graph():
    steps = load_steps(GRAPH)
    assert isinstance(steps[0], LogMessageStep)
    cond = steps[1]
    assert isinstance(cond, ConditionStep)
    assert cond.operator is ConditionOperator.EQ
    assert isinstance(cond.then_steps[0], CreateRuntimeRecordStep)
    assert cond.has_value is True
    assert cond.else_steps[0].has_value is False


def test_unknown_step_type_rejected():
    with pytest.raises(ValidationError):
        load_steps([{"type": "send_email", "to": "x"}])


def test_legacy_branch_and_value_aliases():
    steps = load_steps([{
        "type": "condition",
        "field_path": "status",
        "operator": "equals",
        "comparison_value": "open",
        "then_label": "Open",
        "else_label": "Closed",
        "then_steps": [{"type": "log_message", "message": "a"}],
        "else_steps": [{"type": "log_message", "message": "b"}],
    }])
    cond = steps[0]
    assert cond.operator is ConditionOperator.EQ
    assert cond.value == "open"
    assert cond.then_label == "Open" and cond.else_label == "Closed"
    assert [s.message for s in cond.then_steps] == ["a"]
    assert [s.message for s in cond.else_steps] == ["b"]


def test_explicit_null_value_counts_as_supplied():
    cond = load_steps([{"type": "condition", "field_path": "x", "operator": "eq", "value": None}])[0]
    assert cond.has_value is True
    assert dump_steps((cond,))[0]["value"] is None


def test_paths_depth_first_left_to_right():
    paths = [p for p, _ in iter_steps(load_steps(GRAPH))]
    assert paths == ["0", "1", "1.then.0", "1.else.0", "1.else.0.then.0"]


def test_count_and_depth():
    steps = load_steps(GRAPH)
    assert count_steps(steps) == 5
    assert nesting_depth(steps) == 2
    assert nesting_depth(load_steps([{"type": "log_message", "message": "m"}])) == 0


def test_step_by_path():
    steps = load_steps(GRAPH)
    assert step_by_path(steps, "1.else.0.then.0").message == "prioritised"
    assert step_by_path(steps, "1").field_path == "payload.status"


@pytest.mark.parametrize("bad", ["2", "0.then.0", "1.then.3", "1.maybe.0", "1.then", ""])
def test_step_by_path_rejects_invalid_paths(bad):
    with pytest.raises(WorkflowValidationError):
        step_by_path(load_steps(GRAPH), bad)


def test_json_round_trip_preserves_graph():
    steps = load_steps(GRAPH)
    dumped = dump_steps(steps)
    assert "then" in dumped[1] and "then_steps" not in dumped[1]
    assert "value" not in dumped[1]["else"][0]
    reloaded = load_steps(json.loads(json.dumps(dumped)))
    assert dump_steps(reloaded) == dumped
    assert [p for p, _ in iter_steps(reloaded)] == [p for p, _ in iter_steps(steps)]
