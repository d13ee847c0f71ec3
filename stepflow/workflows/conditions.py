"""
Field resolution and condition evaluation for workflow branch steps.

All functions are pure (no side effects, no I/O) and total: none of them
raises on a malformed payload, so a surprising input can only ever send
execution down the `else` branch.

Field paths are dot-separated.  A path whose first segment is one of the
context roots resolves against the execution context:

    payload.<path>          the trigger payload
    trigger.type            trigger type value
    trigger.entity          trigger entity ("" when the trigger has none)
    trigger.payload.<path>  the trigger payload
    trigger.<path>          shorthand for a payload path
    run.id / run.attempt    the current run and attempt number
    steps.<step_path>.<key> output of an earlier step in this attempt

Any other path resolves against the trigger payload directly, so
"status" and "payload.status" address the same value.
"""

from __future__ import annotations

import json
import math
from typing import Any

from stepflow.types import ConditionOperator, ExecutionContext


class _Missing:
    """Sentinel for a path that resolves to nothing (distinct from JSON null)."""

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()

CONTEXT_ROOTS = ("payload", "trigger", "run", "steps")
_TRIGGER_FIELDS = ("type", "entity", "payload")


# ── Path resolution ───────────────────────────────────────────────────────────


def resolve_path(root: Any, path: str) -> Any:
    """Walk *path* through nested dicts (and lists, by integer segment).

    Returns MISSING when any segment is empty or absent.
    """
    if not path:
        return MISSING
    current = root
    for segment in path.split("."):
        if not segment:
            return MISSING
        if isinstance(current, dict):
            if segment not in current:
                return MISSING
            current = current[segment]
        elif isinstance(current, list) and segment.isdigit():
            index = int(segment)
            if index >= len(current):
                return MISSING
            current = current[index]
        else:
            return MISSING
    return current


def _resolve_step_output(outputs: dict[str, dict[str, Any]], rest: str) -> Any:
    # step paths contain dots themselves ("1.then.0"), so take the longest
    # prefix that names a recorded step and resolve the remainder inside it
    segments = rest.split(".") if rest else []
    for cut in range(len(segments), 0, -1):
        key = ".".join(segments[:cut])
        if key in outputs:
            remainder = ".".join(segments[cut:])
            return resolve_path(outputs[key], remainder) if remainder else outputs[key]
    return MISSING


def resolve_field(context: ExecutionContext, field_path: str) -> Any:
    """Resolve *field_path* against *context*. Returns MISSING when absent."""
    if not field_path:
        return MISSING
    head, _, rest = field_path.partition(".")

    if head == "steps":
        return _resolve_step_output(context.step_outputs, rest)
    if head == "payload":
        return resolve_path(context.trigger_payload, rest) if rest else context.trigger_payload
    if head == "run":
        return resolve_path({"id": context.run_id, "attempt": context.attempt_number}, rest)
    if head == "trigger":
        first = rest.split(".", 1)[0]
        if first not in _TRIGGER_FIELDS:
            return resolve_path(context.trigger_payload, rest)
        scope = {
            "type": context.trigger_type.value,
            "entity": context.trigger_entity_logical_name or "",
            "payload": context.trigger_payload,
        }
        return resolve_path(scope, rest)
    return resolve_path(context.trigger_payload, field_path)


# ── Value helpers ─────────────────────────────────────────────────────────────


def value_to_string(value: Any) -> str:
    """Render a JSON value the way templates and `contains` see it."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return json.dumps(value)
    return json.dumps(value, separators=(",", ":"), sort_keys=False, default=str)


def json_equal(left: Any, right: Any) -> bool:
    """Structural equality on JSON values.

    Numbers compare numerically (1 == 1.0), booleans are never numbers,
    strings compare case-sensitively.
    """
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(json_equal(left[k], right[k]) for k in left)
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return len(left) == len(right) and all(json_equal(a, b) for a, b in zip(left, right))
    return type(left) is type(right) and left == right


def to_number(value: Any) -> float:
    """Numeric view of a value for ordering operators.

    Lossy on purpose: anything that is not a finite number or a numeric
    string becomes 0, so two non-numeric strings compare as 0 op 0.
    """
    if isinstance(value, bool):
        return 0.0
    try:
        if isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str):
            number = float(value.strip())
        else:
            return 0.0
    except (ValueError, OverflowError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def is_present(value: Any) -> bool:
    return value is not MISSING and value is not None and value != ""


# ── Evaluation ────────────────────────────────────────────────────────────────


def evaluate(context_value: Any, operator: ConditionOperator | str, comparison_value: Any = MISSING) -> bool:
    """
    Evaluate one condition.  Pure and total.

    Args:
        context_value:    Value resolved from the field path, or MISSING.
        operator:         ConditionOperator (or its string value).
        comparison_value: Configured value, or MISSING when none was given.
                          Ignored by `exists`.

    Returns:
        The condition result.  An operator applied to a shape it cannot
        handle yields False rather than raising.
    """
    try:
        op = ConditionOperator(operator)
    except ValueError:
        return False

    try:
        if op is ConditionOperator.EXISTS:
            return is_present(context_value)

        if op in (ConditionOperator.EQ, ConditionOperator.NEQ):
            equal = (
                context_value is not MISSING
                and comparison_value is not MISSING
                and json_equal(context_value, comparison_value)
            )
            return equal if op is ConditionOperator.EQ else not equal

        if op is ConditionOperator.CONTAINS:
            if context_value is MISSING or comparison_value is MISSING:
                return False
            needle = value_to_string(comparison_value).casefold()
            return needle in value_to_string(context_value).casefold()

        left = to_number(None if context_value is MISSING else context_value)
        right = to_number(None if comparison_value is MISSING else comparison_value)
        if op is ConditionOperator.GT:
            return left > right
        if op is ConditionOperator.GTE:
            return left >= right
        if op is ConditionOperator.LT:
            return left < right
        if op is ConditionOperator.LTE:
            return left <= right
    except (TypeError, ValueError, RecursionError):
        return False
    return False
