"""
Step-graph helpers: paths, traversal, lookup, and JSON round-tripping.

A step graph is a tuple of steps; condition steps own two nested tuples.
Every step has a stable path: its index in the root sequence ("0", "1"),
or "<condition path>.then.<i>" / "<condition path>.else.<i>" inside a branch.
"""

from __future__ import annotations

from typing import Any, Iterator

from pydantic import TypeAdapter

from stepflow.exceptions import WorkflowValidationError
from stepflow.types import ConditionStep, Step

_STEPS = TypeAdapter(tuple[Step, ...])


def child_path(prefix: str, index: int) -> str:
    return f"{prefix}.{index}" if prefix else str(index)


def iter_steps(steps: tuple[Step, ...], prefix: str = "") -> Iterator[tuple[str, Step]]:
    """Depth-first, left-to-right walk over every step in both branches."""
    for index, step in enumerate(steps):
        path = child_path(prefix, index)
        yield path, step
        if isinstance(step, ConditionStep):
            yield from iter_steps(step.then_steps, f"{path}.then")
            yield from iter_steps(step.else_steps, f"{path}.else")


def count_steps(steps: tuple[Step, ...]) -> int:
    return sum(1 for _ in iter_steps(steps))


def nesting_depth(steps: tuple[Step, ...]) -> int:
    """Deepest chain of nested conditions (a flat sequence is depth 0)."""
    depth = 0
    for step in steps:
        if isinstance(step, ConditionStep):
            depth = max(depth, 1 + nesting_depth(step.then_steps), 1 + nesting_depth(step.else_steps))
    return depth


def step_by_path(steps: tuple[Step, ...], step_path: str) -> Step:
    """Resolve a step path such as "1.then.0".

    Raises:
        WorkflowValidationError: if the path is malformed or points nowhere.
    """
    branch: tuple[Step, ...] = steps
    selected: Step | None = None

    for segment in step_path.split("."):
        if segment in ("then", "else"):
            if not isinstance(selected, ConditionStep):
                raise WorkflowValidationError(
                    f"Invalid step path {step_path!r}: expected a condition before '{segment}'"
                )
            branch = selected.then_steps if segment == "then" else selected.else_steps
            selected = None
            continue

        if not segment.isdigit():
            raise WorkflowValidationError(
                f"Invalid step path {step_path!r}: segment {segment!r} is not an index"
            )
        index = int(segment)
        if index >= len(branch):
            raise WorkflowValidationError(
                f"Invalid step path {step_path!r}: index {index} is out of range"
            )
        selected = branch[index]

    if selected is None:
        raise WorkflowValidationError(f"Invalid step path {step_path!r}: no step resolved")
    return selected


def dump_steps(steps: tuple[Step, ...]) -> list[dict[str, Any]]:
    """Serialize a step graph to JSON-safe dicts (branch keys "then"/"else")."""
    return _STEPS.dump_python(tuple(steps), mode="json", by_alias=True)


def load_steps(data: Any) -> tuple[Step, ...]:
    """Parse JSON-shaped data into a step graph. Raises pydantic.ValidationError."""
    return _STEPS.validate_python(data or ())
