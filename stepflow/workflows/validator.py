"""
WorkflowValidator — structural correctness checker for WorkflowDefinition.

All checks are non-destructive reads of the definition.  Warnings (soft
issues) are returned with a "WARNING:" prefix so callers can choose to treat
them differently from hard errors.
"""

from __future__ import annotations

from stepflow.exceptions import WorkflowValidationError
from stepflow.types import (
    ConditionOperator,
    ConditionStep,
    CreateRuntimeRecordStep,
    LogMessageStep,
    TriggerType,
    WorkflowDefinition,
)

from .steps import child_path, count_steps, nesting_depth


class WorkflowValidator:
    """
    Validates the structural integrity of a WorkflowDefinition.

    Usage::

        validator = WorkflowValidator()
        errors = validator.validate(workflow)
        hard_errors = [e for e in errors if not e.startswith("WARNING:")]
        if hard_errors:
            raise WorkflowValidationError("Invalid workflow", violations=hard_errors)

    All checks are run even if earlier ones fail, so callers get the full
    error list in one shot.
    """

    def validate(
        self,
        workflow: WorkflowDefinition,
        max_steps: int = 50,
        max_depth: int = 16,
    ) -> list[str]:
        """
        Run all structural checks on a WorkflowDefinition.

        Args:
            workflow:  The workflow to validate.
            max_steps: Maximum steps across all branches.
            max_depth: Maximum condition nesting.

        Returns:
            List of error strings.  Empty list means the workflow is valid.
            Items prefixed "WARNING:" are soft warnings, not hard failures.
        """
        errors: list[str] = []

        # ── Check 1: Identity ─────────────────────────────────────────────────
        if not workflow.tenant_id.strip():
            errors.append("tenant_id must not be empty.")
        if not workflow.logical_name.strip():
            errors.append("logical_name must not be empty.")
        elif workflow.logical_name != workflow.logical_name.strip():
            errors.append("logical_name must not have leading or trailing whitespace.")
        if not workflow.display_name.strip():
            errors.append("display_name must not be empty.")

        # ── Check 2: Attempts ─────────────────────────────────────────────────
        # pydantic enforces this on construction; model_construct() bypasses it.
        if not 1 <= workflow.max_attempts <= 10:
            errors.append(
                f"max_attempts must be between 1 and 10 (got {workflow.max_attempts})."
            )

        # ── Check 3: Trigger / entity combination ─────────────────────────────
        entity = workflow.trigger_entity_logical_name
        if workflow.trigger_type == TriggerType.RUNTIME_RECORD_CREATED:
            if not entity or not entity.strip():
                errors.append(
                    "runtime_record_created trigger requires trigger_entity_logical_name."
                )
        elif entity:
            errors.append(
                f"{workflow.trigger_type.value} trigger does not take a "
                "trigger_entity_logical_name."
            )

        # ── Check 4: Acyclicity ───────────────────────────────────────────────
        # Frozen tuples can't form a cycle, but a hand-built graph could reuse
        # one branch tuple inside itself. Check before anything recurses.
        cycle = self._find_cycle(workflow.steps, prefix="", ancestors=set())
        if cycle is not None:
            errors.append(f"Step graph contains a cycle at step {cycle}.")
            return errors

        # ── Check 5: Size limits ──────────────────────────────────────────────
        total = count_steps(workflow.steps)
        if total > max_steps:
            errors.append(f"Workflow has {total} steps; maximum allowed is {max_steps}.")
        depth = nesting_depth(workflow.steps)
        if depth > max_depth:
            errors.append(
                f"Conditions are nested {depth} deep; maximum allowed is {max_depth}."
            )

        # ── Check 6: Per-step rules ───────────────────────────────────────────
        self._check_steps(workflow.steps, "", errors)

        return errors

    def validate_or_raise(
        self,
        workflow: WorkflowDefinition,
        max_steps: int = 50,
        max_depth: int = 16,
    ) -> list[str]:
        """Validate and raise on hard errors. Returns the remaining warnings."""
        errors = self.validate(workflow, max_steps=max_steps, max_depth=max_depth)
        hard = [e for e in errors if not e.startswith("WARNING:")]
        if hard:
            raise WorkflowValidationError(
                f"Workflow '{workflow.logical_name}' failed validation", violations=hard
            )
        return errors

    # ── Internals ─────────────────────────────────────────────────────────────

    def _find_cycle(self, steps, prefix: str, ancestors: set[int]) -> str | None:
        for index, step in enumerate(steps):
            path = child_path(prefix, index)
            if not isinstance(step, ConditionStep):
                continue
            if id(step) in ancestors:
                return path
            inner = ancestors | {id(step)}
            found = (
                self._find_cycle(step.then_steps, f"{path}.then", inner)
                or self._find_cycle(step.else_steps, f"{path}.else", inner)
            )
            if found:
                return found
        return None

    def _check_steps(self, steps, prefix: str, errors: list[str]) -> None:
        for index, step in enumerate(steps):
            path = child_path(prefix, index)

            if isinstance(step, LogMessageStep):
                if not step.message.strip():
                    errors.append(f"Step {path}: log_message requires a non-empty message.")

            elif isinstance(step, CreateRuntimeRecordStep):
                if not step.entity_logical_name.strip():
                    errors.append(
                        f"Step {path}: create_runtime_record requires entity_logical_name."
                    )
                if not isinstance(step.data, dict):
                    errors.append(f"Step {path}: create_runtime_record data must be a JSON object.")

            elif isinstance(step, ConditionStep):
                if not step.field_path.strip():
                    errors.append(f"Step {path}: condition requires a field_path.")
                if step.operator is ConditionOperator.EXISTS:
                    if step.has_value:
                        errors.append(f"Step {path}: exists operator does not accept a value.")
                elif not step.has_value:
                    errors.append(
                        f"Step {path}: {step.operator.value} operator requires a comparison value."
                    )
                if not step.then_steps and not step.else_steps:
                    errors.append(f"WARNING: Step {path}: both branches are empty.")
                self._check_steps(step.then_steps, f"{path}.then", errors)
                self._check_steps(step.else_steps, f"{path}.else", errors)

            else:
                errors.append(f"Step {path}: unknown step type {type(step).__name__}.")
