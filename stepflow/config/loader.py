"""Load and validate workflows.yaml into WorkflowDefinition snapshots.

Resolution order:
  1. Path passed explicitly by caller
  2. ./workflows.yaml in current working directory
"""

from pathlib import Path
from typing import Optional

import yaml

from stepflow.config.schema import WorkflowsConfig
from stepflow.exceptions import WorkflowValidationError
from stepflow.types import WorkflowDefinition


def _find_file(name: str, explicit: Optional[Path]) -> Path:
    """Locate config file: explicit > cwd."""
    if explicit is not None:
        p = Path(explicit)
        if not p.exists():
            raise FileNotFoundError(f"Config file not found: {p}")
        return p

    cwd_path = Path.cwd() / name
    if cwd_path.exists():
        return cwd_path

    raise FileNotFoundError(
        f"No {name} found. Create one in your project directory "
        f"or use load_workflows_yaml(path=...)."
    )


def load_workflows_yaml(
    path: Optional[Path] = None,
    tenant_id: str = "default",
    max_steps: int = 50,
    max_depth: int = 16,
) -> list[WorkflowDefinition]:
    """Load workflows.yaml → list of validated WorkflowDefinition objects.

    Args:
        path: Explicit path to workflows.yaml. If None, searches cwd.
        tenant_id: Tenant assigned to entries that don't name one.
        max_steps: Step-count ceiling passed to the validator.
        max_depth: Branch-nesting ceiling passed to the validator.

    Returns:
        One definition per entry, in file order.

    Raises:
        WorkflowValidationError: if any entry is invalid or a logical name repeats
            within a tenant. All violations are reported together.
    """
    from stepflow.workflows.validator import WorkflowValidator

    resolved = _find_file("workflows.yaml", path)
    raw = yaml.safe_load(resolved.read_text())
    config = WorkflowsConfig.model_validate(raw or {"workflows": []})

    validator = WorkflowValidator()
    definitions: list[WorkflowDefinition] = []
    violations: list[str] = []
    seen: set[tuple[str, str]] = set()

    for entry in config.workflows:
        definition = WorkflowDefinition(
            tenant_id=entry.tenant_id or tenant_id,
            logical_name=entry.logical_name,
            display_name=entry.display_name or entry.logical_name,
            description=entry.description,
            trigger_type=entry.trigger.type,
            trigger_entity_logical_name=entry.trigger.entity_logical_name,
            steps=tuple(entry.steps),
            max_attempts=entry.max_attempts,
            is_enabled=entry.enabled,
        )
        key = (definition.tenant_id, definition.logical_name)
        if key in seen:
            violations.append(f"{definition.logical_name}: duplicate logical_name for tenant '{definition.tenant_id}'")
        seen.add(key)

        errors = validator.validate(definition, max_steps=max_steps, max_depth=max_depth)
        violations.extend(
            f"{definition.logical_name}: {e}" for e in errors if not e.startswith("WARNING:")
        )
        definitions.append(definition)

    if violations:
        raise WorkflowValidationError(
            f"{resolved} contains invalid workflows", violations=violations
        )
    return definitions
