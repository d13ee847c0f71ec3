"""stepflow.workflows — Step graphs, conditions, templating, validation, and definition management."""

from .conditions import MISSING, evaluate, resolve_field, resolve_path
from .manager import WorkflowManager
from .steps import dump_steps, iter_steps, load_steps, step_by_path
from .templating import interpolate_json, interpolate_string
from .validator import WorkflowValidator

__all__ = [
    "MISSING",
    "evaluate",
    "resolve_field",
    "resolve_path",
    "WorkflowManager",
    "WorkflowValidator",
    "dump_steps",
    "iter_steps",
    "load_steps",
    "step_by_path",
    "interpolate_json",
    "interpolate_string",
]
