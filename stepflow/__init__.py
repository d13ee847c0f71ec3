"""STEPFLOW — trigger-matched workflow execution with bounded retries and an attempt ledger.

Usage:
    from stepflow import Stepflow, WorkflowDefinition, LogMessageStep

    flow = Stepflow.in_memory()
    await flow.workflows.upsert(WorkflowDefinition(
        tenant_id="acme", logical_name="hello", display_name="Hello",
        steps=(LogMessageStep(message="hi {{payload.name}}"),),
    ))
    run = await flow.triggers.execute_manual("acme", "hello", {"name": "Ada"})
"""

from stepflow.types import (
    TriggerType, ConditionOperator, RunStatus, AttemptStatus, StepStatus, ExecutionMode,
    LogMessageStep, CreateRuntimeRecordStep, ConditionStep, Step, WorkflowStepGraph,
    WorkflowDefinition, TriggerEvent, StepTrace, WorkflowRun, WorkflowRunAttempt,
    ExecutionContext, ExecutionOutcome,
)
from stepflow.exceptions import (
    StepflowError, WorkflowError, WorkflowNotFound, WorkflowDisabled, WorkflowValidationError,
    StepExecutionError, RecordStoreError, RecordErrorKind,
    LedgerError, RunNotFound, LedgerConflict, TriggerError, AuthError,
)
from stepflow.runtime import Stepflow
from stepflow.version import __version__

__all__ = [
    "TriggerType", "ConditionOperator", "RunStatus", "AttemptStatus", "StepStatus", "ExecutionMode",
    "LogMessageStep", "CreateRuntimeRecordStep", "ConditionStep", "Step", "WorkflowStepGraph",
    "WorkflowDefinition", "TriggerEvent", "StepTrace", "WorkflowRun", "WorkflowRunAttempt",
    "ExecutionContext", "ExecutionOutcome",
    "StepflowError", "WorkflowError", "WorkflowNotFound", "WorkflowDisabled", "WorkflowValidationError",
    "StepExecutionError", "RecordStoreError", "RecordErrorKind",
    "LedgerError", "RunNotFound", "LedgerConflict", "TriggerError", "AuthError",
    "Stepflow",
    "__version__",
]
