"""Typed exception hierarchy. Every error STEPFLOW can raise."""

from enum import Enum


class StepflowError(Exception):
    """Base exception for all STEPFLOW errors."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.details = details or {}


# ── Definitions ──────────────────────────────────────────────────────────────


class WorkflowError(StepflowError):
    """Base exception for all workflow-definition errors."""
    pass


class WorkflowNotFound(WorkflowError):
    """Requested workflow does not exist for this tenant."""
    def __init__(self, message: str, logical_name: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.logical_name = logical_name


class WorkflowDisabled(WorkflowError):
    """Workflow exists but is not enabled, so it cannot be executed."""
    def __init__(self, message: str, logical_name: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.logical_name = logical_name


class WorkflowValidationError(WorkflowError):
    """Workflow definition is structurally invalid (bad trigger, bad step, cycle, etc.)."""
    def __init__(self, message: str, violations: list = None, **kwargs):
        super().__init__(message, **kwargs)
        self.violations = violations or []


# ── Step execution ───────────────────────────────────────────────────────────


class StepExecutionError(StepflowError):
    """One step failed. The engine folds this into an attempt failure."""
    def __init__(self, message: str, step_path: str = "", step_type: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.step_path = step_path
        self.step_type = step_type


class RecordErrorKind(str, Enum):
    ENTITY_NOT_FOUND = "entity_not_found"
    VALIDATION_REJECTED = "validation_rejected"
    TRANSIENT = "transient"
    TIMEOUT = "timeout"
    INVALID_RESPONSE = "invalid_response"


class RecordStoreError(StepExecutionError):
    """The record store refused or failed to create a record."""
    def __init__(self, message: str, kind: RecordErrorKind = RecordErrorKind.TRANSIENT, entity_logical_name: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.kind = kind
        self.entity_logical_name = entity_logical_name


# ── Ledger ───────────────────────────────────────────────────────────────────


class LedgerError(StepflowError):
    """Run ledger write or read failed. Fatal to the current attempt's bookkeeping."""
    def __init__(self, message: str, run_id: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.run_id = run_id


class RunNotFound(LedgerError):
    """Run ID not found or does not belong to this tenant."""
    pass


class LedgerConflict(LedgerError):
    """Write would break a ledger invariant (gap in attempts, write to a terminal run)."""
    pass


# ── Triggers & Auth ──────────────────────────────────────────────────────────


class TriggerError(StepflowError):
    """A trigger event could not be accepted."""
    def __init__(self, message: str, trigger_type: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.trigger_type = trigger_type


class AuthError(StepflowError):
    """Token missing, expired, or invalid."""
    pass
