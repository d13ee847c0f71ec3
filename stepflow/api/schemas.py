"""Pydantic models for API request/response. Mirrors types.py for API I/O."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from stepflow.types import (
    AttemptStatus,
    RunStatus,
    Step,
    StepTrace,
    TriggerType,
    WorkflowRun,
    WorkflowRunAttempt,
)


# ── Requests ──

class WorkflowUpsertRequest(BaseModel):
    display_name: Optional[str] = None           # defaults to the logical name
    description: Optional[str] = None
    trigger_type: TriggerType = TriggerType.MANUAL
    trigger_entity_logical_name: Optional[str] = None
    steps: list[Step] = Field(default_factory=list)
    max_attempts: int = Field(default=3, ge=1, le=10)
    is_enabled: bool = True


class RecordCreatedRequest(BaseModel):
    entity_logical_name: str = Field(..., min_length=1)
    record_id: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    event_id: Optional[str] = None               # defaults to "entity:record_id"
    triggered_by: Optional[str] = None


class ReconcileRequest(BaseModel):
    stale_after_seconds: Optional[float] = Field(default=None, gt=0)   # None → config threshold
    redrive: bool = False


# ── Responses ──

class ExecuteResponse(BaseModel):
    run_id: str
    workflow_logical_name: str
    status: RunStatus


class RunResponse(BaseModel):
    id: str
    tenant_id: str
    workflow_logical_name: str
    trigger_type: TriggerType
    trigger_entity_logical_name: Optional[str] = None
    trigger_payload: dict[str, Any] = {}
    status: RunStatus
    attempts: int
    dead_letter_reason: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None
    updated_at: datetime

    @classmethod
    def from_run(cls, run: WorkflowRun) -> "RunResponse":
        return cls.model_validate(run.model_dump())


class RunListResponse(BaseModel):
    runs: list[RunResponse]
    limit: int
    offset: int


class AttemptResponse(BaseModel):
    attempt_number: int
    status: AttemptStatus
    error_message: Optional[str] = None
    executed_at: datetime
    step_traces: list[StepTrace] = []

    @classmethod
    def from_attempt(cls, attempt: WorkflowRunAttempt) -> "AttemptResponse":
        return cls.model_validate(attempt.model_dump())


class AttemptListResponse(BaseModel):
    run_id: str
    attempts: list[AttemptResponse]


class EventAcceptedResponse(BaseModel):
    run_ids: list[str]


class ReconciledRun(BaseModel):
    run_id: str
    action: str                                  # "redriven" | "dead_lettered"
    status: RunStatus


class ReconcileResponse(BaseModel):
    reconciled: list[ReconciledRun]


class HealthResponse(BaseModel):
    status: str                                  # "ok" | "degraded"
    version: str
    services: dict[str, bool]
