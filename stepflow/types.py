"""All shared types, enums, and type aliases. Everything imports from here."""

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from datetime import datetime, timezone
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_serializer
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Enums ──────────────────────────────────────────────────────────────

class TriggerType(str, Enum):
    MANUAL = "manual"
    SCHEDULE_TICK = "schedule_tick"
    RUNTIME_RECORD_CREATED = "runtime_record_created"

class ConditionOperator(str, Enum):
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    CONTAINS = "contains"
    EXISTS = "exists"

    @classmethod
    def _missing_(cls, value):
        # older definitions spell the equality operators out
        aliases = {"equals": "eq", "not_equals": "neq"}
        if isinstance(value, str) and value.lower() in aliases:
            return cls(aliases[value.lower()])
        return None

class RunStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    DEAD_LETTERED = "dead_lettered"

class AttemptStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"

class StepStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"

class ExecutionMode(str, Enum):
    INLINE = "inline"           # run completes before the caller gets its run back
    BACKGROUND = "background"   # run is scheduled on the dispatcher's task pool


# ── Step Graph ─────────────────────────────────────────────────────────

class _StepBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class LogMessageStep(_StepBase):
    """Writes one message to the observability sink. No other side effect."""
    type: Literal["log_message"] = "log_message"
    message: str


class CreateRuntimeRecordStep(_StepBase):
    """Creates a record in the runtime record store. `data` may carry {{tokens}}."""
    type: Literal["create_runtime_record"] = "create_runtime_record"
    entity_logical_name: str
    data: dict[str, Any] = Field(default_factory=dict)


class ConditionStep(_StepBase):
    """Branch step: exactly one of `then` / `else` runs."""
    type: Literal["condition"] = "condition"
    field_path: str                     # "payload.status", "status", "steps.0.record_id"
    operator: ConditionOperator
    value: Any = Field(default=None, validation_alias=AliasChoices("value", "comparison_value"))
    then_label: Optional[str] = None    # display only
    else_label: Optional[str] = None
    then_steps: tuple["Step", ...] = Field(default=(), alias="then")
    else_steps: tuple["Step", ...] = Field(default=(), alias="else")

    @property
    def has_value(self) -> bool:
        """True when a comparison value was supplied (JSON null counts as supplied)."""
        return "value" in self.model_fields_set

    @model_serializer(mode="wrap")
    def _omit_absent_value(self, handler):
        data = handler(self)
        if not self.has_value:
            data.pop("value", None)
        return data


Step = Annotated[
    Union[LogMessageStep, CreateRuntimeRecordStep, ConditionStep],
    Field(discriminator="type"),
]

ConditionStep.model_rebuild()

WorkflowStepGraph = tuple[Step, ...]


# ── Definitions & Events ───────────────────────────────────────────────

class WorkflowDefinition(BaseModel):
    """Immutable snapshot of a tenant's workflow. Keyed by (tenant_id, logical_name)."""
    model_config = ConfigDict(frozen=True)

    tenant_id: str
    logical_name: str
    display_name: str
    description: Optional[str] = None
    trigger_type: TriggerType = TriggerType.MANUAL
    trigger_entity_logical_name: Optional[str] = None   # required for runtime_record_created
    steps: tuple[Step, ...] = ()
    max_attempts: int = Field(default=3, ge=1, le=10)
    is_enabled: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("description", mode="before")
    @classmethod
    def _blank_description_is_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v


class TriggerEvent(BaseModel):
    """One inbound trigger: manual invocation, schedule tick, or record-created notification."""
    trigger_type: TriggerType
    tenant_id: str
    entity_logical_name: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict)
    event_id: Optional[str] = None      # dedupe key for at-least-once sources
    occurred_at: datetime = Field(default_factory=_utcnow)


# ── Runs & Attempts ────────────────────────────────────────────────────

class StepTrace(BaseModel):
    """What one step did during one attempt."""
    step_path: str                      # "0", "1.then.0"
    step_type: str
    status: StepStatus
    input: dict[str, Any] = Field(default_factory=dict)
    output: Optional[dict[str, Any]] = None
    error_message: Optional[str] = None
    duration_ms: int = 0


class WorkflowRun(BaseModel):
    """One triggered invocation of a workflow definition."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    tenant_id: str
    workflow_logical_name: str
    trigger_type: TriggerType
    trigger_entity_logical_name: Optional[str] = None
    trigger_payload: dict[str, Any] = Field(default_factory=dict)
    definition_snapshot: Optional[WorkflowDefinition] = None   # definition as matched; later edits never apply
    status: RunStatus = RunStatus.RUNNING
    attempts: int = 0
    dead_letter_reason: Optional[str] = None
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=_utcnow)   # last ledger write, for staleness

    @property
    def is_terminal(self) -> bool:
        return self.status != RunStatus.RUNNING


class WorkflowRunAttempt(BaseModel):
    """One end-to-end try at a run's step graph. Keyed by (run_id, attempt_number)."""
    run_id: str
    attempt_number: int = Field(ge=1)
    status: AttemptStatus
    error_message: Optional[str] = None
    executed_at: datetime = Field(default_factory=_utcnow)
    step_traces: list[StepTrace] = Field(default_factory=list)


# ── Execution ──────────────────────────────────────────────────────────

class ExecutionContext(BaseModel):
    """Everything a step can see while one attempt runs."""
    tenant_id: str
    run_id: str
    workflow_logical_name: str
    attempt_number: int
    trigger_type: TriggerType
    trigger_entity_logical_name: Optional[str] = None
    trigger_payload: dict[str, Any] = Field(default_factory=dict)
    step_outputs: dict[str, dict[str, Any]] = Field(default_factory=dict)   # step_path → output
    now: datetime = Field(default_factory=_utcnow)


class ExecutionOutcome(BaseModel):
    """Result of walking a step graph once."""
    succeeded: bool
    error_message: Optional[str] = None
    failed_step_path: Optional[str] = None
    traces: list[StepTrace] = Field(default_factory=list)
