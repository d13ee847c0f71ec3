"""All ORM models. These map 1:1 to the Pydantic types but are SQLAlchemy models.

Tables: workflow_definitions, workflow_execution_runs, workflow_execution_attempts
All tables carry tenant_id for isolation. Indexes on common query patterns.
"""

from sqlalchemy import (
    CheckConstraint, Column, String, Integer, DateTime, JSON, Boolean, Text, ForeignKey, Index,
)
from sqlalchemy.orm import DeclarativeBase
from datetime import datetime, timezone
import uuid


class Base(DeclarativeBase):
    pass


class WorkflowDefinitionModel(Base):
    __tablename__ = "workflow_definitions"
    tenant_id = Column(String, primary_key=True)
    logical_name = Column(String, primary_key=True)
    display_name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    trigger_type = Column(String, nullable=False)           # TriggerType value
    trigger_entity_logical_name = Column(String, nullable=True)
    steps = Column(JSON, nullable=False, default=list)      # dump_steps() output
    max_attempts = Column(Integer, nullable=False, default=3)
    is_enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        CheckConstraint("max_attempts BETWEEN 1 AND 10", name="ck_workflow_max_attempts"),
        Index("ix_workflow_trigger", "tenant_id", "trigger_type", "is_enabled"),
    )


class WorkflowRunModel(Base):
    __tablename__ = "workflow_execution_runs"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String, nullable=False, index=True)
    workflow_logical_name = Column(String, nullable=False)
    trigger_type = Column(String, nullable=False)
    trigger_entity_logical_name = Column(String, nullable=True)
    trigger_payload = Column(JSON, nullable=False, default=dict)
    definition_snapshot = Column(JSON, nullable=True)              # WorkflowDefinition at trigger time
    status = Column(String, nullable=False, default="running")     # RunStatus value
    attempts = Column(Integer, nullable=False, default=0)
    dead_letter_reason = Column(Text, nullable=True)
    started_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    finished_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        CheckConstraint(
            "status IN ('running', 'succeeded', 'dead_lettered')", name="ck_run_status"
        ),
        CheckConstraint("attempts >= 0", name="ck_run_attempts"),
        Index("ix_run_tenant_workflow_started", "tenant_id", "workflow_logical_name", "started_at"),
        Index("ix_run_status_updated", "status", "updated_at"),
    )


class WorkflowRunAttemptModel(Base):
    __tablename__ = "workflow_execution_attempts"
    run_id = Column(String, ForeignKey("workflow_execution_runs.id"), primary_key=True)
    attempt_number = Column(Integer, primary_key=True)
    tenant_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False)                 # AttemptStatus value
    error_message = Column(Text, nullable=True)
    executed_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    step_traces = Column(JSON, nullable=False, default=list)

    __table_args__ = (
        CheckConstraint("status IN ('succeeded', 'failed')", name="ck_attempt_status"),
        CheckConstraint("attempt_number >= 1", name="ck_attempt_number"),
    )
