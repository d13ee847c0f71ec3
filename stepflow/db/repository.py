"""Data access layer. Every query is tenant-scoped.

This is the ONLY layer that talks to the database.
All methods take tenant_id for isolation.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc

from stepflow.db.models import WorkflowDefinitionModel, WorkflowRunAttemptModel, WorkflowRunModel
from stepflow.exceptions import LedgerConflict, RunNotFound
from stepflow.types import (
    AttemptStatus, RunStatus, StepTrace, TriggerType, WorkflowDefinition, WorkflowRun,
    WorkflowRunAttempt,
)
from stepflow.workflows.steps import dump_steps, load_steps


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Repository:
    """All database operations. Every query is tenant-scoped."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ── Workflow definitions ──
    @staticmethod
    def _model_to_workflow(m: WorkflowDefinitionModel) -> WorkflowDefinition:
        """Convert a WorkflowDefinitionModel ORM row to a WorkflowDefinition Pydantic model."""
        return WorkflowDefinition(
            tenant_id=m.tenant_id,
            logical_name=m.logical_name,
            display_name=m.display_name,
            description=m.description,
            trigger_type=TriggerType(m.trigger_type),
            trigger_entity_logical_name=m.trigger_entity_logical_name,
            steps=load_steps(m.steps),
            max_attempts=m.max_attempts,
            is_enabled=m.is_enabled,
            created_at=_aware(m.created_at),
            updated_at=_aware(m.updated_at),
        )

    async def _get_workflow_row(self, tenant_id: str, logical_name: str) -> Optional[WorkflowDefinitionModel]:
        result = await self.session.execute(
            select(WorkflowDefinitionModel).where(
                WorkflowDefinitionModel.tenant_id == tenant_id,
                WorkflowDefinitionModel.logical_name == logical_name,
            )
        )
        return result.scalar_one_or_none()

    async def upsert_workflow(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        """Create or fully replace a definition keyed by (tenant_id, logical_name)."""
        record = await self._get_workflow_row(workflow.tenant_id, workflow.logical_name)
        if record is None:
            record = WorkflowDefinitionModel(
                tenant_id=workflow.tenant_id,
                logical_name=workflow.logical_name,
                created_at=workflow.created_at,
            )
            self.session.add(record)
        record.display_name = workflow.display_name
        record.description = workflow.description
        record.trigger_type = workflow.trigger_type.value
        record.trigger_entity_logical_name = workflow.trigger_entity_logical_name
        record.steps = dump_steps(workflow.steps)
        record.max_attempts = workflow.max_attempts
        record.is_enabled = workflow.is_enabled
        record.updated_at = workflow.updated_at
        await self.session.commit()
        await self.session.refresh(record)
        return self._model_to_workflow(record)

    async def get_workflow(self, tenant_id: str, logical_name: str) -> Optional[WorkflowDefinition]:
        """Get a definition by logical name within tenant."""
        record = await self._get_workflow_row(tenant_id, logical_name)
        return self._model_to_workflow(record) if record is not None else None

    async def list_workflows(
        self,
        tenant_id: Optional[str],
        trigger_type: Optional[TriggerType] = None,
        entity_logical_name: Optional[str] = None,
        enabled: Optional[bool] = None,
    ) -> list[WorkflowDefinition]:
        """List definitions with optional filters, ordered by logical name.

        ``tenant_id=None`` returns definitions across all tenants (used by the schedule ticker).
        """
        conditions = []
        if tenant_id is not None:
            conditions.append(WorkflowDefinitionModel.tenant_id == tenant_id)
        if trigger_type is not None:
            conditions.append(WorkflowDefinitionModel.trigger_type == trigger_type.value)
        if entity_logical_name is not None:
            conditions.append(
                WorkflowDefinitionModel.trigger_entity_logical_name == entity_logical_name
            )
        if enabled is not None:
            conditions.append(WorkflowDefinitionModel.is_enabled == enabled)

        query = select(WorkflowDefinitionModel)
        if conditions:
            query = query.where(*conditions)
        query = query.order_by(WorkflowDefinitionModel.tenant_id, WorkflowDefinitionModel.logical_name)
        result = await self.session.execute(query)
        return [self._model_to_workflow(m) for m in result.scalars().all()]

    async def delete_workflow(self, tenant_id: str, logical_name: str) -> bool:
        """Delete a definition.  Runs keep their history.  Returns False if not found."""
        record = await self._get_workflow_row(tenant_id, logical_name)
        if record is None:
            return False
        await self.session.delete(record)
        await self.session.commit()
        return True

    # ── Runs ──
    @staticmethod
    def _model_to_run(m: WorkflowRunModel) -> WorkflowRun:
        return WorkflowRun(
            id=m.id,
            tenant_id=m.tenant_id,
            workflow_logical_name=m.workflow_logical_name,
            trigger_type=TriggerType(m.trigger_type),
            trigger_entity_logical_name=m.trigger_entity_logical_name,
            trigger_payload=m.trigger_payload or {},
            definition_snapshot=(
                WorkflowDefinition.model_validate(m.definition_snapshot)
                if m.definition_snapshot else None
            ),
            status=RunStatus(m.status),
            attempts=m.attempts,
            dead_letter_reason=m.dead_letter_reason,
            started_at=_aware(m.started_at),
            finished_at=_aware(m.finished_at),
            updated_at=_aware(m.updated_at),
        )

    @staticmethod
    def _model_to_attempt(m: WorkflowRunAttemptModel) -> WorkflowRunAttempt:
        return WorkflowRunAttempt(
            run_id=m.run_id,
            attempt_number=m.attempt_number,
            status=AttemptStatus(m.status),
            error_message=m.error_message,
            executed_at=_aware(m.executed_at),
            step_traces=[StepTrace.model_validate(t) for t in (m.step_traces or [])],
        )

    async def _get_run_row(self, tenant_id: str, run_id: str, for_update: bool = False) -> Optional[WorkflowRunModel]:
        query = select(WorkflowRunModel).where(
            WorkflowRunModel.tenant_id == tenant_id,
            WorkflowRunModel.id == run_id,
        )
        if for_update:
            # row lock on PostgreSQL; SQLite serializes writers anyway
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def create_run(self, run: WorkflowRun) -> WorkflowRun:
        """Persist a new run in its initial state."""
        record = WorkflowRunModel(
            id=run.id,
            tenant_id=run.tenant_id,
            workflow_logical_name=run.workflow_logical_name,
            trigger_type=run.trigger_type.value,
            trigger_entity_logical_name=run.trigger_entity_logical_name,
            trigger_payload=run.trigger_payload,
            definition_snapshot=(
                run.definition_snapshot.model_dump(mode="json", by_alias=True)
                if run.definition_snapshot is not None else None
            ),
            status=run.status.value,
            attempts=run.attempts,
            dead_letter_reason=run.dead_letter_reason,
            started_at=run.started_at,
            finished_at=run.finished_at,
            updated_at=run.updated_at,
        )
        self.session.add(record)
        await self.session.commit()
        await self.session.refresh(record)
        return self._model_to_run(record)

    async def get_run(self, tenant_id: str, run_id: str) -> Optional[WorkflowRun]:
        """Get a run by ID within tenant."""
        record = await self._get_run_row(tenant_id, run_id)
        return self._model_to_run(record) if record is not None else None

    async def list_runs(
        self,
        tenant_id: str,
        workflow_logical_name: Optional[str] = None,
        status: Optional[RunStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[WorkflowRun]:
        """List runs for a tenant, newest first by started_at."""
        query = select(WorkflowRunModel).where(WorkflowRunModel.tenant_id == tenant_id)
        if workflow_logical_name is not None:
            query = query.where(WorkflowRunModel.workflow_logical_name == workflow_logical_name)
        if status is not None:
            query = query.where(WorkflowRunModel.status == status.value)
        query = (
            query.order_by(desc(WorkflowRunModel.started_at), desc(WorkflowRunModel.id))
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(query)
        return [self._model_to_run(m) for m in result.scalars().all()]

    async def list_stale_runs(self, cutoff: datetime, tenant_id: Optional[str] = None) -> list[WorkflowRun]:
        """Runs still running whose last ledger write is older than cutoff, oldest first."""
        query = select(WorkflowRunModel).where(
            WorkflowRunModel.status == RunStatus.RUNNING.value,
            WorkflowRunModel.updated_at < cutoff,
        )
        if tenant_id is not None:
            query = query.where(WorkflowRunModel.tenant_id == tenant_id)
        query = query.order_by(WorkflowRunModel.updated_at)
        result = await self.session.execute(query)
        return [self._model_to_run(m) for m in result.scalars().all()]

    async def apply_run_update(self, run: WorkflowRun, attempt: Optional[WorkflowRunAttempt] = None) -> WorkflowRun:
        """
        Write the run's new state, plus an attempt row when given, in one commit.

        The caller computes *run* from the current row (see RunLedger); this
        method re-checks that the stored row is still the state it was derived
        from so a concurrent writer cannot leave a gap or a double attempt.

        Raises:
            RunNotFound:    run_id unknown for this tenant.
            LedgerConflict: the stored run moved on since *run* was computed.
        """
        record = await self._get_run_row(run.tenant_id, run.id, for_update=True)
        if record is None:
            raise RunNotFound(f"Run '{run.id}' not found.", run_id=run.id)
        if record.status != RunStatus.RUNNING.value:
            await self.session.rollback()
            raise LedgerConflict(f"Run '{run.id}' is already {record.status}.", run_id=run.id)
        expected_attempts = run.attempts - 1 if attempt is not None else run.attempts
        if record.attempts != expected_attempts:
            await self.session.rollback()
            raise LedgerConflict(
                f"Run '{run.id}' has {record.attempts} attempts; expected {expected_attempts}.",
                run_id=run.id,
            )

        if attempt is not None:
            self.session.add(WorkflowRunAttemptModel(
                run_id=attempt.run_id,
                attempt_number=attempt.attempt_number,
                tenant_id=run.tenant_id,
                status=attempt.status.value,
                error_message=attempt.error_message,
                executed_at=attempt.executed_at,
                step_traces=[t.model_dump(mode="json") for t in attempt.step_traces],
            ))
        record.status = run.status.value
        record.attempts = run.attempts
        record.dead_letter_reason = run.dead_letter_reason
        record.finished_at = run.finished_at
        record.updated_at = run.updated_at
        await self.session.commit()
        await self.session.refresh(record)
        return self._model_to_run(record)

    async def list_attempts(self, tenant_id: str, run_id: str) -> list[WorkflowRunAttempt]:
        """Attempts for one run, ascending by attempt_number."""
        result = await self.session.execute(
            select(WorkflowRunAttemptModel)
            .where(
                WorkflowRunAttemptModel.tenant_id == tenant_id,
                WorkflowRunAttemptModel.run_id == run_id,
            )
            .order_by(WorkflowRunAttemptModel.attempt_number)
        )
        return [self._model_to_attempt(m) for m in result.scalars().all()]

