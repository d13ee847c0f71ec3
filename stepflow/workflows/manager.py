"""
WorkflowManager — lifecycle management for WorkflowDefinition objects.

Supports both in-memory operation (no session factory, for tests and CLI) and
full persistence when an async session factory is provided, in which case
every call opens its own session and goes through Repository.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from stepflow.config import StepflowConfig
from stepflow.exceptions import WorkflowDisabled, WorkflowNotFound
from stepflow.types import TriggerType, WorkflowDefinition

from .validator import WorkflowValidator

logger = logging.getLogger(__name__)


class WorkflowManager:
    """
    Manages the full lifecycle of WorkflowDefinition objects.

    Definitions handed out are deep copies, so a caller holding one (an
    in-flight run) never sees a later edit to the same logical name.

    Args:
        session_factory: Optional ``async_sessionmaker``.  When None, all
                         state is kept in-memory (useful for tests).
        validator:       WorkflowValidator instance.  A default instance is
                         created if not supplied.
        config:          StepflowConfig instance.  A default instance is
                         created if not supplied.
    """

    def __init__(
        self,
        session_factory: Any = None,
        validator: Optional[WorkflowValidator] = None,
        config: Optional[StepflowConfig] = None,
    ) -> None:
        self._session_factory = session_factory
        self._validator = validator or WorkflowValidator()
        self._config = config or StepflowConfig()

        # in-memory store, used only when there is no session factory
        self._store: dict[tuple[str, str], WorkflowDefinition] = {}

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _validate_or_raise(self, workflow: WorkflowDefinition) -> None:
        warnings = self._validator.validate_or_raise(
            workflow,
            max_steps=self._config.max_workflow_steps,
            max_depth=self._config.max_step_depth,
        )
        for warning in warnings:
            logger.warning(f"[WorkflowManager] {workflow.logical_name}: {warning}")

    async def _fetch(self, tenant_id: str, logical_name: str) -> Optional[WorkflowDefinition]:
        if self._session_factory is None:
            found = self._store.get((tenant_id, logical_name))
            return found.model_copy(deep=True) if found is not None else None
        from stepflow.db.repository import Repository
        async with self._session_factory() as session:
            return await Repository(session).get_workflow(tenant_id, logical_name)

    async def _write(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        if self._session_factory is None:
            self._store[(workflow.tenant_id, workflow.logical_name)] = workflow.model_copy(deep=True)
            return workflow
        from stepflow.db.repository import Repository
        async with self._session_factory() as session:
            return await Repository(session).upsert_workflow(workflow)

    # ── CRUD ──────────────────────────────────────────────────────────────────

    async def upsert(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        """
        Validate and save a definition, replacing any existing one with the
        same (tenant_id, logical_name).  created_at survives replacement.

        Raises:
            WorkflowValidationError: if the definition is structurally invalid.
        """
        self._validate_or_raise(workflow)
        now = datetime.now(tz=timezone.utc)
        existing = await self._fetch(workflow.tenant_id, workflow.logical_name)
        updates: dict[str, Any] = {"updated_at": now}
        updates["created_at"] = existing.created_at if existing is not None else now
        saved = await self._write(workflow.model_copy(update=updates))
        logger.info(
            f"[WorkflowManager] Saved '{saved.logical_name}' for tenant {saved.tenant_id} "
            f"(trigger={saved.trigger_type.value}, enabled={saved.is_enabled})"
        )
        return saved

    async def get(self, tenant_id: str, logical_name: str) -> WorkflowDefinition:
        """
        Load a definition by logical name.

        Raises:
            WorkflowNotFound: if not found for this tenant.
        """
        workflow = await self._fetch(tenant_id, logical_name)
        if workflow is None:
            raise WorkflowNotFound(
                f"Workflow '{logical_name}' not found.", logical_name=logical_name
            )
        return workflow

    async def get_enabled(self, tenant_id: str, logical_name: str) -> WorkflowDefinition:
        """
        Load a definition that may be executed right now.

        Raises:
            WorkflowNotFound: if not found for this tenant.
            WorkflowDisabled: if found but is_enabled is false.
        """
        workflow = await self.get(tenant_id, logical_name)
        if not workflow.is_enabled:
            raise WorkflowDisabled(
                f"Workflow '{logical_name}' is disabled.", logical_name=logical_name
            )
        return workflow

    async def list(
        self,
        tenant_id: Optional[str],
        trigger_type: Optional[TriggerType] = None,
        enabled: Optional[bool] = None,
    ) -> list[WorkflowDefinition]:
        """Definitions for a tenant (all tenants when None), ordered by tenant then name."""
        if self._session_factory is not None:
            from stepflow.db.repository import Repository
            async with self._session_factory() as session:
                return await Repository(session).list_workflows(
                    tenant_id, trigger_type=trigger_type, enabled=enabled
                )
        results = [
            wf.model_copy(deep=True) for wf in self._store.values()
            if (tenant_id is None or wf.tenant_id == tenant_id)
            and (trigger_type is None or wf.trigger_type == trigger_type)
            and (enabled is None or wf.is_enabled == enabled)
        ]
        results.sort(key=lambda w: (w.tenant_id, w.logical_name))
        return results

    async def set_enabled(self, tenant_id: str, logical_name: str, enabled: bool) -> WorkflowDefinition:
        """Enable or disable a definition without touching its step graph."""
        existing = await self.get(tenant_id, logical_name)
        updated = existing.model_copy(
            update={"is_enabled": enabled, "updated_at": datetime.now(tz=timezone.utc)}
        )
        return await self._write(updated)

    async def delete(self, tenant_id: str, logical_name: str) -> bool:
        """Remove a definition.  Existing runs keep their history."""
        if self._session_factory is None:
            return self._store.pop((tenant_id, logical_name), None) is not None
        from stepflow.db.repository import Repository
        async with self._session_factory() as session:
            return await Repository(session).delete_workflow(tenant_id, logical_name)
