"""Workflow definition and manual execution routes."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException

from stepflow.api.deps import READ_ROLES, WRITE_ROLES, get_runtime, require_role
from stepflow.api.schemas import ExecuteResponse, WorkflowUpsertRequest
from stepflow.exceptions import (
    LedgerError,
    WorkflowDisabled,
    WorkflowNotFound,
    WorkflowValidationError,
)
from stepflow.types import TriggerType, WorkflowDefinition

logger = logging.getLogger(__name__)
router = APIRouter(tags=["workflows"])


def _dump(workflow: WorkflowDefinition) -> dict:
    return workflow.model_dump(mode="json", by_alias=True)


@router.get("/workflows")
async def list_workflows(
    trigger_type: Optional[TriggerType] = None,
    enabled: Optional[bool] = None,
    tenant_id: str = Depends(require_role(*READ_ROLES)),
    runtime=Depends(get_runtime),
):
    """List the tenant's workflow definitions."""
    workflows = await runtime.workflows.list(tenant_id, trigger_type=trigger_type, enabled=enabled)
    return {"workflows": [_dump(w) for w in workflows]}


@router.get("/workflows/{logical_name}")
async def get_workflow(
    logical_name: str,
    tenant_id: str = Depends(require_role(*READ_ROLES)),
    runtime=Depends(get_runtime),
):
    """Get one workflow definition."""
    try:
        workflow = await runtime.workflows.get(tenant_id, logical_name)
    except WorkflowNotFound:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return _dump(workflow)


@router.put("/workflows/{logical_name}")
async def put_workflow(
    logical_name: str,
    body: WorkflowUpsertRequest,
    tenant_id: str = Depends(require_role(*WRITE_ROLES)),
    runtime=Depends(get_runtime),
):
    """Create or replace a workflow definition.  Invalid definitions are rejected with 422."""
    try:
        workflow = WorkflowDefinition(
            tenant_id=tenant_id,
            logical_name=logical_name,
            display_name=body.display_name or logical_name,
            description=body.description,
            trigger_type=body.trigger_type,
            trigger_entity_logical_name=body.trigger_entity_logical_name,
            steps=tuple(body.steps),
            max_attempts=body.max_attempts,
            is_enabled=body.is_enabled,
        )
        saved = await runtime.workflows.upsert(workflow)
    except WorkflowValidationError as exc:
        raise HTTPException(status_code=422, detail={"message": str(exc), "violations": exc.violations})
    return _dump(saved)


@router.post("/workflows/{logical_name}/execute", response_model=ExecuteResponse, status_code=202)
async def execute_workflow(
    logical_name: str,
    payload: Optional[dict[str, Any]] = Body(default=None),
    tenant_id: str = Depends(require_role(*WRITE_ROLES)),
    runtime=Depends(get_runtime),
):
    """Manual trigger.  Returns the accepted run; its outcome is read from run history."""
    try:
        run = await runtime.triggers.execute_manual(tenant_id, logical_name, payload or {})
    except (WorkflowNotFound, WorkflowDisabled):
        raise HTTPException(status_code=404, detail="Workflow not found or disabled")
    except LedgerError as exc:
        logger.error(f"[api] Run ledger unavailable for {tenant_id}/{logical_name}: {exc}")
        raise HTTPException(status_code=503, detail="Run ledger unavailable")
    return ExecuteResponse(run_id=run.id, workflow_logical_name=logical_name, status=run.status)
