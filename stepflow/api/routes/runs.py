"""Run history and reconciliation routes.

Mounted before the workflows router so /workflows/runs is not taken for a
workflow named "runs".
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from stepflow.api.deps import ADMIN_ROLES, READ_ROLES, get_runtime, require_role
from stepflow.api.schemas import (
    AttemptListResponse,
    AttemptResponse,
    ReconciledRun,
    ReconcileRequest,
    ReconcileResponse,
    RunListResponse,
    RunResponse,
)
from stepflow.exceptions import RunNotFound
from stepflow.types import RunStatus

logger = logging.getLogger(__name__)
router = APIRouter(tags=["runs"])


@router.get("/workflows/runs", response_model=RunListResponse)
async def list_runs(
    workflow_logical_name: Optional[str] = None,
    status: Optional[RunStatus] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    tenant_id: str = Depends(require_role(*READ_ROLES)),
    runtime=Depends(get_runtime),
):
    """Run history, newest first by started_at."""
    runs = await runtime.ledger.list_runs(
        tenant_id, workflow_logical_name=workflow_logical_name, status=status, limit=limit, offset=offset
    )
    return RunListResponse(runs=[RunResponse.from_run(r) for r in runs], limit=limit, offset=offset)


@router.post("/workflows/runs/reconcile", response_model=ReconcileResponse)
async def reconcile_runs(
    body: Optional[ReconcileRequest] = None,
    tenant_id: str = Depends(require_role(*ADMIN_ROLES)),
    runtime=Depends(get_runtime),
):
    """Dead-letter (or re-drive) the tenant's runs stuck in running."""
    body = body or ReconcileRequest()
    stale_after = body.stale_after_seconds or runtime.config.stale_run_threshold_seconds
    settled = await runtime.reconciler.reconcile(stale_after, redrive=body.redrive, tenant_id=tenant_id)
    return ReconcileResponse(reconciled=[
        ReconciledRun(run_id=run.id, action=action, status=run.status) for run, action in settled
    ])


@router.get("/workflows/runs/{run_id}", response_model=RunResponse)
async def get_run(
    run_id: str,
    tenant_id: str = Depends(require_role(*READ_ROLES)),
    runtime=Depends(get_runtime),
):
    """One run."""
    try:
        run = await runtime.ledger.get_run(tenant_id, run_id)
    except RunNotFound:
        raise HTTPException(status_code=404, detail="Run not found")
    return RunResponse.from_run(run)


@router.get("/workflows/runs/{run_id}/attempts", response_model=AttemptListResponse)
async def list_attempts(
    run_id: str,
    tenant_id: str = Depends(require_role(*READ_ROLES)),
    runtime=Depends(get_runtime),
):
    """The attempt ledger for one run, ascending by attempt number."""
    try:
        attempts = await runtime.ledger.list_attempts(tenant_id, run_id)
    except RunNotFound:
        raise HTTPException(status_code=404, detail="Run not found")
    return AttemptListResponse(run_id=run_id, attempts=[AttemptResponse.from_attempt(a) for a in attempts])
