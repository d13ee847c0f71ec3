"""Inbound record-created notifications from the record store."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from stepflow.api.deps import WRITE_ROLES, get_runtime, require_role
from stepflow.api.schemas import EventAcceptedResponse, RecordCreatedRequest
from stepflow.exceptions import LedgerError, TriggerError

logger = logging.getLogger(__name__)
router = APIRouter(tags=["events"])


@router.post("/events/runtime-record-created", response_model=EventAcceptedResponse, status_code=202)
async def runtime_record_created(
    body: RecordCreatedRequest,
    tenant_id: str = Depends(require_role(*WRITE_ROLES)),
    runtime=Depends(get_runtime),
):
    """Start one run per matching workflow.  A redelivered event_id starts none."""
    try:
        runs = await runtime.triggers.record_created(
            tenant_id,
            body.entity_logical_name,
            body.record_id,
            data=body.data,
            event_id=body.event_id,
            triggered_by=body.triggered_by,
        )
    except TriggerError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except LedgerError as exc:
        logger.error(f"[api] Run ledger unavailable for record event {body.entity_logical_name}:{body.record_id}: {exc}")
        raise HTTPException(status_code=503, detail="Run ledger unavailable")
    return EventAcceptedResponse(run_ids=[r.id for r in runs])
