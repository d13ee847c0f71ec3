"""Run ledger. Durable, append-only record of runs and their attempts.

Every write is one atomic unit: an attempt row together with the run's new
attempts/status/finished_at.  Writes for one run are serialized, and the
ledger refuses any write that would leave a gap in attempt numbers, repeat
one, or touch a run that is already terminal.

Two adapters:
  InMemoryRunLedger   per-run asyncio.Lock, dicts; tests and the CLI
  SqlRunLedger        SQLAlchemy async session per write via Repository
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from stepflow.exceptions import LedgerConflict, LedgerError, RunNotFound
from stepflow.types import AttemptStatus, RunStatus, WorkflowRun, WorkflowRunAttempt

logger = logging.getLogger(__name__)


def apply_attempt(
    run: WorkflowRun,
    attempt: WorkflowRunAttempt,
    run_status: RunStatus,
    dead_letter_reason: Optional[str] = None,
) -> WorkflowRun:
    """
    Compute the run's state after *attempt*, checking every ledger rule.

    Raises:
        LedgerConflict: the write would break a ledger invariant.
    """
    if run.is_terminal:
        raise LedgerConflict(f"Run '{run.id}' is already {run.status.value}.", run_id=run.id)
    if attempt.run_id != run.id:
        raise LedgerConflict(f"Attempt belongs to run '{attempt.run_id}', not '{run.id}'.", run_id=run.id)
    if attempt.attempt_number != run.attempts + 1:
        raise LedgerConflict(
            f"Run '{run.id}' expects attempt {run.attempts + 1}, got {attempt.attempt_number}.",
            run_id=run.id,
        )
    if run_status == RunStatus.SUCCEEDED and attempt.status != AttemptStatus.SUCCEEDED:
        raise LedgerConflict("A run can only succeed on a succeeded attempt.", run_id=run.id)
    if run_status != RunStatus.SUCCEEDED and attempt.status == AttemptStatus.SUCCEEDED:
        raise LedgerConflict("A succeeded attempt must finish the run.", run_id=run.id)

    terminal = run_status != RunStatus.RUNNING
    return run.model_copy(update={
        "attempts": attempt.attempt_number,
        "status": run_status,
        "dead_letter_reason": dead_letter_reason if run_status == RunStatus.DEAD_LETTERED else None,
        "finished_at": attempt.executed_at if terminal else None,
        "updated_at": attempt.executed_at,
    })


def apply_dead_letter(run: WorkflowRun, reason: str, now: datetime) -> WorkflowRun:
    """Dead-letter a stale running run without appending an attempt."""
    if run.is_terminal:
        raise LedgerConflict(f"Run '{run.id}' is already {run.status.value}.", run_id=run.id)
    return run.model_copy(update={
        "status": RunStatus.DEAD_LETTERED,
        "dead_letter_reason": reason,
        "finished_at": now,
        "updated_at": now,
    })


class RunLedger(ABC):
    """Storage-agnostic ledger interface."""

    @abstractmethod
    async def create_run(self, run: WorkflowRun) -> WorkflowRun:
        """Persist a new run (status running, attempts 0)."""

    @abstractmethod
    async def record_attempt(
        self,
        tenant_id: str,
        attempt: WorkflowRunAttempt,
        run_status: RunStatus,
        dead_letter_reason: Optional[str] = None,
    ) -> WorkflowRun:
        """Append *attempt* and move its run to *run_status*, atomically.

        Returns:
            The run as stored after the write.

        Raises:
            RunNotFound:    unknown run for this tenant.
            LedgerConflict: numbering gap or repeat, or the run is terminal.
            LedgerError:    the write itself failed or timed out.
        """

    @abstractmethod
    async def get_run(self, tenant_id: str, run_id: str) -> WorkflowRun:
        """Raises RunNotFound when the run does not exist for this tenant."""

    @abstractmethod
    async def list_runs(
        self,
        tenant_id: str,
        workflow_logical_name: Optional[str] = None,
        status: Optional[RunStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[WorkflowRun]:
        """Runs newest first by started_at."""

    @abstractmethod
    async def list_attempts(self, tenant_id: str, run_id: str) -> list[WorkflowRunAttempt]:
        """Attempts ascending by attempt_number. Raises RunNotFound."""

    @abstractmethod
    async def list_stale_runs(self, cutoff: datetime, tenant_id: Optional[str] = None) -> list[WorkflowRun]:
        """Running runs whose last write is older than *cutoff*, oldest first."""

    @abstractmethod
    async def dead_letter_stale(self, tenant_id: str, run_id: str, reason: str, now: datetime) -> WorkflowRun:
        """Move a stale running run to dead_lettered without a new attempt."""


class InMemoryRunLedger(RunLedger):
    """Dict-backed ledger. Attempts are written under a per-run asyncio.Lock."""

    def __init__(self) -> None:
        self._runs: dict[str, WorkflowRun] = {}
        self._attempts: dict[str, list[WorkflowRunAttempt]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, run_id: str) -> asyncio.Lock:
        return self._locks.setdefault(run_id, asyncio.Lock())

    def _get(self, tenant_id: str, run_id: str) -> WorkflowRun:
        run = self._runs.get(run_id)
        if run is None or run.tenant_id != tenant_id:
            raise RunNotFound(f"Run '{run_id}' not found.", run_id=run_id)
        return run

    async def create_run(self, run: WorkflowRun) -> WorkflowRun:
        if run.id in self._runs:
            raise LedgerConflict(f"Run '{run.id}' already exists.", run_id=run.id)
        self._runs[run.id] = run.model_copy(deep=True)
        self._attempts[run.id] = []
        return run.model_copy(deep=True)

    async def record_attempt(self, tenant_id, attempt, run_status, dead_letter_reason=None):
        async with self._lock(attempt.run_id):
            current = self._get(tenant_id, attempt.run_id)
            updated = apply_attempt(current, attempt, run_status, dead_letter_reason)
            self._attempts[attempt.run_id].append(attempt.model_copy(deep=True))
            self._runs[attempt.run_id] = updated
        if updated.is_terminal:
            self._locks.pop(attempt.run_id, None)
        return updated.model_copy(deep=True)

    async def get_run(self, tenant_id, run_id):
        return self._get(tenant_id, run_id).model_copy(deep=True)

    async def list_runs(self, tenant_id, workflow_logical_name=None, status=None, limit=50, offset=0):
        runs = [
            r for r in self._runs.values()
            if r.tenant_id == tenant_id
            and (workflow_logical_name is None or r.workflow_logical_name == workflow_logical_name)
            and (status is None or r.status == status)
        ]
        runs.sort(key=lambda r: (r.started_at, r.id), reverse=True)
        return [r.model_copy(deep=True) for r in runs[offset: offset + limit]]

    async def list_attempts(self, tenant_id, run_id):
        self._get(tenant_id, run_id)
        return [a.model_copy(deep=True) for a in self._attempts.get(run_id, [])]

    async def list_stale_runs(self, cutoff, tenant_id=None):
        runs = [
            r for r in self._runs.values()
            if r.status == RunStatus.RUNNING
            and r.updated_at < cutoff
            and (tenant_id is None or r.tenant_id == tenant_id)
        ]
        runs.sort(key=lambda r: r.updated_at)
        return [r.model_copy(deep=True) for r in runs]

    async def dead_letter_stale(self, tenant_id, run_id, reason, now):
        async with self._lock(run_id):
            updated = apply_dead_letter(self._get(tenant_id, run_id), reason, now)
            self._runs[run_id] = updated
        return updated.model_copy(deep=True)


class SqlRunLedger(RunLedger):
    """Ledger over the relational schema. One session and one commit per write.

    Args:
        session_factory: ``async_sessionmaker`` bound to the database.
        write_timeout:   Upper bound in seconds on any single ledger call.
    """

    def __init__(self, session_factory: Any, write_timeout: float = 10.0):
        self._session_factory = session_factory
        self._write_timeout = write_timeout
        self._locks: dict[str, asyncio.Lock] = {}

    async def _call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        from stepflow.db.repository import Repository

        async def _run() -> Any:
            async with self._session_factory() as session:
                return await getattr(Repository(session), method)(*args, **kwargs)

        try:
            return await asyncio.wait_for(_run(), timeout=self._write_timeout)
        except LedgerError:
            raise
        except asyncio.TimeoutError as exc:
            raise LedgerError(f"Ledger {method} timed out after {self._write_timeout:g}s") from exc
        except Exception as exc:
            logger.exception(f"[Ledger] {method} failed")
            raise LedgerError(f"Ledger {method} failed: {exc}") from exc

    async def create_run(self, run):
        return await self._call("create_run", run)

    async def record_attempt(self, tenant_id, attempt, run_status, dead_letter_reason=None):
        # in-process serialization; the row lock in Repository covers other processes
        async with self._locks.setdefault(attempt.run_id, asyncio.Lock()):
            current = await self.get_run(tenant_id, attempt.run_id)
            updated = apply_attempt(current, attempt, run_status, dead_letter_reason)
            stored = await self._call("apply_run_update", updated, attempt)
        if stored.is_terminal:
            self._locks.pop(attempt.run_id, None)
        return stored

    async def get_run(self, tenant_id, run_id):
        run = await self._call("get_run", tenant_id, run_id)
        if run is None:
            raise RunNotFound(f"Run '{run_id}' not found.", run_id=run_id)
        return run

    async def list_runs(self, tenant_id, workflow_logical_name=None, status=None, limit=50, offset=0):
        return await self._call(
            "list_runs", tenant_id,
            workflow_logical_name=workflow_logical_name, status=status, limit=limit, offset=offset,
        )

    async def list_attempts(self, tenant_id, run_id):
        await self.get_run(tenant_id, run_id)
        return await self._call("list_attempts", tenant_id, run_id)

    async def list_stale_runs(self, cutoff, tenant_id=None):
        return await self._call("list_stale_runs", cutoff, tenant_id=tenant_id)

    async def dead_letter_stale(self, tenant_id, run_id, reason, now):
        async with self._locks.setdefault(run_id, asyncio.Lock()):
            current = await self.get_run(tenant_id, run_id)
            updated = apply_dead_letter(current, reason, now)
            return await self._call("apply_run_update", updated)
