"""Run ledger: atomic attempt writes, invariants, ordering, staleness, tenant isolation.

Every test runs against both adapters.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from stepflow.core.ledger import InMemoryRunLedger, SqlRunLedger, apply_attempt
from stepflow.exceptions import LedgerConflict, LedgerError, RunNotFound
from stepflow.types import (
    AttemptStatus,
    ConditionStep,
    LogMessageStep,
    RunStatus,
    StepStatus,
    StepTrace,
    TriggerType,
    WorkflowDefinition,
    WorkflowRun,
    WorkflowRunAttempt,
)
from stepflow.workflows.steps import dump_steps

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture(params=["memory", "sql"])
async def ledger(request):
    if request.param == "memory":
        yield InMemoryRunLedger()
        return

    from stepflow.db.database import init_db

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(bind=engine)
    yield SqlRunLedger(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))
    await engine.dispose()


def _run(tenant_id="acme", workflow="new_task", started_at=T0, **kwargs) -> WorkflowRun:
    return WorkflowRun(
        tenant_id=tenant_id,
        workflow_logical_name=workflow,
        trigger_type=TriggerType.MANUAL,
        trigger_payload={"go": 1},
        started_at=started_at,
        updated_at=started_at,
        **kwargs,
    )


def _attempt(run_id, number, status=AttemptStatus.FAILED, at=T0, **kwargs) -> WorkflowRunAttempt:
    return WorkflowRunAttempt(
        run_id=run_id,
        attempt_number=number,
        status=status,
        error_message="boom" if status == AttemptStatus.FAILED else None,
        executed_at=at,
        **kwargs,
    )


# ── Create / read ────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_and_get_run(ledger):
    created = await ledger.create_run(_run())
    assert created.status == RunStatus.RUNNING
    assert created.attempts == 0

    fetched = await ledger.get_run("acme", created.id)
    assert fetched.id == created.id
    assert fetched.trigger_payload == {"go": 1}
    assert fetched.started_at == T0


@pytest.mark.asyncio
async def test_run_keeps_its_definition_snapshot(ledger):
    definition = WorkflowDefinition(
        tenant_id="acme",
        logical_name="new_task",
        display_name="New Task",
        max_attempts=5,
        steps=(
            ConditionStep.model_validate({
                "type": "condition",
                "field_path": "payload.go",
                "operator": "eq",
                "value": 1,
                "then": [{"type": "log_message", "message": "yes"}],
            }),
            LogMessageStep(message="done"),
        ),
    )
    created = await ledger.create_run(_run(definition_snapshot=definition))

    snapshot = (await ledger.get_run("acme", created.id)).definition_snapshot
    assert snapshot is not None
    assert snapshot.max_attempts == 5
    assert dump_steps(snapshot.steps) == dump_steps(definition.steps)
    assert snapshot.steps[0].then_steps[0].message == "yes"
    assert await ledger.list_attempts("acme", created.id) == []


@pytest.mark.asyncio
async def test_other_tenant_cannot_see_run(ledger):
    run = await ledger.create_run(_run())
    with pytest.raises(RunNotFound):
        await ledger.get_run("globex", run.id)
    with pytest.raises(RunNotFound):
        await ledger.list_attempts("globex", run.id)
    with pytest.raises(RunNotFound):
        await ledger.record_attempt("globex", _attempt(run.id, 1), RunStatus.RUNNING)
    assert await ledger.list_runs("globex") == []


@pytest.mark.asyncio
async def test_unknown_run(ledger):
    with pytest.raises(RunNotFound):
        await ledger.get_run("acme", "nope")


# ── Attempts ─────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_attempts_update_run_atomically(ledger):
    run = await ledger.create_run(_run())
    trace = StepTrace(step_path="0", step_type="log_message", status=StepStatus.SUCCEEDED, output={"message": "hi"})

    after_first = await ledger.record_attempt("acme", _attempt(run.id, 1, at=T0 + timedelta(seconds=1)), RunStatus.RUNNING)
    assert after_first.attempts == 1
    assert after_first.status == RunStatus.RUNNING
    assert after_first.finished_at is None
    assert after_first.updated_at == T0 + timedelta(seconds=1)

    done = await ledger.record_attempt(
        "acme",
        _attempt(run.id, 2, AttemptStatus.SUCCEEDED, at=T0 + timedelta(seconds=2), step_traces=[trace]),
        RunStatus.SUCCEEDED,
    )
    assert done.status == RunStatus.SUCCEEDED
    assert done.attempts == 2
    assert done.finished_at == T0 + timedelta(seconds=2)

    attempts = await ledger.list_attempts("acme", run.id)
    assert [a.attempt_number for a in attempts] == [1, 2]
    assert attempts[0].error_message == "boom"
    assert attempts[1].step_traces[0].output == {"message": "hi"}


@pytest.mark.asyncio
async def test_dead_letter_sets_reason(ledger):
    run = await ledger.create_run(_run())
    dead = await ledger.record_attempt("acme", _attempt(run.id, 1), RunStatus.DEAD_LETTERED, "boom")
    assert dead.status == RunStatus.DEAD_LETTERED
    assert dead.dead_letter_reason == "boom"
    assert dead.finished_at is not None


@pytest.mark.asyncio
@pytest.mark.parametrize("number", [2, 3])
async def test_gap_in_attempt_numbers_is_refused(ledger, number):
    run = await ledger.create_run(_run())
    with pytest.raises(LedgerConflict):
        await ledger.record_attempt("acme", _attempt(run.id, number), RunStatus.RUNNING)
    assert (await ledger.get_run("acme", run.id)).attempts == 0


@pytest.mark.asyncio
async def test_repeated_attempt_number_is_refused(ledger):
    run = await ledger.create_run(_run())
    await ledger.record_attempt("acme", _attempt(run.id, 1), RunStatus.RUNNING)
    with pytest.raises(LedgerConflict):
        await ledger.record_attempt("acme", _attempt(run.id, 1), RunStatus.RUNNING)
    assert len(await ledger.list_attempts("acme", run.id)) == 1


@pytest.mark.asyncio
async def test_concurrent_writers_of_the_same_attempt_serialize(ledger):
    run = await ledger.create_run(_run())
    results = await asyncio.gather(
        ledger.record_attempt("acme", _attempt(run.id, 1), RunStatus.RUNNING),
        ledger.record_attempt("acme", _attempt(run.id, 1), RunStatus.RUNNING),
        return_exceptions=True,
    )
    stored = [r for r in results if isinstance(r, WorkflowRun)]
    refused = [r for r in results if isinstance(r, Exception)]
    assert len(stored) == 1
    assert stored[0].attempts == 1
    assert len(refused) == 1
    assert isinstance(refused[0], LedgerConflict)
    assert [a.attempt_number for a in await ledger.list_attempts("acme", run.id)] == [1]
    assert (await ledger.get_run("acme", run.id)).attempts == 1


@pytest.mark.asyncio
async def test_terminal_run_refuses_writes(ledger):
    run = await ledger.create_run(_run())
    await ledger.record_attempt("acme", _attempt(run.id, 1, AttemptStatus.SUCCEEDED), RunStatus.SUCCEEDED)
    with pytest.raises(LedgerConflict):
        await ledger.record_attempt("acme", _attempt(run.id, 2), RunStatus.RUNNING)
    with pytest.raises(LedgerConflict):
        await ledger.dead_letter_stale("acme", run.id, "late", T0)


@pytest.mark.asyncio
async def test_status_must_agree_with_attempt(ledger):
    run = await ledger.create_run(_run())
    with pytest.raises(LedgerConflict):
        await ledger.record_attempt("acme", _attempt(run.id, 1, AttemptStatus.FAILED), RunStatus.SUCCEEDED)
    with pytest.raises(LedgerConflict):
        await ledger.record_attempt("acme", _attempt(run.id, 1, AttemptStatus.SUCCEEDED), RunStatus.RUNNING)


def test_ledger_conflict_is_a_ledger_error():
    run = _run(status=RunStatus.SUCCEEDED, attempts=1)
    with pytest.raises(LedgerError):
        apply_attempt(run, _attempt(run.id, 2), RunStatus.RUNNING)


# ── Listing ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_list_runs_newest_first_with_filters(ledger):
    older = await ledger.create_run(_run(started_at=T0))
    newer = await ledger.create_run(_run(started_at=T0 + timedelta(minutes=5)))
    other = await ledger.create_run(_run(workflow="other", started_at=T0 + timedelta(minutes=1)))
    await ledger.record_attempt("acme", _attempt(newer.id, 1, AttemptStatus.SUCCEEDED), RunStatus.SUCCEEDED)

    assert [r.id for r in await ledger.list_runs("acme")] == [newer.id, other.id, older.id]
    assert [r.id for r in await ledger.list_runs("acme", workflow_logical_name="new_task")] == [newer.id, older.id]
    assert [r.id for r in await ledger.list_runs("acme", status=RunStatus.RUNNING)] == [other.id, older.id]
    assert [r.id for r in await ledger.list_runs("acme", limit=1, offset=1)] == [other.id]


@pytest.mark.asyncio
async def test_stale_runs_and_dead_letter_stale(ledger):
    stale = await ledger.create_run(_run(started_at=T0))
    fresh = await ledger.create_run(_run(started_at=T0 + timedelta(hours=1)))
    finished = await ledger.create_run(_run(started_at=T0))
    await ledger.record_attempt("acme", _attempt(finished.id, 1, AttemptStatus.SUCCEEDED), RunStatus.SUCCEEDED)
    await ledger.create_run(_run(tenant_id="globex", started_at=T0))

    cutoff = T0 + timedelta(minutes=30)
    assert [r.id for r in await ledger.list_stale_runs(cutoff, tenant_id="acme")] == [stale.id]
    assert len(await ledger.list_stale_runs(cutoff)) == 2
    assert fresh.id not in {r.id for r in await ledger.list_stale_runs(cutoff)}

    now = T0 + timedelta(hours=2)
    dead = await ledger.dead_letter_stale("acme", stale.id, "stuck", now)
    assert dead.status == RunStatus.DEAD_LETTERED
    assert dead.dead_letter_reason == "stuck"
    assert dead.attempts == 0
    assert dead.finished_at == now
    assert await ledger.list_attempts("acme", stale.id) == []
