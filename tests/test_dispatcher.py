"""RunDispatcher: inline vs background execution, concurrency bound, drain and shutdown."""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from stepflow.exceptions import LedgerError
from stepflow.runtime import Stepflow
from stepflow.types import ExecutionMode, LogMessageStep, RunStatus, TriggerType, WorkflowRun
from stepflow.workers.dispatcher import RunDispatcher


def _run(**kw):
    return WorkflowRun(tenant_id="acme", workflow_logical_name="new_task", trigger_type=TriggerType.MANUAL, **kw)


class _SlowController:
    def __init__(self, delay=0.01):
        self.delay = delay
        self.active = 0
        self.peak = 0
        self.finished = []

    async def run(self, definition, run):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        done = run.model_copy(update={"status": RunStatus.SUCCEEDED, "attempts": 1})
        self.finished.append(done.id)
        return done


@pytest.mark.asyncio
async def test_inline_returns_terminal_run():
    controller = _SlowController()
    dispatcher = RunDispatcher(controller, mode="inline")
    result = await dispatcher.submit(MagicMock(), _run())
    assert result.status == RunStatus.SUCCEEDED
    assert dispatcher.pending == 0


@pytest.mark.asyncio
async def test_inline_propagates_ledger_errors():
    controller = MagicMock()
    controller.run = AsyncMock(side_effect=LedgerError("database is down"))
    dispatcher = RunDispatcher(controller, mode=ExecutionMode.INLINE)
    with pytest.raises(LedgerError):
        await dispatcher.submit(MagicMock(), _run())


@pytest.mark.asyncio
async def test_background_returns_accepted_run_then_drains():
    controller = _SlowController()
    dispatcher = RunDispatcher(controller, mode="background")
    run = _run()
    accepted = await dispatcher.submit(MagicMock(), run)

    assert accepted.status == RunStatus.RUNNING
    assert accepted.attempts == 0
    assert dispatcher.pending == 1
    assert await dispatcher.drain(timeout=1) is True
    assert controller.finished == [run.id]
    assert dispatcher.pending == 0


@pytest.mark.asyncio
async def test_background_respects_concurrency_bound():
    controller = _SlowController(delay=0.02)
    dispatcher = RunDispatcher(controller, mode="background", max_concurrent=2)
    for _ in range(5):
        await dispatcher.submit(MagicMock(), _run())
    await dispatcher.drain(timeout=2)
    assert len(controller.finished) == 5
    assert controller.peak == 2


@pytest.mark.asyncio
async def test_drain_with_nothing_pending():
    assert await RunDispatcher(MagicMock(), mode="background").drain() is True


@pytest.mark.asyncio
async def test_shutdown_cancels_runs_past_timeout():
    controller = _SlowController(delay=10)
    dispatcher = RunDispatcher(controller, mode="background")
    await dispatcher.submit(MagicMock(), _run())

    assert await dispatcher.drain(timeout=0.01) is False
    await dispatcher.shutdown(timeout=0.01)
    assert dispatcher.pending == 0
    assert controller.finished == []


@pytest.mark.asyncio
async def test_background_ledger_error_is_logged(caplog):
    controller = MagicMock()
    controller.run = AsyncMock(side_effect=LedgerError("database is down"))
    dispatcher = RunDispatcher(controller, mode="background")
    run = _run()

    with caplog.at_level(logging.ERROR, logger="stepflow.workers.dispatcher"):
        await dispatcher.submit(MagicMock(), run)
        await dispatcher.drain(timeout=1)
    assert f"Ledger write failed for run={run.id}" in caplog.text


@pytest.mark.asyncio
async def test_background_end_to_end_through_runtime(config, make_definition, no_sleep):
    flow = Stepflow.in_memory(config, mode=ExecutionMode.BACKGROUND, callbacks=[], sleep=no_sleep)
    await flow.workflows.upsert(make_definition(steps=(LogMessageStep(message="hi"),)))

    accepted = await flow.triggers.execute_manual("acme", "new_task")
    assert accepted.status == RunStatus.RUNNING

    await flow.close(timeout=1)
    finished = await flow.ledger.get_run("acme", accepted.id)
    assert finished.status == RunStatus.SUCCEEDED
    assert finished.attempts == 1
