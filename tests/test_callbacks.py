"""Lifecycle callbacks: BaseCallback dispatch, LoggingCallback output, fire_callbacks isolation."""

import json
import logging

import pytest

from stepflow.callbacks import BaseCallback, LoggingCallback
from stepflow.callbacks.base import fire_callbacks
from stepflow.runtime import Stepflow
from stepflow.types import ExecutionMode


class _Recorder(BaseCallback):
    def __init__(self):
        self.calls = []

    async def on_run_start(self, run, attempt_number, **kwargs):
        self.calls.append(("start", attempt_number))

    async def on_step_complete(self, run_id, trace, **kwargs):
        self.calls.append(("step", trace.step_path, trace.status.value))

    async def on_attempt_recorded(self, run, attempt, **kwargs):
        self.calls.append(("attempt", attempt.attempt_number, attempt.status.value))

    async def on_run_complete(self, run, **kwargs):
        self.calls.append(("complete", run.status.value))


@pytest.mark.asyncio
async def test_base_callback_routes_events_to_hooks(config, make_definition, scenario_steps, flaky_store, no_sleep):
    recorder = _Recorder()
    flow = Stepflow.in_memory(
        config, record_store=flaky_store(failures=1), mode=ExecutionMode.INLINE,
        callbacks=[recorder], sleep=no_sleep,
    )
    await flow.workflows.upsert(make_definition(steps=scenario_steps))
    await flow.triggers.execute_manual("acme", "new_task")

    assert recorder.calls == [
        ("start", 1),
        ("step", "0", "succeeded"),
        ("step", "1", "failed"),
        ("attempt", 1, "failed"),
        ("start", 2),
        ("step", "0", "succeeded"),
        ("step", "1", "succeeded"),
        ("attempt", 2, "succeeded"),
        ("complete", "succeeded"),
    ]


@pytest.mark.asyncio
async def test_base_callback_ignores_unknown_events():
    await BaseCallback()("something_else", {})


@pytest.mark.asyncio
async def test_fire_callbacks_logs_and_continues(caplog):
    seen = []

    def broken(event, data):
        raise RuntimeError("boom")

    async def ok(event, data):
        seen.append(event)

    with caplog.at_level(logging.ERROR, logger="stepflow.callbacks.base"):
        await fire_callbacks([broken, ok], "run_started", {})
    assert seen == ["run_started"]
    assert "Callback error on 'run_started'" in caplog.text


@pytest.mark.asyncio
async def test_fire_callbacks_accepts_none():
    await fire_callbacks(None, "run_started", {})


@pytest.mark.asyncio
async def test_logging_callback_emits_json_audit_lines(config, make_definition, scenario_steps, flaky_store, no_sleep, caplog):
    flow = Stepflow.in_memory(
        config, record_store=flaky_store(failures=5), mode=ExecutionMode.INLINE,
        callbacks=[LoggingCallback()], sleep=no_sleep,
    )
    await flow.workflows.upsert(make_definition(steps=scenario_steps, max_attempts=1))

    with caplog.at_level(logging.INFO, logger="stepflow.audit"):
        run = await flow.triggers.execute_manual("acme", "new_task")

    records = [json.loads(r.getMessage()) for r in caplog.records if r.name == "stepflow.audit"]
    assert [r["event"] for r in records] == [
        "run_started", "step_completed", "step_failed", "attempt_recorded", "run_dead_lettered",
    ]
    assert "record service unavailable" in records[2]["error"]
    assert records[-1]["run_id"] == run.id
    assert records[-1]["reason"] == run.dead_letter_reason
    dead_lettered = [r for r in caplog.records if r.name == "stepflow.audit"][-1]
    assert dead_lettered.levelno == logging.ERROR
