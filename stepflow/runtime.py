"""Stepflow — wires the engine components into one object.

The API lifespan, the CLI and tests all build their component graph here,
so every entry point runs the same matcher → dispatcher → retry → engine
chain against whichever stores they supply.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from stepflow.callbacks.logging import LoggingCallback
from stepflow.config import StepflowConfig, config as default_config
from stepflow.core.actions import ActionExecutor, LogSink
from stepflow.core.engine import ExecutionEngine
from stepflow.core.ledger import InMemoryRunLedger, RunLedger, SqlRunLedger
from stepflow.core.recovery import RunReconciler
from stepflow.core.retry import RetryController, RetryPolicy
from stepflow.records.memory import InMemoryRecordStore
from stepflow.triggers.event_bus import EventBus, RunOutcomePublisher
from stepflow.triggers.manager import TriggerManager
from stepflow.triggers.matcher import TriggerMatcher
from stepflow.triggers.scheduler import ScheduleTicker
from stepflow.types import ExecutionMode
from stepflow.workers.dispatcher import RunDispatcher
from stepflow.workflows.manager import WorkflowManager

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_record_store(cfg: StepflowConfig):
    """HTTP store when STEPFLOW_RECORD_STORE_URL is set, in-memory otherwise."""
    if cfg.record_store_url:
        from stepflow.records.http import HttpRecordStore
        return HttpRecordStore(
            cfg.record_store_url,
            token=cfg.record_store_token,
            timeout=cfg.record_create_timeout_seconds,
        )
    return InMemoryRecordStore()


class Stepflow:
    """All engine components for one process.

    Args:
        workflows:    WorkflowManager holding definitions.
        ledger:       RunLedger adapter.
        record_store: Downstream record-creation interface.
        config:       StepflowConfig; the module-level instance by default.
        callbacks:    Lifecycle callbacks.  Defaults to [LoggingCallback()].  Settled
                      runs are also announced on event_bus.
        mode:         Overrides config.execution_mode.
        log_sink:     Overrides the default log_message sink.
        clock:        Returns the current UTC time.
        sleep:        Backoff sleep; tests pass a no-op.
    """

    def __init__(
        self,
        workflows: WorkflowManager,
        ledger: RunLedger,
        record_store: Any,
        config: Optional[StepflowConfig] = None,
        callbacks: Optional[list] = None,
        mode: Optional[ExecutionMode | str] = None,
        log_sink: Optional[LogSink] = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        cfg = config or default_config
        self.config = cfg
        self.callbacks = [LoggingCallback()] if callbacks is None else callbacks
        self.event_bus = EventBus()
        lifecycle = [*self.callbacks, RunOutcomePublisher(self.event_bus)]

        self.workflows    = workflows
        self.ledger       = ledger
        self.record_store = record_store

        self.actions = ActionExecutor(
            record_store, log_sink=log_sink, record_timeout=cfg.record_create_timeout_seconds
        )
        self.engine = ExecutionEngine(self.actions, callbacks=lifecycle)
        self.controller = RetryController(
            self.engine,
            ledger,
            policy=RetryPolicy.from_config(cfg),
            attempt_timeout=cfg.attempt_timeout_seconds,
            clock=clock,
            callbacks=lifecycle,
            sleep=sleep,
        )
        self.dispatcher = RunDispatcher(
            self.controller,
            mode=mode or cfg.execution_mode,
            max_concurrent=cfg.max_concurrent_runs,
        )
        self.matcher = TriggerMatcher(workflows)
        self.triggers = TriggerManager(
            workflows, self.matcher, ledger, self.dispatcher,
            dedupe_capacity=cfg.event_dedupe_capacity,
        )
        self.reconciler = RunReconciler(
            ledger, self.controller, clock=clock, callbacks=lifecycle
        )
        self.triggers.attach(self.event_bus)
        self.ticker = ScheduleTicker(
            self.triggers, workflows,
            interval_seconds=cfg.schedule_tick_interval_seconds,
            clock=clock,
        )

    # ── Constructors ─────────────────────────────────────────────────────────

    @classmethod
    def in_memory(cls, config: Optional[StepflowConfig] = None, record_store: Any = None, **kwargs: Any) -> "Stepflow":
        """Dict-backed definitions and ledger; nothing touches a database."""
        cfg = config or default_config
        return cls(
            workflows=WorkflowManager(config=cfg),
            ledger=InMemoryRunLedger(),
            record_store=record_store if record_store is not None else InMemoryRecordStore(),
            config=cfg,
            **kwargs,
        )

    @classmethod
    def from_database(
        cls,
        session_factory: Any,
        config: Optional[StepflowConfig] = None,
        record_store: Any = None,
        **kwargs: Any,
    ) -> "Stepflow":
        """Definitions and ledger persisted through *session_factory*."""
        cfg = config or default_config
        return cls(
            workflows=WorkflowManager(session_factory=session_factory, config=cfg),
            ledger=SqlRunLedger(session_factory, write_timeout=cfg.ledger_write_timeout_seconds),
            record_store=record_store if record_store is not None else build_record_store(cfg),
            config=cfg,
            **kwargs,
        )

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def start(self, schedule: bool = True) -> None:
        """Start the schedule ticker."""
        if schedule:
            await self.ticker.start()

    async def close(self, timeout: Optional[float] = None) -> None:
        """Stop ticking, let background runs finish (or cancel them), release the record store."""
        await self.ticker.stop()
        await self.dispatcher.shutdown(timeout)
        close = getattr(self.record_store, "close", None)
        if close is not None:
            await close()
        logger.info("Stepflow runtime closed")
