"""Test fixtures: config, definitions, execution contexts, record-store fakes, runtimes.

All tests should use these fixtures for consistency.
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from stepflow.config import StepflowConfig
from stepflow.exceptions import RecordErrorKind, RecordStoreError
from stepflow.records.memory import InMemoryRecordStore
from stepflow.runtime import Stepflow
from stepflow.types import (
    CreateRuntimeRecordStep,
    ExecutionContext,
    ExecutionMode,
    LogMessageStep,
    TriggerType,
    WorkflowDefinition,
)


class FlakyRecordStore(InMemoryRecordStore):
    """Fails the first *failures* creates, then behaves like InMemoryRecordStore."""

    def __init__(self, failures: int = 0, kind: RecordErrorKind = RecordErrorKind.TRANSIENT):
        super().__init__()
        self.failures = failures
        self.kind = kind
        self.keys: list[str] = []

    async def create(self, tenant_id, entity_logical_name, data, idempotency_key=None):
        self.keys.append(idempotency_key)
        if self.failures > 0:
            self.failures -= 1
            self.calls += 1
            raise RecordStoreError(
                "record service unavailable", kind=self.kind, entity_logical_name=entity_logical_name
            )
        return await super().create(tenant_id, entity_logical_name, data, idempotency_key=idempotency_key)


async def _no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def config():
    """Test configuration: inline execution, immediate retries, short timeouts."""
    return StepflowConfig(
        debug=True,
        database_url="sqlite+aiosqlite://",
        secret_key="test-secret-key",
        execution_mode="inline",
        attempt_timeout_seconds=5.0,
        record_create_timeout_seconds=1.0,
        _env_file=None,
    )


@pytest.fixture
def make_definition():
    """Factory for WorkflowDefinition with test defaults (manual, tenant 'acme')."""

    def _make(logical_name: str = "new_task", steps=(), **overrides) -> WorkflowDefinition:
        fields = {
            "tenant_id": "acme",
            "logical_name": logical_name,
            "display_name": logical_name.replace("_", " ").title(),
            "trigger_type": TriggerType.MANUAL,
            "steps": tuple(steps),
            "max_attempts": 3,
        }
        fields.update(overrides)
        return WorkflowDefinition(**fields)

    return _make


@pytest.fixture
def scenario_steps():
    """Root steps shared by the retry scenarios: log, then create a task record."""
    return (
        LogMessageStep(message="start"),
        CreateRuntimeRecordStep(entity_logical_name="task", data={"title": "x"}),
    )


@pytest.fixture
def make_context():
    """Factory for ExecutionContext with a given trigger payload."""

    def _make(payload=None, **overrides) -> ExecutionContext:
        fields = {
            "tenant_id": "acme",
            "run_id": "run-1",
            "workflow_logical_name": "new_task",
            "attempt_number": 1,
            "trigger_type": TriggerType.MANUAL,
            "trigger_payload": payload or {},
        }
        fields.update(overrides)
        return ExecutionContext(**fields)

    return _make


@pytest.fixture
def record_store():
    return InMemoryRecordStore()


@pytest.fixture
def flow(config, record_store):
    """In-memory Stepflow runtime in inline mode with no backoff sleeps."""
    return Stepflow.in_memory(
        config, record_store=record_store, mode=ExecutionMode.INLINE, callbacks=[], sleep=_no_sleep
    )


@pytest_asyncio.fixture
async def session_factory():
    """async_sessionmaker over a fresh in-memory SQLite database."""
    from stepflow.db.database import init_db

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(bind=engine)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def flaky_store():
    """FlakyRecordStore factory: flaky_store(failures=2)."""
    return FlakyRecordStore


@pytest.fixture
def no_sleep():
    return _no_sleep
