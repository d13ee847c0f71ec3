"""Runtime record stores — the downstream `create(tenant, entity, data) -> record_id` interface."""

from stepflow.records.base import RecordStore
from stepflow.records.http import HttpRecordStore
from stepflow.records.memory import InMemoryRecordStore

__all__ = ["RecordStore", "InMemoryRecordStore", "HttpRecordStore"]
