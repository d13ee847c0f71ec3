"""In-process record store for tests, the CLI, and single-node demos."""

import copy
import logging
import uuid
from typing import Any, Optional

from stepflow.exceptions import RecordErrorKind, RecordStoreError

logger = logging.getLogger(__name__)


class InMemoryRecordStore:
    """Keeps created records in a dict, keyed by (tenant_id, entity_logical_name).

    Args:
        entities: When given, only these entity logical names exist;
                  creating anything else fails with entity_not_found.
                  When None, every entity is accepted.
        unavailable: Entities whose creates always fail as transient,
                  simulating a downstream outage.
    """

    def __init__(self, entities: Optional[set[str]] = None, unavailable: Optional[set[str]] = None):
        self._entities = set(entities) if entities is not None else None
        self._unavailable = set(unavailable or ())
        self._records: dict[tuple[str, str], dict[str, dict[str, Any]]] = {}
        self._by_key: dict[tuple[str, str], str] = {}
        self.calls = 0

    async def create(
        self,
        tenant_id: str,
        entity_logical_name: str,
        data: dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> str:
        self.calls += 1
        if self._entities is not None and entity_logical_name not in self._entities:
            raise RecordStoreError(
                f"Entity '{entity_logical_name}' not found",
                kind=RecordErrorKind.ENTITY_NOT_FOUND,
                entity_logical_name=entity_logical_name,
            )
        if entity_logical_name in self._unavailable:
            raise RecordStoreError(
                f"Entity '{entity_logical_name}' is temporarily unavailable",
                kind=RecordErrorKind.TRANSIENT,
                entity_logical_name=entity_logical_name,
            )
        if not isinstance(data, dict):
            raise RecordStoreError(
                "Record data must be a JSON object",
                kind=RecordErrorKind.VALIDATION_REJECTED,
                entity_logical_name=entity_logical_name,
            )

        if idempotency_key is not None:
            existing = self._by_key.get((tenant_id, idempotency_key))
            if existing is not None:
                logger.debug(f"[RecordStore] Replayed {idempotency_key} → {existing}")
                return existing

        record_id = str(uuid.uuid4())
        self._records.setdefault((tenant_id, entity_logical_name), {})[record_id] = copy.deepcopy(data)
        if idempotency_key is not None:
            self._by_key[(tenant_id, idempotency_key)] = record_id
        return record_id

    def records(self, tenant_id: str, entity_logical_name: str) -> dict[str, dict[str, Any]]:
        """Copy of every record created for an entity, by record id."""
        return copy.deepcopy(self._records.get((tenant_id, entity_logical_name), {}))
