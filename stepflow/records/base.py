"""Record-creation interface consumed by create_runtime_record steps."""

from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class RecordStore(Protocol):
    """Creates runtime records for an entity.

    Implementations return the created record's id, or raise
    RecordStoreError with a RecordErrorKind describing why not.

    ``idempotency_key`` is stable across attempts of the same run step;
    a store that honours it returns the original id on a repeat call
    instead of creating a second record.
    """

    async def create(
        self,
        tenant_id: str,
        entity_logical_name: str,
        data: dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> str:
        ...
