"""HTTP-backed record store.

POSTs to ``{base_url}/tenants/{tenant}/entities/{entity}/records`` and expects
a JSON body carrying the new record's id (``{"id": ...}`` or
``{"record": {"id": ...}}``).  Failures map onto RecordErrorKind:

    404                 entity_not_found
    400 / 409 / 422     validation_rejected
    other 4xx, 5xx      transient
    transport error     transient
    timeout             timeout
    no id in the body   invalid_response
"""

from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from stepflow.exceptions import RecordErrorKind, RecordStoreError

logger = logging.getLogger(__name__)

_REJECTED = {400, 409, 422}


def _extract_id(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    candidate = body.get("id")
    if candidate is None and isinstance(body.get("record"), dict):
        candidate = body["record"].get("id")
    if candidate is None or isinstance(candidate, bool):
        return None
    text = str(candidate).strip()
    return text or None


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        for key in ("detail", "message", "error"):
            if body.get(key):
                return str(body[key])[:200]
    return str(body)[:200]


class HttpRecordStore:
    """Async HTTP client for a runtime record service.

    Args:
        base_url: Service base URL, e.g. "http://records.internal:8080"
        token:    Optional bearer token sent on every request
        timeout:  Per-request timeout in seconds
        client:   Optional pre-built httpx.AsyncClient (tests pass one
                  with a MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._owns_client = client is None
        self._http = client or httpx.AsyncClient(timeout=timeout, headers=headers)

    async def __aenter__(self) -> "HttpRecordStore":
        return self

    async def __aexit__(self, *_) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP session if this store opened it."""
        if self._owns_client:
            await self._http.aclose()

    def _url(self, tenant_id: str, entity_logical_name: str) -> str:
        return (
            f"{self.base_url}/tenants/{quote(tenant_id, safe='')}"
            f"/entities/{quote(entity_logical_name, safe='')}/records"
        )

    async def create(
        self,
        tenant_id: str,
        entity_logical_name: str,
        data: dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> str:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else {}
        url = self._url(tenant_id, entity_logical_name)

        def _fail(message: str, kind: RecordErrorKind) -> RecordStoreError:
            return RecordStoreError(message, kind=kind, entity_logical_name=entity_logical_name)

        try:
            response = await self._http.post(url, json={"data": data}, headers=headers)
        except httpx.TimeoutException as exc:
            raise _fail(f"Record service timed out: {exc}", RecordErrorKind.TIMEOUT) from exc
        except httpx.HTTPError as exc:
            raise _fail(f"Record service unreachable: {exc}", RecordErrorKind.TRANSIENT) from exc

        status = response.status_code
        if status == 404:
            raise _fail(f"Entity '{entity_logical_name}' not found", RecordErrorKind.ENTITY_NOT_FOUND)
        if status in _REJECTED:
            raise _fail(
                f"Record rejected ({status}): {_detail(response)}", RecordErrorKind.VALIDATION_REJECTED
            )
        if status >= 400:
            raise _fail(
                f"Record service error ({status}): {_detail(response)}", RecordErrorKind.TRANSIENT
            )

        try:
            body = response.json()
        except ValueError:
            body = None
        record_id = _extract_id(body)
        if record_id is None:
            raise _fail("Record service response carried no record id", RecordErrorKind.INVALID_RESPONSE)
        logger.debug(f"[RecordStore] Created {entity_logical_name}/{record_id} for tenant {tenant_id}")
        return record_id
