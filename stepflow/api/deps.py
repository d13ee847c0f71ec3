"""Shared route dependencies: runtime lookup, tenant and role checks."""

from fastapi import HTTPException, Request

from stepflow.auth.jwt import ROLE_ADMIN, ROLE_MAKER, ROLE_VIEWER

READ_ROLES = (ROLE_ADMIN, ROLE_MAKER, ROLE_VIEWER)
WRITE_ROLES = (ROLE_ADMIN, ROLE_MAKER)
ADMIN_ROLES = (ROLE_ADMIN,)


def get_runtime(request: Request):
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Stepflow runtime not initialised.")
    return runtime


def get_tenant(request: Request) -> str:
    tenant = getattr(request.state, "tenant_id", None)
    if not tenant:
        raise HTTPException(status_code=401, detail="Tenant not authenticated.")
    return tenant


def require_role(*roles: str):
    """Dependency factory: the caller's tenant id, or 403 when its role is not in *roles*."""
    allowed = frozenset(roles)

    def _check(request: Request) -> str:
        tenant = get_tenant(request)
        role = getattr(request.state, "role", None)
        if role not in allowed:
            raise HTTPException(status_code=403, detail=f"Role '{role}' may not perform this action.")
        return tenant

    return _check
