"""FastAPI authentication middleware.

Checks the Authorization header for a Bearer JWT and sets
request.state.tenant_id and request.state.role.  Role checks happen
per route (see stepflow.api.deps.require_role).
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from stepflow.auth.jwt import JWTManager
from stepflow.exceptions import AuthError


class AuthMiddleware(BaseHTTPMiddleware):
    """Tenant isolation middleware."""

    # Paths that don't require auth
    PUBLIC_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(self, app, jwt_manager: JWTManager = None):
        super().__init__(app)
        self.jwt_manager = jwt_manager or JWTManager()

    async def dispatch(self, request: Request, call_next):
        """Return 401 unless a valid bearer token is present; otherwise set tenant context."""
        if request.url.path in self.PUBLIC_PATHS:
            return await call_next(request)

        auth_header = request.headers.get("Authorization", "")
        if not auth_header:
            return JSONResponse({"detail": "Missing Authorization header"}, status_code=401)
        if not auth_header.startswith("Bearer "):
            return JSONResponse({"detail": "Invalid auth format"}, status_code=401)

        try:
            payload = await self.jwt_manager.verify_token(auth_header[7:])
        except AuthError as e:
            return JSONResponse({"detail": str(e)}, status_code=401)

        request.state.tenant_id = payload["tenant_id"]
        request.state.role = payload["role"]
        return await call_next(request)
