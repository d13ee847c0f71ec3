"""JWT token management: create and verify tenant-scoped bearer tokens."""

import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional

from stepflow.config import config
from stepflow.exceptions import AuthError

ROLE_ADMIN = "admin"
ROLE_MAKER = "maker"
ROLE_VIEWER = "viewer"
ROLES = (ROLE_ADMIN, ROLE_MAKER, ROLE_VIEWER)


class JWTManager:
    """JWT token management.

    Args:
        secret_key:     Signing key (default: config.secret_key)
        algorithm:      JWT algorithm (default: config.jwt_algorithm)
        expiry_minutes: Token lifetime (default: config.jwt_expiry_minutes)
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        expiry_minutes: Optional[int] = None,
    ):
        self.secret_key = secret_key or config.secret_key
        self.algorithm = algorithm or config.jwt_algorithm
        self.expiry_minutes = expiry_minutes if expiry_minutes is not None else config.jwt_expiry_minutes

    async def create_token(self, tenant_id: str, role: str = ROLE_VIEWER) -> str:
        """Create a JWT token.

        Args:
            tenant_id: Tenant to encode in token
            role: "admin", "maker" or "viewer"

        Returns:
            JWT token string
        """
        now = datetime.now(timezone.utc)
        payload = {
            "tenant_id": tenant_id,
            "role": role,
            "exp": now + timedelta(minutes=self.expiry_minutes),
            "iat": now,
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    async def verify_token(self, token: str) -> dict:
        """Verify and decode a JWT token.

        Returns:
            {"tenant_id": str, "role": str}

        Raises:
            AuthError: On invalid/expired token or missing claims
        """
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthError("Token expired")
        except jwt.InvalidTokenError:
            raise AuthError("Invalid token")
        if not payload.get("tenant_id") or not payload.get("role"):
            raise AuthError("Token missing tenant_id or role claim")
        return {"tenant_id": payload["tenant_id"], "role": payload["role"]}
