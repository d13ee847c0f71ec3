"""JWTManager: token round trip, expiry, tampering and missing claims."""

import jwt as pyjwt
import pytest
from freezegun import freeze_time

from stepflow.auth.jwt import JWTManager
from stepflow.exceptions import AuthError

SECRET = "test-secret-key"


@pytest.fixture
def manager():
    return JWTManager(secret_key=SECRET, algorithm="HS256", expiry_minutes=30)


@pytest.mark.asyncio
async def test_token_round_trip(manager):
    token = await manager.create_token("acme", "maker")
    assert await manager.verify_token(token) == {"tenant_id": "acme", "role": "maker"}


@pytest.mark.asyncio
async def test_default_role_is_viewer(manager):
    token = await manager.create_token("acme")
    assert (await manager.verify_token(token))["role"] == "viewer"


@pytest.mark.asyncio
async def test_expired_token(manager):
    with freeze_time("2026-01-01 12:00:00"):
        token = await manager.create_token("acme", "admin")
    with freeze_time("2026-01-01 12:31:00"):
        with pytest.raises(AuthError, match="Token expired"):
            await manager.verify_token(token)


@pytest.mark.asyncio
async def test_token_signed_with_other_key(manager):
    token = await JWTManager(secret_key="not-the-key").create_token("acme", "admin")
    with pytest.raises(AuthError, match="Invalid token"):
        await manager.verify_token(token)


@pytest.mark.asyncio
async def test_garbage_token(manager):
    with pytest.raises(AuthError):
        await manager.verify_token("not.a.jwt")


@pytest.mark.asyncio
@pytest.mark.parametrize("claims", [{"role": "admin"}, {"tenant_id": "acme"}, {"tenant_id": "", "role": "admin"}])
async def test_missing_claims(manager, claims):
    token = pyjwt.encode(claims, SECRET, algorithm="HS256")
    with pytest.raises(AuthError, match="missing tenant_id or role"):
        await manager.verify_token(token)
