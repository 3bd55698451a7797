"""FastAPI authentication dependencies."""

from __future__ import annotations

import hmac

import jwt
from fastapi import Depends, Header, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from riyaz.auth.jwt import verify_token
from riyaz.config import get_settings
from riyaz.database import get_session
from riyaz.db.models import Profile

_bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> Profile:
    """Verify the bearer token and return the caller's profile. Raises 401."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing bearer token", headers={"WWW-Authenticate": "Bearer"})
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    profile = await db.get(Profile, int(payload["sub"]))
    if profile is None:
        raise HTTPException(status_code=401, detail="User not found")
    return profile


async def require_scheduler_secret(x_cron_secret: str | None = Header(default=None)) -> None:
    """Guard for scheduler endpoints: the X-Cron-Secret header must match the configured secret."""
    expected = get_settings().cron_secret
    if not expected or not x_cron_secret or not hmac.compare_digest(x_cron_secret, expected):
        raise HTTPException(status_code=401, detail="Invalid scheduler secret")
