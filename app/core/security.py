"""
Passwords, access tokens and the per-request session check.

Tokens are stateless JWTs, but each one names a server-side
`UserSession`.  A request is only accepted while that session is
active, bound to the same device and not idle for too long.
"""

import uuid
from datetime import timedelta
from typing import Any

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import as_utc, utcnow
from app.core.config import settings
from app.core.database import get_db
from app.models.identity import UserSession

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    return bool(hashed) and bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))


def create_access_token(claims: dict[str, Any], lifetime: timedelta | None = None) -> str:
    expires = utcnow() + (lifetime or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    return jwt.encode({**claims, "exp": expires}, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_access_token(token: str) -> dict[str, Any]:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise _unauthorized("Invalid or expired token")


async def get_current_user_token(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Decoded claims of a token whose session is still live.  Bumps `last_seen_at`."""
    claims = decode_access_token(token)
    try:
        session_id = uuid.UUID(claims["session_id"])
        user_id = uuid.UUID(claims["user_id"])
        device_id = claims["device_id"]
    except (KeyError, TypeError, ValueError):
        raise _unauthorized("Token is missing session claims")

    session = await db.get(UserSession, session_id)
    if session is None or not session.is_active or session.user_id != user_id or session.device_id != device_id:
        raise _unauthorized("Session expired or revoked")

    now = utcnow()
    if (now - as_utc(session.last_seen_at)).total_seconds() > settings.SESSION_INACTIVITY_TIMEOUT_MINUTES * 60:
        raise _unauthorized("Session timed out due to inactivity")

    session.last_seen_at = now
    return claims
