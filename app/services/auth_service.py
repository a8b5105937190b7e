"""
Login & logout.

One active session per (user, device): logging in again from the same
device reuses it.  Sessions idle past the inactivity timeout are closed
while we are at it.
"""

import logging
import uuid

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import as_utc, utcnow
from app.core.config import settings
from app.core.security import create_access_token, verify_password
from app.models.identity import User, UserSession
from app.schemas import TokenResponse

logger = logging.getLogger(__name__)


async def _open_session(user_id: uuid.UUID, device_id: str, db: AsyncSession) -> UserSession:
    now = utcnow()
    idle_limit = settings.SESSION_INACTIVITY_TIMEOUT_MINUTES * 60
    stmt = select(UserSession).where(UserSession.user_id == user_id, UserSession.is_active.is_(True))

    current = None
    for session in (await db.execute(stmt)).scalars().all():
        if (now - as_utc(session.last_seen_at)).total_seconds() > idle_limit:
            session.is_active = False
        elif session.device_id == device_id and current is None:
            current = session

    if current is None:
        current = UserSession(user_id=user_id, device_id=device_id)
        db.add(current)
    current.last_seen_at = now
    await db.flush()
    return current


async def authenticate_user(email: str, password: str, device_id: str, db: AsyncSession) -> TokenResponse:
    user = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()
    if user is None or not verify_password(password, user.password_hash):
        logger.info("Failed login for %s", email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    if user.is_disabled:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is disabled")

    session = await _open_session(user.id, device_id, db)
    roles = [role.name for role in user.roles]
    token = create_access_token(
        {
            "sub": str(user.id),
            "user_id": str(user.id),
            "session_id": str(session.id),
            "device_id": device_id,
            "role_names": roles,
        }
    )
    logger.info("User %s logged in on device %s", user.email, device_id)
    return TokenResponse(access_token=token, user_id=str(user.id), roles=roles)


async def logout(session_id: uuid.UUID, db: AsyncSession) -> None:
    await db.execute(update(UserSession).where(UserSession.id == session_id).values(is_active=False))
    await db.flush()
