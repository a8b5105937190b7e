"""
Auth controller.  Login is public; logout needs a live session.
"""

import uuid
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import get_current_user_token
from app.schemas import LoginRequest, MessageResponse, TokenResponse
from app.services import auth_service

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    return await auth_service.authenticate_user(body.email, body.password, body.device_id, db)


@router.delete("/logout", response_model=MessageResponse)
async def logout(
    token_payload: dict[str, Any] = Depends(get_current_user_token),
    db: AsyncSession = Depends(get_db),
):
    """Deactivate the caller's session; its token stops working at once."""
    await auth_service.logout(uuid.UUID(token_payload["session_id"]), db)
    return MessageResponse(detail="Logged out")
