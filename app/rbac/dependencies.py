"""
RBAC dependencies.

`require_permission(*codes)` validates the token and its session,
loads the user with roles and permissions, and answers 403 unless every
listed code is granted.  The 403 never says which code was missing.

    user: User = Depends(require_permission("warehouse:item-assignment:create"))
"""

import logging
import uuid
from typing import Any

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import get_current_user_token
from app.models.identity import User

logger = logging.getLogger("rbac")


class require_permission:
    def __init__(self, *permission_codes: str):
        self.required_codes = set(permission_codes)

    async def __call__(
        self,
        token_payload: dict[str, Any] = Depends(get_current_user_token),
        db: AsyncSession = Depends(get_db),
    ) -> User:
        # roles and their permissions are selectin-loaded with the user
        user = await db.get(User, uuid.UUID(token_payload["user_id"]))
        if user is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
        if user.is_disabled:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account disabled")

        missing = self.required_codes - user.permission_codes
        if missing:
            logger.warning("Permission denied for %s on %s", user.email, sorted(missing))
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return user
