"""
Bootstrap the first ADMIN account.

Usage:
    python -m app.scripts.create_admin

Roles must exist already (start the app once, or run
`python -m app.rbac.permission_seed`).
"""

import asyncio
import getpass
import logging
import sys
import uuid

from sqlalchemy import select

from app.core.database import SessionLocal, engine
from app.core.security import hash_password
from app.models.identity import Role, User, UserStatus

logger = logging.getLogger("create_admin")


async def create_admin(email: str, full_name: str, password: str) -> bool:
    async with SessionLocal() as session:
        existing = (await session.execute(select(User).where(User.email == email))).scalar_one_or_none()
        if existing is not None:
            logger.error("User with email %s already exists", email)
            return False

        admin_role = (await session.execute(select(Role).where(Role.name == "ADMIN"))).scalar_one_or_none()
        if admin_role is None:
            logger.error("ADMIN role not found; seed permissions first")
            return False

        admin = User(
            id=uuid.uuid4(),
            email=email,
            password_hash=hash_password(password),
            full_name=full_name,
            status=UserStatus.ACTIVE,
            roles=[admin_role],
        )
        session.add(admin)
        await session.commit()
        logger.info("Admin %s created (id=%s)", email, admin.id)
        return True


async def main() -> int:
    email = input("Admin email: ").strip()
    full_name = input("Full name:   ").strip()
    password = getpass.getpass("Password:    ")
    if not email or not full_name or not password:
        logger.error("All fields are required")
        return 1
    if password != getpass.getpass("Confirm:     "):
        logger.error("Passwords do not match")
        return 1
    try:
        return 0 if await create_admin(email, full_name, password) else 1
    finally:
        await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)-8s | %(message)s")
    sys.exit(asyncio.run(main()))
