"""
Permission & Role seeding.

Populates the default warehouse permissions and roles.  Idempotent:
missing permissions and roles are created, and default roles gain
any code added to their list since the last run.  Runs on every startup.

Usage:
    python -m app.rbac.permission_seed
"""

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import SessionLocal, engine
from app.models import Base
from app.models.identity import Permission, Role

logger = logging.getLogger(__name__)

# ────────────────────────────────────────────────────────────────────
# 1.  CANONICAL PERMISSION LIST
# ────────────────────────────────────────────────────────────────────
PERMISSIONS: list[dict[str, str]] = [
    {"code": "warehouse:access", "description": "View locations, assignments and catalog"},
    {"code": "warehouse:item-assignment:create", "description": "Assign products to locations"},
    {"code": "warehouse:item-assignment:delete", "description": "Remove product assignments"},
    {"code": "warehouse:locations:create", "description": "Create, edit and delete locations"},
    {"code": "warehouse:locks:manage", "description": "Force-release location leases"},
    {"code": "warehouse:population-wizard:use", "description": "Run the rack population wizard"},
]

# ────────────────────────────────────────────────────────────────────
# 2.  ROLE → PERMISSION MAPPING
# ────────────────────────────────────────────────────────────────────
ROLE_PERMISSIONS: dict[str, list[str]] = {
    "ADMIN": [p["code"] for p in PERMISSIONS],
    "WAREHOUSE_MANAGER": [
        "warehouse:access",
        "warehouse:item-assignment:create",
        "warehouse:item-assignment:delete",
        "warehouse:locations:create",
        "warehouse:population-wizard:use",
    ],
    "OPERATOR": [
        "warehouse:access",
        "warehouse:item-assignment:create",
        "warehouse:population-wizard:use",
    ],
    "VIEWER": [
        "warehouse:access",
    ],
}


# ────────────────────────────────────────────────────────────────────
# 3.  SEED FUNCTION (idempotent)
# ────────────────────────────────────────────────────────────────────
async def seed(session: AsyncSession) -> None:
    """Create permissions & roles if they don't already exist."""
    existing_perms = (await session.execute(select(Permission))).scalars().all()
    code_to_perm: dict[str, Permission] = {p.code: p for p in existing_perms}

    for pdata in PERMISSIONS:
        if pdata["code"] not in code_to_perm:
            perm = Permission(id=uuid.uuid4(), **pdata)
            session.add(perm)
            code_to_perm[pdata["code"]] = perm

    await session.flush()

    existing_role_names = set((await session.execute(select(Role.name))).scalars().all())

    for role_name, perm_codes in ROLE_PERMISSIONS.items():
        if role_name in existing_role_names:
            continue
        role = Role(
            id=uuid.uuid4(),
            name=role_name,
            description=f"Default {role_name} role",
            permissions=[code_to_perm[code] for code in perm_codes],
        )
        session.add(role)

    await session.commit()
    logger.info("Permissions and roles seeded.")


# ────────────────────────────────────────────────────────────────────
# 4.  CLI entrypoint:  python -m app.rbac.permission_seed
# ────────────────────────────────────────────────────────────────────
async def main() -> None:
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async_session = async_sessionmaker(engine, expire_on_commit=False)
    async with async_session() as session:
        await seed(session)
    await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
# ────────────────────────────────────────────────────────────────────
# 3.  SEED
# ────────────────────────────────────────────────────────────────────
async def seed(session: AsyncSession) -> None:
    perms = {p.code: p for p in (await session.execute(select(Permission))).scalars().all()}
    for entry in PERMISSIONS:
        if entry["code"] not in perms:
            perms[entry["code"]] = Permission(**entry)
            session.add(perms[entry["code"]])

    roles = {r.name: r for r in (await session.execute(select(Role))).scalars().all()}
    for name, codes in ROLE_PERMISSIONS.items():
        role = roles.get(name)
        if role is None:
            role = Role(name=name, description=f"Default {name} role")
            session.add(role)
        granted = {p.code for p in role.permissions}
        role.permissions.extend(perms[code] for code in codes if code not in granted)

    await session.commit()
    logger.info("Seeded %d permissions and %d roles", len(perms), len(ROLE_PERMISSIONS))


# ────────────────────────────────────────────────────────────────────
# 4.  CLI:  python -m app.rbac.permission_seed
# ────────────────────────────────────────────────────────────────────
async def main() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with SessionLocal() as session:
        await seed(session)
    await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
