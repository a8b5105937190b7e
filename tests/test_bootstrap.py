from sqlalchemy import func, select

from app.models import Permission, Role, User
from app.rbac.permission_seed import PERMISSIONS, ROLE_PERMISSIONS, seed
from app.scripts import create_admin as create_admin_script


async def test_seed_is_idempotent(world, session_factory):
    async with session_factory() as session:
        await seed(session)

    async with session_factory() as session:
        assert (await session.execute(select(func.count()).select_from(Permission))).scalar_one() == len(PERMISSIONS)
        assert (await session.execute(select(func.count()).select_from(Role))).scalar_one() == len(ROLE_PERMISSIONS)
        operator = (await session.execute(select(Role).where(Role.name == "OPERATOR"))).scalar_one()
        assert {p.code for p in operator.permissions} == set(ROLE_PERMISSIONS["OPERATOR"])


async def test_create_admin(world, session_factory, monkeypatch):
    monkeypatch.setattr(create_admin_script, "SessionLocal", session_factory)

    assert await create_admin_script.create_admin("boss@example.com", "Bea Boss", "pw-123456") is True
    assert await create_admin_script.create_admin("boss@example.com", "Bea Boss", "pw-123456") is False

    async with session_factory() as session:
        user = (await session.execute(select(User).where(User.email == "boss@example.com"))).scalar_one()
        assert "warehouse:locks:manage" in user.permission_codes
