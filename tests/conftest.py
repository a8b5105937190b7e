"""
Shared fixtures.

Every test gets a fresh in-memory SQLite database (one connection,
shared through StaticPool) with the default roles seeded, a few users,
a small catalog and this tree:

    Main (W1)
    └── Rack 1 (R1)
        ├── R1-N1
        ├── R1-N2
        └── R1-N3
"""

import uuid
from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database import get_db
from app.core.security import hash_password
from app.main import app
from app.models import Base, Customer, Product, Role, User, WarehouseLocation
from app.rbac.permission_seed import seed

PASSWORD = "correct-horse-battery"
PASSWORD_HASH = hash_password(PASSWORD)

USERS = {
    "admin": ("Ana Admin", "ADMIN"),
    "operator": ("Oscar Operator", "OPERATOR"),
    "other": ("Olga Operator", "OPERATOR"),
    "viewer": ("Vera Viewer", "VIEWER"),
}


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def world(session_factory):
    async with session_factory() as session:
        await seed(session)

    async with session_factory() as session:
        roles ={r.name: r for r in (await session.execute(select(Role))).scalars().all()}

        users = {}
        for key, (full_name, role_name) in USERS.items():
            user = User(
                id=uuid.uuid4(),
                email=f"{key}@example.com",
                password_hash=PASSWORD_HASH,
                full_name=full_name,
                roles=[roles[role_name]],
            )
            session.add(user)
            users[key] = user

        session.add_all([
            Product(id="A1", description="Alpha widget"),
            Product(id="B2", description="Beta gadget"),
            Product(id="C3", description="Café crème"),
            Customer(id="CUST1", name="Acme Corp"),
        ])

        main = WarehouseLocation(name="Main", code="W1", type="warehouse")
        session.add(main)
        await session.flush()
        rack = WarehouseLocation(name="Rack 1", code="R1", type="rack", parent_id=main.id)
        session.add(rack)
        await session.flush()
        bins = {}
        for code in ("R1-N1", "R1-N2", "R1-N3"):
            bins[code] = WarehouseLocation(name=code, code=code, type="bin", parent_id=rack.id)
            session.add(bins[code])

        await session.commit()

    return SimpleNamespace(users=users, main=main, rack=rack, bins=bins)


@pytest.fixture
async def db(session_factory, world):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory, world):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def login(client: AsyncClient, key: str) -> dict[str, str]:
    resp = await client.post(
        "/api/auth/login",
        json={"email": f"{key}@example.com", "password": PASSWORD, "device_id": f"{key}-laptop"},
    )
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}
