from datetime import timedelta

import pytest
from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.core.clock import as_utc, utcnow
from app.models import LocationLease
from app.services import lock_service


async def _leases(db) -> dict[int, LocationLease]:
    return {lease.location_id: lease for lease in (await db.execute(select(LocationLease))).scalars().all()}


async def test_acquire_and_refuse(world, db):
    operator, other = world.users["operator"], world.users["other"]
    n1 = world.bins["R1-N1"].id

    assert (await lock_service.acquire([n1], operator, db)).locked is False
    result = await lock_service.acquire([n1], other, db)
    assert result.locked is True
    assert result.locked_by == "Oscar Operator"
    assert (await _leases(db))[n1].owner_id == operator.id


async def test_acquire_is_all_or_nothing(world, db):
    operator, other = world.users["operator"], world.users["other"]
    n1, n2 = world.bins["R1-N1"].id, world.bins["R1-N2"].id
    await lock_service.acquire([n1], operator, db)

    result = await lock_service.acquire([n1, n2], other, db)
    assert result.locked is True
    assert n2 not in await _leases(db)


async def test_reacquire_renews_own_lease(world, db):
    operator = world.users["operator"]
    n1 = world.bins["R1-N1"].id
    await lock_service.acquire([n1], operator, db)
    lease = (await _leases(db))[n1]
    lease.expires_at = utcnow() + timedelta(minutes=1)
    await db.flush()

    assert (await lock_service.acquire([n1], operator, db)).locked is False
    assert as_utc((await _leases(db))[n1].expires_at) > utcnow() + timedelta(minutes=5)


async def test_expired_lease_is_taken_over(world, db):
    operator, other = world.users["operator"], world.users["other"]
    n1 = world.bins["R1-N1"].id
    await lock_service.acquire([n1], operator, db)
    (await _leases(db))[n1].expires_at = utcnow() - timedelta(minutes=1)
    await db.flush()

    assert await lock_service.active_leases(db) == []
    assert await lock_service.find_blocking_lease(n1, other.id, db) is None

    assert (await lock_service.acquire([n1], other, db)).locked is False
    lease = (await _leases(db))[n1]
    assert lease.owner_id == other.id
    assert lease.owner_name == "Olga Operator"


async def test_lease_on_ancestor_blocks_descendants(world, db):
    operator, other = world.users["operator"], world.users["other"]
    n1 = world.bins["R1-N1"].id
    await lock_service.acquire([world.rack.id], other, db)

    blocking = await lock_service.find_blocking_lease(n1, operator.id, db)
    assert blocking is not None
    assert blocking.location_id == world.rack.id
    assert await lock_service.find_blocking_lease(n1, other.id, db) is None
    assert await lock_service.find_blocking_lease(world.main.id, operator.id, db) is None


async def test_acquire_unknown_location(world, db):
    with pytest.raises(HTTPException) as exc:
        await lock_service.acquire([4242], world.users["operator"], db)
    assert exc.value.status_code == 404


async def test_lost_insert_race_reports_locked(world, db, monkeypatch):
    async def racing_flush(*args, **kwargs):
        raise IntegrityError("INSERT INTO location_leases", {}, Exception("UNIQUE constraint failed"))

    monkeypatch.setattr(db, "flush", racing_flush)
    result = await lock_service.acquire([world.bins["R1-N1"].id], world.users["operator"], db)
    monkeypatch.undo()

    assert result.locked is True
    assert await _leases(db) == {}


async def test_release_only_drops_own_leases(world, db):
    operator, other = world.users["operator"], world.users["other"]
    n1, n2 = world.bins["R1-N1"].id, world.bins["R1-N2"].id
    await lock_service.acquire([n1, n2], operator, db)

    assert await lock_service.release([n1], other.id, db) == 0
    assert await lock_service.release([n1], operator.id, db) == 1
    assert set(await _leases(db)) == {n2}
    assert await lock_service.release([], operator.id, db) == 0


async def test_force_release(world, db):
    n1 = world.bins["R1-N1"].id
    await lock_service.acquire([n1], world.users["operator"], db)
    assert await lock_service.force_release(n1, db, "Ana Admin") == 1
    assert await lock_service.force_release(n1, db, "Ana Admin") == 0


async def test_bin_under_a_leased_rack_cannot_be_taken(world, db):
    operator, other = world.users["operator"], world.users["other"]
    n1 = world.bins["R1-N1"].id
    await lock_service.acquire([world.rack.id], operator, db)

    result = await lock_service.acquire([n1], other, db)
    assert result.locked is True
    assert result.locked_by == "Oscar Operator"
    assert n1 not in await _leases(db)
    assert await lock_service.find_blocking_lease(n1, operator.id, db) is None

    assert (await lock_service.acquire([n1], operator, db)).locked is False


async def test_rack_over_a_leased_bin_cannot_be_taken(world, db):
    operator, other = world.users["operator"], world.users["other"]
    await lock_service.acquire([world.bins["R1-N2"].id], other, db)

    result = await lock_service.acquire([world.rack.id], operator, db)
    assert result.locked is True
    assert result.locked_by == "Olga Operator"
    assert world.rack.id not in await _leases(db)

    (await _leases(db))[world.bins["R1-N2"].id].expires_at = utcnow() - timedelta(minutes=1)
    await db.flush()
    assert (await lock_service.acquire([world.rack.id], operator, db)).locked is False
