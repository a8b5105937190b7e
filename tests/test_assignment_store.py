import pytest
from fastapi import HTTPException
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from app.models import ItemLocation, WarehouseLocation
from app.schemas import AssignItemRequest, AssignmentMode, AssignmentSortKey
from app.services import assignment_service, conflict_service, lock_service


async def _rows(db, **filters) -> list[ItemLocation]:
    stmt = select(ItemLocation)
    for column, value in filters.items():
        stmt = stmt.where(getattr(ItemLocation, column) == value)
    return list((await db.execute(stmt)).scalars().all())


async def _assign(db, user, item_id, location_id, mode=AssignmentMode.ADD, **extra):
    payload = AssignItemRequest(item_id=item_id, location_id=location_id, mode=mode, **extra)
    return await assignment_service.assign_item(payload, user.full_name, user.id, db)


async def test_a1_then_b2_at_r1_n1(world, db):
    operator = world.users["operator"]
    n1 = world.bins["R1-N1"].id

    report = await conflict_service.check_assignment_conflict("A1", n1, operator.id, db)
    assert not report.has_conflict
    assert not report.is_locked

    await _assign(db, operator, "A1", n1)
    report = await conflict_service.check_assignment_conflict("B2", n1, operator.id, db)
    assert report.location_has_other_products
    assert not report.product_has_other_locations
    assert report.conflicting_product.id == "A1"
    assert report.conflicting_product.description == "Alpha widget"
    assert report.location_is_mixed is False

    with pytest.raises(HTTPException) as exc:
        await _assign(db, operator, "B2", n1, AssignmentMode.ADD)
    assert exc.value.status_code == 409
    assert exc.value.detail["conflicting_product"] == "A1"
    assert len(await _rows(db, location_id=n1)) == 1

    await _assign(db, operator, "B2", n1, AssignmentMode.ADD_AND_MIX)
    assert {r.item_id for r in await _rows(db, location_id=n1)} == {"A1", "B2"}
    assert (await db.get(WarehouseLocation, n1)).is_mixed is True


async def test_add_then_check_reports_no_conflict(world, db):
    operator = world.users["operator"]
    n2 = world.bins["R1-N2"].id

    await _assign(db, operator, "C3", n2)
    report = await conflict_service.check_assignment_conflict("C3", n2, operator.id, db)
    assert not report.has_conflict


async def test_move_leaves_exactly_one_row_at_target(world, db):
    operator = world.users["operator"]
    n1, n2 = world.bins["R1-N1"].id, world.bins["R1-N2"].id
    old = await _assign(db, operator, "A1", n1)
    old_id = old.id

    report = await conflict_service.check_assignment_conflict("A1", n2, operator.id, db)
    assert report.product_has_other_locations
    assert not report.location_has_other_products

    await _assign(db, operator, "A1", n2, AssignmentMode.MOVE)
    rows = await _rows(db, item_id="A1")
    assert [r.location_id for r in rows] == [n2]
    assert rows[0].id != old_id
    assert await db.get(ItemLocation, old_id) is None


async def test_add_keeps_product_at_previous_location(world, db):
    operator = world.users["operator"]
    n1, n2 = world.bins["R1-N1"].id, world.bins["R1-N2"].id
    await _assign(db, operator, "A1", n1)
    await _assign(db, operator, "A1", n2, AssignmentMode.ADD)
    assert {r.location_id for r in await _rows(db, item_id="A1")} == {n1, n2}


async def test_move_and_mix(world, db):
    operator = world.users["operator"]
    n1, n2 = world.bins["R1-N1"].id, world.bins["R1-N2"].id
    await _assign(db, operator, "A1", n1)
    await _assign(db, operator, "B2", n2)

    await _assign(db, operator, "A1", n2, AssignmentMode.MOVE_AND_MIX)
    assert await _rows(db, location_id=n1) == []
    assert {r.item_id for r in await _rows(db, location_id=n2)} == {"A1", "B2"}
    assert (await db.get(WarehouseLocation, n2)).is_mixed is True


async def test_failed_move_keeps_previous_assignment(world, db, monkeypatch):
    operator = world.users["operator"]
    n1, n2 = world.bins["R1-N1"].id, world.bins["R1-N2"].id
    await _assign(db, operator, "A1", n1)
    await db.commit()

    async def broken_flush(*args, **kwargs):
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(db, "flush", broken_flush)
    with pytest.raises(HTTPException) as exc:
        await _assign(db, operator, "A1", n2, AssignmentMode.MOVE)
    assert exc.value.status_code == 500
    monkeypatch.undo()

    assert [r.location_id for r in await _rows(db, item_id="A1")] == [n1]


async def test_adding_same_row_twice_is_idempotent(world, db):
    operator = world.users["operator"]
    n1 = world.bins["R1-N1"].id
    await _assign(db, operator, "A1", n1, client_id="CUST1")
    await _assign(db, operator, "A1", n1, client_id="CUST1", is_exclusive=True)

    rows = await _rows(db, item_id="A1")
    assert len(rows) == 1
    assert rows[0].is_exclusive is True


async def test_new_assignment_requires_mode(world, db):
    operator = world.users["operator"]
    with pytest.raises(HTTPException) as exc:
        await _assign(db, operator, "A1", world.bins["R1-N1"].id, mode=None)
    assert exc.value.status_code == 400


async def test_assignment_validation(world, db):
    operator = world.users["operator"]
    with pytest.raises(HTTPException) as exc:
        await _assign(db, operator, "ZZ9", world.bins["R1-N1"].id)
    assert exc.value.status_code == 404

    with pytest.raises(HTTPException) as exc:
        await _assign(db, operator, "A1", 9999)
    assert exc.value.status_code == 404

    with pytest.raises(HTTPException) as exc:
        await _assign(db, operator, "A1", world.rack.id)
    assert exc.value.status_code == 400


async def test_lease_of_another_user_blocks_writes(world, db):
    operator, other = world.users["operator"], world.users["other"]
    n1 = world.bins["R1-N1"].id

    result = await lock_service.acquire([world.rack.id], other, db)
    assert result.locked is False

    report = await conflict_service.check_assignment_conflict("A1", n1, operator.id, db)
    assert report.is_locked
    assert report.locked_by == "Olga Operator"

    with pytest.raises(HTTPException) as exc:
        await _assign(db, operator, "A1", n1)
    assert exc.value.status_code == 423

    # the lease holder is not blocked by their own lease
    await _assign(db, other, "A1", n1)


async def test_edit_changes_client_and_flags_only(world, db):
    operator = world.users["operator"]
    n1 = world.bins["R1-N1"].id
    row = await _assign(db, operator, "A1", n1)

    payload = AssignItemRequest(
        id=row.id, item_id="A1", location_id=world.bins["R1-N2"].id,
        client_id="CUST1", requires_certificate=True,
    )
    edited = await assignment_service.assign_item(payload, "Ana Admin", world.users["admin"].id, db)
    assert edited.id == row.id
    assert edited.location_id == n1
    assert edited.client_id == "CUST1"
    assert edited.requires_certificate is True
    assert edited.updated_by == "Ana Admin"


async def test_edit_is_refused_under_lease_of_another(world, db):
    operator, other = world.users["operator"], world.users["other"]
    n1 = world.bins["R1-N1"].id
    row = await _assign(db, operator, "A1", n1)
    await lock_service.acquire([n1], other, db)

    payload = AssignItemRequest(id=row.id, item_id="A1", location_id=n1, client_id="CUST1")
    with pytest.raises(HTTPException) as exc:
        await assignment_service.assign_item(payload, operator.full_name, operator.id, db)
    assert exc.value.status_code == 423
    assert (await db.get(ItemLocation, row.id)).client_id is None

    edited = await assignment_service.assign_item(payload, other.full_name, other.id, db)
    assert edited.client_id == "CUST1"


async def test_cleanup_by_product_and_by_location(world, db):
    operator = world.users["operator"]
    n1, n2, n3 = (world.bins[c].id for c in ("R1-N1", "R1-N2", "R1-N3"))
    await _assign(db, operator, "A1", n1)
    await _assign(db, operator, "A1", n2)
    await _assign(db, operator, "B2", n3)
    await _assign(db, operator, "C3", n3, AssignmentMode.ADD_AND_MIX)

    assert await assignment_service.unassign_all_by_product("A1", "Ana Admin", db) == 2
    assert await _rows(db, item_id="A1") == []

    assert await assignment_service.unassign_all_by_location(n3, "Ana Admin", db) == 2
    assert await _rows(db, location_id=n3) == []

    total = (await db.execute(select(func.count()).select_from(ItemLocation))).scalar_one()
    assert total == 0


async def test_unassign_single_row(world, db):
    row = await _assign(db, world.users["operator"], "A1", world.bins["R1-N1"].id)
    await assignment_service.unassign(row.id, db)
    assert await _rows(db, item_id="A1") == []

    with pytest.raises(HTTPException) as exc:
        await assignment_service.unassign(row.id, db)
    assert exc.value.status_code == 404


async def test_list_assignments_search_and_sort(world, db):
    operator = world.users["operator"]
    await _assign(db, operator, "A1", world.bins["R1-N2"].id, client_id="CUST1")
    await _assign(db, operator, "B2", world.bins["R1-N1"].id)

    total, rows = await assignment_service.list_assignments(db, sort_key=AssignmentSortKey.LOCATION, descending=False)
    assert total == 2
    assert [r.item_id for r in rows] == ["B2", "A1"]

    total, rows = await assignment_service.list_assignments(db, search="acme")
    assert total == 1
    assert rows[0].item_id == "A1"

    _, rows = await assignment_service.list_assignments(db, sort_key=AssignmentSortKey.CLIENT, descending=False)
    assert [r.item_id for r in rows] == ["A1", "B2"]
