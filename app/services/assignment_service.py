"""
Assignment service: product ↔ location rows.

Write modes (chosen by the operator after a conflict check):

    add           insert at the target location
    move          drop the product's rows at every other location, then insert
    add_and_mix   flag the location as mixed, then insert
    move_and_mix  both of the above

The checks that matter are repeated here, inside the request
transaction, right before writing:

- a live lease held by someone else → 423, nothing written (edits too)
- the location holds another product, is not mixed and the mode does
  not mix → 409, nothing written

Any database error rolls back the whole write (the delete of a move
never survives without its insert).
"""

import logging
import uuid

from fastapi import HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import as_utc, utcnow
from app.models.catalog import Product
from app.models.item_location import ItemLocation
from app.models.location import WarehouseLocation
from app.schemas import AssignItemRequest, AssignmentSortKey
from app.services import catalog_service, location_service, lock_service
from app.services.location_service import natural_key

logger = logging.getLogger(__name__)


# ── Queries ──────────────────────────────────────────────────────────

async def get_assignments_for_item(item_id: str, db: AsyncSession) -> list[ItemLocation]:
    result = await db.execute(select(ItemLocation).where(ItemLocation.item_id == item_id))
    return list(result.scalars().all())


async def get_assignment(assignment_id: int, db: AsyncSession) -> ItemLocation:
    assignment = await db.get(ItemLocation, assignment_id)
    if assignment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assignment not found")
    return assignment


async def list_assignments(
    db: AsyncSession,
    search: str | None = None,
    sort_key: AssignmentSortKey = AssignmentSortKey.UPDATED_AT,
    descending: bool = True,
    skip: int = 0,
    limit: int = 50,
) -> tuple[int, list[ItemLocation]]:
    """
    Filtered, sorted page of assignments plus the filtered total.

    `search` matches the product code or description, the client name
    or the rendered location path.  Text sorts are natural
    ("R1-2" before "R1-10"); rows without a client sort last.
    """
    rows = list((await db.execute(select(ItemLocation).order_by(ItemLocation.id.desc()))).scalars().all())
    locations = await location_service.load_all(db)
    products = await catalog_service.get_products_by_ids({r.item_id for r in rows}, db)
    customers = await catalog_service.get_customers_by_ids({r.client_id for r in rows if r.client_id}, db)

    paths = {r.location_id: location_service.render_location_path(r.location_id, locations) for r in rows}

    def description(row: ItemLocation) -> str:
        product = products.get(row.item_id)
        return product.description if product else ""

    def client_name(row: ItemLocation) -> str | None:
        customer = customers.get(row.client_id) if row.client_id else None
        return customer.name if customer else None

    if search:
        needle = search.strip().lower()
        rows = [
            r for r in rows
            if needle in r.item_id.lower()
            or needle in description(r).lower()
            or needle in (client_name(r) or "").lower()
            or needle in paths[r.location_id].lower()
        ]

    sort_values = {
        AssignmentSortKey.PRODUCT: lambda r: natural_key(r.item_id),
        AssignmentSortKey.DESCRIPTION: lambda r: natural_key(description(r)),
        AssignmentSortKey.CLIENT: lambda r: (client_name(r) is None, natural_key(client_name(r) or "")),
        AssignmentSortKey.LOCATION: lambda r: natural_key(paths[r.location_id]),
        AssignmentSortKey.TYPE: lambda r: "Exclusive" if r.is_exclusive else "General",
        AssignmentSortKey.UPDATED_AT: lambda r: as_utc(r.updated_at),
    }
    rows.sort(key=sort_values[sort_key], reverse=descending)
    return len(rows), rows[skip: skip + limit]


# ── Writes ───────────────────────────────────────────────────────────

async def _update_assignment(
    payload: AssignItemRequest,
    updated_by: str,
    owner_id: uuid.UUID,
    db: AsyncSession,
) -> ItemLocation:
    """Edits only touch the client and the flags; moving goes through a new assignment."""
    assignment = await get_assignment(payload.id, db)
    await _ensure_not_leased(assignment.location_id, owner_id, db)
    assignment.client_id = payload.client_id or None
    assignment.is_exclusive = payload.is_exclusive
    assignment.requires_certificate = payload.requires_certificate
    assignment.updated_by = updated_by
    assignment.updated_at = utcnow()
    await db.flush()
    return assignment


async def assign_item(
    payload: AssignItemRequest,
    updated_by: str,
    owner_id: uuid.UUID,
    db: AsyncSession,
) -> ItemLocation:
    if payload.id is not None:
        return await _update_assignment(payload, updated_by, owner_id, db)

    mode = payload.mode
    if mode is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="An assignment mode is required for new assignments",
        )

    if await db.get(Product, payload.item_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

    locations = await location_service.load_all(db)
    location = next((loc for loc in locations if loc.id == payload.location_id), None)
    if location is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found")
    if any(loc.parent_id == location.id for loc in locations):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Products can only be assigned to final locations",
        )

    await _ensure_not_leased(location.id, owner_id, db, locations)

    other_item_id = (
        await db.execute(
            select(ItemLocation.item_id)
            .where(ItemLocation.location_id == location.id, ItemLocation.item_id != payload.item_id)
            .limit(1)
        )
    ).scalar_one_or_none()
    if other_item_id is not None and not location.is_mixed and not mode.mixes:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": "Location already holds another product; confirm mixing to continue",
                "conflicting_product": other_item_id,
            },
        )

    location_code = location.code
    try:
        if mode.moves:
            moved = await db.execute(
                delete(ItemLocation).where(
                    ItemLocation.item_id == payload.item_id,
                    ItemLocation.location_id != location.id,
                )
            )
            logger.info(
                "Moving %s to %s: %d previous assignment(s) removed by %s",
                payload.item_id, location.code, moved.rowcount, updated_by,
            )

        if mode.mixes and not location.is_mixed:
            location.is_mixed = True
            logger.info("Location %s marked as mixed by %s", location.code, updated_by)

        client_id = payload.client_id or None
        same_row = select(ItemLocation).where(
            ItemLocation.item_id == payload.item_id,
            ItemLocation.location_id == location.id,
            ItemLocation.client_id.is_(None) if client_id is None else ItemLocation.client_id == client_id,
        )
        assignment = (await db.execute(same_row)).scalars().first()
        if assignment is None:
            assignment = ItemLocation(item_id=payload.item_id, location_id=location.id, client_id=client_id)
            db.add(assignment)
        assignment.is_exclusive = payload.is_exclusive
        assignment.requires_certificate = payload.requires_certificate
        assignment.updated_by = updated_by
        assignment.updated_at = utcnow()
        await db.flush()
    except SQLAlchemyError:
        logger.exception("Failed to save assignment of %s to %s", payload.item_id, location_code)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="The assignment could not be saved",
        )

    return assignment


async def unassign(assignment_id: int, db: AsyncSession) -> None:
    assignment = await get_assignment(assignment_id, db)
    await db.delete(assignment)
    await db.flush()


async def unassign_all_by_product(item_id: str, user_name: str, db: AsyncSession) -> int:
    result = await db.execute(delete(ItemLocation).where(ItemLocation.item_id == item_id))
    await db.flush()
    logger.warning("All %d assignment(s) of product %s removed by %s", result.rowcount, item_id, user_name)
    return result.rowcount


async def unassign_all_by_location(location_id: int, user_name: str, db: AsyncSession) -> int:
    await location_service.get_location(location_id, db)
    result = await db.execute(delete(ItemLocation).where(ItemLocation.location_id == location_id))
    await db.flush()
    logger.warning("All %d assignment(s) at location %s removed by %s", result.rowcount, location_id, user_name)
    return result.rowcount
