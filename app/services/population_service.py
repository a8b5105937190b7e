"""
Population wizard service.

Walks an operator through every bin of one or more rack levels:

1. `start`: lease the chosen levels (all or nothing) and return their
   bins in natural code order.
2. `step`: assign a product to the current bin, or mark it skipped.
3. `finish`: release the leases.

While the leases are held, nobody else can assign products anywhere
below those levels.
"""

import logging
import uuid
from collections.abc import Sequence

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.item_location import ItemLocation
from app.models.identity import User
from app.schemas import AssignItemRequest, AssignmentMode, LocationOut
from app.services import assignment_service, location_service, lock_service

logger = logging.getLogger(__name__)

SKIPPED = "S"


async def start(
    rack_id: int,
    level_ids: Sequence[int],
    user: User,
    db: AsyncSession,
) -> list[LocationOut]:
    locations = await location_service.load_all(db)
    by_id = {loc.id: loc for loc in locations}
    if rack_id not in by_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rack not found")
    strays = [lid for lid in level_ids if by_id.get(lid) is None or by_id[lid].parent_id != rack_id]
    if strays:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Levels {strays} do not belong to rack {rack_id}",
        )

    result = await lock_service.acquire(level_ids, user, db)
    if result.locked:
        raise HTTPException(
            status_code=status.HTTP_423_LOCKED,
            detail=f"Some levels are being populated by {result.locked_by or 'another user'}",
        )

    bin_ids: set[int] = set()
    for level_id in level_ids:
        bin_ids.update(location_service.final_children(level_id, locations))
    bins = sorted((by_id[b] for b in bin_ids), key=lambda loc: location_service.natural_key(loc.code))
    return [location_service.to_out(b, locations) for b in bins]


async def step(
    location_id: int,
    item_id: str | None,
    user: User,
    db: AsyncSession,
) -> ItemLocation | None:
    """Assign `item_id` to the bin, or skip the bin when no item is given."""
    if item_id:
        payload = AssignItemRequest(item_id=item_id, location_id=location_id, mode=AssignmentMode.ADD)
        return await assignment_service.assign_item(payload, user.full_name, user.id, db)

    location = await location_service.get_location(location_id, db)
    blocking = await lock_service.find_blocking_lease(location_id, user.id, db)
    if blocking is not None:
        raise HTTPException(
            status_code=status.HTTP_423_LOCKED,
            detail=f"Location is being edited by {blocking.owner_name}",
        )
    location.population_status = SKIPPED
    await db.flush()
    return None


async def finish(level_ids: Sequence[int], owner_id: uuid.UUID, user_name: str, db: AsyncSession) -> int:
    """Release the wizard's leases; returns how many bins ended up populated."""
    locations = await location_service.load_all(db)
    bin_ids: set[int] = set()
    for level_id in level_ids:
        bin_ids.update(location_service.final_children(level_id, locations))

    populated = 0
    if bin_ids:
        stmt = select(ItemLocation.location_id).where(ItemLocation.location_id.in_(bin_ids)).distinct()
        populated = len((await db.execute(stmt)).scalars().all())

    released = await lock_service.release(level_ids, owner_id, db)
    logger.info(
        "Population session of %s finished: %d/%d bins populated, %d lease(s) released",
        user_name, populated, len(bin_ids), released,
    )
    return populated
