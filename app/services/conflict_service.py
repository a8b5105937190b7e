"""
Conflict checker.

Answers, before anything is written, what assigning `item_id` to
`location_id` would collide with:

- the product already sits somewhere else (→ offer "move"),
- the location already holds a different product (→ offer "mix"),
- another user holds a lease on the location or one of its parents.

Read-only.  The assignment service repeats the relevant checks inside
its own transaction, so a stale report can never cause a bad write.
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.catalog import Product
from app.models.item_location import ItemLocation
from app.schemas import ConflictReport, ProductOut
from app.services import location_service, lock_service


async def check_assignment_conflict(
    item_id: str,
    location_id: int,
    owner_id: uuid.UUID,
    db: AsyncSession,
) -> ConflictReport:
    location = await location_service.get_location(location_id, db)
    report = ConflictReport(location_is_mixed=location.is_mixed)

    lease = await lock_service.find_blocking_lease(location_id, owner_id, db)
    if lease is not None:
        report.is_locked = True
        report.locked_by = lease.owner_name

    elsewhere = await db.execute(
        select(ItemLocation.id)
        .where(ItemLocation.item_id == item_id, ItemLocation.location_id != location_id)
        .limit(1)
    )
    report.product_has_other_locations = elsewhere.first() is not None

    other_item_id = (
        await db.execute(
            select(ItemLocation.item_id)
            .where(ItemLocation.location_id == location_id, ItemLocation.item_id != item_id)
            .order_by(ItemLocation.id)
            .limit(1)
        )
    ).scalar_one_or_none()

    if other_item_id is not None:
        report.location_has_other_products = True
        product = await db.get(Product, other_item_id)
        report.conflicting_product = ProductOut(
            id=other_item_id,
            description=product.description if product else "",
        )

    return report
