"""
Lock service: location leases.

A lease is a row in `location_leases` keyed by location id, owned by
one user, valid until `expires_at`.  Rules:

- A live lease held by someone else blocks that location and every
  location below it (leasing a rack level blocks its bins).
- A lease cannot be taken under or over a live lease of someone else.
- Expired leases are treated as absent and reclaimed on acquire.
- Acquiring a lease you already hold renews it.
- Acquisition is all-or-nothing over the requested ids.

Because `location_id` is the primary key, two sessions racing for the
same location cannot both insert; the loser sees an IntegrityError
and reports the location as locked.
"""

import logging
import uuid
from collections.abc import Sequence
from datetime import timedelta

from fastapi import HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import as_utc, utcnow
from app.core.config import settings
from app.models.location import WarehouseLocation
from app.models.location_lease import LocationLease
from app.models.identity import User
from app.schemas import LockResult
from app.services import location_service

logger = logging.getLogger(__name__)


def is_alive(lease: LocationLease) -> bool:
    return as_utc(lease.expires_at) > utcnow()


async def active_leases(db: AsyncSession) -> list[LocationLease]:
    result = await db.execute(select(LocationLease).order_by(LocationLease.acquired_at))
    return [lease for lease in result.scalars().all() if is_alive(lease)]


async def find_blocking_lease(
    location_id: int,
    owner_id: uuid.UUID,
    db: AsyncSession,
    locations: Sequence[WarehouseLocation] | None = None,
) -> LocationLease | None:
    """Live lease held by another user on the location or any ancestor."""
    if locations is None:
        locations = await location_service.load_all(db)
    guarded = [location_id, *location_service.ancestor_ids(location_id, locations)]
    stmt = select(LocationLease).where(
        LocationLease.location_id.in_(guarded),
        LocationLease.owner_id != owner_id,
    )
    for lease in (await db.execute(stmt)).scalars().all():
        if is_alive(lease):
            return lease
    return None


async def acquire(
    location_ids: Sequence[int],
    user: User,
    db: AsyncSession,
) -> LockResult:
    """
    Take leases on every id or on none of them.

    Must be the first write of its unit of work: a lost insert race
    rolls the session back.
    """
    wanted = sorted(set(location_ids))
    owner_id, owner_name = user.id, user.full_name
    now = utcnow()
    expires_at = now + timedelta(minutes=settings.LOCATION_LEASE_MINUTES)

    known = set(
        (await db.execute(select(WarehouseLocation.id).where(WarehouseLocation.id.in_(wanted)))).scalars().all()
    )
    missing = set(wanted) - known
    if missing:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown locations: {sorted(missing)}",
        )

    locations = await location_service.load_all(db)
    guarded = set(wanted)
    for location_id in wanted:
        guarded.update(location_service.ancestor_ids(location_id, locations))
        guarded.update(location_service.descendant_ids(location_id, locations))

    leases = (
        await db.execute(select(LocationLease).where(LocationLease.location_id.in_(guarded)))
    ).scalars().all()
    existing = {lease.location_id: lease for lease in leases if lease.location_id in known}

    for lease in leases:
        if lease.owner_id != owner_id and is_alive(lease):
            logger.warning(
                "Lease refused for %s on location %s, held by %s",
                owner_name, lease.location_id, lease.owner_name,
            )
            return LockResult(locked=True, locked_by=lease.owner_name)

    try:
        for location_id in wanted:
            lease = existing.get(location_id)
            if lease is None:
                db.add(
                    LocationLease(
                        location_id=location_id,
                        owner_id=owner_id,
                        owner_name=owner_name,
                        acquired_at=now,
                        expires_at=expires_at,
                    )
                )
                continue
            if lease.owner_id != owner_id:
                # expired lease of someone else: take it over
                lease.owner_id = owner_id
                lease.owner_name = owner_name
                lease.acquired_at = now
            lease.expires_at = expires_at
        await db.flush()
    except IntegrityError:
        await db.rollback()
        logger.warning("Lease race lost by %s on locations %s", owner_name, wanted)
        return LockResult(locked=True)

    logger.info("Leases taken by %s on locations %s", owner_name, wanted)
    return LockResult(locked=False)


async def release(location_ids: Sequence[int], owner_id: uuid.UUID, db: AsyncSession) -> int:
    """Drop the caller's own leases; leases of others are left alone."""
    if not location_ids:
        return 0
    stmt = delete(LocationLease).where(
        LocationLease.location_id.in_(list(location_ids)),
        LocationLease.owner_id == owner_id,
    )
    result = await db.execute(stmt)
    await db.flush()
    return result.rowcount


async def force_release(location_id: int, db: AsyncSession, user_name: str) -> int:
    result = await db.execute(delete(LocationLease).where(LocationLease.location_id == location_id))
    await db.flush()
    if result.rowcount:
        logger.warning("Lease on location %s force-released by %s", location_id, user_name)
    return result.rowcount
