"""
Lock controller: location leases.

A refused lease is not an error: the response says who holds it.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.identity import User
from app.rbac.dependencies import require_permission
from app.schemas import CleanupResponse, LeaseOut, LockRequest, LockResult
from app.services import lock_service

router = APIRouter(prefix="/api/warehouse/locks", tags=["Locks"])


@router.get("", response_model=list[LeaseOut])
async def list_leases(
    user: User = Depends(require_permission("warehouse:access")),
    db: AsyncSession = Depends(get_db),
):
    leases = await lock_service.active_leases(db)
    return [LeaseOut.model_validate(lease) for lease in leases]


@router.post("", response_model=LockResult)
async def acquire_leases(
    body: LockRequest,
    user: User = Depends(require_permission("warehouse:item-assignment:create")),
    db: AsyncSession = Depends(get_db),
):
    return await lock_service.acquire(body.location_ids, user, db)


@router.delete("", response_model=CleanupResponse)
async def release_leases(
    body: LockRequest,
    user: User = Depends(require_permission("warehouse:item-assignment:create")),
    db: AsyncSession = Depends(get_db),
):
    released = await lock_service.release(body.location_ids, user.id, db)
    return CleanupResponse(deleted=released)


@router.delete("/{location_id}", response_model=CleanupResponse)
async def force_release_lease(
    location_id: int,
    user: User = Depends(require_permission("warehouse:locks:manage")),
    db: AsyncSession = Depends(get_db),
):
    released = await lock_service.force_release(location_id, db, user.full_name)
    return CleanupResponse(deleted=released)
