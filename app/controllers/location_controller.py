"""
Location controller: the warehouse tree.

Reads need `warehouse:access`; every mutation needs
`warehouse:locations:create`.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.identity import User
from app.rbac.dependencies import require_permission
from app.schemas import (
    CloneRackRequest,
    CreateLocationRequest,
    CreateRackRequest,
    LocationOut,
    MessageResponse,
    UpdateLocationRequest,
)
from app.services import location_service

router = APIRouter(prefix="/api/warehouse/locations", tags=["Locations"])


@router.get("", response_model=list[LocationOut])
async def list_locations(
    user: User = Depends(require_permission("warehouse:access")),
    db: AsyncSession = Depends(get_db),
):
    return await location_service.list_locations(db)


@router.get("/selectable", response_model=list[LocationOut])
async def list_selectable_locations(
    q: str = Query(""),
    user: User = Depends(require_permission("warehouse:access")),
    db: AsyncSession = Depends(get_db),
):
    """Leaf locations, optionally filtered by path ("*" = all)."""
    locations = await location_service.load_all(db)
    matches = location_service.search_selectable_locations(q, locations)
    return [location_service.to_out(loc, locations) for loc in matches]


@router.post("", response_model=LocationOut, status_code=201)
async def create_location(
    body: CreateLocationRequest,
    user: User = Depends(require_permission("warehouse:locations:create")),
    db: AsyncSession = Depends(get_db),
):
    location = await location_service.create_location(
        db,
        name=body.name,
        code=body.code,
        type=body.type,
        parent_id=body.parent_id,
        is_mixed=body.is_mixed,
    )
    return location_service.to_out(location, await location_service.load_all(db))


@router.patch("/{location_id}", response_model=LocationOut)
async def update_location(
    location_id: int,
    body: UpdateLocationRequest,
    user: User = Depends(require_permission("warehouse:locations:create")),
    db: AsyncSession = Depends(get_db),
):
    location = await location_service.update_location(location_id, db, **body.model_dump(exclude_unset=True))
    return location_service.to_out(location, await location_service.load_all(db))


@router.delete("/{location_id}", response_model=MessageResponse)
async def delete_location(
    location_id: int,
    user: User = Depends(require_permission("warehouse:locations:create")),
    db: AsyncSession = Depends(get_db),
):
    await location_service.delete_location(location_id, db, user.full_name)
    return MessageResponse(detail="Location deleted")


@router.post("/racks", response_model=LocationOut, status_code=201)
async def create_rack(
    body: CreateRackRequest,
    user: User = Depends(require_permission("warehouse:locations:create")),
    db: AsyncSession = Depends(get_db),
):
    """Create a rack with all its levels and positions at once."""
    rack = await location_service.create_rack(db, **body.model_dump())
    return location_service.to_out(rack, await location_service.load_all(db))


@router.post("/racks/{rack_id}/clone", response_model=LocationOut, status_code=201)
async def clone_rack(
    rack_id: int,
    body: CloneRackRequest,
    user: User = Depends(require_permission("warehouse:locations:create")),
    db: AsyncSession = Depends(get_db),
):
    rack = await location_service.clone_rack(rack_id, db, new_name=body.new_name, new_prefix=body.new_prefix)
    return location_service.to_out(rack, await location_service.load_all(db))
