"""
Item assignment controller.

POST without a `mode` runs the conflict check first: a clean check is
written straight away as "add", a conflict comes back as 409 carrying
the report so the client can ask the operator how to proceed and
re-submit with an explicit mode.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.identity import User
from app.rbac.dependencies import require_permission
from app.schemas import (
    AssignItemRequest,
    AssignmentMode,
    AssignmentPage,
    AssignmentSortKey,
    CleanupResponse,
    ConflictCheckRequest,
    ConflictReport,
    ItemLocationOut,
    MessageResponse,
)
from app.services import assignment_service, conflict_service

router = APIRouter(prefix="/api/warehouse/item-assignments", tags=["Item assignments"])


@router.get("", response_model=AssignmentPage)
async def list_assignments(
    search: str | None = Query(None),
    sort: AssignmentSortKey = Query(AssignmentSortKey.UPDATED_AT),
    descending: bool = Query(True),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    user: User = Depends(require_permission("warehouse:access")),
    db: AsyncSession = Depends(get_db),
):
    total, rows = await assignment_service.list_assignments(db, search, sort, descending, skip, limit)
    return AssignmentPage(total=total, items=[ItemLocationOut.model_validate(r) for r in rows])


@router.get("/by-product/{item_id}", response_model=list[ItemLocationOut])
async def list_assignments_for_product(
    item_id: str,
    user: User = Depends(require_permission("warehouse:access")),
    db: AsyncSession = Depends(get_db),
):
    rows = await assignment_service.get_assignments_for_item(item_id, db)
    return [ItemLocationOut.model_validate(r) for r in rows]


@router.post("/check", response_model=ConflictReport)
async def check_conflict(
    body: ConflictCheckRequest,
    user: User = Depends(require_permission("warehouse:access")),
    db: AsyncSession = Depends(get_db),
):
    return await conflict_service.check_assignment_conflict(body.item_id, body.location_id, user.id, db)


@router.post("", response_model=ItemLocationOut, status_code=201)
async def assign_item(
    body: AssignItemRequest,
    user: User = Depends(require_permission("warehouse:item-assignment:create")),
    db: AsyncSession = Depends(get_db),
):
    if body.id is None and body.mode is None:
        report = await conflict_service.check_assignment_conflict(body.item_id, body.location_id, user.id, db)
        if report.is_locked:
            raise HTTPException(
                status_code=status.HTTP_423_LOCKED,
                detail=f"Location is being edited by {report.locked_by or 'another user'}",
            )
        if report.has_conflict:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=report.model_dump(mode="json"))
        body = body.model_copy(update={"mode": AssignmentMode.ADD})

    row = await assignment_service.assign_item(body, user.full_name, user.id, db)
    return ItemLocationOut.model_validate(row)


@router.delete("/by-product/{item_id}", response_model=CleanupResponse)
async def unassign_product_everywhere(
    item_id: str,
    user: User = Depends(require_permission("warehouse:item-assignment:delete")),
    db: AsyncSession = Depends(get_db),
):
    deleted = await assignment_service.unassign_all_by_product(item_id, user.full_name, db)
    return CleanupResponse(deleted=deleted)


@router.delete("/by-location/{location_id}", response_model=CleanupResponse)
async def empty_location(
    location_id: int,
    user: User = Depends(require_permission("warehouse:item-assignment:delete")),
    db: AsyncSession = Depends(get_db),
):
    deleted = await assignment_service.unassign_all_by_location(location_id, user.full_name, db)
    return CleanupResponse(deleted=deleted)


@router.delete("/{assignment_id}", response_model=MessageResponse)
async def unassign(
    assignment_id: int,
    user: User = Depends(require_permission("warehouse:item-assignment:delete")),
    db: AsyncSession = Depends(get_db),
):
    await assignment_service.unassign(assignment_id, db)
    return MessageResponse(detail="Assignment removed")
