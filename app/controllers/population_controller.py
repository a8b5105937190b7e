"""
Population wizard controller.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.identity import User
from app.rbac.dependencies import require_permission
from app.schemas import (
    FinishPopulationRequest,
    MessageResponse,
    PopulationSessionOut,
    PopulationStepRequest,
    PopulationSummary,
    StartPopulationRequest,
)
from app.services import population_service

router = APIRouter(prefix="/api/warehouse/population", tags=["Population wizard"])


@router.post("/start", response_model=PopulationSessionOut)
async def start_population(
    body: StartPopulationRequest,
    user: User = Depends(require_permission("warehouse:population-wizard:use")),
    db: AsyncSession = Depends(get_db),
):
    """Lease the chosen rack levels and list their bins in walking order."""
    bins = await population_service.start(body.rack_id, body.level_ids, user, db)
    return PopulationSessionOut(rack_id=body.rack_id, level_ids=body.level_ids, locations=bins)


@router.post("/assign", response_model=MessageResponse)
async def population_step(
    body: PopulationStepRequest,
    user: User = Depends(require_permission("warehouse:population-wizard:use")),
    db: AsyncSession = Depends(get_db),
):
    row = await population_service.step(body.location_id, body.item_id, user, db)
    return MessageResponse(detail="Bin populated" if row is not None else "Bin skipped")


@router.post("/finish", response_model=PopulationSummary)
async def finish_population(
    body: FinishPopulationRequest,
    user: User = Depends(require_permission("warehouse:population-wizard:use")),
    db: AsyncSession = Depends(get_db),
):
    populated = await population_service.finish(body.level_ids, user.id, user.full_name, db)
    return PopulationSummary(populated=populated)
