"""
Catalog controller: product & customer pickers for the assignment form.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.identity import User
from app.rbac.dependencies import require_permission
from app.schemas import CustomerOut, ProductOut
from app.services import catalog_service

router = APIRouter(prefix="/api/catalog", tags=["Catalog"])


@router.get("/products", response_model=list[ProductOut])
async def search_products(
    q: str = Query(""),
    user: User = Depends(require_permission("warehouse:access")),
    db: AsyncSession = Depends(get_db),
):
    products = await catalog_service.search_products(q, db)
    return [ProductOut.model_validate(p) for p in products]


@router.get("/customers", response_model=list[CustomerOut])
async def search_customers(
    q: str = Query(""),
    user: User = Depends(require_permission("warehouse:access")),
    db: AsyncSession = Depends(get_db),
):
    customers = await catalog_service.search_customers(q, db)
    return [CustomerOut.model_validate(c) for c in customers]
