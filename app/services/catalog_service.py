"""
Catalog service: read-only product & customer lookups.

Search mirrors the assignment form's pickers: nothing is returned
for terms shorter than `MIN_SEARCH_LENGTH`, and matching ignores case
and accents on both the code and the text.
"""

import unicodedata

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.catalog import Customer, Product


def normalize_text(text: str | None) -> str:
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text.lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _too_short(term: str | None) -> bool:
    return len((term or "").strip()) < settings.MIN_SEARCH_LENGTH


async def get_products_by_ids(item_ids: set[str], db: AsyncSession) -> dict[str, Product]:
    if not item_ids:
        return {}
    result = await db.execute(select(Product).where(Product.id.in_(item_ids)))
    return {p.id: p for p in result.scalars().all()}


async def get_customers_by_ids(client_ids: set[str], db: AsyncSession) -> dict[str, Customer]:
    if not client_ids:
        return {}
    result = await db.execute(select(Customer).where(Customer.id.in_(client_ids)))
    return {c.id: c for c in result.scalars().all()}


async def search_products(term: str | None, db: AsyncSession, limit: int = 50) -> list[Product]:
    if _too_short(term):
        return []
    needle = normalize_text(term.strip())
    products = (await db.execute(select(Product).order_by(Product.id))).scalars().all()
    matches = [
        p for p in products
        if needle in normalize_text(p.id) or needle in normalize_text(p.description)
    ]
    return matches[:limit]


async def search_customers(term: str | None, db: AsyncSession, limit: int = 50) -> list[Customer]:
    if _too_short(term):
        return []
    needle = normalize_text(term.strip())
    customers = (await db.execute(select(Customer).order_by(Customer.name))).scalars().all()
    matches = [
        c for c in customers
        if needle in normalize_text(c.id) or needle in normalize_text(c.name)
    ]
    return matches[:limit]
