"""
Location service: tree accessor & location CRUD.

Locations are stored flat (id + parent_id).  The tree helpers below
work on an already-loaded list so a page needs a single query no
matter how deep the hierarchy goes:

- `render_location_path`  → "Building > Rack 1 > Level A > 01"
- `descendant_ids` / `final_children` / `ancestor_ids`
- `selectable_locations`  → leaves only; only leaves hold products
"""

import logging
import re
from collections import deque
from collections.abc import Iterable, Sequence

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.item_location import ItemLocation
from app.models.location import WarehouseLocation
from app.schemas import LocationOut

logger = logging.getLogger(__name__)

PATH_SEPARATOR = " > "

# marks an argument the caller did not pass
UNCHANGED = object()


# ── Pure tree helpers ────────────────────────────────────────────────

def _by_id(locations: Iterable[WarehouseLocation]) -> dict[int, WarehouseLocation]:
    return {loc.id: loc for loc in locations}


def _children_index(locations: Iterable[WarehouseLocation]) -> dict[int, list[int]]:
    children: dict[int, list[int]] = {}
    for loc in locations:
        if loc.parent_id is not None:
            children.setdefault(loc.parent_id, []).append(loc.id)
    return children


def render_location_path(location_id: int | None, locations: Sequence[WarehouseLocation]) -> str:
    """Names from the root down to `location_id`; "" when unknown."""
    if not location_id:
        return ""
    index = _by_id(locations)
    path: list[str] = []
    seen: set[int] = set()
    current = index.get(location_id)
    while current is not None and current.id not in seen:
        seen.add(current.id)
        path.append(current.name)
        current = index.get(current.parent_id) if current.parent_id else None
    return PATH_SEPARATOR.join(reversed(path))


def ancestor_ids(location_id: int, locations: Sequence[WarehouseLocation]) -> list[int]:
    """Parent chain of a location, nearest first."""
    index = _by_id(locations)
    chain: list[int] = []
    current = index.get(location_id)
    while current is not None and current.parent_id and current.parent_id not in chain:
        chain.append(current.parent_id)
        current = index.get(current.parent_id)
    return chain


def descendant_ids(location_id: int, locations: Sequence[WarehouseLocation]) -> set[int]:
    children = _children_index(locations)
    found: set[int] = set()
    queue = deque(children.get(location_id, []))
    while queue:
        current = queue.popleft()
        if current in found:
            continue
        found.add(current)
        queue.extend(children.get(current, []))
    return found


def final_children(location_id: int, locations: Sequence[WarehouseLocation]) -> list[int]:
    """Leaf descendants of a location (the location itself if it is a leaf)."""
    children = _children_index(locations)
    leaves: list[int] = []
    visited: set[int] = set()
    queue = deque([location_id])
    while queue:
        current = queue.popleft()
        if current in visited:
            continue
        visited.add(current)
        kids = children.get(current)
        if kids:
            queue.extend(kids)
        else:
            leaves.append(current)
    return leaves


def selectable_locations(locations: Sequence[WarehouseLocation]) -> list[WarehouseLocation]:
    parent_ids = {loc.parent_id for loc in locations if loc.parent_id}
    return [loc for loc in locations if loc.id not in parent_ids]


def search_selectable_locations(
    term: str | None,
    locations: Sequence[WarehouseLocation],
) -> list[WarehouseLocation]:
    """Blank or "*" lists every leaf; anything else filters on the path."""
    leaves = selectable_locations(locations)
    needle = (term or "").strip().lower()
    if needle in ("", "*"):
        return leaves
    return [
        loc for loc in leaves
        if needle in render_location_path(loc.id, locations).lower()
    ]


def natural_key(code: str) -> list:
    """Sort key so that "R1-A-2" comes before "R1-A-10"."""
    return [int(part) if part.isdigit() else part.lower() for part in re.split(r"(\d+)", code)]


def to_out(
    location: WarehouseLocation,
    locations: Sequence[WarehouseLocation],
    is_completed: bool | None = None,
) -> LocationOut:
    out = LocationOut.model_validate(location)
    out.path = render_location_path(location.id, locations)
    out.is_completed = is_completed
    return out


# ── Queries ──────────────────────────────────────────────────────────

async def load_all(db: AsyncSession) -> list[WarehouseLocation]:
    stmt = select(WarehouseLocation).order_by(WarehouseLocation.parent_id, WarehouseLocation.name)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_locations(db: AsyncSession) -> list[LocationOut]:
    """
    Every location with its rendered path.

    Parents also report `is_completed`: true once each of their leaf
    descendants holds at least one assignment.
    """
    locations = await load_all(db)
    populated = set((await db.execute(select(ItemLocation.location_id).distinct())).scalars().all())
    children = _children_index(locations)

    out: list[LocationOut] = []
    for loc in locations:
        completed = None
        if loc.id in children:
            leaves = final_children(loc.id, locations)
            completed = bool(leaves) and all(leaf in populated for leaf in leaves)
        out.append(to_out(loc, locations, completed))
    return out


async def get_location(location_id: int, db: AsyncSession) -> WarehouseLocation:
    location = await db.get(WarehouseLocation, location_id)
    if location is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found")
    return location


async def _ensure_code_free(code: str, db: AsyncSession, exclude_id: int | None = None) -> None:
    stmt = select(WarehouseLocation.id).where(WarehouseLocation.code == code)
    if exclude_id is not None:
        stmt = stmt.where(WarehouseLocation.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Location code '{code}' is already in use",
        )


# ── Mutations ────────────────────────────────────────────────────────

async def create_location(
    db: AsyncSession,
    name: str,
    code: str,
    type: str,
    parent_id: int | None = None,
    is_mixed: bool = False,
) -> WarehouseLocation:
    await _ensure_code_free(code, db)
    if parent_id is not None:
        await get_location(parent_id, db)
    location = WarehouseLocation(
        name=name,
        code=code,
        type=type,
        parent_id=parent_id,
        is_mixed=is_mixed,
    )
    db.add(location)
    await db.flush()
    return location


async def update_location(
    location_id: int,
    db: AsyncSession,
    name: str | None = None,
    code: str | None = None,
    type: str | None = None,
    parent_id: int | None | object = UNCHANGED,
    is_mixed: bool | None = None,
) -> WarehouseLocation:
    """`parent_id=None` turns the location into a root; leave it out to keep the parent."""
    location = await get_location(location_id, db)
    if code is not None and code != location.code:
        await _ensure_code_free(code, db, exclude_id=location_id)
        location.code = code
    if parent_id is None:
        location.parent_id = None
    elif parent_id is not UNCHANGED:
        if parent_id == location_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A location cannot be its own parent",
            )
        locations = await load_all(db)
        if parent_id in descendant_ids(location_id, locations):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A location cannot be moved under its own descendant",
            )
        await get_location(parent_id, db)
        location.parent_id = parent_id
    if name is not None:
        location.name = name
    if type is not None:
        location.type = type
    if is_mixed is not None:
        location.is_mixed = is_mixed
    await db.flush()
    return location


async def delete_location(location_id: int, db: AsyncSession, user_name: str) -> None:
    """Delete an empty leaf.  Locations with assignments or children stay."""
    location = await get_location(location_id, db)

    assignment_count = (
        await db.execute(
            select(func.count()).select_from(ItemLocation).where(ItemLocation.location_id == location_id)
        )
    ).scalar_one()
    if assignment_count:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Location still holds product assignments; move or remove them first",
        )

    child_count = (
        await db.execute(
            select(func.count()).select_from(WarehouseLocation).where(WarehouseLocation.parent_id == location_id)
        )
    ).scalar_one()
    if child_count:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Location has nested locations; delete those first",
        )

    await db.delete(location)
    await db.flush()
    logger.warning("Location %s (%s) deleted by %s", location.code, location_id, user_name)


async def create_rack(
    db: AsyncSession,
    name: str,
    prefix: str,
    levels: int,
    positions: int,
    depth: int = 0,
    parent_id: int | None = None,
) -> WarehouseLocation:
    """
    Build a whole rack in one go.

    rack `prefix` → levels `prefix-A`, `prefix-B`, ... → positions
    `prefix-A-01`, ... → with depth 1 a front slot `-F`, with depth 2
    front `-F` and back `-T`.  Runs inside the request transaction, so
    a clash half-way leaves nothing behind.
    """
    rack = await create_location(db, name=name, code=prefix, type="rack", parent_id=parent_id)

    for level_index in range(levels):
        letter = chr(ord("A") + level_index)
        level = await create_location(
            db, name=f"Level {letter}", code=f"{prefix}-{letter}", type="shelf", parent_id=rack.id,
        )
        for position in range(1, positions + 1):
            pos_name = f"{position:02d}"
            pos_code = f"{prefix}-{letter}-{pos_name}"
            slot = await create_location(
                db, name=f"Position {pos_name}", code=pos_code, type="bin", parent_id=level.id,
            )
            if depth >= 1:
                await create_location(db, name="Front", code=f"{pos_code}-F", type="bin", parent_id=slot.id)
            if depth >= 2:
                await create_location(db, name="Back", code=f"{pos_code}-T", type="bin", parent_id=slot.id)

    logger.info("Rack %s created: %d levels x %d positions (depth %d)", prefix, levels, positions, depth)
    return rack


async def clone_rack(
    source_rack_id: int,
    db: AsyncSession,
    new_name: str,
    new_prefix: str,
) -> WarehouseLocation:
    """Copy a rack subtree, rewriting the source prefix in every code."""
    await _ensure_code_free(new_prefix, db)
    source = await get_location(source_rack_id, db)
    locations = await load_all(db)
    children = _children_index(locations)
    index = _by_id(locations)

    new_rack = await create_location(
        db,
        name=new_name,
        code=new_prefix,
        type=source.type,
        parent_id=source.parent_id,
        is_mixed=source.is_mixed,
    )

    queue = deque((child_id, new_rack.id) for child_id in children.get(source.id, []))
    while queue:
        old_id, new_parent_id = queue.popleft()
        old = index[old_id]
        copy = await create_location(
            db,
            name=old.name,
            code=old.code.replace(source.code, new_prefix, 1),
            type=old.type,
            parent_id=new_parent_id,
            is_mixed=old.is_mixed,
        )
        queue.extend((child_id, copy.id) for child_id in children.get(old_id, []))

    logger.info("Rack %s cloned as %s", source.code, new_prefix)
    return new_rack
