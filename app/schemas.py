"""
Request / response schemas for every router.

Response models read ORM rows through `from_attributes`; nothing here
imports a model, so the wire format can drift from the tables.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


# ── Auth ─────────────────────────────────────────────────────────────
class LoginRequest(BaseModel):
    email: str
    password: str
    device_id: str = "web"


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    roles: list[str]


# ── Catalog ──────────────────────────────────────────────────────────
class ProductOut(BaseModel):
    id: str
    description: str

    model_config = {"from_attributes": True}


class CustomerOut(BaseModel):
    id: str
    name: str

    model_config = {"from_attributes": True}


# ── Locations ────────────────────────────────────────────────────────
class CreateLocationRequest(BaseModel):
    name: str = Field(min_length=1)
    code: str = Field(min_length=1)
    type: str = "bin"
    parent_id: int | None = None
    is_mixed: bool = False


class UpdateLocationRequest(BaseModel):
    name: str | None = None
    code: str | None = None
    type: str | None = None
    parent_id: int | None = None
    is_mixed: bool | None = None


class LocationOut(BaseModel):
    id: int
    name: str
    code: str
    type: str
    parent_id: int | None = None
    is_mixed: bool = False
    population_status: str | None = None
    path: str = ""
    is_completed: bool | None = None

    model_config = {"from_attributes": True}


class CreateRackRequest(BaseModel):
    name: str
    prefix: str = Field(min_length=1)
    levels: int = Field(ge=1, le=26)
    positions: int = Field(ge=1, le=99)
    depth: int = Field(0, ge=0, le=2)
    parent_id: int | None = None


class CloneRackRequest(BaseModel):
    new_name: str
    new_prefix: str = Field(min_length=1)


# ── Item assignments ─────────────────────────────────────────────────
class AssignmentMode(str, Enum):
    ADD = "add"
    MOVE = "move"
    ADD_AND_MIX = "add_and_mix"
    MOVE_AND_MIX = "move_and_mix"

    @property
    def moves(self) -> bool:
        return self in (AssignmentMode.MOVE, AssignmentMode.MOVE_AND_MIX)

    @property
    def mixes(self) -> bool:
        return self in (AssignmentMode.ADD_AND_MIX, AssignmentMode.MOVE_AND_MIX)


class AssignmentSortKey(str, Enum):
    PRODUCT = "product"
    DESCRIPTION = "description"
    CLIENT = "client"
    LOCATION = "location"
    TYPE = "type"
    UPDATED_AT = "updated_at"


class AssignItemRequest(BaseModel):
    id: int | None = None
    item_id: str = Field(min_length=1)
    location_id: int
    client_id: str | None = None
    is_exclusive: bool = False
    requires_certificate: bool = False
    mode: AssignmentMode | None = None


class ConflictCheckRequest(BaseModel):
    item_id: str = Field(min_length=1)
    location_id: int


class ConflictReport(BaseModel):
    product_has_other_locations: bool = False
    location_has_other_products: bool = False
    conflicting_product: ProductOut | None = None
    is_locked: bool = False
    locked_by: str | None = None
    location_is_mixed: bool = False

    @property
    def has_conflict(self) -> bool:
        return self.product_has_other_locations or self.location_has_other_products


class ItemLocationOut(BaseModel):
    id: int
    item_id: str
    location_id: int
    client_id: str | None = None
    is_exclusive: bool
    requires_certificate: bool
    updated_by: str | None = None
    updated_at: datetime

    model_config = {"from_attributes": True}


class AssignmentPage(BaseModel):
    total: int
    items: list[ItemLocationOut]


class CleanupResponse(BaseModel):
    deleted: int


# ── Leases ───────────────────────────────────────────────────────────
class LockRequest(BaseModel):
    location_ids: list[int] = Field(min_length=1)


class LockResult(BaseModel):
    locked: bool
    locked_by: str | None = None


class LeaseOut(BaseModel):
    location_id: int
    owner_name: str
    acquired_at: datetime
    expires_at: datetime

    model_config = {"from_attributes": True}


# ── Population wizard ────────────────────────────────────────────────
class StartPopulationRequest(BaseModel):
    rack_id: int
    level_ids: list[int] = Field(min_length=1)


class PopulationStepRequest(BaseModel):
    location_id: int
    item_id: str | None = None


class FinishPopulationRequest(BaseModel):
    level_ids: list[int] = Field(min_length=1)


class PopulationSessionOut(BaseModel):
    rack_id: int
    level_ids: list[int]
    locations: list[LocationOut]


class PopulationSummary(BaseModel):
    populated: int


# ── Generic ──────────────────────────────────────────────────────────
class MessageResponse(BaseModel):
    detail: str
