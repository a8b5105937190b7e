"""
Every model is imported here so `Base.metadata` sees all tables
(Alembic autogenerate and `create_all` both rely on it).
"""

from app.models.base import Base, IntegerPrimaryKeyMixin, TimestampMixin, UUIDPrimaryKeyMixin
from app.models.catalog import Customer, Product
from app.models.identity import Permission, Role, User, UserSession, UserStatus, role_permissions, user_roles
from app.models.item_location import ItemLocation
from app.models.location import WarehouseLocation
from app.models.location_lease import LocationLease

__all__ = [
    "Base",
    "IntegerPrimaryKeyMixin",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "Customer",
    "Product",
    "Permission",
    "Role",
    "User",
    "UserSession",
    "UserStatus",
    "role_permissions",
    "user_roles",
    "ItemLocation",
    "WarehouseLocation",
    "LocationLease",
]
