from __future__ import annotations

"""
Warehouse location model.

Locations form a tree through the self-referential `parent_id`
(building → zone → rack → shelf → bin).  Only leaves can hold
product assignments.  A location flagged `is_mixed` is allowed to
hold more than one distinct product.
"""

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, IntegerPrimaryKeyMixin, TimestampMixin


class WarehouseLocation(Base, IntegerPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "locations"

    name: Mapped[str] = mapped_column(String(128), nullable=False)
    code: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    parent_id: Mapped[int | None] = mapped_column(
        ForeignKey("locations.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    is_mixed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # "S" once the population wizard skipped this bin.
    population_status: Mapped[str | None] = mapped_column(String(1), nullable=True)

    def __repr__(self) -> str:
        return f"<WarehouseLocation {self.code}>"
