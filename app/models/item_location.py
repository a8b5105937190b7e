from __future__ import annotations

"""
Item ↔ location assignment.

`client_id` NULL means the slot is for general sale; otherwise it is
reserved for that customer.  Uniqueness of (item, location, client)
is checked by the assignment service right before each write.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.clock import utcnow
from app.models.base import Base, IntegerPrimaryKeyMixin


class ItemLocation(Base, IntegerPrimaryKeyMixin):
    __tablename__ = "item_locations"

    item_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    client_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_exclusive: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    requires_certificate: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    updated_by: Mapped[str | None] = mapped_column(String(256), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_item_locations_item_location", "item_id", "location_id"),
        # ids of deleted rows are never handed out again
        {"sqlite_autoincrement": True},
    )

    def __repr__(self) -> str:
        return f"<ItemLocation item={self.item_id} location={self.location_id}>"
