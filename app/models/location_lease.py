"""
Location lease: short-lived exclusive claim on a location.

While a user populates a rack level (or edits a bin) they hold a lease
on it.  `location_id` is the primary key, so two sessions can never
insert a lease for the same location: the loser gets an IntegrityError.
Leases past `expires_at` are dead and may be reclaimed by anyone.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.clock import utcnow
from app.models.base import Base


class LocationLease(Base):
    __tablename__ = "location_leases"

    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id", ondelete="CASCADE"),
        primary_key=True,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    owner_name: Mapped[str] = mapped_column(String(256), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<LocationLease location={self.location_id} owner={self.owner_name}>"
