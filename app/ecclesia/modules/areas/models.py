from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.ecclesia.models import Base

if TYPE_CHECKING:
    from app.ecclesia.models import Profile
    from app.ecclesia.modules.organizations.models import Location


class Area(Base):
    """Ministry sub-group scoped to one location."""

    __tablename__ = "areas"
    __table_args__ = (Index("idx_areas_location", "location_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    location_id: Mapped[int] = mapped_column(ForeignKey("locations.id", ondelete="CASCADE"), nullable=False)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    location: Mapped["Location"] = relationship(back_populates="areas", lazy="joined")
    creator: Mapped["Profile | None"] = relationship(foreign_keys=[created_by])
    members: Mapped[list["AreaMember"]] = relationship(
        back_populates="area",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class AreaMember(Base):
    # No (area_id, user_id) unique constraint; duplicates are refused in the service layer.
    __tablename__ = "area_members"
    __table_args__ = (
        Index("idx_area_members_area", "area_id"),
        Index("idx_area_members_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    area_id: Mapped[int] = mapped_column(ForeignKey("areas.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    is_leader: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    added_by: Mapped[int | None] = mapped_column(ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)

    area: Mapped[Area] = relationship(back_populates="members")
    user: Mapped["Profile"] = relationship(back_populates="area_memberships", foreign_keys=[user_id], lazy="joined")
