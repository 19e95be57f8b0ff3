from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.ecclesia.models import Base

if TYPE_CHECKING:
    from app.ecclesia.models import Profile
    from app.ecclesia.modules.areas.models import Area


class Organization(Base):
    __tablename__ = "organizations"
    __table_args__ = (Index("idx_organizations_name", "name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    # Contact
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    website: Mapped[str | None] = mapped_column(String(512), nullable=True)
    location_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)  # map link

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    locations: Mapped[list["Location"]] = relationship(
        back_populates="organization",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by=lambda: (Location.is_main_campus.desc(), Location.name),
        lazy="selectin",
    )


class Location(Base):
    """A physical branch/campus of an organization."""

    __tablename__ = "locations"
    __table_args__ = (Index("idx_locations_organization", "organization_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    city: Mapped[str | None] = mapped_column(String(128), nullable=True)
    country: Mapped[str | None] = mapped_column(String(128), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_main_campus: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # profiles.location_id points back at this table.
    pastor_id: Mapped[int | None] = mapped_column(
        ForeignKey("profiles.id", ondelete="SET NULL", use_alter=True, name="fk_locations_pastor_id_profiles"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    organization: Mapped[Organization] = relationship(back_populates="locations")
    pastor: Mapped["Profile | None"] = relationship(foreign_keys=[pastor_id], post_update=True)
    areas: Mapped[list["Area"]] = relationship(
        back_populates="location",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
