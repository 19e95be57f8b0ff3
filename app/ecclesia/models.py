from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

if TYPE_CHECKING:
    from app.ecclesia.modules.areas.models import AreaMember
    from app.ecclesia.modules.organizations.models import Location, Organization


class Base(DeclarativeBase):
    pass


class UserRole(Base):
    """One row per role held by a profile; `Profile.role` caches the highest of them."""

    __tablename__ = "user_roles"
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True)
    role: Mapped[str] = mapped_column(String(32), primary_key=True)

    profile: Mapped["Profile"] = relationship(back_populates="role_rows")


class Profile(Base):
    """Application user. The row id is the authentication identity."""

    __tablename__ = "profiles"
    __table_args__ = (
        Index("idx_profiles_location", "location_id"),
        Index("idx_profiles_role", "role"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="MEMBER")

    organization_id: Mapped[int | None] = mapped_column(
        ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True
    )
    location_id: Mapped[int | None] = mapped_column(ForeignKey("locations.id", ondelete="SET NULL"), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    role_rows: Mapped[list[UserRole]] = relationship(
        back_populates="profile",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    organization: Mapped["Organization | None"] = relationship(foreign_keys=[organization_id], lazy="joined")
    location: Mapped["Location | None"] = relationship(foreign_keys=[location_id], lazy="joined")
    area_memberships: Mapped[list["AreaMember"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        foreign_keys="AreaMember.user_id",
    )

    @property
    def role_names(self) -> list[str]:
        return sorted(r.role for r in self.role_rows)


class AuditEvent(Base):
    """
    Append-only audit trail event.
    Keep this table intentionally generic; module tables refer to it only by entity_type/entity_id.
    """

    __tablename__ = "audit_events"
    __table_args__ = (Index("ix_audit_events_created_at", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    actor_user_id: Mapped[int | None] = mapped_column(ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    actor_user_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    action: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "area.create"
    entity_type: Mapped[str | None] = mapped_column(String(128), nullable=True)  # e.g. "Area"
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # small JSON string
    client_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.ecclesia.modules.organizations.models import Location, Organization  # noqa: E402,F401
from app.ecclesia.modules.areas.models import Area, AreaMember  # noqa: E402,F401
