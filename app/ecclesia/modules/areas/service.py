"""
Areas: ministry sub-groups of a location, with a member roster and leaders.

Scoping: super admins see and manage every area. Everyone else passing the
AREAS gate works only inside their own location; areas elsewhere behave as
if they did not exist. Creating or moving an area into another location is
refused rather than silently redirected.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select

from app.ecclesia import cache
from app.ecclesia.audit import record_event, track_change
from app.ecclesia.errors import not_found, unauthorized, validation_failed
from app.ecclesia.models import Profile
from app.ecclesia.modules.areas.models import Area, AreaMember
from app.ecclesia.modules.organizations.models import Location
from app.ecclesia.rbac import Gate, ensure_can, is_super_admin, scope_to_location
from app.ecclesia.utils import clean_str, parse_bool, parse_id, payload_text

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def validate_area_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    name = payload.get("name")
    if name is not None and not isinstance(name, str):
        errors.append("Name must be text.")
    elif partial:
        if name is not None and not name.strip():
            errors.append("Name cannot be empty.")
    elif not (name or "").strip():
        errors.append("Name is required.")
    return errors


def get_area(s: "Session", actor: Profile, area_id: int) -> Area:
    ensure_can(actor, Gate.AREAS)
    q = scope_to_location(s.query(Area).filter(Area.id == area_id), Area.location_id, actor)
    area = q.one_or_none()
    if area is None:
        raise not_found("Area not found.")
    return area


def member_counts(s: "Session", area_ids: list[int]) -> dict[int, int]:
    if not area_ids:
        return {}
    rows = (
        s.query(AreaMember.area_id, func.count(AreaMember.id))
        .filter(AreaMember.area_id.in_(area_ids))
        .group_by(AreaMember.area_id)
        .all()
    )
    return {area_id: count for area_id, count in rows}


def list_areas(s: "Session", actor: Profile) -> list[tuple[Area, int]]:
    """Areas visible to the actor, newest first, paired with their member count."""
    ensure_can(actor, Gate.AREAS)
    q = scope_to_location(s.query(Area), Area.location_id, actor)
    areas = q.order_by(Area.created_at.desc(), Area.id.desc()).all()
    counts = member_counts(s, [a.id for a in areas])
    return [(a, counts.get(a.id, 0)) for a in areas]


def _target_location(s: "Session", actor: Profile, raw_location_id) -> int:
    requested = parse_id(raw_location_id, "location_id")
    if is_super_admin(actor):
        if requested is None:
            raise validation_failed("Location is required.")
        if s.get(Location, requested) is None:
            raise validation_failed("Location not found.")
        return requested

    if actor.location_id is None:
        raise validation_failed("You must belong to a location to create areas.")
    if requested is not None and requested != actor.location_id:
        raise unauthorized("You can only manage areas in your own location.")
    return actor.location_id


def create_area(s: "Session", actor: Profile, payload: dict) -> Area:
    ensure_can(actor, Gate.AREAS)
    errors = validate_area_payload(payload)
    if errors:
        raise validation_failed(" ".join(errors))
    location_id = _target_location(s, actor, payload.get("location_id"))

    now = datetime.utcnow()
    area = Area(
        name=payload_text(payload, "name"),
        description=clean_str(payload.get("description")),
        location_id=location_id,
        created_by=actor.id,
        created_at=now,
        updated_at=now,
    )
    s.add(area)
    s.flush()

    record_event(
        s,
        actor=actor,
        action="area.create",
        entity_type="Area",
        entity_id=str(area.id),
        metadata={"name": area.name, "location_id": location_id},
    )
    logger.info("area created id=%s location_id=%s by=%s", area.id, location_id, actor.id)
    cache.invalidate(cache.AREAS, cache.DASHBOARD)
    return area


def update_area(s: "Session", actor: Profile, area_id: int, payload: dict) -> Area:
    area = get_area(s, actor, area_id)
    errors = validate_area_payload(payload, partial=True)
    if errors:
        raise validation_failed(" ".join(errors))
    changes = {}

    if payload.get("name") is not None:
        track_change(changes, area, "name", payload_text(payload, "name"))

    if "description" in payload:
        track_change(changes, area, "description", clean_str(payload.get("description")))

    new_location = parse_id(payload.get("location_id"), "location_id")
    if new_location is not None and new_location != area.location_id:
        if not is_super_admin(actor):
            raise unauthorized("Only super admins can move an area to another location.")
        if s.get(Location, new_location) is None:
            raise validation_failed("Location not found.")
        track_change(changes, area, "location_id", new_location)

    area.updated_at = datetime.utcnow()
    s.flush()
    s.expire(area, ["location"])
    record_event(
        s,
        actor=actor,
        action="area.edit",
        entity_type="Area",
        entity_id=str(area.id),
        metadata={"name": area.name, "changes": changes},
    )
    cache.invalidate(cache.AREAS, cache.DASHBOARD)
    return area


def delete_area(s: "Session", actor: Profile, area_id: int) -> None:
    area = get_area(s, actor, area_id)
    name = area.name
    s.delete(area)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="area.delete",
        entity_type="Area",
        entity_id=str(area_id),
        metadata={"name": name},
    )
    cache.invalidate(cache.AREAS, cache.DASHBOARD)


# ---------- Roster ----------
def area_members(s: "Session", actor: Profile, area_id: int, search: str | None = None) -> list[AreaMember]:
    """Leaders first, then most recently added. `search` matches name or email, case-insensitively."""
    area = get_area(s, actor, area_id)
    q = s.query(AreaMember).join(Profile, AreaMember.user_id == Profile.id).filter(AreaMember.area_id == area.id)
    term = (search or "").strip().lower()
    if term:
        like = f"%{term}%"
        q = q.filter(or_(func.lower(Profile.full_name).like(like), func.lower(Profile.email).like(like)))
    return q.order_by(AreaMember.is_leader.desc(), AreaMember.added_at.desc(), AreaMember.id.desc()).all()


def _memberships(s: "Session", area_id: int, user_id: int) -> list[AreaMember]:
    return (
        s.query(AreaMember)
        .filter(AreaMember.area_id == area_id)
        .filter(AreaMember.user_id == user_id)
        .all()
    )


def add_area_member(s: "Session", actor: Profile, area_id: int, user_id) -> AreaMember:
    area = get_area(s, actor, area_id)
    uid = parse_id(user_id, "user_id")
    if uid is None:
        raise validation_failed("User is required.")
    user = s.get(Profile, uid)
    if user is None:
        raise not_found("User not found.")
    if _memberships(s, area.id, user.id):
        raise validation_failed("This member is already in the area.")

    member = AreaMember(
        area_id=area.id,
        user_id=user.id,
        is_leader=False,
        added_at=datetime.utcnow(),
        added_by=actor.id,
    )
    s.add(member)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="area.member_add",
        entity_type="Area",
        entity_id=str(area.id),
        metadata={"user_id": user.id, "email": user.email},
    )
    cache.invalidate(cache.AREAS)
    return member


def remove_area_member(s: "Session", actor: Profile, area_id: int, user_id: int) -> int:
    """Removes every roster row for the user, legacy duplicates included."""
    area = get_area(s, actor, area_id)
    rows = _memberships(s, area.id, user_id)
    if not rows:
        raise not_found("Member not found in this area.")
    for row in rows:
        s.delete(row)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="area.member_remove",
        entity_type="Area",
        entity_id=str(area.id),
        metadata={"user_id": user_id, "rows": len(rows)},
    )
    cache.invalidate(cache.AREAS)
    return len(rows)


def toggle_area_leader(s: "Session", actor: Profile, area_id: int, user_id: int, is_leader) -> list[AreaMember]:
    area = get_area(s, actor, area_id)
    flag = parse_bool(is_leader)
    if flag is None:
        raise validation_failed("is_leader is required.")
    rows = _memberships(s, area.id, user_id)
    if not rows:
        raise not_found("Member not found in this area.")
    for row in rows:
        row.is_leader = flag
    s.flush()
    record_event(
        s,
        actor=actor,
        action="area.leader_set" if flag else "area.leader_unset",
        entity_type="Area",
        entity_id=str(area.id),
        metadata={"user_id": user_id},
    )
    cache.invalidate(cache.AREAS)
    return rows


def available_users(s: "Session", actor: Profile, area_id: int) -> list[Profile]:
    """Active profiles of the area's location who are not on the roster yet."""
    area = get_area(s, actor, area_id)
    member_ids = select(AreaMember.user_id).where(AreaMember.area_id == area.id)
    return (
        s.query(Profile)
        .filter(Profile.is_active.is_(True))
        .filter(Profile.location_id == area.location_id)
        .filter(~Profile.id.in_(member_ids))
        .order_by(Profile.full_name.asc())
        .all()
    )
