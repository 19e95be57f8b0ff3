from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import or_, select

from app.ecclesia import cache
from app.ecclesia.audit import record_event, track_change
from app.ecclesia.errors import not_found, validation_failed
from app.ecclesia.models import Profile
from app.ecclesia.modules.areas.models import Area
from app.ecclesia.modules.organizations.models import Location, Organization
from app.ecclesia.rbac import Gate, Role, ensure_can
from app.ecclesia.utils import FALLBACK_SLUG, clean_str, parse_bool, parse_id, payload_text, slugify, timestamp_suffix

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

ORG_CONTACT_FIELDS = ("description", "address", "phone", "email", "website", "location_url")
LOCATION_TEXT_FIELDS = ("address", "city", "country", "phone")

SEARCH_LIMIT = 10
LIST_LIMIT = 50


def slug_taken(s: "Session", slug: str) -> bool:
    return s.execute(select(Organization.id).where(Organization.slug == slug)).first() is not None


def unique_slug(s: "Session", name: str) -> str:
    """Slug for `name`; on collision append a base-36 millisecond timestamp until free."""
    base = slugify(name) or FALLBACK_SLUG
    candidate = base
    bump = 0
    while slug_taken(s, candidate):
        candidate = f"{base}-{timestamp_suffix(bump)}"
        bump += 1
    return candidate


def validate_organization_payload(payload: dict) -> list[str]:
    errors = []
    name = payload.get("name")
    if name is not None and not isinstance(name, str):
        errors.append("Name must be text.")
    elif not (name or "").strip():
        errors.append("Name is required.")
    return errors


def get_organization(s: "Session", org_id: int) -> Organization:
    org = s.get(Organization, org_id)
    if org is None:
        raise not_found("Organization not found.")
    return org


def get_location(s: "Session", location_id: int) -> Location:
    loc = s.get(Location, location_id)
    if loc is None:
        raise not_found("Location not found.")
    return loc


# ---------- Public lookups (signup form) ----------
def search_organizations(s: "Session", query: str) -> list[Organization]:
    like = f"%{(query or '').strip()}%"
    return (
        s.query(Organization)
        .filter(Organization.name.ilike(like))
        .order_by(Organization.name.asc())
        .limit(SEARCH_LIMIT)
        .all()
    )


def all_organizations(s: "Session") -> list[Organization]:
    return s.query(Organization).order_by(Organization.name.asc()).limit(LIST_LIMIT).all()


def organization_locations(s: "Session", org_id: int) -> list[Location]:
    return (
        s.query(Location)
        .filter(Location.organization_id == org_id)
        .order_by(Location.is_main_campus.desc(), Location.name.asc())
        .all()
    )


# ---------- Directory (anyone who can manage users) ----------
def organizations_with_locations(s: "Session", actor: Profile) -> list[Organization]:
    ensure_can(actor, Gate.USERS)
    return s.query(Organization).order_by(Organization.name.asc()).all()


def all_locations(s: "Session", actor: Profile) -> list[Location]:
    ensure_can(actor, Gate.USERS)
    return s.query(Location).order_by(Location.name.asc()).all()


def pastors(s: "Session", actor: Profile) -> list[Profile]:
    ensure_can(actor, Gate.USERS)
    return s.query(Profile).filter(Profile.role == Role.PASTOR.value).order_by(Profile.full_name.asc()).all()


# ---------- Organizations (super admin) ----------
def create_organization(s: "Session", actor: Profile, payload: dict) -> Organization:
    ensure_can(actor, Gate.ORGANIZATIONS)
    errors = validate_organization_payload(payload)
    if errors:
        raise validation_failed(" ".join(errors))

    name = payload_text(payload, "name")
    now = datetime.utcnow()
    org = Organization(
        name=name,
        slug=unique_slug(s, name),
        created_at=now,
        updated_at=now,
        **{field: clean_str(payload.get(field)) for field in ORG_CONTACT_FIELDS},
    )
    s.add(org)
    s.flush()

    record_event(
        s,
        actor=actor,
        action="organization.create",
        entity_type="Organization",
        entity_id=str(org.id),
        metadata={"name": org.name, "slug": org.slug},
    )
    logger.info("organization created id=%s slug=%s", org.id, org.slug)
    cache.invalidate(cache.ORGANIZATIONS, cache.DASHBOARD)
    return org


def update_organization(s: "Session", actor: Profile, org_id: int, payload: dict) -> Organization:
    """Partial update: keys absent from the payload are left alone. The slug never changes."""
    ensure_can(actor, Gate.ORGANIZATIONS)
    org = get_organization(s, org_id)
    changes = {}

    new_name = payload_text(payload, "name")
    if new_name:
        track_change(changes, org, "name", new_name)

    for field in ORG_CONTACT_FIELDS:
        if field not in payload:
            continue
        track_change(changes, org, field, clean_str(payload.get(field)))

    org.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="organization.edit",
        entity_type="Organization",
        entity_id=str(org.id),
        metadata={"name": org.name, "changes": changes},
    )
    cache.invalidate(cache.ORGANIZATIONS, cache.USERS, cache.DASHBOARD)
    return org


def _detach_profiles(s: "Session", location_ids: list[int], org_id: int | None = None) -> int:
    conditions = []
    values = {Profile.location_id: None}
    if location_ids:
        conditions.append(Profile.location_id.in_(location_ids))
    if org_id is not None:
        conditions.append(Profile.organization_id == org_id)
        values[Profile.organization_id] = None
    if not conditions:
        return 0
    return s.query(Profile).filter(or_(*conditions)).update(values, synchronize_session="fetch")


def delete_organization(s: "Session", actor: Profile, org_id: int) -> dict:
    """
    Deletes the organization together with its locations, their areas and area rosters.
    Profiles that belonged to it stay, detached from organization and location.
    """
    ensure_can(actor, Gate.ORGANIZATIONS)
    org = get_organization(s, org_id)
    location_ids = [loc.id for loc in org.locations]
    area_count = s.query(Area).filter(Area.location_id.in_(location_ids)).count() if location_ids else 0

    detached = _detach_profiles(s, location_ids, org_id=org.id)
    summary = {
        "name": org.name,
        "locations_deleted": len(location_ids),
        "areas_deleted": area_count,
        "profiles_detached": detached,
    }
    s.delete(org)
    s.flush()

    record_event(
        s,
        actor=actor,
        action="organization.delete",
        entity_type="Organization",
        entity_id=str(org_id),
        metadata=summary,
    )
    logger.info("organization deleted id=%s %s", org_id, summary)
    cache.invalidate(cache.ORGANIZATIONS, cache.AREAS, cache.USERS, cache.DASHBOARD)
    return summary


# ---------- Locations (super admin) ----------
def _resolve_pastor(s: "Session", raw) -> int | None:
    pastor_id = parse_id(raw, "pastor_id")
    if pastor_id is None:
        return None
    if s.get(Profile, pastor_id) is None:
        raise validation_failed("Pastor not found.")
    return pastor_id


def create_location(s: "Session", actor: Profile, payload: dict) -> Location:
    ensure_can(actor, Gate.ORGANIZATIONS)
    org_id = parse_id(payload.get("organization_id"), "organization_id")
    name = payload_text(payload, "name")
    if org_id is None:
        raise validation_failed("Organization is required.")
    if not name:
        raise validation_failed("Name is required.")
    org = get_organization(s, org_id)

    now = datetime.utcnow()
    loc = Location(
        organization_id=org.id,
        name=name,
        is_main_campus=bool(parse_bool(payload.get("is_main_campus"))),
        pastor_id=_resolve_pastor(s, payload.get("pastor_id")),
        created_at=now,
        updated_at=now,
        **{field: clean_str(payload.get(field)) for field in LOCATION_TEXT_FIELDS},
    )
    s.add(loc)
    s.flush()

    record_event(
        s,
        actor=actor,
        action="location.create",
        entity_type="Location",
        entity_id=str(loc.id),
        metadata={"organization_id": org.id, "name": loc.name},
    )
    cache.invalidate(cache.ORGANIZATIONS, cache.AREAS, cache.DASHBOARD)
    return loc


def update_location(s: "Session", actor: Profile, location_id: int, payload: dict) -> Location:
    ensure_can(actor, Gate.ORGANIZATIONS)
    loc = get_location(s, location_id)
    changes = {}

    new_name = payload_text(payload, "name")
    if new_name:
        track_change(changes, loc, "name", new_name)

    for field in LOCATION_TEXT_FIELDS:
        if field not in payload:
            continue
        track_change(changes, loc, field, clean_str(payload.get(field)))

    if "pastor_id" in payload:
        track_change(changes, loc, "pastor_id", _resolve_pastor(s, payload.get("pastor_id")))

    if "is_main_campus" in payload:
        track_change(changes, loc, "is_main_campus", bool(parse_bool(payload.get("is_main_campus"))))

    loc.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="location.edit",
        entity_type="Location",
        entity_id=str(loc.id),
        metadata={"name": loc.name, "changes": changes},
    )
    cache.invalidate(cache.ORGANIZATIONS, cache.AREAS, cache.USERS, cache.DASHBOARD)
    return loc


def delete_location(s: "Session", actor: Profile, location_id: int) -> dict:
    ensure_can(actor, Gate.ORGANIZATIONS)
    loc = get_location(s, location_id)
    area_count = s.query(Area).filter(Area.location_id == loc.id).count()
    detached = _detach_profiles(s, [loc.id])
    summary = {"name": loc.name, "areas_deleted": area_count, "profiles_detached": detached}

    s.delete(loc)
    s.flush()

    record_event(
        s,
        actor=actor,
        action="location.delete",
        entity_type="Location",
        entity_id=str(location_id),
        metadata=summary,
    )
    cache.invalidate(cache.ORGANIZATIONS, cache.AREAS, cache.USERS, cache.DASHBOARD)
    return summary
