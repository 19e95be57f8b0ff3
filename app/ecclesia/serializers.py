"""JSON shapes returned by the routes."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from app.ecclesia.models import AuditEvent, Profile
from app.ecclesia.modules.areas.models import Area, AreaMember
from app.ecclesia.modules.organizations.models import Location, Organization


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def organization_ref(org: Organization | None) -> dict[str, Any] | None:
    if org is None:
        return None
    return {"id": org.id, "name": org.name, "slug": org.slug}


def organization_json(org: Organization, *, with_locations: bool = False) -> dict[str, Any]:
    data = {
        **organization_ref(org),
        "description": org.description,
        "address": org.address,
        "phone": org.phone,
        "email": org.email,
        "website": org.website,
        "location_url": org.location_url,
        "created_at": _ts(org.created_at),
        "updated_at": _ts(org.updated_at),
    }
    if with_locations:
        data["locations"] = [location_json(loc, with_pastor=True) for loc in org.locations]
    return data


def location_ref(loc: Location | None) -> dict[str, Any] | None:
    if loc is None:
        return None
    return {"id": loc.id, "name": loc.name, "city": loc.city}


def location_json(loc: Location, *, with_pastor: bool = False) -> dict[str, Any]:
    data = {
        **location_ref(loc),
        "organization_id": loc.organization_id,
        "address": loc.address,
        "country": loc.country,
        "phone": loc.phone,
        "is_main_campus": loc.is_main_campus,
        "pastor_id": loc.pastor_id,
    }
    if with_pastor:
        data["pastor"] = profile_ref(loc.pastor)
    return data


def profile_ref(p: Profile | None) -> dict[str, Any] | None:
    if p is None:
        return None
    return {"id": p.id, "full_name": p.full_name, "email": p.email, "role": p.role}


def profile_json(p: Profile) -> dict[str, Any]:
    return {
        **profile_ref(p),
        "roles": p.role_names or [p.role],
        "organization_id": p.organization_id,
        "location_id": p.location_id,
        "organization": organization_ref(p.organization),
        "location": location_ref(p.location),
        "is_active": p.is_active,
        "email_verified": p.email_verified,
        "created_at": _ts(p.created_at),
    }


def area_json(area: Area, member_count: int | None = None) -> dict[str, Any]:
    data = {
        "id": area.id,
        "name": area.name,
        "description": area.description,
        "location_id": area.location_id,
        "created_by": area.created_by,
        "created_at": _ts(area.created_at),
        "updated_at": _ts(area.updated_at),
        "location": location_ref(area.location),
        "creator": {"id": area.creator.id, "full_name": area.creator.full_name} if area.creator else None,
    }
    if member_count is not None:
        data["member_count"] = member_count
    return data


def area_member_json(m: AreaMember) -> dict[str, Any]:
    return {
        "id": m.id,
        "area_id": m.area_id,
        "user_id": m.user_id,
        "is_leader": m.is_leader,
        "added_at": _ts(m.added_at),
        "user": profile_ref(m.user),
    }


def audit_event_json(ev: AuditEvent) -> dict[str, Any]:
    return {
        "id": ev.id,
        "created_at": _ts(ev.created_at),
        "request_id": ev.request_id,
        "actor_user_id": ev.actor_user_id,
        "actor_user_email": ev.actor_user_email,
        "action": ev.action,
        "entity_type": ev.entity_type,
        "entity_id": ev.entity_id,
        "reason": ev.reason,
        "metadata_json": ev.metadata_json,
    }
