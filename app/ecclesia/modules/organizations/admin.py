from __future__ import annotations

from flask import Blueprint, Response, g, request

from app.ecclesia.cache import ORGANIZATIONS, etag_for
from app.ecclesia.db import db_session
from app.ecclesia.models import Profile
from app.ecclesia.modules.organizations.service import (
    all_locations,
    all_organizations,
    create_location,
    create_organization,
    delete_location,
    delete_organization,
    get_organization,
    organization_locations,
    organizations_with_locations,
    pastors,
    search_organizations,
    update_location,
    update_organization,
)
from app.ecclesia.rbac import Gate, require_gate
from app.ecclesia.responses import json_action, not_modified, ok
from app.ecclesia.serializers import location_json, organization_json, organization_ref, profile_ref
from app.ecclesia.utils import request_payload

bp = Blueprint("organizations", __name__)


def _actor() -> Profile | None:
    return getattr(g, "current_user", None)


# ---------- Public lookups (signup form) ----------
@bp.get("/organizations/search")
@json_action
def organizations_search():
    s = db_session()
    q = (request.args.get("q") or "").strip()
    return ok([organization_ref(o) for o in search_organizations(s, q)])


@bp.get("/organizations")
@json_action
def organizations_public_list():
    s = db_session()
    return ok([organization_ref(o) for o in all_organizations(s)])


@bp.get("/organizations/<int:org_id>/locations")
@json_action
def organization_locations_list(org_id: int):
    s = db_session()
    get_organization(s, org_id)
    return ok([location_json(loc) for loc in organization_locations(s, org_id)])


# ---------- Organizations ----------
@bp.get("/admin/organizations")
@json_action
@require_gate(Gate.USERS)
def organizations_list():
    s = db_session()
    data = [organization_json(o, with_locations=True) for o in organizations_with_locations(s, _actor())]
    etag = etag_for(ORGANIZATIONS, data)
    if not_modified(etag):
        return Response(status=304)
    return ok(data, etag=etag)


@bp.post("/admin/organizations")
@json_action
def organizations_create():
    s = db_session()
    org = create_organization(s, _actor(), request_payload())
    s.commit()
    return ok(organization_json(org), 201)


@bp.patch("/admin/organizations/<int:org_id>")
@json_action
def organizations_update(org_id: int):
    s = db_session()
    org = update_organization(s, _actor(), org_id, request_payload())
    s.commit()
    return ok(organization_json(org))


@bp.delete("/admin/organizations/<int:org_id>")
@json_action
def organizations_delete(org_id: int):
    s = db_session()
    summary = delete_organization(s, _actor(), org_id)
    s.commit()
    return ok(summary)


# ---------- Locations ----------
@bp.get("/admin/locations")
@json_action
@require_gate(Gate.USERS)
def locations_list():
    s = db_session()
    return ok([location_json(loc) for loc in all_locations(s, _actor())])


@bp.post("/admin/locations")
@json_action
def locations_create():
    s = db_session()
    loc = create_location(s, _actor(), request_payload())
    s.commit()
    return ok(location_json(loc, with_pastor=True), 201)


@bp.patch("/admin/locations/<int:location_id>")
@json_action
def locations_update(location_id: int):
    s = db_session()
    loc = update_location(s, _actor(), location_id, request_payload())
    s.commit()
    return ok(location_json(loc, with_pastor=True))


@bp.delete("/admin/locations/<int:location_id>")
@json_action
def locations_delete(location_id: int):
    s = db_session()
    summary = delete_location(s, _actor(), location_id)
    s.commit()
    return ok(summary)


@bp.get("/admin/pastors")
@json_action
@require_gate(Gate.USERS)
def pastors_list():
    s = db_session()
    return ok([profile_ref(p) for p in pastors(s, _actor())])
