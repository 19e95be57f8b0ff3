from __future__ import annotations

from flask import Blueprint, Response, g, request

from app.ecclesia.cache import AREAS, etag_for
from app.ecclesia.db import db_session
from app.ecclesia.models import Profile
from app.ecclesia.modules.areas.service import (
    add_area_member,
    area_members,
    available_users,
    create_area,
    delete_area,
    get_area,
    list_areas,
    member_counts,
    remove_area_member,
    toggle_area_leader,
    update_area,
)
from app.ecclesia.rbac import Gate, require_gate
from app.ecclesia.responses import json_action, not_modified, ok
from app.ecclesia.serializers import area_json, area_member_json, profile_ref
from app.ecclesia.utils import request_payload

bp = Blueprint("areas", __name__)


def _actor() -> Profile | None:
    return getattr(g, "current_user", None)


# ---------- List ----------
@bp.get("/areas")
@json_action
@require_gate(Gate.AREAS)
def areas_list():
    actor = _actor()
    s = db_session()
    data = [area_json(a, count) for a, count in list_areas(s, actor)]
    # Listings are scoped by role and location, so the tag is per viewer.
    etag = etag_for(AREAS, data, actor.id, actor.role, actor.location_id)
    if not_modified(etag):
        return Response(status=304)
    return ok(data, etag=etag)


# ---------- New ----------
@bp.post("/areas")
@json_action
def areas_create():
    s = db_session()
    area = create_area(s, _actor(), request_payload())
    s.commit()
    return ok(area_json(area, 0), 201)


# ---------- Detail / Edit / Delete ----------
@bp.get("/areas/<int:area_id>")
@json_action
def area_detail(area_id: int):
    s = db_session()
    area = get_area(s, _actor(), area_id)
    return ok(area_json(area, member_counts(s, [area.id]).get(area.id, 0)))


@bp.patch("/areas/<int:area_id>")
@json_action
def area_update(area_id: int):
    s = db_session()
    area = update_area(s, _actor(), area_id, request_payload())
    s.commit()
    return ok(area_json(area))


@bp.delete("/areas/<int:area_id>")
@json_action
def area_delete(area_id: int):
    s = db_session()
    delete_area(s, _actor(), area_id)
    s.commit()
    return ok()


# ---------- Members ----------
@bp.get("/areas/<int:area_id>/members")
@json_action
def area_members_list(area_id: int):
    s = db_session()
    members = area_members(s, _actor(), area_id, request.args.get("q"))
    return ok([area_member_json(m) for m in members])


@bp.post("/areas/<int:area_id>/members")
@json_action
def area_member_add(area_id: int):
    s = db_session()
    member = add_area_member(s, _actor(), area_id, request_payload().get("user_id"))
    s.commit()
    return ok(area_member_json(member), 201)


@bp.delete("/areas/<int:area_id>/members/<int:user_id>")
@json_action
def area_member_remove(area_id: int, user_id: int):
    s = db_session()
    removed = remove_area_member(s, _actor(), area_id, user_id)
    s.commit()
    return ok({"removed": removed})


@bp.put("/areas/<int:area_id>/members/<int:user_id>/leader")
@json_action
def area_member_leader(area_id: int, user_id: int):
    s = db_session()
    rows = toggle_area_leader(s, _actor(), area_id, user_id, request_payload().get("is_leader"))
    s.commit()
    return ok([area_member_json(m) for m in rows])


@bp.get("/areas/<int:area_id>/available-users")
@json_action
def area_available_users(area_id: int):
    s = db_session()
    return ok([profile_ref(p) for p in available_users(s, _actor(), area_id)])
