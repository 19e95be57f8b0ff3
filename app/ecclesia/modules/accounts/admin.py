from __future__ import annotations

from datetime import date

from flask import Blueprint, Response, g, request

from app.ecclesia.cache import USERS, etag_for
from app.ecclesia.db import db_session
from app.ecclesia.errors import validation_failed
from app.ecclesia.models import Profile
from app.ecclesia.modules.accounts.service import (
    audit_events,
    confirm_user_email,
    create_user_as_admin,
    delete_user,
    get_user_roles,
    list_users,
    update_user_profile,
    update_user_roles,
)
from app.ecclesia.rbac import Gate, require_gate
from app.ecclesia.responses import json_action, not_modified, ok
from app.ecclesia.serializers import audit_event_json, profile_json
from app.ecclesia.utils import request_payload

bp = Blueprint("accounts", __name__)


def _actor() -> Profile | None:
    return getattr(g, "current_user", None)


def _parse_date(s: str) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        raise validation_failed(f"Invalid date '{s}'; expected YYYY-MM-DD.") from None


@bp.get("/users")
@json_action
@require_gate(Gate.USERS)
def users_list():
    actor = _actor()
    s = db_session()
    data = [profile_json(p) for p in list_users(s, actor)]
    etag = etag_for(USERS, data, actor.id)
    if not_modified(etag):
        return Response(status=304)
    return ok(data, etag=etag)


@bp.post("/users")
@json_action
def users_create():
    s = db_session()
    profile = create_user_as_admin(s, _actor(), request_payload())
    s.commit()
    return ok(
        profile_json(profile),
        201,
        message="User created. They must confirm their email before signing in, or you can verify it manually.",
    )


@bp.get("/users/<int:user_id>/roles")
@json_action
def users_roles_get(user_id: int):
    s = db_session()
    return ok(get_user_roles(s, _actor(), user_id))


@bp.put("/users/<int:user_id>/roles")
@json_action
def users_roles_update(user_id: int):
    s = db_session()
    roles = request_payload().get("roles")
    if roles is None:
        roles = request.form.getlist("roles")
    if isinstance(roles, str):
        roles = [r for r in roles.split(",") if r.strip()]
    diff = update_user_roles(s, _actor(), user_id, roles)
    s.commit()
    profile = s.get(Profile, user_id)
    return ok(
        {
            "user": profile_json(profile),
            "added": sorted(r.value for r in diff.additions),
            "removed": sorted(r.value for r in diff.removals),
        }
    )


@bp.patch("/users/<int:user_id>")
@json_action
def users_update(user_id: int):
    s = db_session()
    profile = update_user_profile(s, _actor(), user_id, request_payload())
    s.commit()
    return ok(profile_json(profile))


@bp.post("/users/<int:user_id>/confirm-email")
@json_action
def users_confirm_email(user_id: int):
    s = db_session()
    profile = confirm_user_email(s, _actor(), user_id)
    s.commit()
    return ok(profile_json(profile), message="Email verified manually. The user can now sign in.")


@bp.delete("/users/<int:user_id>")
@json_action
def users_delete(user_id: int):
    s = db_session()
    delete_user(s, _actor(), user_id)
    s.commit()
    return ok(message="User deleted.")


@bp.get("/audit")
@json_action
def audit_list():
    s = db_session()
    events = audit_events(
        s,
        _actor(),
        action=(request.args.get("action") or "").strip(),
        actor_email=(request.args.get("actor_email") or "").strip(),
        date_from=_parse_date(request.args.get("date_from") or ""),
        date_to=_parse_date(request.args.get("date_to") or ""),
    )
    return ok([audit_event_json(e) for e in events])
