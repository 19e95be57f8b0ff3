from flask import Blueprint, g

from app.ecclesia.rbac import can_manage_areas, can_manage_organizations, can_manage_users, require_login
from app.ecclesia.responses import json_action, ok
from app.ecclesia.serializers import profile_json

bp = Blueprint("routes", __name__)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for the platform load balancer. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/dashboard")
@json_action
@require_login
def dashboard():
    user = g.current_user
    return ok(
        {
            "user": profile_json(user),
            "can_manage_areas": can_manage_areas(user.role),
            "can_manage_users": can_manage_users(user.role),
            "can_manage_organizations": can_manage_organizations(user.role),
        }
    )
