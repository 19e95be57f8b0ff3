from __future__ import annotations

import json
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.ecclesia.models import AuditEvent, Profile


def client_ip() -> str | None:
    """First hop of X-Forwarded-For when behind the platform proxy, else the socket peer."""
    if not has_request_context():
        return None
    forwarded = (request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    ip = forwarded or request.remote_addr
    return ip[:64] if ip else None


def track_change(changes: dict[str, Any], obj: Any, field: str, new_value: Any) -> bool:
    """Set `obj.field` and note `{"old", "new"}` under `changes[field]` when the value differs."""
    old_value = getattr(obj, field)
    if old_value == new_value:
        return False
    changes[field] = {"old": old_value, "new": new_value}
    setattr(obj, field, new_value)
    return True


def record_event(
    s: Session,
    *,
    actor: Profile | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditEvent:
    """
    Append an audit row to the caller's transaction; it commits or rolls back with the change it describes.
    Usable from scripts too (no request id or client address then).
    """
    rid = request_id or (getattr(g, "request_id", None) if has_request_context() else None)
    ev = AuditEvent(
        request_id=rid,
        actor_user_id=actor.id if actor else None,
        actor_user_email=actor.email if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
        client_ip=client_ip(),
    )
    s.add(ev)
    return ev
