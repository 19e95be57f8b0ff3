"""
View versioning.

List endpoints tag their payload with a digest of the serialized data, so any
worker (or a restarted one) derives the same ETag from the same rows and a
changed row always changes the tag.

Mutations call `invalidate()` with the scopes whose listings went stale. Inside
an open request transaction the scopes are held on the session and published
only once it commits; a rollback drops them. Listeners are notified
fire-and-forget.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from collections.abc import Callable
from typing import Any

from flask import Flask, current_app, g, has_app_context
from sqlalchemy import event
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

DASHBOARD = "dashboard"
AREAS = "areas"
ORGANIZATIONS = "organizations"
USERS = "users"

_PENDING = "stale_views"

Listener = Callable[[str, int], None]


def etag_for(scope: str, data: Any, *parts: object) -> str:
    """Stable tag for a listing: scope name plus a digest of the data and any viewer-specific parts."""
    raw = json.dumps([data, [p for p in parts if p is not None]], sort_keys=True, default=str)
    return f"{scope}-{hashlib.sha256(raw.encode('utf-8')).hexdigest()[:32]}"


class ViewCache:
    def __init__(self) -> None:
        self._versions: dict[str, int] = {}
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def version(self, scope: str) -> int:
        return self._versions.get(scope, 0)

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def invalidate(self, *scopes: str) -> None:
        for scope in scopes:
            with self._lock:
                self._versions[scope] = self._versions.get(scope, 0) + 1
                version = self._versions[scope]
            logger.debug("views invalidated: scope=%s version=%s", scope, version)
            for listener in list(self._listeners):
                try:
                    listener(scope, version)
                except Exception:
                    logger.exception("view invalidation listener failed (scope=%s)", scope)


def init_view_cache(app: Flask) -> ViewCache:
    """Register the cache and publish held scopes when a session from the app's sessionmaker commits."""
    cache = ViewCache()
    app.extensions["view_cache"] = cache
    sm = app.extensions["sqlalchemy_sessionmaker"]

    @event.listens_for(sm, "after_commit")
    def _publish_stale_views(session: Session) -> None:  # type: ignore[no-redef]
        scopes = session.info.pop(_PENDING, None)
        if scopes:
            cache.invalidate(*scopes)

    @event.listens_for(sm, "after_rollback")
    def _drop_stale_views(session: Session) -> None:  # type: ignore[no-redef]
        session.info.pop(_PENDING, None)

    return cache


def view_cache() -> ViewCache:
    return current_app.extensions["view_cache"]


def pending_scopes(s: Session) -> list[str]:
    return list(s.info.get(_PENDING, ()))


def invalidate(*scopes: str) -> None:
    s: Session | None = getattr(g, "db_session", None) if has_app_context() else None
    if s is not None and s.in_transaction():
        pending: list[str] = s.info.setdefault(_PENDING, [])
        pending.extend(scope for scope in scopes if scope not in pending)
        return
    view_cache().invalidate(*scopes)
