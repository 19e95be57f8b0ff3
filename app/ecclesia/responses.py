from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from app.ecclesia.errors import ActionError, ErrorKind


def ok(data: Any = None, status: int = 200, *, etag: str | None = None, **extra: Any):
    body: dict[str, Any] = {"success": True, "data": data}
    body.update(extra)
    resp = jsonify(body)
    resp.status_code = status
    if etag:
        resp.set_etag(etag)
    return resp


def fail(err: ActionError):
    resp = jsonify({"success": False, "error": err.to_dict()})
    resp.status_code = err.status
    return resp


def not_modified(etag: str | None) -> bool:
    """True when the client's cached copy (If-None-Match) is still current."""
    return bool(etag) and etag in request.if_none_match


def json_action(fn: Callable[..., Any]) -> Callable[..., Any]:
    """
    Route wrapper: every failure leaves as an envelope, never as a raised exception.
    The request session is rolled back before replying.
    """

    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        try:
            return fn(*args, **kwargs)
        except ActionError as e:
            _rollback()
            return fail(e)
        except SQLAlchemyError as e:
            _rollback()
            current_app.logger.exception(
                "Data store error in %s (request_id=%s)", request.endpoint, getattr(g, "request_id", None)
            )
            return fail(ActionError(ErrorKind.DATA_STORE_ERROR, _store_message(e)))

    return wrapped


def _rollback() -> None:
    s = getattr(g, "db_session", None)
    if s is not None:
        s.rollback()


def _store_message(e: SQLAlchemyError) -> str:
    orig = getattr(e, "orig", None)
    return str(orig or e).splitlines()[0][:300]
