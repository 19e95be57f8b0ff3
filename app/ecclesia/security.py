"""Session CSRF token: issued per session, required on every mutating request except the sign-in flow."""

import secrets

from flask import Request, request, session

from app.ecclesia.errors import ActionError, validation_failed

# No session token exists yet for these, or the session is being dropped.
CSRF_EXEMPT = frozenset({"auth.csrf", "auth.signup", "auth.login", "auth.logout", "auth.verify_email"})
MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def rotate_csrf_token() -> str:
    """New token on privilege change (sign-in), so a token seen before login is useless after it."""
    session.pop("csrf_token", None)
    return ensure_csrf_token()


def submitted_token(req: Request) -> str | None:
    token = req.headers.get("X-CSRF-Token") or req.form.get("csrf_token")
    if not token and req.is_json:
        body = req.get_json(silent=True)
        if isinstance(body, dict):
            token = body.get("csrf_token")
    return token


def validate_csrf(req: Request) -> bool:
    token = submitted_token(req)
    expected = session.get("csrf_token")
    return bool(token and expected and secrets.compare_digest(str(token), str(expected)))


def csrf_failure() -> ActionError | None:
    """The error to answer the current request with, or None when it may proceed."""
    ensure_csrf_token()
    if request.method not in MUTATING_METHODS or request.endpoint in CSRF_EXEMPT:
        return None
    if validate_csrf(request):
        return None
    return validation_failed("CSRF token missing or invalid.")
