from __future__ import annotations

import uuid

from flask import Blueprint, current_app, g, request, session
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash

from app.ecclesia import cache
from app.ecclesia.audit import record_event
from app.ecclesia.db import db_session
from app.ecclesia.errors import ActionError, ErrorKind, unauthenticated, validation_failed
from app.ecclesia.models import Profile
from app.ecclesia.modules.accounts.service import change_password, create_profile, find_by_email, full_name_from
from app.ecclesia.rbac import require_login
from app.ecclesia.responses import json_action, ok
from app.ecclesia.security import ensure_csrf_token, rotate_csrf_token
from app.ecclesia.serializers import profile_json
from app.ecclesia.utils import payload_text, request_payload

bp = Blueprint("auth", __name__)

_EMAIL_SALT = "ecclesia.email-verify"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=_EMAIL_SALT)


def make_email_token(profile: Profile) -> str:
    return _serializer().dumps({"uid": profile.id, "email": profile.email})


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(Profile, int(user_id))
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        g.current_user = None
        return
    if not user or not user.is_active:
        session.pop("user_id", None)
        g.current_user = None
        return
    g.current_user = user


def current_actor() -> Profile:
    user = getattr(g, "current_user", None)
    if not user:
        raise unauthenticated()
    return user


@bp.get("/csrf")
def csrf():
    return ok({"csrf_token": ensure_csrf_token()})


@bp.post("/signup")
@json_action
def signup():
    s = db_session()
    payload = request_payload()
    require_verification = bool(current_app.config.get("REQUIRE_EMAIL_VERIFICATION", True))

    profile = create_profile(
        s,
        email=payload_text(payload, "email"),
        password=payload_text(payload, "password", strip=False),
        full_name=full_name_from(payload),
        organization_id=payload.get("organization_id"),
        location_id=payload.get("location_id"),
        email_verified=not require_verification,
    )
    record_event(s, actor=profile, action="auth.signup", entity_type="Profile", entity_id=str(profile.id))
    s.commit()
    cache.invalidate(cache.USERS)

    data = {"user": profile_json(profile)}
    message = "Account created."
    if require_verification:
        message = "Account created. Please verify your email before signing in."
        token = make_email_token(profile)
        # No mailer is wired in; outside production the token is handed back for manual verification.
        if current_app.config.get("ENV") not in ("prod", "production"):
            data["verification_token"] = token
        current_app.logger.info("Verification token issued for profile id=%s", profile.id)
    return ok(data, 201, message=message)


@bp.post("/verify")
@json_action
def verify_email():
    s = db_session()
    token = payload_text(request_payload(), "token") or (request.args.get("token") or "").strip()
    try:
        data = _serializer().loads(token, max_age=int(current_app.config.get("EMAIL_TOKEN_MAX_AGE", 259200)))
    except SignatureExpired:
        raise validation_failed("Verification link expired. Ask an administrator to confirm your email.")
    except BadSignature:
        raise validation_failed("Invalid verification link.")

    profile = s.get(Profile, int(data.get("uid") or 0))
    if not profile or profile.email != data.get("email"):
        raise validation_failed("Invalid verification link.")
    if not profile.email_verified:
        profile.email_verified = True
        record_event(s, actor=profile, action="auth.email_verified", entity_type="Profile", entity_id=str(profile.id))
        s.commit()
        cache.invalidate(cache.USERS)
    return ok({"user": profile_json(profile)}, message="Email verified.")


@bp.post("/login")
@json_action
def login():
    payload = request_payload()
    email = payload_text(payload, "email").lower()
    password = payload_text(payload, "password", strip=False)

    s = db_session()
    user = find_by_email(s, email)
    if not user or not check_password_hash(user.password_hash, password):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="Profile",
            entity_id=email,
            reason="Invalid credentials",
            metadata={"email": email},
        )
        s.commit()
        raise ActionError(ErrorKind.UNAUTHORIZED, "Incorrect email or password.", status=401)
    if not user.is_active:
        raise ActionError(ErrorKind.UNAUTHORIZED, "This account is disabled.", status=401)
    if current_app.config.get("REQUIRE_EMAIL_VERIFICATION", True) and not user.email_verified:
        raise ActionError(
            ErrorKind.UNAUTHORIZED,
            "Please confirm your email before signing in. Check your inbox.",
            status=401,
        )

    session["user_id"] = user.id
    record_event(s, actor=user, action="auth.login", entity_type="Profile", entity_id=str(user.id))
    s.commit()
    return ok({"user": profile_json(user), "csrf_token": rotate_csrf_token()})


@bp.post("/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="Profile", entity_id=str(user.id))
        s.commit()
    session.pop("user_id", None)
    return ok()


@bp.get("/me")
@json_action
@require_login
def me():
    return ok({"user": profile_json(current_actor())})


@bp.post("/password")
@json_action
@require_login
def password_change():
    s = db_session()
    payload = request_payload()
    change_password(
        s,
        current_actor(),
        payload_text(payload, "new_password", strip=False),
        payload_text(payload, "confirm_password", strip=False),
    )
    s.commit()
    return ok(message="Password updated.")
