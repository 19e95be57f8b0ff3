from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, time, timedelta
from typing import TYPE_CHECKING

from werkzeug.security import generate_password_hash

from app.ecclesia import cache
from app.ecclesia.audit import record_event, track_change
from app.ecclesia.errors import not_found, unauthorized, validation_failed
from app.ecclesia.models import AuditEvent, Profile, UserRole
from app.ecclesia.modules.areas.models import Area, AreaMember
from app.ecclesia.modules.organizations.models import Location, Organization
from app.ecclesia.rbac import (
    ASSIGNABLE_ON_CREATE,
    Gate,
    Role,
    RoleDiff,
    ensure_can,
    is_super_admin,
    parse_role,
    parse_roles,
    primary_role,
    reconcile_roles,
)
from app.ecclesia.utils import is_valid_email, parse_bool, parse_id, payload_text

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
AUDIT_LIMIT = 200


def get_profile(s: "Session", user_id: int) -> Profile:
    profile = s.get(Profile, user_id)
    if profile is None:
        raise not_found("User not found.")
    return profile


def find_by_email(s: "Session", email: str) -> Profile | None:
    return s.query(Profile).filter(Profile.email == (email or "").strip().lower()).one_or_none()


def password_errors(password: str, confirm: str | None = None) -> list[str]:
    errors = []
    if not password:
        errors.append("Password is required.")
    elif len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    elif confirm is not None and password != confirm:
        errors.append("Passwords do not match.")
    return errors


def resolve_membership(s: "Session", organization_id, location_id) -> tuple[int | None, int | None]:
    """
    Validate an (organization, location) pair. A location implies its organization;
    naming both requires the location to belong to that organization.
    """
    org_id = parse_id(organization_id, "organization_id")
    loc_id = parse_id(location_id, "location_id")
    if org_id is not None and s.get(Organization, org_id) is None:
        raise validation_failed("Organization not found.")
    if loc_id is not None:
        loc = s.get(Location, loc_id)
        if loc is None:
            raise validation_failed("Location not found.")
        if org_id is None:
            org_id = loc.organization_id
        elif loc.organization_id != org_id:
            raise validation_failed("Location does not belong to the selected organization.")
    return org_id, loc_id


def create_profile(
    s: "Session",
    *,
    email: str,
    password: str,
    full_name: str,
    role: Role = Role.MEMBER,
    organization_id=None,
    location_id=None,
    email_verified: bool = False,
) -> Profile:
    """Shared by self-signup and admin-created accounts. Caller records the audit event."""
    email = (email or "").strip().lower()
    errors = []
    if not email:
        errors.append("Email is required.")
    elif not is_valid_email(email):
        errors.append("Invalid email format.")
    elif find_by_email(s, email) is not None:
        errors.append("An account with this email already exists.")
    errors.extend(password_errors(password))
    if not full_name.strip():
        errors.append("Name is required.")
    if errors:
        raise validation_failed(" ".join(errors))

    org_id, loc_id = resolve_membership(s, organization_id, location_id)
    now = datetime.utcnow()
    profile = Profile(
        email=email,
        password_hash=generate_password_hash(password),
        full_name=full_name.strip(),
        role=role.value,
        organization_id=org_id,
        location_id=loc_id,
        is_active=True,
        email_verified=email_verified,
        created_at=now,
        updated_at=now,
    )
    profile.role_rows.append(UserRole(role=role.value))
    s.add(profile)
    s.flush()
    return profile


def full_name_from(payload: dict) -> str:
    first = payload_text(payload, "first_name")
    last = payload_text(payload, "last_name")
    return f"{first} {last}".strip() or payload_text(payload, "full_name")


# ---------- Listing ----------
def list_users(s: "Session", actor: Profile) -> list[Profile]:
    ensure_can(actor, Gate.USERS)
    return s.query(Profile).order_by(Profile.created_at.desc(), Profile.id.desc()).all()


def get_user_roles(s: "Session", actor: Profile, user_id: int) -> list[str]:
    ensure_can(actor, Gate.USERS)
    return get_profile(s, user_id).role_names


# ---------- Roles ----------
def apply_roles(s: "Session", profile: Profile, target: Iterable[Role]) -> RoleDiff:
    """Bring the profile's role rows to exactly `target` and refresh the cached primary role."""
    target = set(target)
    current = {r for r in (parse_role(row.role) for row in profile.role_rows) if r is not None}
    diff = reconcile_roles(current, target)

    for row in list(profile.role_rows):
        if parse_role(row.role) in diff.removals or parse_role(row.role) is None:
            profile.role_rows.remove(row)
    for role in sorted(diff.additions, key=lambda r: r.value):
        profile.role_rows.append(UserRole(role=role.value))

    profile.role = primary_role(target).value
    profile.updated_at = datetime.utcnow()
    s.flush()
    return diff


def update_user_roles(s: "Session", actor: Profile, user_id: int, roles: Iterable[str]) -> RoleDiff:
    ensure_can(actor, Gate.USERS)
    if not isinstance(roles, (list, tuple, set, frozenset)):
        raise validation_failed("roles must be a list of role names.")
    target, unknown = parse_roles(roles)
    if unknown:
        raise validation_failed(f"Unknown role(s): {', '.join(unknown)}")

    profile = get_profile(s, user_id)
    current = {r for r in (parse_role(row.role) for row in profile.role_rows) if r is not None}
    diff = reconcile_roles(current, target)
    if Role.SUPER_ADMIN in (diff.additions | diff.removals) and not is_super_admin(actor):
        raise unauthorized("Only super admins can grant or revoke the super admin role.")

    before = sorted(r.value for r in current)
    diff = apply_roles(s, profile, target)
    record_event(
        s,
        actor=actor,
        action="user.roles_update",
        entity_type="Profile",
        entity_id=str(profile.id),
        metadata={
            "before": before,
            "after": profile.role_names,
            "added": sorted(r.value for r in diff.additions),
            "removed": sorted(r.value for r in diff.removals),
            "primary_role": profile.role,
        },
    )
    cache.invalidate(cache.USERS, cache.AREAS, cache.ORGANIZATIONS, cache.DASHBOARD)
    return diff


# ---------- Profile edits ----------
def update_user_profile(s: "Session", actor: Profile, user_id: int, payload: dict) -> Profile:
    ensure_can(actor, Gate.USERS)
    profile = get_profile(s, user_id)
    changes = {}

    if "full_name" in payload:
        new_name = payload_text(payload, "full_name")
        if not new_name:
            raise validation_failed("Name cannot be empty.")
        track_change(changes, profile, "full_name", new_name)

    if "organization_id" in payload or "location_id" in payload:
        org_raw = payload.get("organization_id", profile.organization_id)
        loc_raw = payload.get("location_id", profile.location_id)
        if "organization_id" in payload and "location_id" not in payload:
            # Moving to another organization drops a location that no longer fits.
            loc = profile.location
            if loc is not None and parse_id(org_raw, "organization_id") != loc.organization_id:
                loc_raw = None
        org_id, loc_id = resolve_membership(s, org_raw, loc_raw)
        track_change(changes, profile, "organization_id", org_id)
        track_change(changes, profile, "location_id", loc_id)

    if "is_active" in payload:
        new_active = bool(parse_bool(payload.get("is_active")))
        if profile.id == actor.id and not new_active:
            raise validation_failed("You cannot deactivate your own account.")
        track_change(changes, profile, "is_active", new_active)

    profile.updated_at = datetime.utcnow()
    s.flush()
    # Membership relationships were loaded before the ids changed.
    s.expire(profile, ["organization", "location"])
    record_event(
        s,
        actor=actor,
        action="user.update",
        entity_type="Profile",
        entity_id=str(profile.id),
        metadata={"email": profile.email, "changes": changes},
    )
    cache.invalidate(cache.USERS, cache.AREAS, cache.ORGANIZATIONS, cache.DASHBOARD)
    return profile


def confirm_user_email(s: "Session", actor: Profile, user_id: int) -> Profile:
    ensure_can(actor, Gate.USERS)
    profile = get_profile(s, user_id)
    profile.email_verified = True
    profile.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="user.email_confirm",
        entity_type="Profile",
        entity_id=str(profile.id),
        metadata={"email": profile.email, "manual": True},
    )
    cache.invalidate(cache.USERS)
    return profile


def delete_user(s: "Session", actor: Profile, user_id: int) -> None:
    ensure_can(actor, Gate.USERS)
    if user_id == actor.id:
        raise validation_failed("You cannot delete your own account.")
    profile = get_profile(s, user_id)
    if parse_role(profile.role) is Role.SUPER_ADMIN and not is_super_admin(actor):
        raise unauthorized("Only super admins can delete a super admin.")

    # References that outlive the profile.
    s.query(Location).filter(Location.pastor_id == profile.id).update(
        {Location.pastor_id: None}, synchronize_session="fetch"
    )
    s.query(Area).filter(Area.created_by == profile.id).update({Area.created_by: None}, synchronize_session="fetch")
    s.query(AreaMember).filter(AreaMember.added_by == profile.id).update(
        {AreaMember.added_by: None}, synchronize_session="fetch"
    )
    s.query(AuditEvent).filter(AuditEvent.actor_user_id == profile.id).update(
        {AuditEvent.actor_user_id: None}, synchronize_session=False
    )

    email = profile.email
    s.delete(profile)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="user.delete",
        entity_type="Profile",
        entity_id=str(user_id),
        metadata={"email": email},
    )
    logger.info("profile deleted id=%s by=%s", user_id, actor.id)
    cache.invalidate(cache.USERS, cache.AREAS, cache.ORGANIZATIONS, cache.DASHBOARD)


def create_user_as_admin(s: "Session", actor: Profile, payload: dict) -> Profile:
    ensure_can(actor, Gate.USERS)
    role = parse_role(payload.get("role") or Role.MEMBER.value)
    if role is None or role not in ASSIGNABLE_ON_CREATE:
        allowed = ", ".join(sorted(r.value for r in ASSIGNABLE_ON_CREATE))
        raise validation_failed(f"Role must be one of: {allowed}")

    profile = create_profile(
        s,
        email=payload_text(payload, "email"),
        password=payload_text(payload, "password", strip=False),
        full_name=full_name_from(payload),
        role=role,
        organization_id=payload.get("organization_id"),
        location_id=payload.get("location_id"),
        email_verified=False,
    )
    record_event(
        s,
        actor=actor,
        action="user.create",
        entity_type="Profile",
        entity_id=str(profile.id),
        metadata={"email": profile.email, "roles": profile.role_names},
    )
    cache.invalidate(cache.USERS, cache.DASHBOARD)
    return profile


# ---------- Audit ----------
def audit_events(
    s: "Session",
    actor: Profile,
    *,
    action: str = "",
    actor_email: str = "",
    date_from=None,
    date_to=None,
) -> list[AuditEvent]:
    """Last 200 audit events with simple filters (action contains, actor email contains, date range)."""
    ensure_can(actor, Gate.USERS)
    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if actor_email:
        q = q.filter(AuditEvent.actor_user_email.like(f"%{actor_email.lower()}%"))
    if date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        # inclusive end-date (treat as whole day)
        q = q.filter(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))
    return q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(AUDIT_LIMIT).all()


def change_password(s: "Session", profile: Profile, new_password: str, confirm: str) -> None:
    errors = password_errors(new_password, confirm)
    if errors:
        raise validation_failed(" ".join(errors))
    profile.password_hash = generate_password_hash(new_password)
    profile.updated_at = datetime.utcnow()
    record_event(s, actor=profile, action="auth.password_change", entity_type="Profile", entity_id=str(profile.id))

