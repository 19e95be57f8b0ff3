from __future__ import annotations

import enum
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from functools import wraps
from typing import TYPE_CHECKING, Any

from flask import g
from sqlalchemy import false

from app.ecclesia.errors import unauthenticated, unauthorized

if TYPE_CHECKING:
    from sqlalchemy.orm import Query
    from app.ecclesia.models import Profile


class Role(str, enum.Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    PASTOR = "PASTOR"
    LEADER = "LEADER"
    MEMBER = "MEMBER"


# Highest first.
ROLE_PRIORITY: tuple[Role, ...] = (Role.SUPER_ADMIN, Role.ADMIN, Role.PASTOR, Role.LEADER, Role.MEMBER)

# Roles an administrator may hand out when creating an account directly.
ASSIGNABLE_ON_CREATE: frozenset[Role] = frozenset({Role.MEMBER, Role.LEADER, Role.PASTOR, Role.ADMIN})


class Gate(enum.Enum):
    AREAS = "areas"
    USERS = "users"
    ORGANIZATIONS = "organizations"


_ALLOWED: dict[Gate, frozenset[Role]] = {
    Gate.AREAS: frozenset({Role.SUPER_ADMIN, Role.PASTOR, Role.LEADER}),
    Gate.USERS: frozenset(r for r in Role if r is not Role.MEMBER),
    Gate.ORGANIZATIONS: frozenset({Role.SUPER_ADMIN}),
}

_DENIED_MESSAGES: dict[Gate, str] = {
    Gate.AREAS: "Only super admins, pastors and leaders can manage areas.",
    Gate.USERS: "Members cannot manage users.",
    Gate.ORGANIZATIONS: "Only super admins can manage organizations and locations.",
}


@dataclass(frozen=True)
class RoleDiff:
    additions: frozenset[Role]
    removals: frozenset[Role]


def parse_role(value: Any) -> Role | None:
    """Role for a name like " pastor "; None for unknown names and anything that is not text."""
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Role(value.strip().upper())
    except ValueError:
        return None


def parse_roles(values: Iterable[str | Role]) -> tuple[set[Role], list[str]]:
    """Parse role names; returns (roles, unknown_names)."""
    roles: set[Role] = set()
    unknown: list[str] = []
    for v in values:
        r = parse_role(v)
        if r is None:
            unknown.append(str(v))
        else:
            roles.add(r)
    return roles, unknown


def primary_role(roles: Iterable[Role]) -> Role:
    present = set(roles)
    for r in ROLE_PRIORITY:
        if r in present:
            return r
    return Role.MEMBER


def reconcile_roles(current: Iterable[Role], target: Iterable[Role]) -> RoleDiff:
    cur = frozenset(current)
    tgt = frozenset(target)
    return RoleDiff(additions=tgt - cur, removals=cur - tgt)


def can_manage(role: Role | str | None, gate: Gate) -> bool:
    r = parse_role(role)
    return r is not None and r in _ALLOWED[gate]


def can_manage_areas(role: Role | str | None) -> bool:
    return can_manage(role, Gate.AREAS)


def can_manage_users(role: Role | str | None) -> bool:
    return can_manage(role, Gate.USERS)


def can_manage_organizations(role: Role | str | None) -> bool:
    return can_manage(role, Gate.ORGANIZATIONS)


def is_super_admin(actor: "Profile | None") -> bool:
    return bool(actor and actor.is_active and parse_role(actor.role) is Role.SUPER_ADMIN)


def ensure_can(actor: "Profile | None", gate: Gate) -> "Profile":
    if actor is None:
        raise unauthenticated()
    if not actor.is_active or not can_manage(actor.role, gate):
        raise unauthorized(_DENIED_MESSAGES[gate])
    return actor


def scope_to_location(query: "Query", column: Any, actor: "Profile") -> "Query":
    """
    Restrict `query` to the actor's own location. Super admins are unscoped;
    an actor without a location matches nothing.
    """
    if is_super_admin(actor):
        return query
    if actor.location_id is None:
        return query.filter(false())
    return query.filter(column == actor.location_id)


def require_gate(gate: Gate) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Route decorator; use under `json_action` so the raised error becomes an envelope."""

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            ensure_can(getattr(g, "current_user", None), gate)
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user = getattr(g, "current_user", None)
        if not user or not user.is_active:
            raise unauthenticated()
        return fn(*args, **kwargs)

    return wrapped
