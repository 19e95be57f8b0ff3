#!/usr/bin/env python3
"""Grant (or revoke) a role on a profile (idempotent).

Usage:
  python scripts/grant_role.py --email pastor@example.org --role PASTOR
  python scripts/grant_role.py --email pastor@example.org --role PASTOR --revoke
"""

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.ecclesia.audit import record_event
from app.ecclesia.models import Profile
from app.ecclesia.modules.accounts.service import apply_roles
from app.ecclesia.rbac import parse_role, parse_roles
from scripts._db_utils import script_session


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True, help="Profile email")
    parser.add_argument("--role", required=True, help="SUPER_ADMIN, ADMIN, PASTOR, LEADER or MEMBER")
    parser.add_argument("--revoke", action="store_true", help="Remove the role instead of granting it")
    args = parser.parse_args()

    role = parse_role(args.role)
    if role is None:
        print(f"Unknown role: {args.role}")
        sys.exit(2)

    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///ecclesia.db").strip()
    with script_session(db_url) as s:
        user = s.query(Profile).filter(Profile.email == args.email.strip().lower()).one_or_none()
        if not user:
            print(f"User not found: {args.email}")
            return
        current, _ = parse_roles(user.role_names)
        target = current - {role} if args.revoke else current | {role}
        if target == current:
            print(f"Nothing to do for {args.email} ({', '.join(user.role_names) or user.role})")
            return
        before = user.role_names
        diff = apply_roles(s, user, target)
        record_event(
            s,
            actor=None,
            action="user.roles_update",
            entity_type="Profile",
            entity_id=str(user.id),
            reason="grant_role.py",
            metadata={
                "before": before,
                "after": user.role_names,
                "added": sorted(r.value for r in diff.additions),
                "removed": sorted(r.value for r in diff.removals),
            },
        )
        print(f"{args.email}: roles now {', '.join(user.role_names) or '(none)'}; primary role {user.role}")


if __name__ == "__main__":
    main()
