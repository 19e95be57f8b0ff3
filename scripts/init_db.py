import os
import sys
from datetime import datetime
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.ecclesia.models import Profile, UserRole
from app.ecclesia.rbac import Role, primary_role
from scripts._db_utils import script_session


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the first super admin in an idempotent way.
    Does NOT overwrite an existing profile's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@ecclesia.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    admin_name = (os.environ.get("ADMIN_NAME") or "Super Admin").strip()

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///ecclesia.db").strip()

    # Direct engine/session so this can run in release without building the Flask app.
    with script_session(db_url) as s:
        user = s.query(Profile).filter(Profile.email == admin_email).one_or_none()
        if not user:
            now = datetime.utcnow()
            user = Profile(
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                full_name=admin_name,
                role=Role.SUPER_ADMIN.value,
                is_active=True,
                email_verified=True,
                created_at=now,
                updated_at=now,
            )
            s.add(user)
        if Role.SUPER_ADMIN.value not in user.role_names:
            user.role_rows.append(UserRole(role=Role.SUPER_ADMIN.value))
        roles = {Role(r) for r in user.role_names if r in Role.__members__} | {Role.SUPER_ADMIN}
        user.role = primary_role(roles).value
        user.email_verified = True

    print("Initialized database (seed_only).")
    print(f"Super admin email: {admin_email}")
    print("Super admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
