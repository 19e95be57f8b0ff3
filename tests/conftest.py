from datetime import datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.ecclesia import create_app
from app.ecclesia.db import session_scope
from app.ecclesia.models import Base, Profile, UserRole
from app.ecclesia.modules.areas.models import Area, AreaMember
from app.ecclesia.modules.organizations.models import Location, Organization

PASSWORD = "secret-pw"


def add_profile(s, email, role="MEMBER", *, org=None, loc=None, verified=True, active=True, name=None):
    now = datetime.utcnow()
    p = Profile(
        email=email,
        password_hash=generate_password_hash(PASSWORD),
        full_name=name or email.split("@")[0].title(),
        role=role,
        organization_id=org.id if org else None,
        location_id=loc.id if loc else None,
        is_active=active,
        email_verified=verified,
        created_at=now,
        updated_at=now,
    )
    p.role_rows.append(UserRole(role=role))
    s.add(p)
    s.flush()
    return p


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("REQUIRE_EMAIL_VERIFICATION", "1")

    app = create_app()
    app.config["TESTING"] = True
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def seed(app):
    """
    Two churches. "Iglesia Central" has campuses Centro (main, with a pastor) and
    Norte; "Otra Iglesia" has Sur. Centro carries one area with one member.
    """
    with session_scope(app) as s:
        now = datetime.utcnow()
        central = Organization(name="Iglesia Central", slug="iglesia-central", created_at=now, updated_at=now)
        otra = Organization(name="Otra Iglesia", slug="otra-iglesia", created_at=now, updated_at=now)
        s.add_all([central, otra])
        s.flush()
        centro = Location(organization_id=central.id, name="Centro", is_main_campus=True, created_at=now, updated_at=now)
        norte = Location(organization_id=central.id, name="Norte", created_at=now, updated_at=now)
        sur = Location(organization_id=otra.id, name="Sur", is_main_campus=True, created_at=now, updated_at=now)
        s.add_all([centro, norte, sur])
        s.flush()

        profiles = {
            "super": add_profile(s, "super@example.com", "SUPER_ADMIN"),
            "admin": add_profile(s, "admin@example.com", "ADMIN", org=central, loc=centro),
            "pastor": add_profile(s, "pastor@example.com", "PASTOR", org=central, loc=centro, name="Pastor Pablo"),
            "leader": add_profile(s, "leader@example.com", "LEADER", org=central, loc=norte),
            "drifter": add_profile(s, "drifter@example.com", "LEADER"),
            "member": add_profile(s, "member@example.com", "MEMBER", org=central, loc=centro, name="Maria Member"),
            "member2": add_profile(s, "member2@example.com", "MEMBER", org=central, loc=centro, name="Bruno Member"),
            "unverified": add_profile(s, "unverified@example.com", "MEMBER", org=central, loc=centro, verified=False),
            "inactive": add_profile(s, "inactive@example.com", "MEMBER", org=central, loc=centro, active=False),
            "sur_member": add_profile(s, "sur@example.com", "MEMBER", org=otra, loc=sur),
        }
        centro.pastor_id = profiles["pastor"].id

        worship = Area(
            name="Worship",
            description="Sunday music team",
            location_id=centro.id,
            created_by=profiles["pastor"].id,
            created_at=now - timedelta(days=1),
            updated_at=now - timedelta(days=1),
        )
        s.add(worship)
        s.flush()
        s.add(AreaMember(area_id=worship.id, user_id=profiles["member"].id, added_at=now, added_by=profiles["pastor"].id))
        s.flush()

        ids = {key: p.id for key, p in profiles.items()}
        ids.update(
            central=central.id,
            otra=otra.id,
            centro=centro.id,
            norte=norte.id,
            sur=sur.id,
            worship=worship.id,
        )
    return ids


def login(client, email, password=PASSWORD):
    """Signs in and arms the client with the session's CSRF token for later mutations."""
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.json
    client.environ_base["HTTP_X_CSRF_TOKEN"] = r.json["data"]["csrf_token"]
    return r


def error_kind(r):
    return r.json["error"]["kind"]
