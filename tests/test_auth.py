from app.ecclesia.db import session_scope
from app.ecclesia.models import AuditEvent
from tests.conftest import PASSWORD, error_kind, login


def _signup(client, **overrides):
    payload = {
        "email": "newcomer@example.com",
        "password": "hunter22",
        "first_name": "Nora",
        "last_name": "Newcomer",
    }
    payload.update(overrides)
    return client.post("/auth/signup", json=payload)


def test_signup_verify_then_login(client, seed):
    r = _signup(client, organization_id=seed["central"], location_id=seed["norte"])
    assert r.status_code == 201
    user = r.json["data"]["user"]
    assert user["full_name"] == "Nora Newcomer"
    assert user["role"] == "MEMBER"
    assert user["roles"] == ["MEMBER"]
    assert user["email_verified"] is False
    token = r.json["data"]["verification_token"]

    r = client.post("/auth/login", json={"email": "newcomer@example.com", "password": "hunter22"})
    assert r.status_code == 401
    assert "confirm your email" in r.json["error"]["message"]

    r = client.post("/auth/verify", json={"token": token})
    assert r.status_code == 200
    assert r.json["data"]["user"]["email_verified"] is True

    r = client.post("/auth/login", json={"email": "newcomer@example.com", "password": "hunter22"})
    assert r.status_code == 200
    assert r.json["data"]["user"]["location"]["name"] == "Norte"


def test_signup_infers_organization_from_location(client, seed):
    r = _signup(client, location_id=seed["sur"])
    assert r.status_code == 201
    assert r.json["data"]["user"]["organization_id"] == seed["otra"]


def test_signup_rejects_location_of_another_organization(client, seed):
    r = _signup(client, organization_id=seed["central"], location_id=seed["sur"])
    assert r.status_code == 400
    assert error_kind(r) == "VALIDATION_FAILED"


def test_signup_validation(client, seed):
    r = _signup(client, password="123")
    assert r.status_code == 400
    assert "at least 6" in r.json["error"]["message"]

    r = _signup(client, email="not-an-email")
    assert r.status_code == 400

    r = _signup(client, email="Member@Example.com")
    assert r.status_code == 400
    assert "already exists" in r.json["error"]["message"]

    r = _signup(client, password=123456)
    assert r.status_code == 400
    assert error_kind(r) == "VALIDATION_FAILED"


def test_verify_rejects_tampered_token(client, seed):
    r = client.post("/auth/verify", json={"token": "garbage.token.value"})
    assert r.status_code == 400
    assert error_kind(r) == "VALIDATION_FAILED"

    r = client.post("/auth/verify", json={"token": 7})
    assert r.status_code == 400
    assert error_kind(r) == "VALIDATION_FAILED"


def test_login_failures(app, client, seed):
    r = client.post("/auth/login", json={"email": "member@example.com", "password": "wrong"})
    assert r.status_code == 401
    assert r.json["error"]["message"] == "Incorrect email or password."

    r = client.post("/auth/login", json={"email": "inactive@example.com", "password": PASSWORD})
    assert r.status_code == 401
    assert "disabled" in r.json["error"]["message"]

    r = client.post("/auth/login", json={"email": "unverified@example.com", "password": PASSWORD})
    assert r.status_code == 401

    r = client.post("/auth/login", json={"email": ["member@example.com"], "password": PASSWORD})
    assert r.status_code == 400
    assert error_kind(r) == "VALIDATION_FAILED"

    with session_scope(app) as s:
        failed = s.query(AuditEvent).filter(AuditEvent.action == "auth.login_failed").all()
        assert [e.entity_id for e in failed] == ["member@example.com"]


def test_me_and_logout(client, seed):
    assert client.get("/auth/me").status_code == 401
    login(client, "leader@example.com")
    r = client.get("/auth/me")
    assert r.status_code == 200
    assert r.json["data"]["user"]["role"] == "LEADER"

    assert client.post("/auth/logout").status_code == 200
    assert client.get("/auth/me").status_code == 401


def test_password_change_requires_csrf_token(app, client, seed):
    login(client, "member@example.com")
    token = client.environ_base.pop("HTTP_X_CSRF_TOKEN")

    r = client.post("/auth/password", json={"new_password": "brand-new", "confirm_password": "brand-new"})
    assert r.status_code == 400
    assert "CSRF" in r.json["error"]["message"]

    r = client.post(
        "/auth/password",
        json={"new_password": "brand-new", "confirm_password": "different"},
        headers={"X-CSRF-Token": token},
    )
    assert r.status_code == 400
    assert "do not match" in r.json["error"]["message"]

    r = client.post(
        "/auth/password",
        json={"new_password": "brand-new", "confirm_password": "brand-new"},
        headers={"X-CSRF-Token": token},
    )
    assert r.status_code == 200

    client.post("/auth/logout")
    login(client, "member@example.com", password="brand-new")
    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "auth.password_change").count() == 1
