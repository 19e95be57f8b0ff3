from tests.conftest import error_kind, login


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True

    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_unknown_route_is_json_not_found(client):
    r = client.get("/no-such-page")
    assert r.status_code == 404
    assert r.json["success"] is False
    assert error_kind(r) == "NOT_FOUND"


def test_dashboard_requires_login(client, seed):
    r = client.get("/dashboard")
    assert r.status_code == 401
    assert error_kind(r) == "UNAUTHORIZED"


def test_dashboard_reports_what_the_user_can_manage(client, seed):
    login(client, "pastor@example.com")
    r = client.get("/dashboard")
    assert r.status_code == 200
    data = r.json["data"]
    assert data["user"]["email"] == "pastor@example.com"
    assert data["user"]["location"]["name"] == "Centro"
    assert data["can_manage_areas"] is True
    assert data["can_manage_users"] is True
    assert data["can_manage_organizations"] is False


def test_member_dashboard_has_no_management(client, seed):
    login(client, "member@example.com")
    data = client.get("/dashboard").json["data"]
    assert not (data["can_manage_areas"] or data["can_manage_users"] or data["can_manage_organizations"])
