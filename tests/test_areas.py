from datetime import datetime

from app.ecclesia.db import session_scope
from app.ecclesia.modules.areas.models import AreaMember
from tests.conftest import error_kind, login


def test_members_cannot_manage_areas(client, seed):
    login(client, "member@example.com")
    r = client.get("/admin/areas")
    assert r.status_code == 403
    assert error_kind(r) == "UNAUTHORIZED"


def test_admin_role_is_not_enough_for_areas(client, seed):
    login(client, "admin@example.com")
    assert client.get("/admin/areas").status_code == 403


def test_listing_is_scoped_to_own_location(client, seed):
    login(client, "pastor@example.com")
    r = client.get("/admin/areas")
    assert r.status_code == 200
    [worship] = r.json["data"]
    assert worship["name"] == "Worship"
    assert worship["member_count"] == 1
    assert worship["location"]["name"] == "Centro"
    assert worship["creator"]["full_name"] == "Pastor Pablo"
    client.post("/auth/logout")

    login(client, "leader@example.com")
    assert client.get("/admin/areas").json["data"] == []
    r = client.get(f"/admin/areas/{seed['worship']}")
    assert r.status_code == 404
    client.post("/auth/logout")

    login(client, "drifter@example.com")
    assert client.get("/admin/areas").json["data"] == []


def test_super_admin_sees_everything(client, seed):
    login(client, "pastor@example.com")
    client.post("/admin/areas", json={"name": "Youth"})
    client.post("/auth/logout")

    login(client, "super@example.com")
    r = client.post("/admin/areas", json={"name": "Ushers", "location_id": seed["norte"]})
    assert r.status_code == 201
    names = [a["name"] for a in client.get("/admin/areas").json["data"]]
    assert names == ["Ushers", "Youth", "Worship"]


def test_create_area_defaults_to_own_location(client, seed):
    login(client, "pastor@example.com")
    r = client.post("/admin/areas", json={"name": " Youth ", "description": "Teens"})
    assert r.status_code == 201
    area = r.json["data"]
    assert area["name"] == "Youth"
    assert area["location_id"] == seed["centro"]
    assert area["member_count"] == 0

    r = client.post("/admin/areas", json={"name": "Kids", "location_id": seed["centro"]})
    assert r.status_code == 201


def test_create_area_in_another_location_is_rejected(client, seed):
    login(client, "pastor@example.com")
    r = client.post("/admin/areas", json={"name": "Youth", "location_id": seed["norte"]})
    assert r.status_code == 403
    assert error_kind(r) == "UNAUTHORIZED"


def test_create_area_validation(client, seed):
    login(client, "drifter@example.com")
    r = client.post("/admin/areas", json={"name": "Youth"})
    assert r.status_code == 400
    assert "location" in r.json["error"]["message"]
    client.post("/auth/logout")

    login(client, "super@example.com")
    r = client.post("/admin/areas", json={"name": "Youth"})
    assert r.status_code == 400
    r = client.post("/admin/areas", json={"name": "Youth", "location_id": 9999})
    assert r.status_code == 400
    r = client.post("/admin/areas", json={"name": "", "location_id": seed["norte"]})
    assert r.status_code == 400


def test_update_and_move_area(client, seed):
    login(client, "pastor@example.com")
    r = client.patch(f"/admin/areas/{seed['worship']}", json={"name": "Worship & Arts", "description": None})
    assert r.status_code == 200
    assert r.json["data"]["name"] == "Worship & Arts"
    assert r.json["data"]["description"] is None

    r = client.patch(f"/admin/areas/{seed['worship']}", json={"location_id": seed["norte"]})
    assert r.status_code == 403
    client.post("/auth/logout")

    login(client, "super@example.com")
    r = client.patch(f"/admin/areas/{seed['worship']}", json={"location_id": seed["norte"]})
    assert r.status_code == 200
    assert r.json["data"]["location"]["name"] == "Norte"


def test_delete_area(client, seed):
    login(client, "leader@example.com")
    assert client.delete(f"/admin/areas/{seed['worship']}").status_code == 404
    client.post("/auth/logout")

    login(client, "pastor@example.com")
    assert client.delete(f"/admin/areas/{seed['worship']}").status_code == 200
    assert client.get(f"/admin/areas/{seed['worship']}").status_code == 404


def test_roster_add_duplicate_leader_and_search(client, seed):
    login(client, "pastor@example.com")
    base = f"/admin/areas/{seed['worship']}/members"

    r = client.post(base, json={"user_id": seed["member2"]})
    assert r.status_code == 201
    assert r.json["data"]["is_leader"] is False

    r = client.post(base, json={"user_id": seed["member2"]})
    assert r.status_code == 400
    assert "already" in r.json["error"]["message"]

    r = client.post(base, json={"user_id": 9999})
    assert r.status_code == 404

    r = client.put(f"{base}/{seed['member']}/leader", json={"is_leader": True})
    assert r.status_code == 200
    assert all(m["is_leader"] for m in r.json["data"])

    r = client.get(base)
    assert [m["user"]["email"] for m in r.json["data"]] == ["member@example.com", "member2@example.com"]

    r = client.get(f"{base}?q=BRUNO")
    assert [m["user_id"] for m in r.json["data"]] == [seed["member2"]]

    r = client.get(f"{base}?q=member2@")
    assert [m["user_id"] for m in r.json["data"]] == [seed["member2"]]


def test_remove_member_clears_duplicate_rows(app, client, seed):
    with session_scope(app) as s:
        s.add(AreaMember(area_id=seed["worship"], user_id=seed["member"], added_at=datetime.utcnow()))

    login(client, "pastor@example.com")
    r = client.delete(f"/admin/areas/{seed['worship']}/members/{seed['member']}")
    assert r.status_code == 200
    assert r.json["data"]["removed"] == 2

    r = client.delete(f"/admin/areas/{seed['worship']}/members/{seed['member']}")
    assert r.status_code == 404


def test_available_users(client, seed):
    login(client, "pastor@example.com")
    r = client.get(f"/admin/areas/{seed['worship']}/available-users")
    assert r.status_code == 200
    emails = {u["email"] for u in r.json["data"]}
    assert "member@example.com" not in emails
    assert "inactive@example.com" not in emails
    assert "leader@example.com" not in emails
    assert {"member2@example.com", "pastor@example.com", "admin@example.com"} <= emails


def test_area_listing_etag(client, seed):
    login(client, "pastor@example.com")
    r = client.get("/admin/areas")
    etag = r.headers["ETag"]

    assert client.get("/admin/areas", headers={"If-None-Match": etag}).status_code == 304

    client.post(f"/admin/areas/{seed['worship']}/members", json={"user_id": seed["member2"]})
    r = client.get("/admin/areas", headers={"If-None-Match": etag})
    assert r.status_code == 200
    assert r.json["data"][0]["member_count"] == 2


def test_area_listing_etag_follows_promotion(app, client, seed):
    admin = app.test_client()
    login(admin, "super@example.com")
    assert admin.post("/admin/areas", json={"name": "Ushers", "location_id": seed["norte"]}).status_code == 201

    login(client, "pastor@example.com")
    r = client.get("/admin/areas")
    assert [a["name"] for a in r.json["data"]] == ["Worship"]
    etag = r.headers["ETag"]

    r = admin.put(f"/admin/users/{seed['pastor']}/roles", json={"roles": ["SUPER_ADMIN", "PASTOR"]})
    assert r.status_code == 200

    r = client.get("/admin/areas", headers={"If-None-Match": etag})
    assert r.status_code == 200
    assert {a["name"] for a in r.json["data"]} == {"Worship", "Ushers"}


def test_area_listing_etag_follows_location_rename(app, client, seed):
    login(client, "pastor@example.com")
    etag = client.get("/admin/areas").headers["ETag"]

    admin = app.test_client()
    login(admin, "super@example.com")
    assert admin.patch(f"/admin/locations/{seed['centro']}", json={"name": "Centro Histórico"}).status_code == 200

    r = client.get("/admin/areas", headers={"If-None-Match": etag})
    assert r.status_code == 200
    assert r.json["data"][0]["location"]["name"] == "Centro Histórico"


def test_non_text_area_names_are_validation_errors(client, seed):
    login(client, "pastor@example.com")
    r = client.post("/admin/areas", json={"name": 5})
    assert r.status_code == 400
    assert error_kind(r) == "VALIDATION_FAILED"
    assert "text" in r.json["error"]["message"]

    r = client.patch(f"/admin/areas/{seed['worship']}", json={"name": 5})
    assert r.status_code == 400
    assert error_kind(r) == "VALIDATION_FAILED"
