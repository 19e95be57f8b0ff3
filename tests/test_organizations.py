from app.ecclesia import create_app
from app.ecclesia.db import session_scope
from app.ecclesia.models import Profile
from app.ecclesia.modules.areas.models import Area, AreaMember
from app.ecclesia.modules.organizations.models import Location, Organization
from tests.conftest import error_kind, login


def test_public_search_and_listing(client, seed):
    r = client.get("/organizations/search?q=central")
    assert r.status_code == 200
    assert [o["slug"] for o in r.json["data"]] == ["iglesia-central"]

    r = client.get("/organizations")
    assert [o["name"] for o in r.json["data"]] == ["Iglesia Central", "Otra Iglesia"]


def test_public_locations_put_main_campus_first(client, seed):
    r = client.get(f"/organizations/{seed['central']}/locations")
    assert r.status_code == 200
    assert [loc["name"] for loc in r.json["data"]] == ["Centro", "Norte"]

    assert client.get("/organizations/9999/locations").status_code == 404


def test_only_super_admin_creates_organizations(client, seed):
    login(client, "admin@example.com")
    r = client.post("/admin/organizations", json={"name": "Nueva Vida"})
    assert r.status_code == 403
    assert error_kind(r) == "UNAUTHORIZED"


def test_create_organization_slugs(client, seed):
    login(client, "super@example.com")
    r = client.post("/admin/organizations", json={"name": "Comunidad de Fé", "phone": " 555-0100 "})
    assert r.status_code == 201
    assert r.json["data"]["slug"] == "comunidad-de-fe"
    assert r.json["data"]["phone"] == "555-0100"

    r = client.post("/admin/organizations", json={"name": "Iglesia Central"})
    assert r.status_code == 201
    slug = r.json["data"]["slug"]
    assert slug.startswith("iglesia-central-") and slug != "iglesia-central"

    r = client.post("/admin/organizations", json={"name": "  "})
    assert r.status_code == 400


def test_update_organization_is_partial_and_keeps_slug(client, seed):
    login(client, "super@example.com")
    r = client.patch(f"/admin/organizations/{seed['central']}", json={"name": "Iglesia Central Renovada"})
    assert r.status_code == 200
    data = r.json["data"]
    assert data["name"] == "Iglesia Central Renovada"
    assert data["slug"] == "iglesia-central"

    r = client.patch(f"/admin/organizations/{seed['central']}", json={"website": "https://central.example"})
    assert r.json["data"]["name"] == "Iglesia Central Renovada"
    assert r.json["data"]["website"] == "https://central.example"

    assert client.patch("/admin/organizations/9999", json={"name": "x"}).status_code == 404


def test_delete_organization_cascades_and_detaches_profiles(app, client, seed):
    login(client, "super@example.com")
    r = client.delete(f"/admin/organizations/{seed['central']}")
    assert r.status_code == 200
    summary = r.json["data"]
    assert summary["locations_deleted"] == 2
    assert summary["areas_deleted"] == 1

    with session_scope(app) as s:
        assert s.get(Organization, seed["central"]) is None
        assert s.query(Location).filter(Location.organization_id == seed["central"]).count() == 0
        assert s.get(Area, seed["worship"]) is None
        assert s.query(AreaMember).count() == 0
        member = s.get(Profile, seed["member"])
        assert member is not None
        assert member.organization_id is None and member.location_id is None
        assert s.get(Location, seed["sur"]) is not None


def test_directory_listing_is_gated_and_cached(client, seed):
    login(client, "member@example.com")
    assert client.get("/admin/organizations").status_code == 403
    client.post("/auth/logout")

    login(client, "super@example.com")
    r = client.get("/admin/organizations")
    assert r.status_code == 200
    central = next(o for o in r.json["data"] if o["id"] == seed["central"])
    centro = central["locations"][0]
    assert centro["name"] == "Centro"
    assert centro["pastor"]["full_name"] == "Pastor Pablo"
    etag = r.headers["ETag"]

    r = client.get("/admin/organizations", headers={"If-None-Match": etag})
    assert r.status_code == 304

    client.post("/admin/organizations", json={"name": "Nueva Vida"})
    r = client.get("/admin/organizations", headers={"If-None-Match": etag})
    assert r.status_code == 200
    assert r.headers["ETag"] != etag


def test_location_crud(app, client, seed):
    login(client, "super@example.com")
    r = client.post(
        "/admin/locations",
        json={"organization_id": seed["otra"], "name": "Este", "city": "Quito", "pastor_id": 9999},
    )
    assert r.status_code == 400
    assert "Pastor" in r.json["error"]["message"]

    r = client.post(
        "/admin/locations",
        json={"organization_id": seed["otra"], "name": "Este", "city": "Quito", "pastor_id": seed["pastor"]},
    )
    assert r.status_code == 201
    loc = r.json["data"]
    assert loc["pastor"]["id"] == seed["pastor"]
    assert loc["is_main_campus"] is False

    r = client.patch(f"/admin/locations/{loc['id']}", json={"pastor_id": None, "is_main_campus": True})
    assert r.status_code == 200
    assert r.json["data"]["pastor_id"] is None
    assert r.json["data"]["is_main_campus"] is True
    assert r.json["data"]["city"] == "Quito"

    r = client.delete(f"/admin/locations/{seed['centro']}")
    assert r.status_code == 200
    assert r.json["data"]["areas_deleted"] == 1
    with session_scope(app) as s:
        pastor = s.get(Profile, seed["pastor"])
        assert pastor.location_id is None
        assert pastor.organization_id == seed["central"]


def test_pastors_and_locations_directory(client, seed):
    login(client, "leader@example.com")
    r = client.get("/admin/pastors")
    assert r.status_code == 200
    assert [p["email"] for p in r.json["data"]] == ["pastor@example.com"]

    r = client.get("/admin/locations")
    assert sorted(loc["name"] for loc in r.json["data"]) == ["Centro", "Norte", "Sur"]

    r = client.post("/admin/locations", json={"organization_id": seed["central"], "name": "Oeste"})
    assert r.status_code == 403


def test_directory_etag_holds_across_app_instances(app, client, seed):
    # Two instances on one database stand in for two gunicorn workers.
    other = create_app()
    other.config["TESTING"] = True
    worker_b = other.test_client()
    login(worker_b, "super@example.com")
    etag = worker_b.get("/admin/organizations").headers["ETag"]

    login(client, "super@example.com")
    assert client.get("/admin/organizations", headers={"If-None-Match": etag}).status_code == 304
    assert client.post("/admin/organizations", json={"name": "Nueva Vida"}).status_code == 201

    r = worker_b.get("/admin/organizations", headers={"If-None-Match": etag})
    assert r.status_code == 200
    assert "Nueva Vida" in {o["name"] for o in r.json["data"]}


def test_directory_etag_changes_when_pastor_is_renamed(app, client, seed):
    login(client, "admin@example.com")
    etag = client.get("/admin/organizations").headers["ETag"]

    editor = app.test_client()
    login(editor, "super@example.com")
    r = editor.patch(f"/admin/users/{seed['pastor']}", json={"full_name": "Pastor Pedro"})
    assert r.status_code == 200

    r = client.get("/admin/organizations", headers={"If-None-Match": etag})
    assert r.status_code == 200
    central = next(o for o in r.json["data"] if o["id"] == seed["central"])
    centro = next(loc for loc in central["locations"] if loc["id"] == seed["centro"])
    assert centro["pastor"]["full_name"] == "Pastor Pedro"


def test_non_text_names_are_validation_errors(client, seed):
    login(client, "super@example.com")
    r = client.post("/admin/organizations", json={"name": 5})
    assert r.status_code == 400
    assert error_kind(r) == "VALIDATION_FAILED"

    r = client.patch(f"/admin/organizations/{seed['central']}", json={"name": ["Central"]})
    assert r.status_code == 400
    assert error_kind(r) == "VALIDATION_FAILED"

    r = client.post("/admin/locations", json={"organization_id": seed["central"], "name": 12})
    assert r.status_code == 400
    assert error_kind(r) == "VALIDATION_FAILED"

    r = client.patch(f"/admin/locations/{seed['norte']}", json={"name": {"es": "Norte"}})
    assert r.status_code == 400
    assert error_kind(r) == "VALIDATION_FAILED"
