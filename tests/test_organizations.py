from app.orghub.db import session_scope
from app.orghub.models import Organization, Role, User
from app.orghub.permissions import CATALOG_KEYS


def _register_payload(**overrides):
    body = {
        "name": "Harbor Rowing Club",
        "type": "club",
        "place": "Kochi",
        "themeColor": "#0055aa",
        "admin": {"phone": "+914444444444", "fullName": "Hari Founder", "password": "s3cret-pass"},
    }
    body.update(overrides)
    return body


def test_register_creates_org_roles_and_admin(app, client):
    r = client.post("/api/organizations/register", json=_register_payload())
    assert r.status_code == 201
    org_id = r.json["organization"]["id"]
    assert r.json["organization"]["themeColor"] == "#0055aa"
    assert r.json["user"]["phoneNumber"] == "+914444444444"

    me = client.get("/api/me", headers={"Authorization": f"Bearer {r.json['token']}"}).json
    assert me["organizationId"] == org_id
    assert me["role"]["name"] == "Admin"
    assert me["permissions"] == sorted(CATALOG_KEYS)

    with session_scope(app) as s:
        roles = {role.name: role for role in s.query(Role).filter(Role.organization_id == org_id)}
        assert set(roles) == {"Admin", "Member"}
        assert roles["Member"].is_default is True
        assert roles["Member"].permissions == []
        assert "*" not in roles["Admin"].permissions


def test_register_default_roles_are_not_shared(app, client):
    client.post("/api/organizations/register", json=_register_payload())
    client.post(
        "/api/organizations/register",
        json=_register_payload(name="Second", admin={"phone": "+914444444445", "fullName": "B", "password": "pw"}),
    )
    with session_scope(app) as s:
        admin_roles = s.query(Role).filter(Role.name == "Admin").all()
        assert len(admin_roles) == 2
        admin_roles[0].permissions = ["members.write"]
    with session_scope(app) as s:
        perms = sorted(len(r.permissions) for r in s.query(Role).filter(Role.name == "Admin"))
        assert perms == [1, len(CATALOG_KEYS)]


def test_register_with_custom_roles_adds_admin(app, client):
    r = client.post(
        "/api/organizations/register",
        json=_register_payload(
            roles=[
                {"name": "Volunteer", "permissions": ["events.write"], "isDefault": True},
                {"name": "Treasurer", "permissions": ["income.write", "expense.write"]},
            ]
        ),
    )
    assert r.status_code == 201
    with session_scope(app) as s:
        names = sorted(role.name for role in s.query(Role).filter(Role.organization_id == r.json["organization"]["id"]))
        assert names == ["Admin", "Treasurer", "Volunteer"]
        user = s.get(User, r.json["user"]["id"])
        assert user.role.name == "Admin"


def test_register_rejects_wildcard_and_unknown_permissions(app, client):
    r = client.post("/api/organizations/register", json=_register_payload(roles=[{"name": "God", "permissions": ["*"]}]))
    assert r.status_code == 400
    r = client.post(
        "/api/organizations/register",
        json=_register_payload(roles=[{"name": "Odd", "permissions": ["members.nuke"]}]),
    )
    assert r.status_code == 400
    with session_scope(app) as s:
        assert s.query(Organization).count() == 0


def test_register_duplicate_phone_writes_nothing(app, client, world):
    with session_scope(app) as s:
        before = s.query(Organization).count()
    r = client.post(
        "/api/organizations/register",
        json=_register_payload(admin={"phone": "+911111111111", "fullName": "Dup", "password": "pw"}),
    )
    assert r.status_code == 409
    assert r.json["error"] == "conflict"
    with session_scope(app) as s:
        assert s.query(Organization).count() == before


def test_register_validation(client):
    assert client.post("/api/organizations/register", json={"name": "x", "type": "club"}).status_code == 400
    body = _register_payload()
    body["admin"] = {"phone": "+914444444444", "fullName": "No Password"}
    assert client.post("/api/organizations/register", json=body).status_code == 400
    body = _register_payload()
    del body["type"]
    assert client.post("/api/organizations/register", json=body).status_code == 400


def test_list_own_org_with_counts(client, world):
    r = client.get("/api/organizations", headers=world.headers("a_member"))
    assert r.status_code == 200
    orgs = r.json["organizations"]
    assert [o["id"] for o in orgs] == [world.ids["a"]]
    assert orgs[0]["counts"]["members"] == 3


def test_super_admin_lists_every_org(client, world):
    r = client.get("/api/organizations", headers=world.headers("root"))
    ids = {o["id"] for o in r.json["organizations"]}
    assert {world.ids["a"], world.ids["b"], world.ids["system"]} <= ids


def test_update_requires_permission(client, world):
    r = client.put("/api/organizations", json={"name": "Renamed"}, headers=world.headers("a_member"))
    assert r.status_code == 403

    r = client.put("/api/organizations", json={"name": "Acme Renamed", "place": ""}, headers=world.headers("a_admin"))
    assert r.status_code == 200
    assert r.json["organization"]["name"] == "Acme Renamed"
    assert r.json["organization"]["place"] is None


def test_org_admin_cannot_update_other_org(client, world):
    r = client.put(
        "/api/organizations",
        json={"name": "Hijack", "organizationId": world.ids["b"]},
        headers=world.headers("a_admin"),
    )
    assert r.status_code == 403


def test_switch_is_super_admin_only(client, world):
    r = client.post("/api/organizations/switch", json={"organizationId": world.ids["b"]}, headers=world.headers("a_admin"))
    assert r.status_code == 403

    r = client.post("/api/organizations/switch", json={"organizationId": 987654}, headers=world.headers("root"))
    assert r.status_code == 404

    r = client.post("/api/organizations/switch", json={"organizationId": world.ids["b"]}, headers=world.headers("root"))
    assert r.status_code == 200
    assert r.json["organization"]["id"] == world.ids["b"]
    headers = {"Authorization": f"Bearer {r.json['token']}"}

    r = client.post(
        "/api/events",
        json={"title": "B gala", "startDate": "2026-05-01T18:00:00", "endDate": "2026-05-01T22:00:00"},
        headers=headers,
    )
    assert r.status_code == 201
    assert r.json["organizationId"] == world.ids["b"]
