from app.orghub.db import session_scope
from app.orghub.models import Role, User
from app.orghub.permissions import CATALOG_KEYS


def test_list_is_scoped(client, world):
    r = client.get("/api/roles", headers=world.headers("a_member"))
    assert r.status_code == 200
    assert {item["organizationId"] for item in r.json["items"]} == {world.ids["a"]}
    assert all("organization" not in item for item in r.json["items"])


def test_super_admin_lists_across_tenants(client, world):
    r = client.get("/api/roles?limit=100", headers=world.headers("root"))
    orgs = {item["organizationId"] for item in r.json["items"]}
    assert {world.ids["a"], world.ids["b"], world.ids["system"]} <= orgs
    assert all("organization" in item for item in r.json["items"])

    r = client.get(f"/api/roles?organizationId={world.ids['b']}", headers=world.headers("root"))
    assert {item["organizationId"] for item in r.json["items"]} == {world.ids["b"]}


def test_pagination_cursor(client, world):
    r = client.get(f"/api/roles?limit=2&organizationId={world.ids['b']}", headers=world.headers("root"))
    assert len(r.json["items"]) == 2
    assert r.json["nextCursor"] is None

    r = client.get("/api/roles?limit=2", headers=world.headers("root"))
    first = r.json
    assert len(first["items"]) == 2
    assert first["nextCursor"] == first["items"][-1]["id"]
    r = client.get(f"/api/roles?limit=2&cursor={first['nextCursor']}", headers=world.headers("root"))
    assert all(item["id"] < first["nextCursor"] for item in r.json["items"])
    assert client.get("/api/roles?cursor=abc", headers=world.headers("root")).status_code == 400


def test_permission_catalog(client, world):
    r = client.get("/api/roles/permissions", headers=world.headers("a_member"))
    assert r.status_code == 200
    assert [item["key"] for item in r.json["items"]] == list(CATALOG_KEYS)


def test_create_update_role(client, world):
    admin = world.headers("a_admin")
    r = client.post(
        "/api/roles",
        json={"name": "Editor", "permissions": ["announcements.write", "events.write"], "color": "#ff0000"},
        headers=admin,
    )
    assert r.status_code == 201
    role_id = r.json["id"]
    assert r.json["organizationId"] == world.ids["a"]
    assert r.json["permissions"] == ["announcements.write", "events.write"]

    r = client.put(f"/api/roles/{role_id}", json={"name": "Content Editor", "isDefault": True}, headers=admin)
    assert r.status_code == 200
    assert r.json["name"] == "Content Editor"
    assert r.json["isDefault"] is True
    assert r.json["permissions"] == ["announcements.write", "events.write"]


def test_org_admin_cannot_grant_wildcard_or_unknown(client, world):
    admin = world.headers("a_admin")
    r = client.post("/api/roles", json={"name": "Boss", "permissions": ["*"]}, headers=admin)
    assert r.status_code == 403
    r = client.post("/api/roles", json={"name": "Odd", "permissions": ["members.nuke"]}, headers=admin)
    assert r.status_code == 400
    r = client.put(f"/api/roles/{world.ids['a_member_role']}", json={"permissions": ["*"]}, headers=admin)
    assert r.status_code == 403
    r = client.post("/api/roles", json={"name": "Bad", "permissions": "members.write"}, headers=admin)
    assert r.status_code == 400


def test_super_admin_can_grant_wildcard(client, world):
    r = client.post(
        "/api/roles",
        json={"name": "Co-op Root", "permissions": ["*"], "organizationId": world.ids["b"]},
        headers=world.headers("root"),
    )
    assert r.status_code == 201
    assert r.json["organizationId"] == world.ids["b"]


def test_role_write_needs_permission(client, world):
    r = client.post("/api/roles", json={"name": "Nope"}, headers=world.headers("a_member"))
    assert r.status_code == 403


def test_cannot_touch_other_org_role(client, world):
    r = client.put(f"/api/roles/{world.ids['b_member_role']}", json={"name": "x"}, headers=world.headers("a_admin"))
    assert r.status_code == 404
    r = client.delete(f"/api/roles/{world.ids['b_admin_role']}", headers=world.headers("a_admin"))
    assert r.status_code == 404


def test_delete_moves_members_to_default_role(app, client, world):
    admin = world.headers("a_admin")
    r = client.post("/api/roles", json={"name": "Temp", "permissions": ["events.write"]}, headers=admin)
    temp_id = r.json["id"]
    client.put(f"/api/members/{world.ids['a_member']}", json={"roleId": temp_id}, headers=admin)

    r = client.delete(f"/api/roles/{temp_id}", headers=admin)
    assert r.status_code == 204
    with session_scope(app) as s:
        assert s.get(Role, temp_id) is None
        assert s.get(User, world.ids["a_member"]).role_id == world.ids["a_member_role"]


def test_delete_without_fallback_default_conflicts(app, client, world):
    admin = world.headers("a_admin")
    # The Member role is the only default; deleting it has nowhere to move its members.
    r = client.delete(f"/api/roles/{world.ids['a_member_role']}", headers=admin)
    assert r.status_code == 409
    with session_scope(app) as s:
        assert s.get(Role, world.ids["a_member_role"]) is not None


def test_wildcard_role_cannot_be_deleted(client, world):
    r = client.delete(f"/api/roles/{world.ids['super_role']}", headers=world.headers("root"))
    assert r.status_code == 409
