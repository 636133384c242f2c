from datetime import timedelta

import pytest
from flask_jwt_extended import create_access_token

from app.orghub.db import session_scope
from app.orghub.errors import BadRequest, Forbidden, Unauthenticated
from app.orghub.models import Role, User
from app.orghub.permissions import ANNOUNCEMENTS_WRITE, CATALOG_KEYS, MEMBERS_WRITE, ROLES_WRITE
from app.orghub.rbac import authorize


def _claims(user_id, org_id):
    return {"sub": str(user_id), "organization_id": org_id, "type": "access"}


def test_missing_claims_or_vanished_user_is_unauthenticated(app, world):
    with session_scope(app) as s:
        with pytest.raises(Unauthenticated):
            authorize(s, None)
        with pytest.raises(Unauthenticated):
            authorize(s, _claims(999999, world.ids["a"]))


@pytest.mark.parametrize("permission", CATALOG_KEYS)
def test_member_without_permission_is_forbidden(app, world, permission):
    with session_scope(app) as s:
        with pytest.raises(Forbidden):
            authorize(s, _claims(world.ids["a_member"], world.ids["a"]), permission)


def test_non_super_admin_cannot_reach_another_org(app, world):
    with session_scope(app) as s:
        for target in (world.ids["b"], world.ids["system"], 424242):
            with pytest.raises(Forbidden):
                authorize(s, _claims(world.ids["a_admin"], world.ids["a"]), None, target)
        # Same org requested explicitly is fine.
        ctx = authorize(s, _claims(world.ids["a_admin"], world.ids["a"]), MEMBERS_WRITE, world.ids["a"])
        assert ctx.organization_id == world.ids["a"]


def test_tenant_check_runs_before_permission_check(app, world):
    with session_scope(app) as s:
        with pytest.raises(Forbidden) as ei:
            authorize(s, _claims(world.ids["a_member"], world.ids["a"]), MEMBERS_WRITE, world.ids["b"])
        assert "out of scope" in ei.value.message


def test_super_admin_scope_is_the_requested_org(app, world):
    with session_scope(app) as s:
        for target in (world.ids["a"], world.ids["b"]):
            ctx = authorize(s, _claims(world.ids["root"], world.ids["system"]), MEMBERS_WRITE, target)
            assert ctx.is_super_admin
            assert ctx.organization_id == target
            assert not ctx.cross_tenant

        ctx = authorize(s, _claims(world.ids["root"], world.ids["system"]))
        assert ctx.organization_id == world.ids["system"]
        assert ctx.cross_tenant


def test_missing_scope_is_bad_request(app, world):
    with session_scope(app) as s:
        with pytest.raises(BadRequest):
            authorize(s, _claims(world.ids["root"], None))
        ctx = authorize(s, _claims(world.ids["root"], None), require_scope=False)
        assert ctx.organization_id is None


def test_decision_is_stable_until_role_changes(app, world):
    claims = _claims(world.ids["a_member"], world.ids["a"])
    with session_scope(app) as s:
        for _ in range(2):
            with pytest.raises(Forbidden):
                authorize(s, claims, ROLES_WRITE)

        # Change the role through another session; the next decision must see it.
        with session_scope(app) as other:
            role = other.get(Role, world.ids["a_member_role"])
            role.permissions = [ROLES_WRITE]

        ctx = authorize(s, claims, ROLES_WRITE)
        assert ctx.can(ROLES_WRITE)


def test_role_grant_applies_to_existing_token(client, world):
    member = world.headers("a_member")
    r = client.post("/api/announcements", json={"title": "Hi", "content": "Hello"}, headers=member)
    assert r.status_code == 403
    assert r.json["error"] == "forbidden"

    r = client.put(
        f"/api/roles/{world.ids['a_member_role']}",
        json={"permissions": [ANNOUNCEMENTS_WRITE]},
        headers=world.headers("a_admin"),
    )
    assert r.status_code == 200

    r = client.post("/api/announcements", json={"title": "Hi", "content": "Hello"}, headers=member)
    assert r.status_code == 201

    r = client.put(
        f"/api/roles/{world.ids['a_member_role']}",
        json={"permissions": []},
        headers=world.headers("a_admin"),
    )
    assert r.status_code == 200
    r = client.post("/api/announcements", json={"title": "Again", "content": "Hello"}, headers=member)
    assert r.status_code == 403


def test_role_claim_in_token_is_not_trusted(app, client, world):
    with app.app_context():
        token = create_access_token(
            identity=str(world.ids["a_member"]),
            additional_claims={"organization_id": world.ids["a"], "role": "Super Admin"},
        )
    r = client.post(
        "/api/members",
        json={"fullName": "X", "phoneNumber": "+913333333333", "roleId": world.ids["a_member_role"]},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert r.status_code == 403


def test_deleted_user_token_is_rejected(app, client, world):
    headers = world.headers("a_member2")
    assert client.get("/api/me", headers=headers).status_code == 200
    with session_scope(app) as s:
        s.delete(s.get(User, world.ids["a_member2"]))
    r = client.get("/api/me", headers=headers)
    assert r.status_code == 401
    assert r.json["error"] == "unauthenticated"


def test_token_problems_are_unauthenticated(app, client, world):
    with app.app_context():
        expired = create_access_token(
            identity=str(world.ids["a_admin"]),
            additional_claims={"organization_id": world.ids["a"]},
            expires_delta=timedelta(seconds=-5),
        )
    for header in (
        None,
        "Bearer",
        "Basic abc",
        "Bearer not-a-jwt",
        f"Bearer {expired}",
    ):
        headers = {"Authorization": header} if header else {}
        r = client.get("/api/elections", headers=headers)
        assert r.status_code == 401, header


def test_org_override_from_query_and_legacy_alias(client, world):
    admin = world.headers("a_admin")
    assert client.get(f"/api/events?organizationId={world.ids['b']}", headers=admin).status_code == 403
    assert client.get(f"/api/events?communityId={world.ids['b']}", headers=admin).status_code == 403
    assert client.get(f"/api/events?organizationId={world.ids['a']}", headers=admin).status_code == 200
    r = client.get("/api/events?organizationId=abc", headers=admin)
    assert r.status_code == 400


def test_me_reports_current_permissions(client, world):
    r = client.get("/api/me", headers=world.headers("a_admin"))
    assert r.status_code == 200
    assert r.json["isSuperAdmin"] is False
    assert r.json["permissions"] == sorted(CATALOG_KEYS)
    assert r.json["organization"]["name"] == "Acme Club"

    r = client.get("/api/me", headers=world.headers("root"))
    assert r.json["isSuperAdmin"] is True
    assert r.json["permissions"] == ["*"]
