from werkzeug.security import check_password_hash

from app.orghub.db import session_scope
from app.orghub.models import Organization, Role, User
from scripts import init_db


def test_seed_only_is_idempotent(app, client, monkeypatch):
    monkeypatch.setenv("SUPERADMIN_PHONE", "+910000000009")
    monkeypatch.setenv("SUPERADMIN_PASSWORD", "first-password")
    db_url = app.config["DATABASE_URL"]

    init_db.seed_only(database_url=db_url)
    monkeypatch.setenv("SUPERADMIN_PASSWORD", "second-password")
    init_db.seed_only(database_url=db_url)

    with session_scope(app) as s:
        assert s.query(Organization).filter(Organization.is_system.is_(True)).count() == 1
        roles = s.query(Role).filter(Role.name == init_db.SUPER_ADMIN_ROLE_NAME).all()
        assert len(roles) == 1
        assert roles[0].permissions == ["*"]
        user = s.query(User).filter(User.phone_number == "+910000000009").one()
        assert user.role_id == roles[0].id
        # Existing passwords are never overwritten.
        assert check_password_hash(user.password_hash, "first-password")

    r = client.post("/api/auth/login", json={"phone": "+910000000009", "password": "first-password"})
    assert r.status_code == 200
    me = client.get("/api/me", headers={"Authorization": f"Bearer {r.json['token']}"}).json
    assert me["isSuperAdmin"] is True


def test_seed_without_phone_only_creates_system_org(app, monkeypatch):
    monkeypatch.delenv("SUPERADMIN_PHONE", raising=False)
    init_db.seed_only(database_url=app.config["DATABASE_URL"])
    with session_scope(app) as s:
        assert s.query(User).count() == 0
        assert s.query(Role).count() == 1
