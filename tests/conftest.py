from __future__ import annotations

from dataclasses import dataclass, field

import pytest
from flask import Flask
from werkzeug.security import generate_password_hash

from app.orghub import create_app
from app.orghub.auth import _login_attempts
from app.orghub.db import session_scope
from app.orghub.models import Base, Organization, Role, User
from app.orghub.permissions import CATALOG_KEYS, WILDCARD
from app.orghub.tokens import issue_token

PASSWORD = "pw-123456"


@dataclass
class World:
    """Two tenants plus the system organization, with ids of everything seeded."""

    app: Flask
    ids: dict[str, int] = field(default_factory=dict)

    def token(self, user_key: str, organization_id: int | None = None) -> str:
        with self.app.app_context():
            with session_scope(self.app) as s:
                user = s.get(User, self.ids[user_key])
                return issue_token(user, organization_id)

    def headers(self, user_key: str, organization_id: int | None = None) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token(user_key, organization_id)}"}


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("JWT_SECRET_KEY", "test-jwt-secret-0123456789abcdef0123456789")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("OTP_ECHO", "1")
    monkeypatch.setenv("DEFAULT_PHONE_PREFIX", "+91")

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    _login_attempts.clear()
    yield app
    _login_attempts.clear()
    engine.dispose()


@pytest.fixture()
def client(app):
    return app.test_client()


def _org(s, name: str, *, is_system: bool = False) -> Organization:
    org = Organization(name=name, type="system" if is_system else "club", is_system=is_system)
    s.add(org)
    s.flush()
    return org


def _user(s, org: Organization, role: Role, name: str, phone: str) -> User:
    u = User(
        organization_id=org.id,
        role_id=role.id,
        full_name=name,
        phone_number=phone,
        password_hash=generate_password_hash(PASSWORD),
    )
    s.add(u)
    s.flush()
    return u


@pytest.fixture()
def world(app) -> World:
    w = World(app=app)
    with session_scope(app) as s:
        system = _org(s, "System", is_system=True)
        super_role = Role(organization_id=system.id, name="Super Admin", permissions=[WILDCARD])
        s.add(super_role)
        s.flush()
        root = _user(s, system, super_role, "Root Operator", "+910000000001")

        a = _org(s, "Acme Club")
        a_admin_role = Role(organization_id=a.id, name="Admin", permissions=list(CATALOG_KEYS))
        a_member_role = Role(organization_id=a.id, name="Member", permissions=[], is_default=True)
        s.add_all([a_admin_role, a_member_role])
        s.flush()
        a_admin = _user(s, a, a_admin_role, "Asha Admin", "+911111111111")
        a_member = _user(s, a, a_member_role, "Arun Member", "+911111111112")
        a_member2 = _user(s, a, a_member_role, "Anita Member", "+911111111113")

        b = _org(s, "Bravo Society")
        b_admin_role = Role(organization_id=b.id, name="Admin", permissions=list(CATALOG_KEYS))
        b_member_role = Role(organization_id=b.id, name="Member", permissions=[], is_default=True)
        s.add_all([b_admin_role, b_member_role])
        s.flush()
        b_admin = _user(s, b, b_admin_role, "Bala Admin", "+912222222221")

        w.ids.update(
            system=system.id,
            super_role=super_role.id,
            root=root.id,
            a=a.id,
            a_admin_role=a_admin_role.id,
            a_member_role=a_member_role.id,
            a_admin=a_admin.id,
            a_member=a_member.id,
            a_member2=a_member2.id,
            b=b.id,
            b_admin_role=b_admin_role.id,
            b_member_role=b_member_role.id,
            b_admin=b_admin.id,
        )
    return w
