"""
Organizations service layer.

Registration creates the organization, its roles and the first admin user in
one transaction; the caller commits. Nothing is written if any step fails.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

from app.orghub.audit import record_event
from app.orghub.errors import BadRequest, Conflict, Forbidden, NotFound
from app.orghub.models import Organization, Role, User
from app.orghub.modules.members.service import phone_taken
from app.orghub.modules.roles.service import DEFAULT_ROLES, checked_permissions
from app.orghub.permissions import CATALOG_KEYS, WILDCARD
from app.orghub.utils import iso

if TYPE_CHECKING:
    from app.orghub.rbac import AuthContext


def _registration_roles(roles: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    if not roles:
        return [{**r, "permissions": list(r["permissions"])} for r in DEFAULT_ROLES]
    out = []
    for r in roles:
        name = str(r.get("name") or "").strip()
        if not name:
            raise BadRequest("Role name is required.")
        perms = checked_permissions(r.get("permissions"), allow_wildcard=True)
        if WILDCARD in perms:
            raise BadRequest("Organization roles cannot hold the wildcard permission.")
        out.append(
            {
                "name": name,
                "description": str(r.get("description") or "").strip() or None,
                "permissions": perms,
                "is_default": bool(r.get("is_default")),
            }
        )
    return out


def register_organization(
    s: Session,
    *,
    name: str,
    org_type: str,
    admin_phone: str,
    admin_full_name: str,
    admin_password: str,
    description: str | None = None,
    logo_url: str | None = None,
    theme_color: str | None = None,
    place: str | None = None,
    admin_email: str | None = None,
    admin_photo_url: str | None = None,
    roles: list[dict[str, Any]] | None = None,
) -> tuple[Organization, User]:
    """
    Create an organization with its roles and admin. The admin gets the role
    named "Admin" (case-insensitive) or, if the supplied roles have none, an
    extra Admin role holding every catalog permission.
    """
    if phone_taken(s, admin_phone):
        raise Conflict("A user with this phone number already exists.")
    role_specs = _registration_roles(roles)

    org = Organization(
        name=name.strip(),
        type=org_type.strip(),
        description=description,
        logo_url=logo_url,
        theme_color=theme_color,
        place=place,
    )
    s.add(org)
    s.flush()

    admin_role: Role | None = None
    for spec in role_specs:
        role = Role(organization_id=org.id, **spec)
        s.add(role)
        if admin_role is None and role.name.lower() == "admin":
            admin_role = role
    if admin_role is None:
        admin_role = Role(
            organization_id=org.id,
            name="Admin",
            description="Full access",
            permissions=list(CATALOG_KEYS),
            is_default=False,
        )
        s.add(admin_role)
    s.flush()

    user = User(
        organization_id=org.id,
        role_id=admin_role.id,
        full_name=admin_full_name.strip(),
        phone_number=admin_phone,
        email=admin_email,
        photo_url=admin_photo_url,
        password_hash=generate_password_hash(admin_password),
    )
    s.add(user)
    try:
        s.flush()
    except IntegrityError:
        s.rollback()
        raise Conflict("A user with this phone number already exists.")
    user.role = admin_role
    user.organization = org

    record_event(
        s,
        actor=user,
        action="organizations.register",
        entity_type="Organization",
        entity_id=str(org.id),
        organization_id=org.id,
        metadata={"name": org.name, "type": org.type, "roles": [spec["name"] for spec in role_specs]},
    )
    return org, user


def get_organization(s: Session, organization_id: int) -> Organization:
    org = s.get(Organization, organization_id)
    if org is None:
        raise NotFound("Organization not found.")
    return org


def organization_counts(s: Session, organization_ids: list[int]) -> dict[int, dict[str, int]]:
    """Member, event and announcement counts per organization."""
    from app.orghub.modules.content.models import Announcement, Event

    out = {oid: {"members": 0, "events": 0, "announcements": 0} for oid in organization_ids}
    if not organization_ids:
        return out
    for key, model in (("members", User), ("events", Event), ("announcements", Announcement)):
        rows = (
            s.query(model.organization_id, func.count(model.id))
            .filter(model.organization_id.in_(organization_ids))
            .group_by(model.organization_id)
            .all()
        )
        for oid, n in rows:
            out[int(oid)][key] = int(n or 0)
    return out


def visible_organizations(s: Session, ctx: AuthContext) -> list[Organization]:
    q = s.query(Organization)
    if not ctx.is_super_admin:
        q = q.filter(Organization.id == ctx.user.organization_id)
    return q.order_by(Organization.id.desc()).all()


def update_organization(
    s: Session,
    org: Organization,
    *,
    user: User,
    name: str | None = None,
    org_type: str | None = None,
    description: str | None = None,
    logo_url: str | None = None,
    theme_color: str | None = None,
    place: str | None = None,
) -> Organization:
    """Partial update. Empty strings clear optional fields; name and type cannot be cleared."""
    changes: dict[str, Any] = {}
    if name is not None and name.strip() and name.strip() != org.name:
        changes["name"] = {"from": org.name, "to": name.strip()}
        org.name = name.strip()
    if org_type is not None and org_type.strip() and org_type.strip() != org.type:
        changes["type"] = {"from": org.type, "to": org_type.strip()}
        org.type = org_type.strip()
    for field, value in (
        ("description", description),
        ("logo_url", logo_url),
        ("theme_color", theme_color),
        ("place", place),
    ):
        if value is None:
            continue
        value = value.strip() or None
        if value != getattr(org, field):
            changes[field] = {"from": getattr(org, field), "to": value}
            setattr(org, field, value)

    if changes:
        record_event(
            s,
            actor=user,
            action="organizations.update",
            entity_type="Organization",
            entity_id=str(org.id),
            organization_id=org.id,
            metadata={"changes": changes},
        )
    return org


def switch_organization(s: Session, ctx: AuthContext, organization_id: int) -> Organization:
    if not ctx.is_super_admin:
        raise Forbidden("Only a super admin can switch organizations.")
    org = get_organization(s, organization_id)
    record_event(
        s,
        actor=ctx.user,
        action="organizations.switch",
        entity_type="Organization",
        entity_id=str(org.id),
        organization_id=org.id,
    )
    return org


def organization_to_dict(org: Organization, *, counts: dict[str, int] | None = None) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": org.id,
        "name": org.name,
        "type": org.type,
        "description": org.description,
        "logoUrl": org.logo_url,
        "themeColor": org.theme_color,
        "place": org.place,
        "createdAt": iso(org.created_at),
    }
    if counts is not None:
        out["counts"] = counts
    return out
