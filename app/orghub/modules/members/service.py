"""
Members service layer.

A member is a User row. Non-super-admins only ever see and change members of
their own organization; a super-admin may act across organizations.
"""
from __future__ import annotations

import secrets
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

from app.orghub.audit import record_event
from app.orghub.errors import BadRequest, Conflict, NotFound
from app.orghub.models import Role, User
from app.orghub.utils import iso

if TYPE_CHECKING:
    from app.orghub.rbac import AuthContext


def phone_taken(s: Session, phone_number: str) -> bool:
    return s.query(User.id).filter(User.phone_number == phone_number).first() is not None


def _role_in_org(s: Session, role_id: int, organization_id: int) -> Role:
    role = s.query(Role).filter(Role.id == role_id, Role.organization_id == organization_id).one_or_none()
    if role is None:
        raise BadRequest("Invalid role.")
    return role


def get_member(s: Session, ctx: AuthContext, member_id: int) -> User:
    q = s.query(User).filter(User.id == member_id)
    if not ctx.cross_tenant:
        q = q.filter(User.organization_id == ctx.organization_id)
    member = q.one_or_none()
    if member is None:
        raise NotFound("Member not found.")
    return member


def create_member(
    s: Session,
    ctx: AuthContext,
    *,
    organization_id: int,
    full_name: str,
    phone_number: str,
    role_id: int,
    password: str | None = None,
    email: str | None = None,
    photo_url: str | None = None,
) -> User:
    """
    Add a member. Without a password a random one is stored and the member
    signs in with a one-time code instead.
    """
    role = _role_in_org(s, role_id, organization_id)
    if phone_taken(s, phone_number):
        raise Conflict("A user with this phone number already exists.")

    member = User(
        organization_id=organization_id,
        role_id=role.id,
        full_name=full_name.strip(),
        phone_number=phone_number,
        email=email,
        photo_url=photo_url,
        password_hash=generate_password_hash(password or secrets.token_urlsafe(24)),
    )
    s.add(member)
    try:
        s.flush()
    except IntegrityError:
        s.rollback()
        raise Conflict("A user with this phone number already exists.")

    record_event(
        s,
        actor=ctx.user,
        action="members.create",
        entity_type="User",
        entity_id=str(member.id),
        organization_id=organization_id,
        metadata={"phone_number": phone_number, "role_id": role.id, "password_set": bool(password)},
    )
    return member


def update_member(
    s: Session,
    ctx: AuthContext,
    member: User,
    *,
    full_name: str | None = None,
    role_id: int | None = None,
    email: str | None = None,
    photo_url: str | None = None,
) -> User:
    changes: dict[str, Any] = {}
    if full_name is not None and full_name.strip() and full_name.strip() != member.full_name:
        changes["full_name"] = {"from": member.full_name, "to": full_name.strip()}
        member.full_name = full_name.strip()
    if role_id is not None and role_id != member.role_id:
        if ctx.is_super_admin:
            role = s.get(Role, role_id)
            if role is None:
                raise BadRequest("Invalid role.")
        else:
            role = _role_in_org(s, role_id, member.organization_id)
        changes["role_id"] = {"from": member.role_id, "to": role.id}
        member.role_id = role.id
        member.role = role
    if email is not None and (email.strip() or None) != member.email:
        changes["email"] = True
        member.email = email.strip() or None
    if photo_url is not None and (photo_url.strip() or None) != member.photo_url:
        changes["photo_url"] = True
        member.photo_url = photo_url.strip() or None

    if changes:
        record_event(
            s,
            actor=ctx.user,
            action="members.update",
            entity_type="User",
            entity_id=str(member.id),
            organization_id=member.organization_id,
            metadata={"changes": changes},
        )
    return member


def delete_member(s: Session, ctx: AuthContext, member: User) -> None:
    """Authored content keeps its denormalized author name; the member's inbox goes with it."""
    if member.id == ctx.user.id:
        raise BadRequest("You cannot delete your own account.")
    record_event(
        s,
        actor=ctx.user,
        action="members.delete",
        entity_type="User",
        entity_id=str(member.id),
        organization_id=member.organization_id,
        metadata={"phone_number": member.phone_number, "full_name": member.full_name},
    )
    s.delete(member)


def member_to_dict(member: User, *, include_organization: bool = False) -> dict[str, Any]:
    out = {
        "id": member.id,
        "organizationId": member.organization_id,
        "fullName": member.full_name,
        "phoneNumber": member.phone_number,
        "email": member.email,
        "photoUrl": member.photo_url,
        "roleId": member.role_id,
        "role": member.role.name if member.role else None,
        "createdAt": iso(member.created_at),
    }
    if include_organization and member.organization is not None:
        out["organization"] = {
            "id": member.organization.id,
            "name": member.organization.name,
            "type": member.organization.type,
        }
    return out
