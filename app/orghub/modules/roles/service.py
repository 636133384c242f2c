"""
Roles service layer.

Permission lists are validated against the catalog. The wildcard can only be
handed out by a super-admin; organization admins work with catalog keys.
Deleting a role moves its members to the organization's default role.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session

from app.orghub.audit import record_event
from app.orghub.errors import BadRequest, Conflict, Forbidden, NotFound
from app.orghub.models import Role, User
from app.orghub.permissions import CATALOG_KEYS, WILDCARD, normalize_permission_list
from app.orghub.utils import iso

if TYPE_CHECKING:
    from app.orghub.rbac import AuthContext


# Seeded for every newly registered organization.
DEFAULT_ROLES: tuple[dict[str, Any], ...] = (
    {"name": "Admin", "description": "Full access", "permissions": list(CATALOG_KEYS), "is_default": False},
    {"name": "Member", "description": "Standard access", "permissions": [], "is_default": True},
)


def checked_permissions(raw, *, allow_wildcard: bool) -> list[str]:
    """
    Validate a client-supplied permission list. Raises BadRequest for malformed
    input or unknown keys and Forbidden for a wildcard the actor may not grant.
    """
    try:
        perms = normalize_permission_list(raw)
    except ValueError as e:
        raise BadRequest(str(e))
    if WILDCARD in perms and not allow_wildcard:
        raise Forbidden("Only a super admin can grant the wildcard permission.")
    unknown = [p for p in perms if p != WILDCARD and p not in CATALOG_KEYS]
    if unknown:
        raise BadRequest(f"Unknown permission(s): {', '.join(unknown)}")
    return perms


def get_role(s: Session, role_id: int, organization_id: int) -> Role:
    role = (
        s.query(Role)
        .filter(Role.id == role_id, Role.organization_id == organization_id)
        .one_or_none()
    )
    if role is None:
        raise NotFound("Role not found.")
    return role


def default_role(s: Session, organization_id: int, *, exclude_role_id: int | None = None) -> Role | None:
    q = s.query(Role).filter(Role.organization_id == organization_id, Role.is_default.is_(True))
    if exclude_role_id is not None:
        q = q.filter(Role.id != exclude_role_id)
    return q.order_by(Role.id.asc()).first()


def create_role(
    s: Session,
    ctx: AuthContext,
    *,
    organization_id: int,
    name: str,
    description: str | None = None,
    permissions=None,
    color: str | None = None,
    is_default: bool = False,
) -> Role:
    role = Role(
        organization_id=organization_id,
        name=name.strip(),
        description=description,
        permissions=checked_permissions(permissions, allow_wildcard=ctx.is_super_admin),
        color=color,
        is_default=is_default,
    )
    s.add(role)
    s.flush()
    record_event(
        s,
        actor=ctx.user,
        action="roles.create",
        entity_type="Role",
        entity_id=str(role.id),
        organization_id=organization_id,
        metadata={"name": role.name, "permissions": role.permissions},
    )
    return role


def update_role(
    s: Session,
    ctx: AuthContext,
    role: Role,
    *,
    name: str | None = None,
    description: str | None = None,
    permissions=None,
    color: str | None = None,
    is_default: bool | None = None,
) -> Role:
    """Partial update. Takes effect on the next request of every holder (no caching)."""
    changes: dict[str, Any] = {}
    if name is not None and name.strip() and name.strip() != role.name:
        changes["name"] = {"from": role.name, "to": name.strip()}
        role.name = name.strip()
    if description is not None and (description.strip() or None) != role.description:
        changes["description"] = True
        role.description = description.strip() or None
    if permissions is not None:
        perms = checked_permissions(permissions, allow_wildcard=ctx.is_super_admin)
        if WILDCARD in (role.permissions or []) and WILDCARD not in perms and not ctx.is_super_admin:
            raise Forbidden("Only a super admin can change a wildcard role.")
        if perms != list(role.permissions or []):
            changes["permissions"] = {"from": list(role.permissions or []), "to": perms}
            # Reassign (never mutate in place) so the JSON column is flagged dirty.
            role.permissions = perms
    if color is not None and (color.strip() or None) != role.color:
        changes["color"] = {"from": role.color, "to": color.strip() or None}
        role.color = color.strip() or None
    if is_default is not None and is_default != role.is_default:
        changes["is_default"] = {"from": role.is_default, "to": is_default}
        role.is_default = is_default

    if changes:
        record_event(
            s,
            actor=ctx.user,
            action="roles.update",
            entity_type="Role",
            entity_id=str(role.id),
            organization_id=role.organization_id,
            metadata={"changes": changes},
        )
    return role


def delete_role(s: Session, ctx: AuthContext, role: Role) -> int:
    """
    Delete `role`, moving its members to the organization's default role.
    Returns the number of reassigned members. Raises Conflict when no other
    default role exists.
    """
    if WILDCARD in (role.permissions or []):
        raise Conflict("The super admin role cannot be deleted.")
    fallback = default_role(s, role.organization_id, exclude_role_id=role.id)
    if fallback is None:
        raise Conflict("No default role to move members to; mark another role as default first.")

    moved = (
        s.query(User)
        .filter(User.role_id == role.id)
        .update({User.role_id: fallback.id}, synchronize_session="fetch")
    )
    record_event(
        s,
        actor=ctx.user,
        action="roles.delete",
        entity_type="Role",
        entity_id=str(role.id),
        organization_id=role.organization_id,
        metadata={"name": role.name, "members_moved_to": fallback.id, "members_moved": moved},
    )
    s.delete(role)
    return moved


def role_to_dict(role: Role, *, include_organization: bool = False) -> dict[str, Any]:
    out = {
        "id": role.id,
        "organizationId": role.organization_id,
        "name": role.name,
        "description": role.description,
        "permissions": list(role.permissions or []),
        "color": role.color,
        "isDefault": role.is_default,
        "createdAt": iso(role.created_at),
    }
    if include_organization and role.organization is not None:
        out["organization"] = {"id": role.organization.id, "name": role.organization.name, "type": role.organization.type}
    return out
