from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.orghub.db import db_session
from app.orghub.models import Role
from app.orghub.modules.roles.service import create_role, delete_role, get_role, role_to_dict, update_role
from app.orghub.permissions import CATALOG, ROLES_WRITE
from app.orghub.rbac import current_auth, require_auth
from app.orghub.utils import clean_str, json_body, optional_str, page_args, paginate, parse_bool, pick, require_str

bp = Blueprint("roles", __name__)


@bp.get("")
@require_auth()
def roles_list():
    ctx = current_auth()
    s = db_session()
    after_id, limit = page_args()
    q = (request.args.get("q") or "").strip()

    query = s.query(Role)
    if not ctx.cross_tenant:
        query = query.filter(Role.organization_id == ctx.organization_id)
    if q:
        like = f"%{q}%"
        query = query.filter((Role.name.ilike(like)) | (Role.description.ilike(like)))

    page = paginate(query, Role.id, after_id=after_id, limit=limit)
    items = [role_to_dict(r, include_organization=ctx.is_super_admin) for r in page.items]
    return jsonify({"items": items, "nextCursor": page.next_cursor})


@bp.get("/permissions")
@require_auth(scoped=False)
def roles_permission_catalog():
    return jsonify({"items": [{"key": key, "label": label} for key, label in CATALOG]})


@bp.post("")
@require_auth(ROLES_WRITE)
def roles_create():
    ctx = current_auth()
    s = db_session()
    body = json_body()
    raw_default = pick(body, "isDefault", "is_default")
    role = create_role(
        s,
        ctx,
        organization_id=ctx.organization_id,
        name=require_str(body, "name"),
        description=clean_str(body.get("description")),
        permissions=body.get("permissions"),
        color=clean_str(body.get("color")),
        is_default=parse_bool(raw_default, "isDefault") if raw_default is not None else False,
    )
    s.commit()
    return jsonify(role_to_dict(role)), 201


@bp.put("/<int:role_id>")
@require_auth(ROLES_WRITE)
def roles_update(role_id: int):
    ctx = current_auth()
    s = db_session()
    body = json_body()
    role = get_role(s, role_id, ctx.organization_id)
    raw_default = pick(body, "isDefault", "is_default")
    update_role(
        s,
        ctx,
        role,
        name=optional_str(body, "name"),
        description=optional_str(body, "description"),
        permissions=body.get("permissions"),
        color=optional_str(body, "color"),
        is_default=parse_bool(raw_default, "isDefault") if raw_default is not None else None,
    )
    s.commit()
    return jsonify(role_to_dict(role))


@bp.delete("/<int:role_id>")
@require_auth(ROLES_WRITE)
def roles_delete(role_id: int):
    ctx = current_auth()
    s = db_session()
    role = get_role(s, role_id, ctx.organization_id)
    delete_role(s, ctx, role)
    s.commit()
    return "", 204
