from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.orghub.db import db_session
from app.orghub.errors import BadRequest
from app.orghub.models import User
from app.orghub.modules.members.service import create_member, delete_member, get_member, member_to_dict, update_member
from app.orghub.permissions import MEMBERS_WRITE
from app.orghub.rbac import current_auth, require_auth
from app.orghub.utils import (
    clean_str,
    json_body,
    normalize_phone,
    optional_str,
    page_args,
    paginate,
    parse_int,
    pick,
    require_str,
)

bp = Blueprint("members", __name__)


@bp.get("")
@require_auth()
def members_list():
    ctx = current_auth()
    s = db_session()
    after_id, limit = page_args()
    q = (request.args.get("q") or "").strip()

    query = s.query(User)
    if not ctx.cross_tenant:
        query = query.filter(User.organization_id == ctx.organization_id)
    if q:
        like = f"%{q}%"
        query = query.filter((User.full_name.ilike(like)) | (User.phone_number.ilike(like)))

    total = query.count()
    page = paginate(query, User.id, after_id=after_id, limit=limit)
    items = [member_to_dict(u, include_organization=ctx.is_super_admin) for u in page.items]
    return jsonify({"items": items, "nextCursor": page.next_cursor, "totalCount": total})


@bp.get("/<int:member_id>")
@require_auth()
def members_detail(member_id: int):
    ctx = current_auth()
    member = get_member(db_session(), ctx, member_id)
    return jsonify(member_to_dict(member, include_organization=ctx.is_super_admin))


@bp.post("")
@require_auth(MEMBERS_WRITE)
def members_create():
    ctx = current_auth()
    s = db_session()
    body = json_body()

    phone = normalize_phone(
        clean_str(pick(body, "phoneNumber", "phone_number", "phone")),
        current_app.config.get("DEFAULT_PHONE_PREFIX", ""),
    )
    if not phone:
        raise BadRequest("phoneNumber is required.")
    raw_role = pick(body, "roleId", "role_id")
    if raw_role is None:
        raise BadRequest("roleId is required.")

    member = create_member(
        s,
        ctx,
        organization_id=ctx.organization_id,
        full_name=require_str(body, "fullName", "full_name"),
        phone_number=phone,
        role_id=parse_int(raw_role, "roleId"),
        password=optional_str(body, "password") or None,
        email=clean_str(body.get("email")),
        photo_url=clean_str(pick(body, "photoUrl", "photo_url")),
    )
    s.commit()
    return jsonify(member_to_dict(member)), 201


@bp.put("/<int:member_id>")
@require_auth(MEMBERS_WRITE)
def members_update(member_id: int):
    ctx = current_auth()
    s = db_session()
    body = json_body()
    member = get_member(s, ctx, member_id)
    raw_role = pick(body, "roleId", "role_id")
    update_member(
        s,
        ctx,
        member,
        full_name=optional_str(body, "fullName", "full_name"),
        role_id=parse_int(raw_role, "roleId") if raw_role is not None else None,
        email=optional_str(body, "email"),
        photo_url=optional_str(body, "photoUrl", "photo_url"),
    )
    s.commit()
    return jsonify(member_to_dict(member, include_organization=ctx.is_super_admin))


@bp.delete("/<int:member_id>")
@require_auth(MEMBERS_WRITE)
def members_delete(member_id: int):
    ctx = current_auth()
    s = db_session()
    member = get_member(s, ctx, member_id)
    delete_member(s, ctx, member)
    s.commit()
    return "", 204
