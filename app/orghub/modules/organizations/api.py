from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from app.orghub.db import db_session
from app.orghub.errors import BadRequest
from app.orghub.modules.organizations.service import (
    get_organization,
    organization_counts,
    organization_to_dict,
    register_organization,
    switch_organization,
    update_organization,
    visible_organizations,
)
from app.orghub.permissions import ORGANIZATIONS_WRITE
from app.orghub.rbac import current_auth, require_auth
from app.orghub.tokens import issue_token
from app.orghub.utils import clean_str, json_body, normalize_phone, optional_str, parse_bool, parse_int, pick, require_str

bp = Blueprint("organizations", __name__)


def _role_payloads(raw) -> list[dict] | None:
    if raw is None:
        return None
    if not isinstance(raw, list) or not all(isinstance(r, dict) for r in raw):
        raise BadRequest("roles must be a list of objects.")
    out = []
    for r in raw:
        raw_default = pick(r, "isDefault", "is_default")
        out.append(
            {
                "name": r.get("name"),
                "description": r.get("description"),
                "permissions": r.get("permissions"),
                "is_default": parse_bool(raw_default, "isDefault") if raw_default is not None else False,
            }
        )
    return out


@bp.post("/register")
def organizations_register():
    s = db_session()
    body = json_body()
    admin = body.get("admin")
    if not isinstance(admin, dict):
        raise BadRequest("admin is required.")

    phone = normalize_phone(
        clean_str(pick(admin, "phone", "phoneNumber", "phone_number")),
        current_app.config.get("DEFAULT_PHONE_PREFIX", ""),
    )
    if not phone:
        raise BadRequest("admin.phone is required.")
    password = optional_str(admin, "password")
    if not password:
        raise BadRequest("admin.password is required.")

    org, user = register_organization(
        s,
        name=require_str(body, "name"),
        org_type=require_str(body, "type"),
        description=clean_str(body.get("description")),
        logo_url=clean_str(pick(body, "logoUrl", "logo_url")),
        theme_color=clean_str(pick(body, "themeColor", "theme_color")),
        place=clean_str(body.get("place")),
        admin_phone=phone,
        admin_full_name=require_str(admin, "fullName", "full_name"),
        admin_password=password,
        admin_email=clean_str(admin.get("email")),
        admin_photo_url=clean_str(pick(admin, "photoUrl", "photo_url")),
        roles=_role_payloads(body.get("roles")),
    )
    s.commit()
    current_app.logger.info("Organization registered: id=%s admin_user_id=%s", org.id, user.id)
    return (
        jsonify(
            {
                "organization": organization_to_dict(org),
                "user": {"id": user.id, "fullName": user.full_name, "phoneNumber": user.phone_number, "email": user.email},
                "token": issue_token(user, org.id),
            }
        ),
        201,
    )


@bp.get("")
@require_auth(scoped=False)
def organizations_list():
    ctx = current_auth()
    s = db_session()
    orgs = visible_organizations(s, ctx)
    counts = organization_counts(s, [o.id for o in orgs])
    return jsonify({"organizations": [organization_to_dict(o, counts=counts[o.id]) for o in orgs]})


@bp.put("")
@require_auth(ORGANIZATIONS_WRITE)
def organizations_update():
    ctx = current_auth()
    s = db_session()
    body = json_body()
    org = get_organization(s, ctx.organization_id)
    update_organization(
        s,
        org,
        user=ctx.user,
        name=optional_str(body, "name"),
        org_type=optional_str(body, "type"),
        description=optional_str(body, "description"),
        logo_url=optional_str(body, "logoUrl", "logo_url"),
        theme_color=optional_str(body, "themeColor", "theme_color"),
        place=optional_str(body, "place"),
    )
    s.commit()
    return jsonify({"organization": organization_to_dict(org)})


@bp.post("/switch")
@require_auth(scoped=False)
def organizations_switch():
    ctx = current_auth()
    s = db_session()
    body = json_body()
    raw = pick(body, "organizationId", "communityId")
    if raw is None:
        raise BadRequest("organizationId is required.")
    org = switch_organization(s, ctx, parse_int(raw, "organizationId"))
    s.commit()
    counts = organization_counts(s, [org.id])
    return jsonify({"organization": organization_to_dict(org, counts=counts[org.id]), "token": issue_token(ctx.user, org.id)})
