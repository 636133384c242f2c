from flask import Blueprint, jsonify

from app.orghub.rbac import current_auth, require_auth

bp = Blueprint("routes", __name__)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Liveness check; no database access.
    """
    return "ok", 200


@bp.get("/api/me")
@require_auth(scoped=False)
def me():
    """Profile of the caller with the permissions currently granted by their role."""
    ctx = current_auth()
    u = ctx.user
    org = u.organization
    return jsonify(
        {
            "id": u.id,
            "fullName": u.full_name,
            "phoneNumber": u.phone_number,
            "email": u.email,
            "photoUrl": u.photo_url,
            "organizationId": u.organization_id,
            "activeOrganizationId": ctx.token_organization_id or u.organization_id,
            "organization": {"id": org.id, "name": org.name, "type": org.type, "themeColor": org.theme_color}
            if org
            else None,
            "role": {"id": ctx.role.id, "name": ctx.role.name} if ctx.role else None,
            "permissions": ctx.permissions.to_list(),
            "isSuperAdmin": ctx.is_super_admin,
        }
    )
