"""
Authorization engine: bearer token -> identity, tenant scope and permission set.

Every decision re-reads the user and role rows; nothing about permissions is
cached between requests or trusted from the token's role claim.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any

from flask import g, request
from sqlalchemy.orm import Session

from app.orghub.db import db_session
from app.orghub.errors import ApiError, BadRequest, Forbidden, Unauthenticated
from app.orghub.models import Role, User
from app.orghub.permissions import PermissionSet
from app.orghub.tokens import bearer_token, claim_organization_id, claim_user_id, verify_token

logger = logging.getLogger(__name__)

ORG_PARAM_NAMES = ("organizationId", "communityId")


@dataclass(frozen=True)
class AuthContext:
    user: User
    role: Role | None
    permissions: PermissionSet
    token_organization_id: int | None
    requested_organization_id: int | None
    # Effective tenant scope; None only when the caller did not require one.
    organization_id: int | None

    @property
    def is_super_admin(self) -> bool:
        return self.permissions.wildcard

    @property
    def cross_tenant(self) -> bool:
        """Super-admin listing without an explicit organization sees every tenant."""
        return self.is_super_admin and self.requested_organization_id is None

    def can(self, permission: str) -> bool:
        return self.permissions.allows(permission)


def authorize(
    s: Session,
    claims: dict[str, Any] | None,
    required_permission: str | None = None,
    requested_org_id: int | None = None,
    *,
    require_scope: bool = True,
) -> AuthContext:
    """
    Resolve identity, tenant scope and permission for one request.

    Raises Unauthenticated (no/invalid token, user gone), Forbidden (foreign
    organization for a non-super-admin, or missing permission) and BadRequest
    (no organization could be resolved while one is required).
    """
    if not claims:
        raise Unauthenticated()
    user_id = claim_user_id(claims)
    # populate_existing: the session identity map may hold a stale copy from earlier work.
    user = s.get(User, user_id, populate_existing=True) if user_id is not None else None
    if user is None:
        raise Unauthenticated("User no longer exists.")

    role = s.get(Role, user.role_id, populate_existing=True) if user.role_id is not None else None
    perms = PermissionSet.parse(role.permissions if role else None)

    token_org_id = claim_organization_id(claims)
    if (
        requested_org_id is not None
        and token_org_id is not None
        and not perms.wildcard
        and requested_org_id != token_org_id
    ):
        raise Forbidden("Organization out of scope.")

    if required_permission and not perms.allows(required_permission):
        raise Forbidden(f"Missing permission: {required_permission}")

    scope = requested_org_id if requested_org_id is not None else token_org_id
    if scope is None and require_scope:
        raise BadRequest("organizationId is required.")

    return AuthContext(
        user=user,
        role=role,
        permissions=perms,
        token_organization_id=token_org_id,
        requested_organization_id=requested_org_id,
        organization_id=scope,
    )


def _parse_org_id(raw: Any) -> int | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        raise BadRequest("organizationId must be an integer.")
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise BadRequest("organizationId must be an integer.")


def requested_organization_id() -> int | None:
    """Tenant override from query string or JSON body (legacy alias: communityId)."""
    for name in ORG_PARAM_NAMES:
        if name in request.args:
            return _parse_org_id(request.args.get(name))
    body = request.get_json(silent=True) if request.is_json else None
    if isinstance(body, dict):
        for name in ORG_PARAM_NAMES:
            if name in body:
                return _parse_org_id(body.get(name))
    return None


def require_auth(permission: str | None = None, *, scoped: bool = True) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Route guard. On success the AuthContext is available as g.auth and the
    user as g.current_user. `scoped=False` skips the tenant override and does
    not demand an organization scope (e.g. /api/me, organization switch).
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            claims = verify_token(bearer_token(request.headers.get("Authorization")))
            try:
                ctx = authorize(
                    db_session(),
                    claims,
                    permission,
                    requested_organization_id() if scoped else None,
                    require_scope=scoped,
                )
            except ApiError as e:
                logger.warning(
                    "Authorization denied: kind=%s user=%s permission=%s path=%s request_id=%s",
                    e.kind,
                    claims.get("sub") if claims else None,
                    permission,
                    request.path,
                    getattr(g, "request_id", None),
                )
                raise
            g.auth = ctx
            g.current_user = ctx.user
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def current_auth() -> AuthContext:
    ctx: AuthContext | None = getattr(g, "auth", None)
    if ctx is None:
        raise RuntimeError("No authorization context (missing @require_auth?)")
    return ctx
