"""
Session token issuance and verification (signed JWT, Flask-JWT-Extended).

Claims: sub (user id as string), organization_id, role (display name only).
The role claim is informational; authorization always re-reads the role row.
"""
from __future__ import annotations

import logging
from typing import Any

from flask_jwt_extended import JWTManager, create_access_token, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from app.orghub.models import User

logger = logging.getLogger(__name__)

jwt_manager = JWTManager()


def issue_token(user: User, organization_id: int | None = None) -> str:
    """Sign a token for `user`; organization_id defaults to the user's own organization."""
    org_id = organization_id if organization_id is not None else user.organization_id
    return create_access_token(
        identity=str(user.id),
        additional_claims={
            "organization_id": org_id,
            "role": user.role.name if user.role else None,
        },
    )


def verify_token(token: str | None) -> dict[str, Any] | None:
    """Return the claim set of a valid, unexpired token, else None."""
    if not token:
        return None
    try:
        claims = decode_token(token, allow_expired=False)
    except (PyJWTError, JWTExtendedException) as e:
        logger.info("Token rejected: %s", e.__class__.__name__)
        return None
    if claims.get("type") != "access" or not claims.get("sub"):
        return None
    return claims


def bearer_token(authorization_header: str | None) -> str | None:
    raw = (authorization_header or "").strip()
    if raw[:7].lower() != "bearer ":
        return None
    token = raw[7:].strip()
    return token or None


def claim_user_id(claims: dict[str, Any]) -> int | None:
    try:
        return int(claims.get("sub"))
    except (TypeError, ValueError):
        return None


def claim_organization_id(claims: dict[str, Any]) -> int | None:
    raw = claims.get("organization_id")
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None
