from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request
from werkzeug.security import check_password_hash

from app.orghub.audit import record_event
from app.orghub.db import db_session
from app.orghub.errors import BadRequest, NotFound, TooManyRequests, Unauthenticated
from app.orghub.models import Role, User
from app.orghub.otp import OtpCheck, SqlOtpStore, generate_code
from app.orghub.permissions import PermissionSet
from app.orghub.tokens import bearer_token, claim_organization_id, claim_user_id, issue_token, verify_token
from app.orghub.utils import clean_str, json_body, normalize_phone, optional_str, pick

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__)
# Sign-in attempts per "<action>:<client ip>" (password login and OTP verify).
_login_attempts: dict[str, list[datetime]] = {}
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _check_rate_limit(key: str) -> bool:
    cutoff = datetime.utcnow() - timedelta(seconds=_LOGIN_RATE_WINDOW)
    recent = [t for t in _login_attempts.get(key, ()) if t > cutoff]
    if recent:
        _login_attempts[key] = recent
    else:
        _login_attempts.pop(key, None)
    return len(recent) >= _LOGIN_RATE_LIMIT


def _record_attempt(key: str) -> None:
    _login_attempts.setdefault(key, []).append(datetime.utcnow())


def _reset_attempts(key: str) -> None:
    _login_attempts.pop(key, None)


def _client_ip() -> str:
    return request.remote_addr or "unknown"


def load_request_id() -> None:
    """Assigns a per-request request_id (for audit/log correlation)."""
    if not getattr(g, "request_id", None):
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex


def _phone_from(body: dict) -> str:
    phone = normalize_phone(
        clean_str(pick(body, "phone", "phoneNumber", "phone_number")),
        current_app.config.get("DEFAULT_PHONE_PREFIX", ""),
    )
    if not phone:
        raise BadRequest("phone is required.")
    return phone


def _user_by_phone(s, phone: str) -> User | None:
    return s.query(User).filter(User.phone_number == phone).one_or_none()


def _otp_store(s) -> SqlOtpStore:
    return SqlOtpStore(s, current_app.config["SECRET_KEY"])


def _session_payload(user: User, token: str) -> dict:
    return {
        "token": token,
        "user": {
            "id": user.id,
            "fullName": user.full_name,
            "phoneNumber": user.phone_number,
            "organizationId": user.organization_id,
            "role": user.role.name if user.role else None,
        },
    }


@bp.get("/check-phone")
def check_phone():
    phone = normalize_phone(
        clean_str(request.args.get("phone")),
        current_app.config.get("DEFAULT_PHONE_PREFIX", ""),
    )
    if not phone:
        raise BadRequest("phone is required.")
    return jsonify({"phone": phone, "available": _user_by_phone(db_session(), phone) is None})


@bp.post("/login")
def login():
    body = json_body()
    phone = _phone_from(body)
    password = optional_str(body, "password") or ""
    bucket = f"login:{_client_ip()}"

    if _check_rate_limit(bucket):
        raise TooManyRequests("Too many login attempts. Please wait 5 minutes.")
    _record_attempt(bucket)

    s = db_session()
    user = _user_by_phone(s, phone)
    if not user or not check_password_hash(user.password_hash, password):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=phone,
            reason="Invalid credentials",
        )
        s.commit()
        raise Unauthenticated("Invalid credentials.")

    _reset_attempts(bucket)
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    return jsonify(_session_payload(user, issue_token(user)))


@bp.post("/otp/request")
def otp_request():
    body = json_body()
    phone = _phone_from(body)
    s = db_session()
    user = _user_by_phone(s, phone)
    if user is None:
        raise NotFound("No account for this phone number.")

    ttl = int(current_app.config.get("OTP_TTL_SECONDS", 300))
    code = generate_code()
    _otp_store(s).put(phone, code, ttl)
    record_event(s, actor=user, action="auth.otp_request", entity_type="User", entity_id=str(user.id))
    s.commit()

    logger.info("OTP issued: user_id=%s ttl=%ss request_id=%s", user.id, ttl, getattr(g, "request_id", None))
    out = {"message": "OTP sent.", "expiresIn": ttl}
    if current_app.config.get("OTP_ECHO"):
        out["code"] = code
    return jsonify(out)


@bp.post("/otp/verify")
def otp_verify():
    body = json_body()
    phone = _phone_from(body)
    code = optional_str(body, "code", "otp") or ""
    bucket = f"otp:{_client_ip()}"

    if _check_rate_limit(bucket):
        raise TooManyRequests("Too many verification attempts. Please wait 5 minutes.")
    _record_attempt(bucket)

    s = db_session()
    result = _otp_store(s).consume(phone, code)
    if result is not OtpCheck.OK:
        # persist attempt counts and removed codes
        record_event(
            s,
            actor=None,
            action="auth.otp_verify_failed",
            entity_type="User",
            entity_id=phone,
            reason=result.value,
        )
        s.commit()
        if result is OtpCheck.MISMATCH:
            raise Unauthenticated("Invalid code.")
        if result is OtpCheck.LOCKED:
            raise Unauthenticated("Too many wrong codes; request a new one.")
        raise BadRequest("No valid code for this phone number; request a new one.")
    _reset_attempts(bucket)

    user = _user_by_phone(s, phone)
    if user is None:
        s.commit()
        raise Unauthenticated("User no longer exists.")
    record_event(s, actor=user, action="auth.otp_verify", entity_type="User", entity_id=str(user.id))
    s.commit()
    return jsonify(_session_payload(user, issue_token(user)))


@bp.post("/refresh")
def refresh():
    """
    Reissue a token from fresh user data. A super-admin keeps the organization
    the old token was switched to; everyone else is pinned to their own.
    """
    body = json_body()
    token = clean_str(body.get("token")) or bearer_token(request.headers.get("Authorization"))
    claims = verify_token(token)
    if not claims:
        raise Unauthenticated("Invalid or expired token.")

    s = db_session()
    user_id = claim_user_id(claims)
    user = s.get(User, user_id, populate_existing=True) if user_id is not None else None
    if user is None:
        raise Unauthenticated("User no longer exists.")
    role = s.get(Role, user.role_id, populate_existing=True) if user.role_id is not None else None

    org_id = user.organization_id
    if PermissionSet.parse(role.permissions if role else None).wildcard:
        org_id = claim_organization_id(claims) or user.organization_id
    return jsonify(_session_payload(user, issue_token(user, org_id)))
