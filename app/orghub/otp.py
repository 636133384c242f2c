"""
One-time passcodes for phone sign-in.

Codes live behind the OtpStore interface. SqlOtpStore keeps them in the
otp_codes table with an absolute expiry, so every process and replica sees
the same pending code; nothing is held in process memory. Stored codes are
HMAC-SHA256 digests keyed with the app secret and bound to the phone number.
A code is discarded after MAX_ATTEMPTS wrong guesses.
"""
from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta
from enum import Enum
from typing import Protocol

from sqlalchemy.orm import Session

from app.orghub.models import OtpCode

MAX_ATTEMPTS = 5


class OtpCheck(str, Enum):
    OK = "ok"
    MISSING = "missing"
    EXPIRED = "expired"
    MISMATCH = "mismatch"
    LOCKED = "locked"


class OtpStore(Protocol):
    def put(self, phone_number: str, code: str, ttl_seconds: int, *, now: datetime | None = None) -> None: ...

    def consume(self, phone_number: str, code: str, *, now: datetime | None = None) -> OtpCheck: ...


def generate_code() -> str:
    return f"{secrets.randbelow(900000) + 100000}"


class SqlOtpStore:
    def __init__(self, s: Session, secret: str | bytes, *, max_attempts: int = MAX_ATTEMPTS):
        self.s = s
        self.key = secret.encode("utf-8") if isinstance(secret, str) else secret
        self.max_attempts = max_attempts

    def _digest(self, phone_number: str, code: str) -> str:
        msg = f"{phone_number}:{code}".encode("utf-8")
        return hmac.new(self.key, msg, hashlib.sha256).hexdigest()

    def put(self, phone_number: str, code: str, ttl_seconds: int, *, now: datetime | None = None) -> None:
        now = now or datetime.utcnow()
        row = self.s.query(OtpCode).filter(OtpCode.phone_number == phone_number).one_or_none()
        if row is None:
            row = OtpCode(phone_number=phone_number)
            self.s.add(row)
        row.code_hash = self._digest(phone_number, code)
        row.attempts = 0
        row.expires_at = now + timedelta(seconds=ttl_seconds)
        row.created_at = now

    def consume(self, phone_number: str, code: str, *, now: datetime | None = None) -> OtpCheck:
        """
        Check `code` for `phone_number`. Expired and matching codes are deleted
        (single use). A mismatch counts against the code; the last allowed
        mismatch deletes it and reports LOCKED.
        """
        now = now or datetime.utcnow()
        row = self.s.query(OtpCode).filter(OtpCode.phone_number == phone_number).one_or_none()
        if row is None:
            return OtpCheck.MISSING
        if now > row.expires_at:
            self.s.delete(row)
            return OtpCheck.EXPIRED
        if not hmac.compare_digest(row.code_hash, self._digest(phone_number, (code or "").strip())):
            row.attempts = (row.attempts or 0) + 1
            if row.attempts >= self.max_attempts:
                self.s.delete(row)
                return OtpCheck.LOCKED
            return OtpCheck.MISMATCH
        self.s.delete(row)
        return OtpCheck.OK
