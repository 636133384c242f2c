from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Generic, TypeVar

from flask import request
from sqlalchemy.orm import Query

from app.orghub.errors import BadRequest

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class Page(Generic[T]):
    items: list[T]
    next_cursor: int | None


def paginate(q: Query, id_column, *, after_id: int | None, limit: int) -> Page:
    """
    Keyset pagination over `id_column`, newest first.
    `after_id` is the last id of the previous page (exclusive).
    """
    if after_id is not None:
        q = q.filter(id_column < after_id)
    rows = q.order_by(id_column.desc()).limit(limit + 1).all()
    has_more = len(rows) > limit
    items = rows[:limit]
    next_cursor = items[-1].id if has_more and items else None
    return Page(items=items, next_cursor=next_cursor)


def page_args() -> tuple[int | None, int]:
    """Read (cursor, limit) from the query string; limit is clamped to [1, 100]."""
    raw_limit = (request.args.get("limit") or "").strip()
    try:
        limit = int(raw_limit) if raw_limit else DEFAULT_PAGE_SIZE
    except ValueError:
        limit = DEFAULT_PAGE_SIZE
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    raw_cursor = (request.args.get("cursor") or "").strip()
    if not raw_cursor:
        return None, limit
    try:
        return int(raw_cursor), limit
    except ValueError:
        raise BadRequest("cursor must be an integer.")


def json_body() -> dict[str, Any]:
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise BadRequest("JSON object body expected.")
    return body


def normalize_phone(raw: str | None, default_prefix: str = "") -> str:
    phone = "".join((raw or "").split())
    if not phone:
        return ""
    if not phone.startswith("+") and default_prefix:
        phone = f"{default_prefix}{phone}"
    return phone


def clean_str(v: Any) -> str | None:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def parse_int(v: Any, field: str) -> int:
    if isinstance(v, bool):
        raise BadRequest(f"{field} must be an integer.")
    try:
        return int(v)
    except (TypeError, ValueError):
        raise BadRequest(f"{field} must be an integer.")


def parse_bool(v: Any, field: str) -> bool:
    if isinstance(v, bool):
        return v
    if v in (0, 1):
        return bool(v)
    if isinstance(v, str) and v.strip().lower() in ("true", "false", "1", "0"):
        return v.strip().lower() in ("true", "1")
    raise BadRequest(f"{field} must be a boolean.")


def parse_datetime(v: Any, field: str) -> datetime:
    """Parse an ISO-8601 timestamp; aware values are converted to naive UTC."""
    if not v or not isinstance(v, str):
        raise BadRequest(f"{field} must be an ISO-8601 datetime.")
    s = v.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        raise BadRequest(f"{field} must be an ISO-8601 datetime.")
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def parse_date(v: Any, field: str) -> date:
    if not v or not isinstance(v, str):
        raise BadRequest(f"{field} must be a YYYY-MM-DD date.")
    try:
        return date.fromisoformat(v.strip()[:10])
    except ValueError:
        raise BadRequest(f"{field} must be a YYYY-MM-DD date.")


def parse_time(v: Any, field: str) -> time:
    if not v or not isinstance(v, str):
        raise BadRequest(f"{field} must be an HH:MM[:SS] time.")
    try:
        return time.fromisoformat(v.strip())
    except ValueError:
        raise BadRequest(f"{field} must be an HH:MM[:SS] time.")


def parse_amount(v: Any, field: str = "amount") -> Decimal:
    if isinstance(v, bool) or v is None or v == "":
        raise BadRequest(f"{field} must be a positive number.")
    try:
        amount = Decimal(str(v))
    except InvalidOperation:
        raise BadRequest(f"{field} must be a positive number.")
    if not amount.is_finite() or amount <= 0:
        raise BadRequest(f"{field} must be a positive number.")
    return amount.quantize(Decimal("0.01"))


def iso(v: date | datetime | time | None) -> str | None:
    return v.isoformat() if v is not None else None


def pick(body: dict[str, Any], *names: str, default: Any = None) -> Any:
    """First present key among `names` (camelCase first, snake_case accepted)."""
    for name in names:
        if name in body:
            return body[name]
    return default


def require_str(body: dict[str, Any], *names: str) -> str:
    v = clean_str(pick(body, *names))
    if v is None:
        raise BadRequest(f"{names[0]} is required.")
    return v


def optional_str(body: dict[str, Any], *names: str) -> str | None:
    """Like pick(), but coerces a present value to str; "" is kept so callers can clear a field."""
    v = pick(body, *names)
    return None if v is None else str(v)
