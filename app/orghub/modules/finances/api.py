from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.orghub.db import db_session
from app.orghub.errors import BadRequest
from app.orghub.modules.content.models import Event
from app.orghub.modules.finances.models import Expense, Income
from app.orghub.modules.finances.service import (
    APPROVE_PENDING,
    APPROVE_STATUSES,
    PAID_PENDING,
    PAID_STATUSES,
    create_record,
    delete_record,
    event_financials,
    get_record,
    record_stats,
    record_to_dict,
    set_approval,
    set_paid,
    update_record,
)
from app.orghub.permissions import EXPENSE_WRITE, INCOME_WRITE
from app.orghub.rbac import current_auth, require_auth
from app.orghub.utils import (
    clean_str,
    json_body,
    optional_str,
    page_args,
    paginate,
    parse_amount,
    parse_date,
    parse_int,
    parse_time,
    pick,
)

bp = Blueprint("finances", __name__)

# (number key, pic key) as sent by clients
_DOCUMENT_KEYS = {
    Income: ("receiptNumber", "receiptPic"),
    Expense: ("billNumber", "billPic"),
}


def _event_filter() -> int | None:
    raw = (request.args.get("eventId") or "").strip()
    return parse_int(raw, "eventId") if raw else None


def _list(model):
    ctx = current_auth()
    s = db_session()
    after_id, limit = page_args()
    q = (request.args.get("q") or "").strip()
    event_id = _event_filter()
    approve_status = (request.args.get("approveStatus") or "").strip()

    query = s.query(model).filter(model.organization_id == ctx.organization_id)
    if event_id is not None:
        query = query.filter(model.event_id == event_id)
    if approve_status:
        if approve_status not in APPROVE_STATUSES:
            raise BadRequest(f"Invalid approveStatus: {approve_status}")
        query = query.filter(model.approve_status == approve_status)
    if model is Income:
        paid_status = (request.args.get("paidStatus") or "").strip()
        if paid_status:
            if paid_status not in PAID_STATUSES:
                raise BadRequest(f"Invalid paidStatus: {paid_status}")
            query = query.filter(Income.paid_status == paid_status)
    if q:
        like = f"%{q}%"
        number_col = Income.receipt_number if model is Income else Expense.bill_number
        query = query.join(Event, Event.id == model.event_id).filter(
            (number_col.ilike(like)) | (model.description.ilike(like)) | (Event.title.ilike(like))
        )

    page = paginate(query, model.id, after_id=after_id, limit=limit)
    return jsonify({"items": [record_to_dict(r) for r in page.items], "nextCursor": page.next_cursor})


def _create(model):
    ctx = current_auth()
    s = db_session()
    body = json_body()
    number_key, pic_key = _DOCUMENT_KEYS[model]

    raw_event = pick(body, "eventId", "event_id")
    if raw_event is None:
        raise BadRequest("eventId is required.")
    rec = create_record(
        s,
        model,
        organization_id=ctx.organization_id,
        user=ctx.user,
        event_id=parse_int(raw_event, "eventId"),
        amount=parse_amount(body.get("amount")),
        entry_date=parse_date(body.get("date"), "date"),
        entry_time=parse_time(body.get("time"), "time"),
        description=clean_str(body.get("description")),
        number=clean_str(body.get(number_key)),
        pic=clean_str(body.get(pic_key)),
        approve_status=clean_str(pick(body, "approveStatus", "approve_status")) or APPROVE_PENDING,
        paid_status=clean_str(pick(body, "paidStatus", "paid_status")) or PAID_PENDING,
    )
    s.commit()
    return jsonify(record_to_dict(rec)), 201


def _update(model, record_id: int):
    ctx = current_auth()
    s = db_session()
    body = json_body()
    number_key, pic_key = _DOCUMENT_KEYS[model]
    rec = get_record(s, model, record_id, ctx.organization_id)

    raw_event = pick(body, "eventId", "event_id")
    raw_amount = body.get("amount")
    raw_date = body.get("date")
    raw_time = body.get("time")
    update_record(
        s,
        rec,
        user=ctx.user,
        event_id=parse_int(raw_event, "eventId") if raw_event is not None else None,
        amount=parse_amount(raw_amount) if raw_amount is not None else None,
        entry_date=parse_date(raw_date, "date") if raw_date else None,
        entry_time=parse_time(raw_time, "time") if raw_time else None,
        description=optional_str(body, "description"),
        number=optional_str(body, number_key),
        pic=optional_str(body, pic_key),
    )
    s.commit()
    return jsonify(record_to_dict(rec))


def _approve(model, record_id: int):
    ctx = current_auth()
    s = db_session()
    body = json_body()
    rec = get_record(s, model, record_id, ctx.organization_id)
    status = clean_str(pick(body, "approveStatus", "approve_status"))
    if status is None:
        raise BadRequest("approveStatus is required.")
    set_approval(s, rec, user=ctx.user, approve_status=status)
    s.commit()
    return jsonify(record_to_dict(rec))


def _delete(model, record_id: int):
    ctx = current_auth()
    s = db_session()
    rec = get_record(s, model, record_id, ctx.organization_id)
    delete_record(s, rec, user=ctx.user)
    s.commit()
    return "", 204


# ---- income ----


@bp.get("/income")
@require_auth()
def income_list():
    return _list(Income)


@bp.get("/income/stats")
@require_auth()
def income_stats():
    ctx = current_auth()
    return jsonify(record_stats(db_session(), Income, ctx.organization_id, event_id=_event_filter()))


@bp.get("/income/<int:record_id>")
@require_auth()
def income_detail(record_id: int):
    ctx = current_auth()
    return jsonify(record_to_dict(get_record(db_session(), Income, record_id, ctx.organization_id)))


@bp.post("/income")
@require_auth(INCOME_WRITE)
def income_create():
    return _create(Income)


@bp.put("/income/<int:record_id>")
@require_auth(INCOME_WRITE)
def income_update(record_id: int):
    return _update(Income, record_id)


@bp.patch("/income/<int:record_id>/approve")
@require_auth(INCOME_WRITE)
def income_approve(record_id: int):
    return _approve(Income, record_id)


@bp.patch("/income/<int:record_id>/paid")
@require_auth(INCOME_WRITE)
def income_paid(record_id: int):
    ctx = current_auth()
    s = db_session()
    body = json_body()
    rec = get_record(s, Income, record_id, ctx.organization_id)
    status = clean_str(pick(body, "paidStatus", "paid_status"))
    if status is None:
        raise BadRequest("paidStatus is required.")
    set_paid(s, rec, user=ctx.user, paid_status=status)
    s.commit()
    return jsonify(record_to_dict(rec))


@bp.delete("/income/<int:record_id>")
@require_auth(INCOME_WRITE)
def income_delete(record_id: int):
    return _delete(Income, record_id)


# ---- expense ----


@bp.get("/expense")
@require_auth()
def expense_list():
    return _list(Expense)


@bp.get("/expense/stats")
@require_auth()
def expense_stats():
    ctx = current_auth()
    return jsonify(record_stats(db_session(), Expense, ctx.organization_id, event_id=_event_filter()))


@bp.get("/expense/<int:record_id>")
@require_auth()
def expense_detail(record_id: int):
    ctx = current_auth()
    return jsonify(record_to_dict(get_record(db_session(), Expense, record_id, ctx.organization_id)))


@bp.post("/expense")
@require_auth(EXPENSE_WRITE)
def expense_create():
    return _create(Expense)


@bp.put("/expense/<int:record_id>")
@require_auth(EXPENSE_WRITE)
def expense_update(record_id: int):
    return _update(Expense, record_id)


@bp.patch("/expense/<int:record_id>/approve")
@require_auth(EXPENSE_WRITE)
def expense_approve(record_id: int):
    return _approve(Expense, record_id)


@bp.delete("/expense/<int:record_id>")
@require_auth(EXPENSE_WRITE)
def expense_delete(record_id: int):
    return _delete(Expense, record_id)


# ---- per-event summary ----


@bp.get("/event-financials")
@require_auth()
def event_financials_list():
    ctx = current_auth()
    return jsonify({"items": event_financials(db_session(), ctx.organization_id)})


@bp.get("/event-financials/<int:event_id>")
@require_auth()
def event_financials_detail(event_id: int):
    ctx = current_auth()
    return jsonify(event_financials(db_session(), ctx.organization_id, event_id=event_id)[0])
