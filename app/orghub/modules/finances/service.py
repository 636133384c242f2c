"""
Finances service layer.

Income and expense records share one workflow: created as Pending, then
Approved or Declined by someone holding the write permission (the approver is
recorded). Income additionally tracks whether the money was actually paid.
Only Approved records count towards event financials.
"""
from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.orghub.audit import record_event
from app.orghub.errors import BadRequest, NotFound
from app.orghub.modules.content.models import Event
from app.orghub.utils import iso

from .models import Expense, Income

if TYPE_CHECKING:
    from app.orghub.models import User


APPROVE_PENDING = "Pending"
APPROVE_APPROVED = "Approved"
APPROVE_DECLINED = "Declined"
APPROVE_STATUSES = (APPROVE_PENDING, APPROVE_APPROVED, APPROVE_DECLINED)

PAID_PENDING = "Pending"
PAID_PAID = "Paid"
PAID_STATUSES = (PAID_PENDING, PAID_PAID)

# Document number / picture columns differ per record type.
DOCUMENT_FIELDS = {
    Income: ("receipt_number", "receipt_pic"),
    Expense: ("bill_number", "bill_pic"),
}

ENTITY_LABELS = {Income: "income", Expense: "expense"}

FinanceRecord = Income | Expense


def _validate_approve_status(status: str) -> str:
    if status not in APPROVE_STATUSES:
        raise BadRequest(f"Invalid approveStatus. Must be one of: {', '.join(APPROVE_STATUSES)}")
    return status


def _validate_paid_status(status: str) -> str:
    if status not in PAID_STATUSES:
        raise BadRequest(f"Invalid paidStatus. Must be one of: {', '.join(PAID_STATUSES)}")
    return status


def event_in_scope(s: Session, event_id: int, organization_id: int) -> Event:
    evt = (
        s.query(Event)
        .filter(Event.id == event_id, Event.organization_id == organization_id)
        .one_or_none()
    )
    if evt is None:
        raise BadRequest("Invalid event: not found or not in your organization.")
    return evt


def get_record(s: Session, model: type[FinanceRecord], record_id: int, organization_id: int) -> FinanceRecord:
    rec = (
        s.query(model)
        .filter(model.id == record_id, model.organization_id == organization_id)
        .one_or_none()
    )
    if rec is None:
        raise NotFound(f"{ENTITY_LABELS[model].capitalize()} record not found.")
    return rec


def create_record(
    s: Session,
    model: type[FinanceRecord],
    *,
    organization_id: int,
    user: User,
    event_id: int,
    amount: Decimal,
    entry_date: date,
    entry_time: time,
    description: str | None = None,
    number: str | None = None,
    pic: str | None = None,
    approve_status: str = APPROVE_PENDING,
    paid_status: str = PAID_PENDING,
) -> FinanceRecord:
    event_in_scope(s, event_id, organization_id)
    _validate_approve_status(approve_status)

    number_field, pic_field = DOCUMENT_FIELDS[model]
    now = datetime.utcnow()
    rec = model(
        organization_id=organization_id,
        event_id=event_id,
        amount=amount,
        description=description,
        approve_status=approve_status,
        approve_person_id=user.id if approve_status != APPROVE_PENDING else None,
        entry_date=entry_date,
        entry_time=entry_time,
        created_by_user_id=user.id,
        created_at=now,
        updated_at=now,
    )
    setattr(rec, number_field, number)
    setattr(rec, pic_field, pic)
    if model is Income:
        rec.paid_status = _validate_paid_status(paid_status)
    s.add(rec)
    s.flush()

    label = ENTITY_LABELS[model]
    record_event(
        s,
        actor=user,
        action=f"{label}.create",
        entity_type=model.__name__,
        entity_id=str(rec.id),
        organization_id=organization_id,
        metadata={"event_id": event_id, "amount": str(amount), "approve_status": approve_status},
    )
    return rec


def update_record(
    s: Session,
    rec: FinanceRecord,
    *,
    user: User,
    event_id: int | None = None,
    amount: Decimal | None = None,
    entry_date: date | None = None,
    entry_time: time | None = None,
    description: str | None = None,
    number: str | None = None,
    pic: str | None = None,
) -> FinanceRecord:
    """Edit document fields; approval and paid status have their own operations."""
    model = type(rec)
    number_field, pic_field = DOCUMENT_FIELDS[model]
    changes: dict[str, Any] = {}

    if event_id is not None and event_id != rec.event_id:
        evt = event_in_scope(s, event_id, rec.organization_id)
        changes["event_id"] = {"from": rec.event_id, "to": event_id}
        rec.event = evt
    if amount is not None and amount != rec.amount:
        changes["amount"] = {"from": str(rec.amount), "to": str(amount)}
        rec.amount = amount
    if entry_date is not None and entry_date != rec.entry_date:
        changes["date"] = {"from": iso(rec.entry_date), "to": iso(entry_date)}
        rec.entry_date = entry_date
    if entry_time is not None and entry_time != rec.entry_time:
        changes["time"] = {"from": iso(rec.entry_time), "to": iso(entry_time)}
        rec.entry_time = entry_time
    for field, value in (("description", description), (number_field, number), (pic_field, pic)):
        if value is None:
            continue
        value = value.strip() or None
        if value != getattr(rec, field):
            changes[field] = {"from": getattr(rec, field), "to": value}
            setattr(rec, field, value)

    if changes:
        rec.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=user,
            action=f"{ENTITY_LABELS[model]}.update",
            entity_type=model.__name__,
            entity_id=str(rec.id),
            organization_id=rec.organization_id,
            metadata={"changes": changes},
        )
    return rec


def set_approval(s: Session, rec: FinanceRecord, *, user: User, approve_status: str) -> FinanceRecord:
    _validate_approve_status(approve_status)
    old = rec.approve_status
    rec.approve_status = approve_status
    rec.approve_person_id = user.id
    rec.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action=f"{ENTITY_LABELS[type(rec)]}.approve",
        entity_type=type(rec).__name__,
        entity_id=str(rec.id),
        organization_id=rec.organization_id,
        metadata={"from": old, "to": approve_status},
    )
    return rec


def set_paid(s: Session, income: Income, *, user: User, paid_status: str) -> Income:
    _validate_paid_status(paid_status)
    old = income.paid_status
    income.paid_status = paid_status
    income.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="income.paid",
        entity_type="Income",
        entity_id=str(income.id),
        organization_id=income.organization_id,
        metadata={"from": old, "to": paid_status},
    )
    return income


def delete_record(s: Session, rec: FinanceRecord, *, user: User) -> None:
    model = type(rec)
    record_event(
        s,
        actor=user,
        action=f"{ENTITY_LABELS[model]}.delete",
        entity_type=model.__name__,
        entity_id=str(rec.id),
        organization_id=rec.organization_id,
        metadata={"event_id": rec.event_id, "amount": str(rec.amount), "approve_status": rec.approve_status},
    )
    s.delete(rec)


def _money(v: Decimal | int | None) -> float:
    return float(Decimal(str(v or 0)).quantize(Decimal("0.01")))


def record_stats(
    s: Session, model: type[FinanceRecord], organization_id: int, *, event_id: int | None = None
) -> dict[str, Any]:
    """Totals and counts per approval status (plus paid/unpaid counts for income)."""
    q = s.query(model.approve_status, func.coalesce(func.sum(model.amount), 0), func.count(model.id)).filter(
        model.organization_id == organization_id
    )
    if event_id is not None:
        q = q.filter(model.event_id == event_id)
    rows = {status: (total, count) for status, total, count in q.group_by(model.approve_status).all()}

    out: dict[str, Any] = {}
    for status in APPROVE_STATUSES:
        total, count = rows.get(status, (0, 0))
        out[status.lower()] = {"total": _money(total), "count": int(count or 0)}

    if model is Income:
        pq = s.query(Income.paid_status, func.count(Income.id)).filter(Income.organization_id == organization_id)
        if event_id is not None:
            pq = pq.filter(Income.event_id == event_id)
        paid = {status: int(n or 0) for status, n in pq.group_by(Income.paid_status).all()}
        out["paidCount"] = paid.get(PAID_PAID, 0)
        out["unpaidCount"] = paid.get(PAID_PENDING, 0)
    return out


def _approved_totals(s: Session, model: type[FinanceRecord], event_ids: list[int]) -> dict[int, Decimal]:
    if not event_ids:
        return {}
    rows = (
        s.query(model.event_id, func.coalesce(func.sum(model.amount), 0))
        .filter(model.event_id.in_(event_ids), model.approve_status == APPROVE_APPROVED)
        .group_by(model.event_id)
        .all()
    )
    return {int(eid): Decimal(str(total or 0)) for eid, total in rows}


def event_financials(s: Session, organization_id: int, *, event_id: int | None = None) -> list[dict[str, Any]]:
    """Approved income, approved expenses and net balance per event, newest event first."""
    q = s.query(Event).filter(Event.organization_id == organization_id)
    if event_id is not None:
        q = q.filter(Event.id == event_id)
    events = q.order_by(Event.start_date.desc(), Event.id.desc()).all()
    if event_id is not None and not events:
        raise NotFound("Event not found.")

    ids = [e.id for e in events]
    income = _approved_totals(s, Income, ids)
    expenses = _approved_totals(s, Expense, ids)
    out = []
    for e in events:
        inc = income.get(e.id, Decimal(0))
        exp = expenses.get(e.id, Decimal(0))
        out.append(
            {
                "id": e.id,
                "name": e.title,
                "startDate": iso(e.start_date),
                "location": e.location,
                "income": _money(inc),
                "expenses": _money(exp),
                "net": _money(inc - exp),
            }
        )
    return out


def record_to_dict(rec: FinanceRecord) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": rec.id,
        "organizationId": rec.organization_id,
        "eventId": rec.event_id,
        "event": {"id": rec.event.id, "title": rec.event.title} if rec.event else None,
        "amount": _money(rec.amount),
        "description": rec.description,
        "approveStatus": rec.approve_status,
        "approvePersonId": rec.approve_person_id,
        "date": iso(rec.entry_date),
        "time": iso(rec.entry_time),
        "createdAt": iso(rec.created_at),
        "updatedAt": iso(rec.updated_at),
    }
    if isinstance(rec, Income):
        out["receiptNumber"] = rec.receipt_number
        out["receiptPic"] = rec.receipt_pic
        out["paidStatus"] = rec.paid_status
    else:
        out["billNumber"] = rec.bill_number
        out["billPic"] = rec.bill_pic
    return out
