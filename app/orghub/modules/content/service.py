"""
Content service layer: announcements, events (and their meetings view) and notifications.
"""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from app.orghub.audit import record_event
from app.orghub.errors import BadRequest, Conflict, NotFound
from app.orghub.models import User
from app.orghub.utils import Page, iso

from .models import Announcement, Event, Notification

if TYPE_CHECKING:
    from app.orghub.rbac import AuthContext

NOTIFICATION_INBOX_SIZE = 50


# ---- announcements ----


def create_announcement(
    s: Session,
    *,
    organization_id: int,
    user: User,
    title: str,
    content: str,
    is_pinned: bool = False,
) -> Announcement:
    a = Announcement(
        organization_id=organization_id,
        title=title.strip(),
        content=content.strip(),
        is_pinned=is_pinned,
        author_id=user.id,
        author_name=user.full_name,
    )
    s.add(a)
    s.flush()
    record_event(
        s,
        actor=user,
        action="announcements.create",
        entity_type="Announcement",
        entity_id=str(a.id),
        organization_id=organization_id,
        metadata={"title": a.title, "is_pinned": a.is_pinned},
    )
    return a


def get_announcement(s: Session, announcement_id: int, organization_id: int) -> Announcement:
    a = (
        s.query(Announcement)
        .filter(Announcement.id == announcement_id, Announcement.organization_id == organization_id)
        .one_or_none()
    )
    if a is None:
        raise NotFound("Announcement not found.")
    return a


def delete_announcement(s: Session, a: Announcement, *, user: User) -> None:
    record_event(
        s,
        actor=user,
        action="announcements.delete",
        entity_type="Announcement",
        entity_id=str(a.id),
        organization_id=a.organization_id,
        metadata={"title": a.title},
    )
    s.delete(a)


def announcement_to_dict(a: Announcement) -> dict[str, Any]:
    return {
        "id": a.id,
        "organizationId": a.organization_id,
        "title": a.title,
        "content": a.content,
        "isPinned": a.is_pinned,
        "authorId": a.author_id,
        "authorName": a.author_name,
        "createdAt": iso(a.created_at),
    }


# ---- events ----


def _validate_event_window(start_date: datetime, end_date: datetime) -> None:
    if end_date < start_date:
        raise BadRequest("endDate must not be before startDate.")


def get_event(s: Session, event_id: int, organization_id: int) -> Event:
    evt = (
        s.query(Event)
        .filter(Event.id == event_id, Event.organization_id == organization_id)
        .one_or_none()
    )
    if evt is None:
        raise NotFound("Event not found.")
    return evt


def create_event(
    s: Session,
    *,
    organization_id: int,
    user: User,
    title: str,
    start_date: datetime,
    end_date: datetime,
    description: str | None = None,
    location: str | None = None,
    image_url: str | None = None,
) -> Event:
    _validate_event_window(start_date, end_date)
    now = datetime.utcnow()
    evt = Event(
        organization_id=organization_id,
        title=title.strip(),
        description=description,
        location=location,
        start_date=start_date,
        end_date=end_date,
        image_url=image_url,
        organizer_id=user.id,
        organizer_name=user.full_name,
        created_at=now,
        updated_at=now,
    )
    s.add(evt)
    s.flush()
    record_event(
        s,
        actor=user,
        action="events.create",
        entity_type="Event",
        entity_id=str(evt.id),
        organization_id=organization_id,
        metadata={"title": evt.title, "start_date": iso(start_date)},
    )
    return evt


def update_event(
    s: Session,
    evt: Event,
    *,
    user: User,
    title: str | None = None,
    description: str | None = None,
    location: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    image_url: str | None = None,
) -> Event:
    """Partial update; arguments left as None are not touched."""
    changes: dict[str, Any] = {}
    if title is not None and title.strip() and title.strip() != evt.title:
        changes["title"] = {"from": evt.title, "to": title.strip()}
        evt.title = title.strip()
    for field, value in (("description", description), ("location", location), ("image_url", image_url)):
        if value is None:
            continue
        value = value.strip() or None
        if value != getattr(evt, field):
            changes[field] = {"from": getattr(evt, field), "to": value}
            setattr(evt, field, value)

    if start_date is not None or end_date is not None:
        new_start = start_date or evt.start_date
        new_end = end_date or evt.end_date
        _validate_event_window(new_start, new_end)
        if new_start != evt.start_date:
            changes["start_date"] = {"from": iso(evt.start_date), "to": iso(new_start)}
            evt.start_date = new_start
        if new_end != evt.end_date:
            changes["end_date"] = {"from": iso(evt.end_date), "to": iso(new_end)}
            evt.end_date = new_end

    if changes:
        evt.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=user,
            action="events.update",
            entity_type="Event",
            entity_id=str(evt.id),
            organization_id=evt.organization_id,
            metadata={"changes": changes},
        )
    return evt


def delete_event(s: Session, evt: Event, *, user: User) -> None:
    """Refused while income or expense records still point at the event."""
    from app.orghub.modules.finances.models import Expense, Income

    linked = (
        s.query(Income.id).filter(Income.event_id == evt.id).count()
        + s.query(Expense.id).filter(Expense.event_id == evt.id).count()
    )
    if linked:
        raise Conflict(f"Event has {linked} finance record(s); remove them first.")
    record_event(
        s,
        actor=user,
        action="events.delete",
        entity_type="Event",
        entity_id=str(evt.id),
        organization_id=evt.organization_id,
        metadata={"title": evt.title},
    )
    s.delete(evt)


def list_meetings(
    s: Session,
    organization_id: int,
    *,
    q: str = "",
    after_id: int | None = None,
    limit: int = 20,
) -> Page:
    """
    Events as a schedule: latest start first, ties broken by id. The cursor is
    the id of the last item of the previous page.
    """
    query = s.query(Event).filter(Event.organization_id == organization_id)
    if q:
        like = f"%{q}%"
        query = query.filter(
            or_(Event.title.ilike(like), Event.description.ilike(like), Event.location.ilike(like))
        )
    if after_id is not None:
        anchor = query.filter(Event.id == after_id).one_or_none()
        if anchor is None:
            raise BadRequest("cursor does not match a meeting.")
        query = query.filter(
            or_(
                Event.start_date < anchor.start_date,
                and_(Event.start_date == anchor.start_date, Event.id < anchor.id),
            )
        )
    rows = query.order_by(Event.start_date.desc(), Event.id.desc()).limit(limit + 1).all()
    items = rows[:limit]
    return Page(items=items, next_cursor=items[-1].id if len(rows) > limit and items else None)


def meeting_to_dict(evt: Event) -> dict[str, Any]:
    return {
        "id": evt.id,
        "title": evt.title,
        "description": evt.description,
        "location": evt.location,
        "startDate": iso(evt.start_date),
        "endDate": iso(evt.end_date),
        "createdAt": iso(evt.created_at),
    }


def event_to_dict(evt: Event) -> dict[str, Any]:
    return {
        "id": evt.id,
        "organizationId": evt.organization_id,
        "title": evt.title,
        "description": evt.description,
        "location": evt.location,
        "startDate": iso(evt.start_date),
        "endDate": iso(evt.end_date),
        "imageUrl": evt.image_url,
        "organizerId": evt.organizer_id,
        "organizerName": evt.organizer_name,
        "createdAt": iso(evt.created_at),
        "updatedAt": iso(evt.updated_at),
    }


# ---- notifications ----


def list_notifications(s: Session, user: User) -> list[Notification]:
    return (
        s.query(Notification)
        .filter(Notification.user_id == user.id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(NOTIFICATION_INBOX_SIZE)
        .all()
    )


def get_own_notification(s: Session, notification_id: int, user: User) -> Notification:
    n = (
        s.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user.id)
        .one_or_none()
    )
    if n is None:
        raise NotFound("Notification not found.")
    return n


def mark_all_read(s: Session, user: User) -> int:
    return (
        s.query(Notification)
        .filter(Notification.user_id == user.id, Notification.is_read.is_(False))
        .update({Notification.is_read: True}, synchronize_session=False)
    )


def create_notification(
    s: Session,
    ctx: AuthContext,
    *,
    title: str,
    message: str,
    kind: str = "general",
    user_id: int | None = None,
) -> Notification:
    """
    Send a notification to `user_id` (default: the caller). The recipient must
    belong to the caller's organization scope unless the caller is a super-admin.
    """
    recipient = ctx.user
    if user_id is not None and user_id != ctx.user.id:
        recipient = s.get(User, user_id)
        if recipient is None or (not ctx.is_super_admin and recipient.organization_id != ctx.organization_id):
            raise NotFound("User not found.")
    n = Notification(
        organization_id=recipient.organization_id,
        user_id=recipient.id,
        title=title,
        message=message,
        type=kind,
        is_read=False,
    )
    s.add(n)
    s.flush()
    record_event(
        s,
        actor=ctx.user,
        action="notifications.create",
        entity_type="Notification",
        entity_id=str(n.id),
        organization_id=recipient.organization_id,
        metadata={"recipient_id": recipient.id, "type": kind},
    )
    return n


def notification_to_dict(n: Notification) -> dict[str, Any]:
    return {
        "id": n.id,
        "userId": n.user_id,
        "title": n.title,
        "message": n.message,
        "type": n.type,
        "isRead": n.is_read,
        "createdAt": iso(n.created_at),
    }
