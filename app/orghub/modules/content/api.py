from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.orghub.db import db_session
from app.orghub.errors import BadRequest
from app.orghub.modules.content.models import Announcement, Event
from app.orghub.modules.content.service import (
    announcement_to_dict,
    create_announcement,
    create_event,
    create_notification,
    delete_announcement,
    delete_event,
    event_to_dict,
    get_announcement,
    get_event,
    get_own_notification,
    list_meetings,
    list_notifications,
    mark_all_read,
    meeting_to_dict,
    notification_to_dict,
    update_event,
)
from app.orghub.permissions import ANNOUNCEMENTS_WRITE, EVENTS_WRITE, NOTIFICATIONS_WRITE
from app.orghub.rbac import current_auth, require_auth
from app.orghub.utils import (
    clean_str,
    json_body,
    optional_str,
    page_args,
    paginate,
    parse_bool,
    parse_datetime,
    parse_int,
    pick,
    require_str,
)

bp = Blueprint("content", __name__)


# ---- announcements ----


@bp.get("/announcements")
@require_auth()
def announcements_list():
    ctx = current_auth()
    s = db_session()
    after_id, limit = page_args()
    q = (request.args.get("q") or "").strip()
    pinned = (request.args.get("pinned") or "").strip()

    query = s.query(Announcement).filter(Announcement.organization_id == ctx.organization_id)
    if q:
        like = f"%{q}%"
        query = query.filter((Announcement.title.ilike(like)) | (Announcement.content.ilike(like)))
    if pinned:
        query = query.filter(Announcement.is_pinned.is_(parse_bool(pinned, "pinned")))

    page = paginate(query, Announcement.id, after_id=after_id, limit=limit)
    return jsonify({"items": [announcement_to_dict(a) for a in page.items], "nextCursor": page.next_cursor})


@bp.post("/announcements")
@require_auth(ANNOUNCEMENTS_WRITE)
def announcements_create():
    ctx = current_auth()
    s = db_session()
    body = json_body()
    pinned = pick(body, "isPinned", "is_pinned")
    a = create_announcement(
        s,
        organization_id=ctx.organization_id,
        user=ctx.user,
        title=require_str(body, "title"),
        content=require_str(body, "content"),
        is_pinned=parse_bool(pinned, "isPinned") if pinned is not None else False,
    )
    s.commit()
    return jsonify(announcement_to_dict(a)), 201


@bp.delete("/announcements/<int:announcement_id>")
@require_auth(ANNOUNCEMENTS_WRITE)
def announcements_delete(announcement_id: int):
    ctx = current_auth()
    s = db_session()
    a = get_announcement(s, announcement_id, ctx.organization_id)
    delete_announcement(s, a, user=ctx.user)
    s.commit()
    return "", 204


# ---- events ----


@bp.get("/events")
@require_auth()
def events_list():
    ctx = current_auth()
    s = db_session()
    after_id, limit = page_args()
    q = (request.args.get("q") or "").strip()

    query = s.query(Event).filter(Event.organization_id == ctx.organization_id)
    if q:
        like = f"%{q}%"
        query = query.filter((Event.title.ilike(like)) | (Event.location.ilike(like)))

    page = paginate(query, Event.id, after_id=after_id, limit=limit)
    return jsonify({"items": [event_to_dict(e) for e in page.items], "nextCursor": page.next_cursor})


@bp.get("/events/<int:event_id>")
@require_auth()
def events_detail(event_id: int):
    ctx = current_auth()
    return jsonify(event_to_dict(get_event(db_session(), event_id, ctx.organization_id)))


@bp.post("/events")
@require_auth(EVENTS_WRITE)
def events_create():
    ctx = current_auth()
    s = db_session()
    body = json_body()
    evt = create_event(
        s,
        organization_id=ctx.organization_id,
        user=ctx.user,
        title=require_str(body, "title"),
        start_date=parse_datetime(pick(body, "startDate", "start_date"), "startDate"),
        end_date=parse_datetime(pick(body, "endDate", "end_date"), "endDate"),
        description=clean_str(body.get("description")),
        location=clean_str(body.get("location")),
        image_url=clean_str(pick(body, "imageUrl", "image_url")),
    )
    s.commit()
    return jsonify(event_to_dict(evt)), 201


@bp.put("/events/<int:event_id>")
@require_auth(EVENTS_WRITE)
def events_update(event_id: int):
    ctx = current_auth()
    s = db_session()
    body = json_body()
    evt = get_event(s, event_id, ctx.organization_id)

    start_raw = pick(body, "startDate", "start_date")
    end_raw = pick(body, "endDate", "end_date")
    update_event(
        s,
        evt,
        user=ctx.user,
        title=optional_str(body, "title"),
        description=optional_str(body, "description"),
        location=optional_str(body, "location"),
        image_url=optional_str(body, "imageUrl", "image_url"),
        start_date=parse_datetime(start_raw, "startDate") if start_raw else None,
        end_date=parse_datetime(end_raw, "endDate") if end_raw else None,
    )
    s.commit()
    return jsonify(event_to_dict(evt))


@bp.delete("/events/<int:event_id>")
@require_auth(EVENTS_WRITE)
def events_delete(event_id: int):
    ctx = current_auth()
    s = db_session()
    evt = get_event(s, event_id, ctx.organization_id)
    delete_event(s, evt, user=ctx.user)
    s.commit()
    return "", 204


@bp.get("/meetings")
@require_auth()
def meetings_list():
    ctx = current_auth()
    after_id, limit = page_args()
    page = list_meetings(
        db_session(),
        ctx.organization_id,
        q=(request.args.get("q") or "").strip(),
        after_id=after_id,
        limit=limit,
    )
    return jsonify({"items": [meeting_to_dict(e) for e in page.items], "nextCursor": page.next_cursor})


# ---- notifications (per-user inbox) ----


@bp.get("/notifications")
@require_auth(scoped=False)
def notifications_list():
    ctx = current_auth()
    items = list_notifications(db_session(), ctx.user)
    return jsonify({"items": [notification_to_dict(n) for n in items], "total": len(items)})


@bp.patch("/notifications/mark-all-read")
@require_auth(scoped=False)
def notifications_mark_all_read():
    ctx = current_auth()
    s = db_session()
    updated = mark_all_read(s, ctx.user)
    s.commit()
    return jsonify({"message": "All notifications marked as read", "updated": updated})


@bp.patch("/notifications/<int:notification_id>")
@require_auth(scoped=False)
def notifications_mark(notification_id: int):
    ctx = current_auth()
    s = db_session()
    body = json_body()
    n = get_own_notification(s, notification_id, ctx.user)
    raw = pick(body, "isRead", "is_read")
    n.is_read = parse_bool(raw, "isRead") if raw is not None else True
    s.commit()
    return jsonify(notification_to_dict(n))


@bp.post("/notifications")
@require_auth(NOTIFICATIONS_WRITE)
def notifications_create():
    ctx = current_auth()
    s = db_session()
    body = json_body()
    raw_user_id = pick(body, "userId", "user_id")
    kind = clean_str(body.get("type")) or "general"
    if len(kind) > 32:
        raise BadRequest("type is too long.")
    n = create_notification(
        s,
        ctx,
        title=require_str(body, "title"),
        message=require_str(body, "message"),
        kind=kind,
        user_id=parse_int(raw_user_id, "userId") if raw_user_id is not None else None,
    )
    s.commit()
    return jsonify(notification_to_dict(n)), 201
