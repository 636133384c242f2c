from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify

from app.orghub.db import db_session
from app.orghub.errors import BadRequest
from app.orghub.modules.chats.service import (
    add_participants,
    chat_stats,
    chat_to_dict,
    create_chat,
    delete_chat,
    delete_message,
    edit_message,
    get_chat,
    get_message,
    list_chats,
    list_messages,
    list_participants,
    mark_read,
    message_to_dict,
    participant_to_dict,
    post_message,
    remove_participant,
    unread_count,
    update_chat,
)
from app.orghub.rbac import current_auth, require_auth
from app.orghub.utils import clean_str, json_body, optional_str, page_args, parse_bool, parse_int, pick, require_str

bp = Blueprint("chats", __name__)


def _id_list(raw: Any, field: str) -> list[int]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise BadRequest(f"{field} must be a list of ids.")
    return [parse_int(v, field) for v in raw]


# ---- chats ----


@bp.get("/chats")
@require_auth()
def chats_list():
    ctx = current_auth()
    s = db_session()
    chats = list_chats(s, ctx.organization_id, ctx.user)
    counts, latest = chat_stats(s, [c.id for c in chats])
    items = [
        chat_to_dict(c, list_participants(s, c.id), message_count=counts.get(c.id, 0), last_message=latest.get(c.id))
        for c in chats
    ]
    return jsonify({"items": items})


@bp.get("/chats/unread-count")
@require_auth()
def chats_unread_count():
    ctx = current_auth()
    return jsonify({"unreadCount": unread_count(db_session(), ctx.organization_id, ctx.user)})


@bp.post("/chats")
@require_auth()
def chats_create():
    ctx = current_auth()
    s = db_session()
    body = json_body()
    private = pick(body, "isPrivate", "is_private")
    chat = create_chat(
        s,
        organization_id=ctx.organization_id,
        user=ctx.user,
        name=require_str(body, "name"),
        description=clean_str(body.get("description")),
        chat_type=clean_str(body.get("type")) or "group",
        is_private=parse_bool(private, "isPrivate") if private is not None else False,
        participant_ids=_id_list(pick(body, "participantIds", "participant_ids"), "participantIds"),
    )
    s.commit()
    return jsonify(chat_to_dict(chat, list_participants(s, chat.id), message_count=0)), 201


@bp.get("/chats/<int:chat_id>")
@require_auth()
def chats_detail(chat_id: int):
    ctx = current_auth()
    s = db_session()
    chat, _ = get_chat(s, chat_id, ctx.organization_id, ctx.user)
    counts, latest = chat_stats(s, [chat.id])
    return jsonify(
        chat_to_dict(chat, list_participants(s, chat.id), message_count=counts.get(chat.id, 0), last_message=latest.get(chat.id))
    )


@bp.put("/chats/<int:chat_id>")
@require_auth()
def chats_update(chat_id: int):
    ctx = current_auth()
    s = db_session()
    body = json_body()
    chat, me = get_chat(s, chat_id, ctx.organization_id, ctx.user)
    private = pick(body, "isPrivate", "is_private")
    update_chat(
        s,
        chat,
        me,
        user=ctx.user,
        name=optional_str(body, "name"),
        description=optional_str(body, "description"),
        is_private=parse_bool(private, "isPrivate") if private is not None else None,
    )
    s.commit()
    return jsonify(chat_to_dict(chat, list_participants(s, chat.id)))


@bp.delete("/chats/<int:chat_id>")
@require_auth()
def chats_delete(chat_id: int):
    ctx = current_auth()
    s = db_session()
    chat, me = get_chat(s, chat_id, ctx.organization_id, ctx.user)
    delete_chat(s, chat, me, user=ctx.user)
    s.commit()
    return "", 204


@bp.post("/chats/<int:chat_id>/participants")
@require_auth()
def chats_add_participants(chat_id: int):
    ctx = current_auth()
    s = db_session()
    body = json_body()
    ids = _id_list(pick(body, "participantIds", "participant_ids"), "participantIds")
    if not ids:
        raise BadRequest("participantIds is required.")
    chat, me = get_chat(s, chat_id, ctx.organization_id, ctx.user)
    added = add_participants(s, chat, me, user=ctx.user, user_ids=ids)
    s.commit()
    return jsonify({"added": added, "participants": [participant_to_dict(p) for p in list_participants(s, chat.id)]})


@bp.delete("/chats/<int:chat_id>/participants/<int:user_id>")
@require_auth()
def chats_remove_participant(chat_id: int, user_id: int):
    ctx = current_auth()
    s = db_session()
    chat, me = get_chat(s, chat_id, ctx.organization_id, ctx.user)
    remove_participant(s, chat, me, user=ctx.user, user_id=user_id)
    s.commit()
    return "", 204


@bp.post("/chats/<int:chat_id>/leave")
@require_auth()
def chats_leave(chat_id: int):
    ctx = current_auth()
    s = db_session()
    chat, me = get_chat(s, chat_id, ctx.organization_id, ctx.user)
    remove_participant(s, chat, me, user=ctx.user, user_id=ctx.user.id)
    s.commit()
    return "", 204


@bp.post("/chats/<int:chat_id>/read")
@require_auth()
def chats_mark_read(chat_id: int):
    ctx = current_auth()
    s = db_session()
    _, me = get_chat(s, chat_id, ctx.organization_id, ctx.user)
    mark_read(me)
    s.commit()
    return jsonify({"message": "Messages marked as read"})


# ---- messages ----


@bp.get("/chats/<int:chat_id>/messages")
@require_auth()
def messages_list(chat_id: int):
    ctx = current_auth()
    s = db_session()
    after_id, limit = page_args()
    chat, me = get_chat(s, chat_id, ctx.organization_id, ctx.user)
    page = list_messages(s, chat, me, after_id=after_id, limit=limit)
    s.commit()
    # oldest first within the page
    return jsonify({"items": [message_to_dict(m) for m in reversed(page.items)], "nextCursor": page.next_cursor})


@bp.post("/chats/<int:chat_id>/messages")
@require_auth()
def messages_create(chat_id: int):
    ctx = current_auth()
    s = db_session()
    body = json_body()
    chat, me = get_chat(s, chat_id, ctx.organization_id, ctx.user)
    reply_raw = pick(body, "replyToId", "reply_to_id")
    msg = post_message(
        s,
        chat,
        me,
        user=ctx.user,
        content=require_str(body, "content"),
        kind=clean_str(body.get("type")) or "text",
        reply_to_id=parse_int(reply_raw, "replyToId") if reply_raw is not None else None,
    )
    s.commit()
    return jsonify(message_to_dict(msg)), 201


@bp.put("/messages/<int:message_id>")
@require_auth()
def messages_edit(message_id: int):
    ctx = current_auth()
    s = db_session()
    body = json_body()
    msg, _, _ = get_message(s, message_id, ctx.organization_id, ctx.user)
    edit_message(s, msg, user=ctx.user, content=require_str(body, "content"))
    s.commit()
    return jsonify(message_to_dict(msg))


@bp.delete("/messages/<int:message_id>")
@require_auth()
def messages_delete(message_id: int):
    ctx = current_auth()
    s = db_session()
    msg, chat, me = get_message(s, message_id, ctx.organization_id, ctx.user)
    delete_message(s, msg, chat, me, user=ctx.user)
    s.commit()
    return "", 204
