"""
Chat service layer: organization chats, their participants and messages.

A chat belongs to one organization and is only visible to its participants;
to everyone else it does not exist (NotFound). Participants carry a chat-local
role: `admin` (the creator) and `moderator` may manage the chat, `member` may
only read and post.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.orghub.audit import record_event
from app.orghub.errors import BadRequest, Conflict, Forbidden, NotFound
from app.orghub.models import User
from app.orghub.utils import Page, iso, paginate

from .models import Chat, ChatParticipant, Message

logger = logging.getLogger(__name__)

ROLE_ADMIN = "admin"
ROLE_MODERATOR = "moderator"
ROLE_MEMBER = "member"
MANAGER_ROLES = {ROLE_ADMIN, ROLE_MODERATOR}

CHAT_TYPES = {"group", "direct"}
MESSAGE_TYPES = {"text", "image", "file"}


# ---- access ----


def get_chat(s: Session, chat_id: int, organization_id: int, user: User) -> tuple[Chat, ChatParticipant]:
    """Chat plus the caller's participant row; chats the caller is not in are NotFound."""
    row = (
        s.query(Chat, ChatParticipant)
        .join(ChatParticipant, ChatParticipant.chat_id == Chat.id)
        .filter(
            Chat.id == chat_id,
            Chat.organization_id == organization_id,
            ChatParticipant.user_id == user.id,
        )
        .one_or_none()
    )
    if row is None:
        raise NotFound("Chat not found.")
    return row[0], row[1]


def _require_manager(participant: ChatParticipant) -> None:
    if participant.role not in MANAGER_ROLES:
        raise Forbidden("Only chat admins and moderators can do this.")


def list_participants(s: Session, chat_id: int) -> list[ChatParticipant]:
    return (
        s.query(ChatParticipant)
        .filter(ChatParticipant.chat_id == chat_id)
        .order_by(ChatParticipant.id.asc())
        .all()
    )


def _org_users(s: Session, organization_id: int, user_ids: list[int]) -> list[User]:
    if not user_ids:
        return []
    return (
        s.query(User)
        .filter(User.id.in_(user_ids), User.organization_id == organization_id)
        .order_by(User.id.asc())
        .all()
    )


# ---- chats ----


def list_chats(s: Session, organization_id: int, user: User) -> list[Chat]:
    return (
        s.query(Chat)
        .join(ChatParticipant, ChatParticipant.chat_id == Chat.id)
        .filter(Chat.organization_id == organization_id, ChatParticipant.user_id == user.id)
        .order_by(Chat.updated_at.desc(), Chat.id.desc())
        .all()
    )


def create_chat(
    s: Session,
    *,
    organization_id: int,
    user: User,
    name: str,
    description: str | None = None,
    chat_type: str = "group",
    is_private: bool = False,
    participant_ids: list[int] | None = None,
) -> Chat:
    """
    Create a chat with the caller as its admin. Every other participant must
    belong to the chat's organization; a direct chat has exactly one of them.
    """
    if chat_type not in CHAT_TYPES:
        raise BadRequest(f"Invalid chat type: {chat_type}")

    wanted = sorted({int(uid) for uid in participant_ids or []} - {user.id})
    others = _org_users(s, organization_id, wanted)
    if len(others) != len(wanted):
        raise BadRequest("Participants must be members of the organization.")
    if chat_type == "direct" and len(others) != 1:
        raise BadRequest("A direct chat needs exactly one other participant.")

    now = datetime.utcnow()
    chat = Chat(
        organization_id=organization_id,
        name=name.strip(),
        description=description.strip() if description else None,
        type=chat_type,
        is_private=is_private,
        created_by_user_id=user.id,
        created_by_name=user.full_name,
        created_at=now,
        updated_at=now,
    )
    s.add(chat)
    s.flush()

    s.add(ChatParticipant(chat_id=chat.id, user_id=user.id, user_name=user.full_name, role=ROLE_ADMIN, joined_at=now))
    for u in others:
        s.add(ChatParticipant(chat_id=chat.id, user_id=u.id, user_name=u.full_name, role=ROLE_MEMBER, joined_at=now))
    s.flush()

    record_event(
        s,
        actor=user,
        action="chats.create",
        entity_type="Chat",
        entity_id=str(chat.id),
        organization_id=organization_id,
        metadata={"name": chat.name, "type": chat.type, "participants": len(others) + 1},
    )
    return chat


def update_chat(
    s: Session,
    chat: Chat,
    participant: ChatParticipant,
    *,
    user: User,
    name: str | None = None,
    description: str | None = None,
    is_private: bool | None = None,
) -> Chat:
    _require_manager(participant)
    changes: dict[str, Any] = {}
    if name is not None and name.strip() and name.strip() != chat.name:
        changes["name"] = {"from": chat.name, "to": name.strip()}
        chat.name = name.strip()
    if description is not None and (description.strip() or None) != chat.description:
        changes["description"] = True
        chat.description = description.strip() or None
    if is_private is not None and is_private != chat.is_private:
        changes["is_private"] = {"from": chat.is_private, "to": is_private}
        chat.is_private = is_private

    if changes:
        chat.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=user,
            action="chats.update",
            entity_type="Chat",
            entity_id=str(chat.id),
            organization_id=chat.organization_id,
            metadata={"changes": changes},
        )
    return chat


def add_participants(s: Session, chat: Chat, participant: ChatParticipant, *, user: User, user_ids: list[int]) -> int:
    """Add organization members; ids outside the organization and existing participants are skipped."""
    _require_manager(participant)
    if chat.type == "direct":
        raise BadRequest("Participants cannot be added to a direct chat.")
    existing = {p.user_id for p in list_participants(s, chat.id)}
    added = 0
    for u in _org_users(s, chat.organization_id, sorted({int(uid) for uid in user_ids} - existing)):
        s.add(ChatParticipant(chat_id=chat.id, user_id=u.id, user_name=u.full_name, role=ROLE_MEMBER))
        added += 1
    try:
        s.flush()
    except IntegrityError:
        s.rollback()
        raise Conflict("Participants changed concurrently; retry.")

    if added:
        record_event(
            s,
            actor=user,
            action="chats.participants.add",
            entity_type="Chat",
            entity_id=str(chat.id),
            organization_id=chat.organization_id,
            metadata={"added": added},
        )
    return added


def remove_participant(s: Session, chat: Chat, participant: ChatParticipant, *, user: User, user_id: int) -> None:
    """Managers may remove anyone; every participant may remove themselves (leave)."""
    if user_id != user.id:
        _require_manager(participant)
    target = (
        s.query(ChatParticipant)
        .filter(ChatParticipant.chat_id == chat.id, ChatParticipant.user_id == user_id)
        .one_or_none()
    )
    if target is None:
        raise NotFound("Participant not found.")
    s.delete(target)
    record_event(
        s,
        actor=user,
        action="chats.leave" if user_id == user.id else "chats.participants.remove",
        entity_type="Chat",
        entity_id=str(chat.id),
        organization_id=chat.organization_id,
        metadata={"user_id": user_id},
    )


def delete_chat(s: Session, chat: Chat, participant: ChatParticipant, *, user: User) -> None:
    """Chat admins only. Messages and participants go with the chat."""
    if participant.role != ROLE_ADMIN:
        raise Forbidden("Only chat admins can delete a chat.")
    chat_id = chat.id
    org_id = chat.organization_id
    removed = s.query(Message).filter(Message.chat_id == chat_id).delete(synchronize_session=False)
    s.query(ChatParticipant).filter(ChatParticipant.chat_id == chat_id).delete(synchronize_session=False)
    s.expunge(participant)
    s.expunge(chat)
    s.query(Chat).filter(Chat.id == chat_id).delete(synchronize_session=False)
    record_event(
        s,
        actor=user,
        action="chats.delete",
        entity_type="Chat",
        entity_id=str(chat_id),
        organization_id=org_id,
        metadata={"messages_removed": removed},
    )


# ---- messages ----


def list_messages(
    s: Session,
    chat: Chat,
    participant: ChatParticipant,
    *,
    after_id: int | None,
    limit: int,
    now: datetime | None = None,
) -> Page:
    """
    One page of history, newest page first; `after_id` walks back to older
    messages. Reading a page marks the chat as seen for the caller.
    """
    page = paginate(
        s.query(Message).filter(Message.chat_id == chat.id),
        Message.id,
        after_id=after_id,
        limit=limit,
    )
    participant.last_seen_at = now or datetime.utcnow()
    return page


def get_message(s: Session, message_id: int, organization_id: int, user: User) -> tuple[Message, Chat, ChatParticipant]:
    msg = s.get(Message, message_id)
    if msg is None:
        raise NotFound("Message not found.")
    try:
        chat, participant = get_chat(s, msg.chat_id, organization_id, user)
    except NotFound:
        raise NotFound("Message not found.")
    return msg, chat, participant


def post_message(
    s: Session,
    chat: Chat,
    participant: ChatParticipant,
    *,
    user: User,
    content: str,
    kind: str = "text",
    reply_to_id: int | None = None,
) -> Message:
    if kind not in MESSAGE_TYPES:
        raise BadRequest(f"Invalid message type: {kind}")
    if reply_to_id is not None:
        parent = s.get(Message, reply_to_id)
        if parent is None or parent.chat_id != chat.id:
            raise BadRequest("Reply target is not a message in this chat.")

    now = datetime.utcnow()
    msg = Message(
        chat_id=chat.id,
        sender_id=user.id,
        sender_name=user.full_name,
        content=content.strip(),
        type=kind,
        reply_to_id=reply_to_id,
        created_at=now,
    )
    s.add(msg)
    chat.updated_at = now
    participant.last_seen_at = now
    s.flush()
    logger.info("Message posted: chat_id=%s message_id=%s", chat.id, msg.id)
    return msg


def edit_message(s: Session, msg: Message, *, user: User, content: str) -> Message:
    if msg.sender_id != user.id:
        raise Forbidden("Only the sender can edit a message.")
    if content.strip() != msg.content:
        msg.content = content.strip()
        msg.is_edited = True
        msg.edited_at = datetime.utcnow()
    return msg


def delete_message(s: Session, msg: Message, chat: Chat, participant: ChatParticipant, *, user: User) -> None:
    """The sender, or a chat admin/moderator."""
    if msg.sender_id != user.id:
        _require_manager(participant)
    record_event(
        s,
        actor=user,
        action="chats.message.delete",
        entity_type="Message",
        entity_id=str(msg.id),
        organization_id=chat.organization_id,
        metadata={"chat_id": chat.id, "sender_id": msg.sender_id},
    )
    s.delete(msg)


def mark_read(participant: ChatParticipant, *, now: datetime | None = None) -> None:
    participant.last_seen_at = now or datetime.utcnow()


def unread_count(s: Session, organization_id: int, user: User) -> int:
    """Messages from others posted after the caller last looked at each chat."""
    q = (
        s.query(func.count(Message.id))
        .join(ChatParticipant, ChatParticipant.chat_id == Message.chat_id)
        .join(Chat, Chat.id == Message.chat_id)
        .filter(
            Chat.organization_id == organization_id,
            ChatParticipant.user_id == user.id,
            or_(Message.sender_id.is_(None), Message.sender_id != user.id),
            or_(ChatParticipant.last_seen_at.is_(None), Message.created_at > ChatParticipant.last_seen_at),
        )
    )
    return int(q.scalar() or 0)


# ---- projections ----


def chat_stats(s: Session, chat_ids: list[int]) -> tuple[dict[int, int], dict[int, Message]]:
    """Message counts and the latest message per chat, in two queries."""
    if not chat_ids:
        return {}, {}
    counts = dict(
        s.query(Message.chat_id, func.count(Message.id))
        .filter(Message.chat_id.in_(chat_ids))
        .group_by(Message.chat_id)
        .all()
    )
    latest_ids = (
        s.query(func.max(Message.id))
        .filter(Message.chat_id.in_(chat_ids))
        .group_by(Message.chat_id)
        .scalar_subquery()
    )
    latest = {m.chat_id: m for m in s.query(Message).filter(Message.id.in_(latest_ids)).all()}
    return {int(k): int(v) for k, v in counts.items()}, latest


def participant_to_dict(p: ChatParticipant) -> dict[str, Any]:
    return {
        "userId": p.user_id,
        "userName": p.user_name,
        "role": p.role,
        "joinedAt": iso(p.joined_at),
        "lastSeenAt": iso(p.last_seen_at),
    }


def chat_to_dict(
    chat: Chat,
    participants: list[ChatParticipant],
    *,
    message_count: int | None = None,
    last_message: Message | None = None,
) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": chat.id,
        "organizationId": chat.organization_id,
        "name": chat.name,
        "description": chat.description,
        "type": chat.type,
        "isPrivate": chat.is_private,
        "createdById": chat.created_by_user_id,
        "createdByName": chat.created_by_name,
        "createdAt": iso(chat.created_at),
        "updatedAt": iso(chat.updated_at),
        "participants": [participant_to_dict(p) for p in participants],
        "participantCount": len(participants),
    }
    if message_count is not None:
        out["messageCount"] = message_count
        out["lastMessage"] = (
            {
                "content": last_message.content,
                "senderName": last_message.sender_name,
                "type": last_message.type,
                "createdAt": iso(last_message.created_at),
            }
            if last_message is not None
            else None
        )
    return out


def message_to_dict(m: Message) -> dict[str, Any]:
    reply = m.reply_to if m.reply_to_id is not None else None
    return {
        "id": m.id,
        "chatId": m.chat_id,
        "senderId": m.sender_id,
        "senderName": m.sender_name,
        "content": m.content,
        "type": m.type,
        "replyTo": (
            {"id": reply.id, "content": reply.content, "senderName": reply.sender_name, "type": reply.type}
            if reply is not None
            else None
        ),
        "isEdited": m.is_edited,
        "editedAt": iso(m.edited_at),
        "createdAt": iso(m.created_at),
    }
