from datetime import datetime, timedelta

from app.orghub.db import session_scope
from app.orghub.modules.chats.models import Chat, ChatParticipant, Message
from app.orghub.modules.content.models import Event


def _chat(client, world, user="a_admin", **body):
    payload = {"name": "Committee", "participantIds": [world.ids["a_member"]]}
    payload.update(body)
    r = client.post("/api/chats", json=payload, headers=world.headers(user))
    assert r.status_code == 201, r.json
    return r.json


def _post(client, world, chat_id, content, user="a_admin", **extra):
    return client.post(
        f"/api/chats/{chat_id}/messages", json={"content": content, **extra}, headers=world.headers(user)
    )


# ---- chats ----


def test_create_chat_makes_creator_admin(client, world):
    chat = _chat(client, world, description="Board talk")
    assert chat["type"] == "group"
    assert chat["createdByName"] == "Asha Admin"
    assert [(p["userId"], p["role"]) for p in chat["participants"]] == [
        (world.ids["a_admin"], "admin"),
        (world.ids["a_member"], "member"),
    ]
    assert chat["participantCount"] == 2
    assert chat["messageCount"] == 0


def test_chats_visible_to_participants_only(client, world):
    chat = _chat(client, world)
    member = client.get("/api/chats", headers=world.headers("a_member")).json["items"]
    assert [c["id"] for c in member] == [chat["id"]]

    outsider = world.headers("a_member2")
    assert client.get("/api/chats", headers=outsider).json["items"] == []
    assert client.get(f"/api/chats/{chat['id']}", headers=outsider).status_code == 404
    assert _post(client, world, chat["id"], "hi", user="a_member2").status_code == 404


def test_chats_are_tenant_scoped(client, world):
    chat = _chat(client, world)
    other = world.headers("b_admin")
    assert client.get(f"/api/chats/{chat['id']}", headers=other).status_code == 404
    msg = _post(client, world, chat["id"], "internal").json
    assert client.put(f"/api/messages/{msg['id']}", json={"content": "x"}, headers=other).status_code == 404
    assert client.delete(f"/api/messages/{msg['id']}", headers=other).status_code == 404


def test_create_chat_validation(client, world):
    admin = world.headers("a_admin")
    r = client.post("/api/chats", json={"name": "X", "participantIds": [world.ids["b_admin"]]}, headers=admin)
    assert r.status_code == 400
    r = client.post("/api/chats", json={"participantIds": []}, headers=admin)
    assert r.status_code == 400
    r = client.post("/api/chats", json={"name": "X", "participantIds": "1,2"}, headers=admin)
    assert r.status_code == 400
    r = client.post("/api/chats", json={"name": "X", "type": "broadcast"}, headers=admin)
    assert r.status_code == 400

    both = [world.ids["a_member"], world.ids["a_member2"]]
    r = client.post("/api/chats", json={"name": "DM", "type": "direct", "participantIds": both}, headers=admin)
    assert r.status_code == 400
    r = client.post(
        "/api/chats", json={"name": "DM", "type": "direct", "participantIds": both[:1]}, headers=admin
    )
    assert r.status_code == 201


def test_list_orders_by_latest_activity(client, world):
    first = _chat(client, world, name="First")
    second = _chat(client, world, name="Second")
    _post(client, world, first["id"], "bump")

    items = client.get("/api/chats", headers=world.headers("a_admin")).json["items"]
    assert [c["name"] for c in items] == ["First", "Second"]
    assert items[0]["messageCount"] == 1
    assert items[0]["lastMessage"]["content"] == "bump"
    assert items[1]["lastMessage"] is None
    assert second["id"] == items[1]["id"]


def test_update_requires_chat_manager(client, world):
    chat = _chat(client, world)
    r = client.put(f"/api/chats/{chat['id']}", json={"name": "Renamed"}, headers=world.headers("a_member"))
    assert r.status_code == 403
    r = client.put(
        f"/api/chats/{chat['id']}", json={"name": "Renamed", "isPrivate": True}, headers=world.headers("a_admin")
    )
    assert r.status_code == 200
    assert (r.json["name"], r.json["isPrivate"]) == ("Renamed", True)


def test_participants_add_remove_leave(client, world):
    chat = _chat(client, world)
    chat_id = chat["id"]

    r = client.post(
        f"/api/chats/{chat_id}/participants",
        json={"participantIds": [world.ids["a_member2"]]},
        headers=world.headers("a_member"),
    )
    assert r.status_code == 403

    r = client.post(
        f"/api/chats/{chat_id}/participants",
        json={"participantIds": [world.ids["a_member2"], world.ids["a_member"], world.ids["b_admin"]]},
        headers=world.headers("a_admin"),
    )
    assert r.status_code == 200
    assert r.json["added"] == 1
    assert [p["userId"] for p in r.json["participants"]] == [
        world.ids["a_admin"],
        world.ids["a_member"],
        world.ids["a_member2"],
    ]

    r = client.delete(f"/api/chats/{chat_id}/participants/{world.ids['a_member2']}", headers=world.headers("a_member"))
    assert r.status_code == 403
    r = client.delete(f"/api/chats/{chat_id}/participants/{world.ids['a_member2']}", headers=world.headers("a_admin"))
    assert r.status_code == 204
    r = client.delete(f"/api/chats/{chat_id}/participants/{world.ids['a_member2']}", headers=world.headers("a_admin"))
    assert r.status_code == 404

    assert client.post(f"/api/chats/{chat_id}/leave", headers=world.headers("a_member")).status_code == 204
    assert client.get(f"/api/chats/{chat_id}", headers=world.headers("a_member")).status_code == 404


def test_delete_chat_is_admin_only_and_removes_history(app, client, world):
    chat = _chat(client, world)
    _post(client, world, chat["id"], "one")
    _post(client, world, chat["id"], "two", user="a_member")

    assert client.delete(f"/api/chats/{chat['id']}", headers=world.headers("a_member")).status_code == 403
    assert client.delete(f"/api/chats/{chat['id']}", headers=world.headers("a_admin")).status_code == 204
    with session_scope(app) as s:
        assert s.get(Chat, chat["id"]) is None
        assert s.query(Message).filter(Message.chat_id == chat["id"]).count() == 0
        assert s.query(ChatParticipant).filter(ChatParticipant.chat_id == chat["id"]).count() == 0


# ---- messages ----


def test_history_pages_back_in_time(client, world):
    chat_id = _chat(client, world)["id"]
    for i in range(5):
        assert _post(client, world, chat_id, f"m{i}").status_code == 201

    member = world.headers("a_member")
    r = client.get(f"/api/chats/{chat_id}/messages?limit=2", headers=member)
    assert [m["content"] for m in r.json["items"]] == ["m3", "m4"]
    cursor = r.json["nextCursor"]
    r = client.get(f"/api/chats/{chat_id}/messages?limit=2&cursor={cursor}", headers=member)
    assert [m["content"] for m in r.json["items"]] == ["m1", "m2"]
    r = client.get(f"/api/chats/{chat_id}/messages?limit=2&cursor={r.json['nextCursor']}", headers=member)
    assert [m["content"] for m in r.json["items"]] == ["m0"]
    assert r.json["nextCursor"] is None


def test_post_message_validation_and_replies(client, world):
    chat_id = _chat(client, world)["id"]
    other_chat_id = _chat(client, world, name="Other")["id"]
    parent = _post(client, world, chat_id, "Agenda?").json
    foreign = _post(client, world, other_chat_id, "elsewhere").json

    r = _post(client, world, chat_id, "Item 1", user="a_member", replyToId=parent["id"])
    assert r.status_code == 201
    assert r.json["replyTo"] == {"id": parent["id"], "content": "Agenda?", "senderName": "Asha Admin", "type": "text"}
    assert r.json["senderName"] == "Arun Member"

    assert _post(client, world, chat_id, "x", replyToId=foreign["id"]).status_code == 400
    assert _post(client, world, chat_id, "   ").status_code == 400
    assert _post(client, world, chat_id, "x", type="sticker").status_code == 400


def test_edit_and_delete_rules(client, world):
    chat_id = _chat(client, world)["id"]
    mine = _post(client, world, chat_id, "draft", user="a_member").json

    r = client.put(f"/api/messages/{mine['id']}", json={"content": "hijack"}, headers=world.headers("a_admin"))
    assert r.status_code == 403
    r = client.put(f"/api/messages/{mine['id']}", json={"content": "final"}, headers=world.headers("a_member"))
    assert r.status_code == 200
    assert (r.json["content"], r.json["isEdited"]) == ("final", True)
    assert r.json["editedAt"] is not None

    admins = _post(client, world, chat_id, "from admin").json
    assert client.delete(f"/api/messages/{admins['id']}", headers=world.headers("a_member")).status_code == 403
    # chat admin may remove anyone's message
    assert client.delete(f"/api/messages/{mine['id']}", headers=world.headers("a_admin")).status_code == 204
    assert client.delete(f"/api/messages/{admins['id']}", headers=world.headers("a_admin")).status_code == 204
    assert client.get(f"/api/chats/{chat_id}/messages", headers=world.headers("a_admin")).json["items"] == []


def test_unread_count_follows_last_seen(client, world):
    chat_id = _chat(client, world)["id"]
    _post(client, world, chat_id, "one")
    _post(client, world, chat_id, "two")

    member = world.headers("a_member")
    assert client.get("/api/chats/unread-count", headers=member).json == {"unreadCount": 2}
    assert client.get("/api/chats/unread-count", headers=world.headers("a_admin")).json == {"unreadCount": 0}

    client.get(f"/api/chats/{chat_id}/messages", headers=member)
    assert client.get("/api/chats/unread-count", headers=member).json == {"unreadCount": 0}

    _post(client, world, chat_id, "three")
    assert client.get("/api/chats/unread-count", headers=member).json == {"unreadCount": 1}
    assert client.post(f"/api/chats/{chat_id}/read", headers=member).status_code == 200
    assert client.get("/api/chats/unread-count", headers=member).json == {"unreadCount": 0}


def test_deleting_member_keeps_their_messages(app, client, world):
    chat_id = _chat(client, world)["id"]
    msg = _post(client, world, chat_id, "bye", user="a_member").json

    r = client.delete(f"/api/members/{world.ids['a_member']}", headers=world.headers("a_admin"))
    assert r.status_code == 204
    with session_scope(app) as s:
        kept = s.get(Message, msg["id"])
        assert kept.sender_id is None
        assert kept.sender_name == "Arun Member"
        assert s.query(ChatParticipant).filter(ChatParticipant.user_id == world.ids["a_member"]).count() == 0


# ---- meetings ----


def _events(app, world, org, specs):
    ids = []
    with session_scope(app) as s:
        for title, start in specs:
            evt = Event(
                organization_id=world.ids[org],
                title=title,
                location="Hall",
                start_date=start,
                end_date=start + timedelta(hours=2),
            )
            s.add(evt)
            s.flush()
            ids.append(evt.id)
    return ids


def test_meetings_schedule_order_and_paging(app, client, world):
    base = datetime(2026, 5, 1, 10, 0, 0)
    _events(
        app,
        world,
        "a",
        [("AGM", base), ("Picnic", base + timedelta(days=7)), ("Budget review", base), ("Kickoff", base - timedelta(days=3))],
    )
    _events(app, world, "b", [("Bravo only", base)])

    member = world.headers("a_member")
    r = client.get("/api/meetings?limit=2", headers=member)
    assert r.status_code == 200
    assert [m["title"] for m in r.json["items"]] == ["Picnic", "Budget review"]
    r = client.get(f"/api/meetings?limit=2&cursor={r.json['nextCursor']}", headers=member)
    assert [m["title"] for m in r.json["items"]] == ["AGM", "Kickoff"]
    assert r.json["nextCursor"] is None

    r = client.get("/api/meetings?q=budget", headers=member)
    assert [m["title"] for m in r.json["items"]] == ["Budget review"]


def test_meetings_cursor_must_be_in_scope(app, client, world):
    (foreign_id,) = _events(app, world, "b", [("Bravo only", datetime(2026, 5, 1, 10, 0, 0))])
    r = client.get(f"/api/meetings?cursor={foreign_id}", headers=world.headers("a_member"))
    assert r.status_code == 400
    assert client.get("/api/meetings").status_code == 401
