import asyncio
import json

import pytest
from bson import ObjectId

from reviewhub.services.realtime_gateway import UNAUTHORIZED_CLOSE_CODE, SessionState, chat_room
from reviewhub.utils.websocket_manager import personal_room

from .helpers import FakeWebSocket, approve_pair, connect, make_token


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "token",
    [None, "garbage", make_token(str(ObjectId())), make_token("x", minutes=-5)],
    ids=["missing", "malformed", "unknown-user", "expired"],
)
async def test_unauthenticated_socket_is_closed(services, realtime, token):
    ws = FakeWebSocket()
    session = await services.gateway.open(ws, token)
    assert session is None
    assert ws.closed_code == UNAUTHORIZED_CLOSE_CODE
    assert not ws.accepted
    assert await realtime.presence.size() == 0


@pytest.mark.asyncio
async def test_refresh_token_is_refused(services, people):
    ws = FakeWebSocket()
    assert await services.gateway.open(ws, make_token(people["student"].id, type="refresh")) is None
    assert ws.closed_code == UNAUTHORIZED_CLOSE_CODE


@pytest.mark.asyncio
async def test_open_registers_presence_and_personal_room(services, people, realtime):
    student = people["student"]
    ws, session = await connect(services, student)
    assert ws.accepted
    assert session.state == SessionState.ACTIVE
    assert session.identity.id == student.id
    assert await realtime.presence.is_online(student.id)
    assert session.connection_id in realtime.manager.room_members(personal_room(student.id))


@pytest.mark.asyncio
async def test_second_tab_keeps_identity_online(services, people, realtime):
    student = people["student"]
    _, first = await connect(services, student)
    _, second = await connect(services, student)

    await services.gateway.close(first)
    assert await realtime.presence.is_online(student.id)
    await services.gateway.close(second)
    assert not await realtime.presence.is_online(student.id)
    # closing twice is harmless
    await services.gateway.close(second)


@pytest.mark.asyncio
async def test_serve_processes_frames_until_disconnect(services, people, realtime):
    advisor, student = people["advisor"], people["student"]
    conv, _ = await services.chat.start_or_get(advisor, student, advisor.id)

    ws = FakeWebSocket()
    ws.feed("chat:join", {"conversationId": conv["_id"]})
    ws.feed_raw("{not json")
    ws.feed("chat:send", {"conversationId": conv["_id"], "content": "hi there"})
    ws.feed("nope:unknown")
    ws.disconnect()
    await services.gateway.serve(ws, make_token(student.id))

    assert ws.events("chat:joined") == [{"conversationId": conv["_id"]}]
    assert [m["content"] for m in ws.events("chat:receive")] == ["hi there"]
    assert len(ws.events("error")) == 2
    assert not await realtime.presence.is_online(student.id)
    assert realtime.manager.active_connections == {}
    assert realtime.manager.rooms == {}
    assert realtime.manager.owners == {}


@pytest.mark.asyncio
async def test_chat_send_reaches_room_and_recipient(services, people, realtime):
    advisor, student = people["advisor"], people["student"]
    conv, _ = await services.chat.start_or_get(advisor, student, advisor.id)
    advisor_ws, advisor_session = await connect(services, advisor)
    student_ws, student_session = await connect(services, student)

    await services.gateway.dispatch(advisor_session, "chat:join", {"conversationId": conv["_id"]})
    await services.gateway.dispatch(student_session, "chat:join", {"conversationId": conv["_id"]})
    await services.gateway.dispatch(
        student_session, "chat:send", {"conversationId": conv["_id"], "content": "  question  "}
    )
    await realtime.queue.join()

    received = advisor_ws.events("chat:receive")
    assert len(received) == 1
    assert received[0]["content"] == "question"
    assert received[0]["senderId"] == student.id
    assert received[0]["senderName"] == "Sam"
    assert advisor_ws.events("chat:newMessage")[0]["conversationId"] == conv["_id"]
    assert len(student_ws.events("chat:receive")) == 1
    # advisor is online, so the notification went out live
    assert [n["type"] for n in advisor_ws.events("notification:new")] == ["new_message"]


@pytest.mark.asyncio
async def test_typing_is_not_echoed_to_sender(services, people):
    advisor, student = people["advisor"], people["student"]
    conv, _ = await services.chat.start_or_get(advisor, student, advisor.id)
    advisor_ws, advisor_session = await connect(services, advisor)
    student_ws, student_session = await connect(services, student)
    for session in (advisor_session, student_session):
        await services.gateway.dispatch(session, "chat:join", {"conversationId": conv["_id"]})

    await services.gateway.dispatch(
        student_session, "chat:typing", {"conversationId": conv["_id"], "isTyping": True}
    )
    assert advisor_ws.events("chat:userTyping") == [
        {"conversationId": conv["_id"], "userId": student.id, "userName": "Sam", "isTyping": True}
    ]
    assert student_ws.events("chat:userTyping") == []


@pytest.mark.asyncio
async def test_leave_stops_room_delivery(services, people):
    advisor, student = people["advisor"], people["student"]
    conv, _ = await services.chat.start_or_get(advisor, student, advisor.id)
    advisor_ws, advisor_session = await connect(services, advisor)
    _, student_session = await connect(services, student)

    await services.gateway.dispatch(advisor_session, "chat:join", {"conversationId": conv["_id"]})
    await services.gateway.dispatch(advisor_session, "chat:leave", {"conversationId": conv["_id"]})
    assert chat_room(conv["_id"]) not in advisor_session.rooms

    await services.gateway.dispatch(student_session, "chat:send", {"conversationId": conv["_id"], "content": "x"})
    assert advisor_ws.events("chat:receive") == []
    assert len(advisor_ws.events("chat:newMessage")) == 1


@pytest.mark.asyncio
async def test_outsider_cannot_join_or_send(services, people):
    advisor, student = people["advisor"], people["student"]
    conv, _ = await services.chat.start_or_get(advisor, student, advisor.id)
    ws, session = await connect(services, people["other_advisor"])

    await services.gateway.dispatch(session, "chat:join", {"conversationId": conv["_id"]})
    await services.gateway.dispatch(session, "chat:send", {"conversationId": conv["_id"], "content": "hi"})
    errors = ws.events("chat:error")
    assert [e["error_code"] for e in errors] == ["FORBIDDEN", "FORBIDDEN"]
    assert chat_room(conv["_id"]) not in session.rooms
    assert await services.messages.collection.count_documents({}) == 0


@pytest.mark.asyncio
async def test_send_without_approval_is_refused(services, people):
    student, reviewer = people["student"], people["reviewer"]
    request = await approve_pair(services, people)
    conv, _, _ = await services.chat.start_conversation(student, reviewer.id)
    await services.chat_request_repo.collection.delete_one({"_id": ObjectId(request["_id"])})

    ws, session = await connect(services, student)
    await services.gateway.dispatch(session, "chat:send", {"conversationId": conv["_id"], "content": "hi"})
    assert ws.events("chat:error")[0]["error_code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_bad_payloads_report_validation_errors(services, people):
    advisor, student = people["advisor"], people["student"]
    conv, _ = await services.chat.start_or_get(advisor, student, advisor.id)
    ws, session = await connect(services, student)

    await services.gateway.dispatch(session, "chat:join", {})
    await services.gateway.dispatch(session, "chat:send", {"conversationId": conv["_id"], "content": ""})
    await services.gateway.dispatch(session, "chat:join", {"conversationId": str(ObjectId())})
    assert [e["error_code"] for e in ws.events("chat:error")] == ["VALIDATION_ERROR", "VALIDATION_ERROR", "NOT_FOUND"]


@pytest.mark.asyncio
async def test_mark_read_event(services, people):
    advisor, student = people["advisor"], people["student"]
    conv, _ = await services.chat.start_or_get(advisor, student, advisor.id)
    await services.chat.append_message(conv["_id"], advisor.id, advisor.tag, "hello")
    ws, session = await connect(services, student)

    await services.gateway.dispatch(session, "chat:markRead", {"conversationId": conv["_id"]})
    assert ws.events("chat:messagesRead") == [{"conversationId": conv["_id"]}]
    stored = await services.conversations.find_by_id(conv["_id"])
    assert stored["unread_counts"][student.id] == 0


@pytest.mark.asyncio
async def test_review_chat_events(services, people, db):
    student, reviewer, advisor = people["student"], people["reviewer"], people["advisor"]
    review_id = ObjectId()
    await db["review_sessions"].insert_one(
        {
            "_id": review_id,
            "student_id": student.id,
            "reviewer_id": reviewer.id,
            "advisor_id": advisor.id,
            "week": 3,
            "status": "scheduled",
        }
    )
    student_ws, student_session = await connect(services, student)
    advisor_ws, _ = await connect(services, advisor)
    outsider_ws, outsider_session = await connect(services, people["other_reviewer"])

    await services.gateway.dispatch(student_session, "reviewChat:join", {"reviewSessionId": str(review_id)})
    assert student_ws.events("reviewChat:joined")[0]["reviewInfo"] == {"week": 3, "status": "scheduled"}

    await services.gateway.dispatch(
        student_session, "reviewChat:send", {"reviewSessionId": str(review_id), "content": "ready?"}
    )
    assert student_ws.events("reviewChat:receive")[0]["senderRole"] == "student"
    assert advisor_ws.events("reviewChat:newMessage")[0]["message"]["content"] == "ready?"

    await services.gateway.dispatch(outsider_session, "reviewChat:join", {"reviewSessionId": str(review_id)})
    assert outsider_ws.events("reviewChat:error")[0]["error_code"] == "FORBIDDEN"

    await db["review_sessions"].update_one({"_id": review_id}, {"$set": {"status": "cancelled"}})
    await services.gateway.dispatch(
        student_session, "reviewChat:send", {"reviewSessionId": str(review_id), "content": "hello?"}
    )
    assert student_ws.events("reviewChat:error")[0]["error_code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_notification_events(services, people):
    student = people["student"]
    await services.notifications.notify_chat_message(student.id, "Student", "c1", people["advisor"], "hello")
    await services.notifications.notify_chat_message(student.id, "Student", "c2", people["advisor"], "again")
    first = (await services.notification_repo.list_for(student.id))[0]

    ws, session = await connect(services, student)
    await services.gateway.dispatch(session, "notification:markRead", {"notificationId": first["_id"]})
    await services.gateway.dispatch(session, "notification:getUnreadCount", {})
    await services.gateway.dispatch(session, "notification:markAllRead", {})
    await services.gateway.dispatch(session, "notification:getUnreadCount", {})
    await services.gateway.dispatch(session, "notification:markRead", {"notificationId": str(ObjectId())})

    assert ws.events("notification:read") == [{"notificationId": first["_id"]}]
    assert ws.events("notification:unreadCount") == [{"count": 1}, {"count": 0}]
    assert ws.events("notification:allRead") == [{}]
    assert ws.events("notification:error")[0]["error_code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_unexpected_handler_failure_is_reported(services, people, monkeypatch):
    ws, session = await connect(services, people["student"])

    async def explode(identity):
        raise RuntimeError("boom")

    monkeypatch.setattr(services.notifications, "unread_count", explode)
    await services.gateway.dispatch(session, "notification:getUnreadCount", {})
    assert ws.events("notification:error") == [
        {"message": "Failed to handle notification:getUnreadCount", "error_code": "INTERNAL_ERROR"}
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize("event", [["chat:join"], {"name": "chat:join"}, 7, None], ids=["list", "object", "number", "missing"])
async def test_non_string_event_keeps_socket_open(services, people, realtime, event):
    student = people["student"]
    ws = FakeWebSocket()
    ws.feed_raw(json.dumps({"event": event, "data": {}}))
    ws.feed("notification:getUnreadCount")

    task = asyncio.create_task(services.gateway.serve(ws, make_token(student.id)))
    for _ in range(50):
        if ws.events("notification:unreadCount"):
            break
        await asyncio.sleep(0.01)

    assert ws.events("error") == [{"message": "Invalid message payload"}]
    assert ws.events("notification:unreadCount") == [{"count": 0}]
    assert await realtime.presence.is_online(student.id)

    ws.disconnect()
    await task
    assert not await realtime.presence.is_online(student.id)


@pytest.mark.asyncio
async def test_review_participants_lists_identities_in_the_room(services, people, db):
    student, reviewer, advisor = people["student"], people["reviewer"], people["advisor"]
    review_id = ObjectId()
    await db["review_sessions"].insert_one(
        {"_id": review_id, "student_id": student.id, "reviewer_id": reviewer.id, "advisor_id": advisor.id, "status": "scheduled"}
    )
    payload = {"reviewSessionId": str(review_id)}
    student_ws, student_session = await connect(services, student)
    _, second_tab = await connect(services, student)
    _, reviewer_session = await connect(services, reviewer)
    await connect(services, advisor)
    outsider_ws, outsider_session = await connect(services, people["other_reviewer"])

    for session in (student_session, second_tab, reviewer_session):
        await services.gateway.dispatch(session, "reviewChat:join", payload)
    await services.gateway.dispatch(student_session, "reviewChat:getParticipants", payload)

    reply = student_ws.events("reviewChat:participants")[0]
    assert reply["reviewSessionId"] == str(review_id)
    assert sorted(reply["participants"], key=lambda p: p["role"]) == [
        {"id": reviewer.id, "name": "Rita", "role": "reviewer"},
        {"id": student.id, "name": "Sam", "role": "student"},
    ]

    await services.gateway.dispatch(reviewer_session, "reviewChat:leave", payload)
    await services.gateway.dispatch(student_session, "reviewChat:getParticipants", payload)
    assert [p["id"] for p in student_ws.events("reviewChat:participants")[1]["participants"]] == [student.id]

    await services.gateway.dispatch(outsider_session, "reviewChat:getParticipants", payload)
    assert outsider_ws.events("reviewChat:error")[0]["error_code"] == "FORBIDDEN"
    assert outsider_ws.events("reviewChat:participants") == []
