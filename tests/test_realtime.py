import asyncio

import pytest
from starlette.websockets import WebSocketDisconnect

from app.models import UserRole
from app.services.realtime import RealtimeEvent, RealtimeHub, chat_topic, user_topic

from conftest import FakeConnection


def test_publish_reaches_topic_subscribers_only():
    hub = RealtimeHub()
    a, b = FakeConnection("a", "customer"), FakeConnection("b", "staff")

    async def scenario():
        await hub.subscribe("chat:1", a)
        await hub.subscribe("chat:2", b)
        delivered = await hub.publish("chat:1", "new_message", {"id": "m1"})
        return delivered

    assert asyncio.run(scenario()) == 1
    assert a.received == [("new_message", {"id": "m1"})]
    assert b.received == []


def test_audience_filters_recipients():
    hub = RealtimeHub()
    customer, staff = FakeConnection("c", "customer"), FakeConnection("s", "staff")

    async def scenario():
        for conn in (customer, staff):
            await hub.subscribe("chat:1", conn)
        await hub.publish_all([
            RealtimeEvent("chat:1", "new_message", {"n": 1}, audience=lambda conn: conn.role == "staff"),
            RealtimeEvent("chat:1", "new_message", {"n": 2}),
        ])

    asyncio.run(scenario())
    assert customer.events("new_message") == [{"n": 2}]
    assert staff.events("new_message") == [{"n": 1}, {"n": 2}]


def test_dead_connection_is_dropped_everywhere():
    hub = RealtimeHub()
    dead, alive = FakeConnection("d", "staff", fail=True), FakeConnection("a", "staff")

    async def scenario():
        await hub.subscribe("chat:1", dead)
        await hub.subscribe("user:d", dead)
        await hub.subscribe("chat:1", alive)
        return await hub.publish("chat:1", "new_message", {})

    assert asyncio.run(scenario()) == 1
    assert hub.subscribers("chat:1") == {alive}
    assert hub.subscribers("user:d") == set()


def test_unsubscribe_and_disconnect():
    hub = RealtimeHub()
    conn = FakeConnection("x", "customer")

    async def scenario():
        await hub.subscribe("chat:1", conn)
        await hub.subscribe("chat:2", conn)
        await hub.unsubscribe("chat:1", conn)
        assert hub.subscribers("chat:1") == set()
        assert hub.subscribers("chat:2") == {conn}
        await hub.disconnect(conn)

    asyncio.run(scenario())
    assert hub.subscribers("chat:2") == set()


def test_topic_names():
    assert chat_topic("abc") == "chat:abc"
    assert user_topic("u1") == "user:u1"


# ----------------------------
# WebSocket transport
# ----------------------------
def test_websocket_rejects_bad_or_unapproved_tokens(client, make_user):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws?token=garbage"):
            pass
    assert exc.value.code == 1008

    pending = make_user(UserRole.CUSTOMER, approved=False)
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(f"/ws?token={pending.token}"):
            pass


def test_websocket_join_and_receive_messages(client, customer, admin, booking):
    chat_id = booking["chat"]["id"]
    with client.websocket_connect(f"/ws?token={customer.token}") as ws:
        ws.send_json({"action": "join_chat", "chatId": chat_id})
        assert ws.receive_json() == {"event": "joined_chat", "data": {"chat_id": chat_id}}

        resp = client.post(f"/chats/{chat_id}/messages", json={"content": "We are on it"}, headers=admin.headers)
        assert resp.status_code == 200

        event = ws.receive_json()
        assert event["event"] == "new_message"
        assert event["data"]["content"] == "We are on it"
        assert event["data"]["sender"]["id"] == admin.id

        ws.send_json({"action": "leave_chat", "chat_id": chat_id})
        assert ws.receive_json()["event"] == "left_chat"


def test_websocket_join_denied_for_strangers(client, make_user, booking):
    stranger = make_user(UserRole.CUSTOMER)
    with client.websocket_connect(f"/ws?token={stranger.token}") as ws:
        ws.send_json({"action": "join_chat", "chat_id": booking["chat"]["id"]})
        event = ws.receive_json()
        assert event["event"] == "error"
        assert event["data"]["message"] == "Access denied"

        ws.send_text("not json")
        assert ws.receive_json()["data"]["message"] == "Invalid message"


def test_websocket_receives_personal_notifications(client, admin, customer, service_id):
    with client.websocket_connect(f"/ws?token={admin.token}") as ws:
        # round-trip once so the connection is registered before publishing
        ws.send_json({"action": "leave_chat", "chat_id": "none"})
        assert ws.receive_json()["event"] == "left_chat"

        resp = client.post("/bookings", json={"service_id": service_id}, headers=customer.headers)
        assert resp.status_code == 200

        event = ws.receive_json()
        assert event["event"] == "notification"
        assert event["data"]["title"] == "New Booking"
        assert event["data"]["user_id"] == admin.id
