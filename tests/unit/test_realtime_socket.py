import asyncio
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from chatdesk.api.deps import parse_uuid
from chatdesk.api.v1.routes import realtime as realtime_routes
from chatdesk.domain.enums import ConversationStatus, Platform
from chatdesk.infra.realtime import InMemoryRealtimeHub
from chatdesk.infra.realtime.events import RealtimeEvent
from chatdesk.main import app
from chatdesk.services.conversation_service import ConversationService

WS_PATH = "ws://localhost/api/v1/realtime/ws"


class RecordingHub(InMemoryRealtimeHub):
    def __init__(self) -> None:
        super().__init__()
        self.published: list[tuple[list[str], RealtimeEvent, dict]] = []

    async def publish(self, channels, event, payload, exclude=None) -> None:
        self.published.append((list(channels), event, dict(payload)))
        await super().publish(channels, event, payload, exclude=exclude)


class FakeSessionFactory:
    def __init__(self, session) -> None:
        self.session = session

    def __call__(self) -> "FakeSessionFactory":
        return self

    async def __aenter__(self):
        return self.session

    async def __aexit__(self, *exc_info) -> None:
        return None


@pytest.fixture
def hub():
    hub = RecordingHub()
    app.state.realtime_hub = hub
    yield hub
    del app.state.realtime_hub


@pytest.fixture
def agent(users):
    return users.add("Maya")


@pytest.fixture
def client(monkeypatch, hub, agent, session, conversations, messages, users, instructions):
    tokens = {"good-token": agent}

    async def resolve(_session, token, _settings):
        return tokens.get(token)

    service = ConversationService(
        session=session,
        conversations=conversations,
        messages=messages,
        users=users,
        instructions=instructions,
        realtime=hub,
        auto_reply=False,
    )
    monkeypatch.setattr(realtime_routes, "get_session_factory", lambda: FakeSessionFactory(session))
    monkeypatch.setattr(realtime_routes, "resolve_user_from_token", resolve)
    monkeypatch.setattr(realtime_routes, "build_conversation_service", lambda _app, _session: service)
    return TestClient(app, base_url="http://localhost")


def _connect(client):
    return client.websocket_connect(f"{WS_PATH}?access_token=good-token")


def _skip_greeting(socket) -> None:
    assert socket.receive_json()["event"] == "system.connected"
    assert socket.receive_json()["event"] == "user-status-changed"


@pytest.mark.parametrize("query", ["", "?access_token=", "?access_token=stale"])
def test_socket_without_valid_token_is_closed(client, query) -> None:
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect(f"{WS_PATH}{query}"):
            pass

    assert excinfo.value.code == 1008


def test_connect_joins_agents_and_personal_channel(client, hub, agent) -> None:
    with _connect(client) as socket:
        connected = socket.receive_json()
        presence = socket.receive_json()
        assert hub.subscriber_count("agents") == 1
        assert hub.subscriber_count(f"user:{agent.id}") == 1

    assert connected["event"] == "system.connected"
    assert connected["payload"]["channels"] == ["agents", f"user:{agent.id}"]
    assert presence["event"] == "user-status-changed"
    assert presence["channel"] == "agents"
    assert presence["payload"]["is_online"] is True


def test_disconnect_announces_agent_offline(client, hub, agent) -> None:
    with _connect(client) as socket:
        _skip_greeting(socket)

    assert hub.connection_count() == 0
    assert hub.published[-1] == (
        ["agents"],
        RealtimeEvent.USER_STATUS_CHANGED,
        {"user_id": str(agent.id), "name": "Maya", "is_online": False},
    )


def test_join_and_leave_chat_channel(client, hub) -> None:
    chat_id = uuid4()
    with _connect(client) as socket:
        _skip_greeting(socket)

        socket.send_json({"action": "join-chat", "chat_id": str(chat_id)})
        joined = socket.receive_json()
        assert hub.subscriber_count(f"chat:{chat_id}") == 1

        socket.send_json({"action": "leave-chat", "chat_id": str(chat_id)})
        left = socket.receive_json()
        assert hub.subscriber_count(f"chat:{chat_id}") == 0

    assert joined["event"] == "system.joined"
    assert joined["payload"] == {"channel": f"chat:{chat_id}"}
    assert left["event"] == "system.left"


@pytest.mark.parametrize("chat_id", [42, None, ["x"], "not-a-uuid"])
def test_bad_chat_id_reports_error_and_keeps_socket_open(client, chat_id) -> None:
    with _connect(client) as socket:
        _skip_greeting(socket)

        socket.send_json({"action": "join-chat", "chat_id": chat_id})
        error = socket.receive_json()
        socket.send_text("ping")
        pong = socket.receive_json()

    assert error["event"] == "system.error"
    assert error["payload"] == {"detail": "Invalid chat_id"}
    assert pong["event"] == "system.pong"


def test_typing_is_not_echoed_to_sender(client, hub) -> None:
    chat_id = uuid4()
    with _connect(client) as socket:
        _skip_greeting(socket)
        socket.send_json({"action": "join-chat", "chat_id": str(chat_id)})
        socket.receive_json()

        socket.send_json({"action": "typing", "chat_id": str(chat_id), "is_typing": True})
        socket.send_text("ping")
        next_frame = socket.receive_json()

    assert next_frame["event"] == "system.pong"
    typing = [item for item in hub.published if item[1] == RealtimeEvent.USER_TYPING]
    assert typing[0][0] == [f"chat:{chat_id}"]
    assert typing[0][2]["is_typing"] is True


def test_resolving_reaches_socket_watching_the_chat(client, conversations) -> None:
    conversation = asyncio.run(
        conversations.create(
            customer_id="visitor-1",
            customer_name="Dana",
            platform=Platform.WEB,
            platform_id="web",
        )
    )
    with _connect(client) as socket:
        _skip_greeting(socket)
        socket.send_json({"action": "join-chat", "chat_id": str(conversation.id)})
        socket.receive_json()

        socket.send_json(
            {"action": "update-chat-status", "chat_id": str(conversation.id), "status": "resolved"}
        )
        status_event = socket.receive_json()

    assert status_event["event"] == "chat-status-updated"
    assert status_event["channel"] == f"chat:{conversation.id}"
    assert status_event["payload"]["status"] == "resolved"
    assert conversation.status == ConversationStatus.RESOLVED


def test_agent_message_over_socket_is_stored_and_broadcast(
    client, conversations, messages, agent
) -> None:
    conversation = asyncio.run(
        conversations.create(
            customer_id="visitor-2",
            customer_name="Dana",
            platform=Platform.WEB,
            platform_id="web",
        )
    )
    with _connect(client) as socket:
        _skip_greeting(socket)
        socket.send_json({"action": "join-chat", "chat_id": str(conversation.id)})
        socket.receive_json()

        socket.send_json(
            {"action": "send-message", "chat_id": str(conversation.id), "content": "On it"}
        )
        new_message = socket.receive_json()

    assert new_message["event"] == "new-message"
    assert new_message["payload"]["message"]["content"] == "On it"
    assert new_message["payload"]["message"]["sender_id"] == str(agent.id)
    assert conversation.human_responses == 1
    assert [item.content for item in messages.messages] == ["On it"]


def test_mutation_on_unknown_chat_reports_error(client) -> None:
    with _connect(client) as socket:
        _skip_greeting(socket)

        socket.send_json(
            {"action": "update-chat-status", "chat_id": str(uuid4()), "status": "resolved"}
        )
        error = socket.receive_json()

    assert error["event"] == "system.error"


def test_parse_uuid_ignores_non_strings() -> None:
    chat_id = uuid4()

    assert parse_uuid(str(chat_id)) == chat_id
    assert parse_uuid(42) is None
    assert parse_uuid({"id": str(chat_id)}) is None
    assert parse_uuid("nope") is None
