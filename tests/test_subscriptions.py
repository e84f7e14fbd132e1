from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import Any, Dict, List

import pytest
from websockets.exceptions import InvalidURI

from internconnect.errors import GraphQLResponseError, TransportError
from internconnect.operations import GET_CHAT_ROOMS, ROOM_MESSAGES
from internconnect.subscriptions import GRAPHQL_TRANSPORT_WS, SplitTransport, SubscriptionLink
from internconnect.transport import ADMIN_SECRET_HEADER

from conftest import ADMIN_SECRET


class FakeConnection:
    """Scripted WebSocket that answers a subscribe frame with canned frames."""

    def __init__(self, script: List[Dict[str, Any]]) -> None:
        self.sent: List[Dict[str, Any]] = []
        self._script = list(script)
        self._subscription_id = None

    async def send(self, data: str) -> None:
        frame = json.loads(data)
        self.sent.append(frame)
        if frame.get("type") == "subscribe":
            self._subscription_id = frame["id"]

    async def recv(self) -> str:
        if not self._script:
            raise AssertionError("connection script exhausted")
        frame = dict(self._script.pop(0))
        if frame.pop("bind_id", False):
            frame["id"] = self._subscription_id
        return json.dumps(frame)


def make_connect(connection: FakeConnection, calls: List[Dict[str, Any]]):
    @asynccontextmanager
    async def connect(url, **kwargs):
        calls.append({"url": url, **kwargs})
        yield connection

    return connect


def rows(*contents: str) -> Dict[str, Any]:
    return {
        "data": {
            "messages": [
                {"id": str(index), "content": content, "user_id": "u-1", "created_at": None}
                for index, content in enumerate(contents)
            ]
        }
    }


@pytest.mark.anyio
async def test_subscription_handshake_and_results() -> None:
    connection = FakeConnection(
        [
            {"type": "connection_ack"},
            {"type": "ping"},
            {"type": "next", "bind_id": True, "payload": rows("hello")},
            {"type": "next", "id": "someone-else", "payload": rows("ignored")},
            {"type": "next", "bind_id": True, "payload": rows("hello", "again")},
            {"type": "complete", "bind_id": True},
        ]
    )
    calls: List[Dict[str, Any]] = []
    link = SubscriptionLink("wss://hasura.test/v1/graphql", ADMIN_SECRET, connect=make_connect(connection, calls))

    results = [result async for result in link.subscribe(ROOM_MESSAGES, "RoomMessages", {"chat_room_id": "r-1"})]

    assert [len(result.data["messages"]) for result in results] == [1, 2]
    assert calls == [{"url": "wss://hasura.test/v1/graphql", "subprotocols": [GRAPHQL_TRANSPORT_WS]}]

    init, subscribe, pong = connection.sent
    assert init == {"type": "connection_init", "payload": {"headers": {ADMIN_SECRET_HEADER: ADMIN_SECRET}}}
    assert subscribe["type"] == "subscribe"
    assert subscribe["payload"]["operationName"] == "RoomMessages"
    assert subscribe["payload"]["variables"] == {"chat_room_id": "r-1"}
    assert pong == {"type": "pong"}


@pytest.mark.anyio
async def test_subscription_error_frame_raises() -> None:
    connection = FakeConnection(
        [
            {"type": "connection_ack"},
            {"type": "error", "bind_id": True, "payload": [{"message": "field 'messages' not found"}]},
        ]
    )
    link = SubscriptionLink("wss://hasura.test", connect=make_connect(connection, []))

    with pytest.raises(GraphQLResponseError) as excinfo:
        async for _ in link.subscribe(ROOM_MESSAGES, "RoomMessages", {"chat_room_id": "r-1"}):
            pass

    assert str(excinfo.value) == "field 'messages' not found"


@pytest.mark.anyio
async def test_early_stop_sends_complete() -> None:
    connection = FakeConnection(
        [
            {"type": "connection_ack"},
            {"type": "next", "bind_id": True, "payload": rows("first")},
        ]
    )
    link = SubscriptionLink("wss://hasura.test", connect=make_connect(connection, []))

    stream = link.subscribe(ROOM_MESSAGES, "RoomMessages", {"chat_room_id": "r-1"})
    first = await stream.__anext__()
    await stream.aclose()

    assert first.data["messages"][0]["content"] == "first"
    assert connection.sent[-1]["type"] == "complete"
    assert connection.sent[-1]["id"] == connection.sent[1]["id"]


@pytest.mark.anyio
async def test_unexpected_handshake_frame_raises_transport_error() -> None:
    connection = FakeConnection([{"type": "connection_error", "payload": {"message": "denied"}}])
    link = SubscriptionLink("wss://hasura.test", connect=make_connect(connection, []))

    with pytest.raises(TransportError):
        async for _ in link.subscribe(ROOM_MESSAGES, "RoomMessages", {"chat_room_id": "r-1"}):
            pass


@pytest.mark.anyio
async def test_connection_failure_becomes_transport_error() -> None:
    def refuse(url, **kwargs):
        raise InvalidURI(url, "not a websocket URI")

    link = SubscriptionLink("YOUR_HASURA_WS_ENDPOINT", connect=refuse)

    with pytest.raises(TransportError) as excinfo:
        async for _ in link.subscribe(ROOM_MESSAGES, "RoomMessages", {"chat_room_id": "r-1"}):
            pass

    assert str(excinfo.value) == "Network error"


@pytest.mark.anyio
async def test_split_transport_routes_queries_over_http(client, backend) -> None:
    backend.add_room("General", None)
    transport = SplitTransport(client)

    results = [result async for result in transport.stream(GET_CHAT_ROOMS, "GetChatRooms", {})]

    assert len(results) == 1
    assert results[0].data["chat_rooms"][0]["name"] == "General"
    assert backend.operations() == ["GetChatRooms"]
    assert transport.supports_subscriptions is False


@pytest.mark.anyio
async def test_split_transport_routes_subscriptions_over_socket(client, backend) -> None:
    connection = FakeConnection(
        [
            {"type": "connection_ack"},
            {"type": "next", "bind_id": True, "payload": rows("live")},
            {"type": "complete", "bind_id": True},
        ]
    )
    link = SubscriptionLink("wss://hasura.test", connect=make_connect(connection, []))
    transport = SplitTransport(client, link)

    results = [
        result async for result in transport.stream(ROOM_MESSAGES, "RoomMessages", {"chat_room_id": "r-1"})
    ]

    assert results[0].data["messages"][0]["content"] == "live"
    assert backend.requests == []
    assert transport.supports_subscriptions is True


@pytest.mark.anyio
async def test_split_transport_execute_rejects_subscriptions(client) -> None:
    transport = SplitTransport(client)

    with pytest.raises(ValueError):
        await transport.execute(ROOM_MESSAGES, "RoomMessages", {"chat_room_id": "r-1"})

    with pytest.raises(ValueError):
        async for _ in transport.stream(ROOM_MESSAGES, "RoomMessages", {"chat_room_id": "r-1"}):
            pass
