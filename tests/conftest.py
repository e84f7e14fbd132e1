from __future__ import annotations

import asyncio
import json
import sys
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from internconnect.auth import hash_password
from internconnect.config import Settings
from internconnect.transport import GraphQLClient


ENDPOINT = "https://hasura.test/v1/graphql"
ADMIN_SECRET = "test-admin-secret"


async def wait_until(predicate, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


class FakeBackend:
    """In-memory stand-in for the hosted GraphQL schema."""

    def __init__(self) -> None:
        self.users: Dict[str, Dict[str, Any]] = {}
        self.rooms: Dict[str, Dict[str, Any]] = {}
        self.messages: List[Dict[str, Any]] = []
        self.requests: List[Dict[str, Any]] = []
        self.headers: List[httpx.Headers] = []
        self.fail_next = 0
        self.return_inserted = True
        self._clock = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    # seeding helpers -------------------------------------------------
    def add_user(self, name: str, email: str, password: str, *, hashed: bool = True) -> Dict[str, Any]:
        user = {
            "id": str(uuid.uuid4()),
            "name": name,
            "email": email,
            "password_hash": hash_password(password) if hashed else password,
        }
        self.users[user["id"]] = user
        return user

    def add_room(self, name: str, created_by: Optional[str]) -> Dict[str, Any]:
        room = {"id": str(uuid.uuid4()), "name": name, "created_by": created_by}
        self.rooms[room["id"]] = room
        return room

    def add_message(self, room_id: Optional[str], user_id: str, content: str) -> Dict[str, Any]:
        self._clock += timedelta(seconds=1)
        message = {
            "id": str(uuid.uuid4()),
            "content": content,
            "user_id": user_id,
            "chat_room_id": room_id,
            "created_at": self._clock.isoformat().replace("+00:00", "Z"),
        }
        self.messages.append(message)
        return message

    def operations(self) -> List[str]:
        return [request["operationName"] for request in self.requests]

    # transport -------------------------------------------------------
    def handle(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        self.headers.append(request.headers)
        if self.fail_next:
            self.fail_next -= 1
            return httpx.Response(503, json={"errors": [{"message": "Service unavailable"}]})

        handler = getattr(self, f"_op_{body['operationName']}", None)
        if handler is None:
            return httpx.Response(
                200,
                json={"errors": [{"message": f"unknown operation {body['operationName']}"}]},
            )
        return httpx.Response(200, json=handler(body.get("variables") or {}))

    def _user_ref(self, user_id: Optional[str]) -> Optional[Dict[str, Any]]:
        user = self.users.get(user_id or "")
        if user is None:
            return None
        return {"id": user["id"], "name": user["name"]}

    def _message_row(self, message: Dict[str, Any]) -> Dict[str, Any]:
        return {**message, "user": self._user_ref(message["user_id"])}

    def _op_GetUser(self, variables):
        matches = [dict(user) for user in self.users.values() if user["email"] == variables["email"]]
        return {"data": {"users": matches}}

    def _op_RegisterUser(self, variables):
        if any(user["email"] == variables["email"] for user in self.users.values()):
            return {
                "errors": [
                    {"message": 'Uniqueness violation. duplicate key value violates unique constraint "users_email_key"'}
                ]
            }
        user = {
            "id": str(uuid.uuid4()),
            "name": variables["name"],
            "email": variables["email"],
            "password_hash": variables["password_hash"],
        }
        self.users[user["id"]] = user
        return {"data": {"insert_users_one": {key: user[key] for key in ("id", "name", "email")}}}

    def _op_GetChatRooms(self, variables):
        rooms = [
            {**room, "creator": self._user_ref(room["created_by"])}
            for room in self.rooms.values()
        ]
        return {"data": {"chat_rooms": rooms}}

    def _op_AddChatRoom(self, variables):
        room = self.add_room(variables["name"], variables["created_by"])
        return {"data": {"insert_chat_rooms": {"affected_rows": 1, "returning": [dict(room)]}}}

    def _op_GetChatsByClass(self, variables):
        room = self.rooms.get(variables["grpid"])
        if room is None:
            return {"data": {"chat_rooms_by_pk": None}}
        messages = [
            self._message_row(message)
            for message in self.messages
            if message["chat_room_id"] == room["id"]
        ]
        return {"data": {"chat_rooms_by_pk": {**room, "messages": messages}}}

    def _op_InsertMessage(self, variables):
        message = self.add_message(variables["chat_room_id"], variables["user_id"], variables["content"])
        returning = [self._message_row(message)] if self.return_inserted else []
        return {"data": {"insert_messages": {"returning": returning}}}

    def _op_GetMessages(self, variables):
        return {"data": {"messages": [self._message_row(message) for message in self.messages]}}

    def _op_AddMessage(self, variables):
        message = self.add_message(None, variables["user_id"], variables["content"])
        row = self._message_row(message) if self.return_inserted else None
        return {"data": {"insert_messages_one": row}}


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def client(backend: FakeBackend) -> GraphQLClient:
    return GraphQLClient(ENDPOINT, ADMIN_SECRET, transport=httpx.MockTransport(backend.handle))


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        graphql_http_url=ENDPOINT,
        admin_secret=ADMIN_SECRET,
        session_secret="tests-secret-key",
        poll_interval=0.05,
        register_redirect_delay=2,
    )
