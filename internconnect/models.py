"""Domain records exchanged with the hosted GraphQL backend."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

UNKNOWN_CREATOR = "Unknown"


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _present(value: Any) -> bool:
    if not value or isinstance(value, bool):
        return False
    return isinstance(value, (str, int)) and bool(_text(value))


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse the ISO-8601 timestamps returned by the backend."""

    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    cleaned = value.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(cleaned)
    except ValueError:
        return None


@dataclass(frozen=True)
class User:
    """A user row as stored by the backend, including the password hash."""

    id: str
    name: str
    email: str
    password_hash: Optional[str] = None

    @staticmethod
    def from_payload(data: Mapping[str, Any]) -> "User":
        password_hash = data.get("password_hash")
        return User(
            id=_text(data.get("id")),
            name=_text(data.get("name")),
            email=_text(data.get("email")),
            password_hash=str(password_hash) if password_hash is not None else None,
        )

    def to_session(self) -> Optional["SessionUser"]:
        return SessionUser.from_mapping({"id": self.id, "name": self.name, "email": self.email})


@dataclass(frozen=True)
class SessionUser:
    """The non-sensitive projection of a user that is kept client-side."""

    id: str
    name: str
    email: str

    @staticmethod
    def from_mapping(data: object) -> Optional["SessionUser"]:
        """Build a session user, or ``None`` unless id, name and email are all set."""

        if not isinstance(data, Mapping):
            return None
        values = {key: data.get(key) for key in ("id", "name", "email")}
        if not all(_present(value) for value in values.values()):
            return None
        return SessionUser(
            id=_text(values["id"]),
            name=_text(values["name"]),
            email=_text(values["email"]),
        )

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name, "email": self.email}


@dataclass(frozen=True)
class ChatRoom:
    """A named group that any authenticated user can see and post to."""

    id: str
    name: str
    created_by: Optional[str] = None
    creator_name: str = UNKNOWN_CREATOR

    @staticmethod
    def from_payload(data: Mapping[str, Any]) -> "ChatRoom":
        creator = data.get("creator")
        creator_name = ""
        created_by = data.get("created_by")
        if isinstance(creator, Mapping):
            creator_name = _text(creator.get("name"))
            if created_by is None:
                created_by = creator.get("id")
        return ChatRoom(
            id=_text(data.get("id")),
            name=_text(data.get("name")),
            created_by=_text(created_by) or None,
            creator_name=creator_name or UNKNOWN_CREATOR,
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "created_by": self.created_by,
            "creator_name": self.creator_name,
        }


@dataclass(frozen=True)
class Message:
    """An immutable chat message joined with its author's name."""

    id: str
    content: str
    user_id: str
    chat_room_id: Optional[str]
    created_at: Optional[datetime]
    author_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.author_name or self.user_id

    @staticmethod
    def from_payload(data: Mapping[str, Any], *, chat_room_id: Optional[str] = None) -> "Message":
        author = data.get("user")
        author_name = _text(author.get("name")) if isinstance(author, Mapping) else ""
        room_id = data.get("chat_room_id", chat_room_id)
        return Message(
            id=_text(data.get("id")),
            content=str(data.get("content") or ""),
            user_id=_text(data.get("user_id")),
            chat_room_id=_text(room_id) or None,
            created_at=parse_timestamp(data.get("created_at")),
            author_name=author_name or None,
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "content": self.content,
            "user_id": self.user_id,
            "chat_room_id": self.chat_room_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "author": self.display_name,
        }


__all__ = [
    "ChatRoom",
    "Message",
    "SessionUser",
    "UNKNOWN_CREATOR",
    "User",
    "parse_timestamp",
]
