"""Exceptions raised by the chat client layers."""
from __future__ import annotations

from typing import Any, List, Mapping, Optional, Sequence


class ChatError(RuntimeError):
    """Base class for every user-facing chat failure."""


class TransportError(ChatError):
    """Raised when the GraphQL endpoint cannot be reached or rejects the request."""

    def __init__(self, message: str = "Network error", *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GraphQLResponseError(ChatError):
    """Raised when a well-formed response carries a non-empty ``errors`` array."""

    def __init__(self, errors: Sequence[Mapping[str, Any]]) -> None:
        self.errors: List[Mapping[str, Any]] = list(errors)
        super().__init__(first_error_message(self.errors) or "GraphQL request failed")


class ValidationError(ChatError):
    """Raised for locally detected problems such as empty form fields."""


class AuthenticationError(ValidationError):
    """Raised when an email/password pair does not identify a user."""


class RoomNotFoundError(ValidationError):
    """Raised when a chat room id does not resolve to a room."""

    def __init__(self, room_id: str) -> None:
        super().__init__("Chat room not found")
        self.room_id = room_id


def first_error_message(errors: object) -> Optional[str]:
    """Return the message of the first GraphQL error, if there is one."""

    if not isinstance(errors, (list, tuple)) or not errors:
        return None
    first = errors[0]
    if isinstance(first, Mapping):
        message = first.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    elif isinstance(first, str) and first.strip():
        return first.strip()
    return None


__all__ = [
    "AuthenticationError",
    "ChatError",
    "GraphQLResponseError",
    "RoomNotFoundError",
    "TransportError",
    "ValidationError",
    "first_error_message",
]
