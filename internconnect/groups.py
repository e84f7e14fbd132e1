"""Chat room (group) listing and creation."""

from __future__ import annotations

import logging
from typing import List, Optional

from .errors import TransportError, ValidationError
from .models import ChatRoom, SessionUser
from .operations import ADD_CHAT_ROOM, GET_CHAT_ROOMS
from .transport import GraphQLExecutor

logger = logging.getLogger("internconnect.groups")


class GroupService:
    """Fetch and create the globally visible chat rooms."""

    def __init__(self, client: GraphQLExecutor) -> None:
        self._client = client

    async def list_rooms(self) -> List[ChatRoom]:
        result = await self._client.execute(GET_CHAT_ROOMS, "GetChatRooms", {})
        data = result.raise_for_errors()
        return [ChatRoom.from_payload(row) for row in data.get("chat_rooms") or []]

    async def create_room(self, name: str, creator: Optional[SessionUser]) -> Optional[ChatRoom]:
        """Create a room owned by ``creator``; blank names are ignored."""

        cleaned = (name or "").strip()
        if not cleaned:
            return None
        if creator is None:
            raise ValidationError("User not logged in")

        result = await self._client.execute(
            ADD_CHAT_ROOM,
            "AddChatRoom",
            {"name": cleaned, "created_by": creator.id},
        )
        data = result.raise_for_errors()
        returning = (data.get("insert_chat_rooms") or {}).get("returning") or []
        if not returning:
            raise TransportError("GraphQL endpoint returned an invalid response")

        room = ChatRoom.from_payload(returning[0])
        room = ChatRoom(
            id=room.id,
            name=room.name,
            created_by=room.created_by or creator.id,
            creator_name=creator.name,
        )
        logger.info("User %s created chat room %s", creator.id, room.id)
        return room


__all__ = ["GroupService"]
