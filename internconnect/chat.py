"""Message fetching, sending and the live chat view model."""

from __future__ import annotations

import asyncio
import inspect
import logging
from contextlib import aclosing, suppress
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

from .config import DEFAULT_POLL_INTERVAL
from .errors import ChatError, RoomNotFoundError, TransportError, ValidationError
from .models import ChatRoom, Message, SessionUser
from .operations import (
    ADD_MESSAGE,
    FEED_MESSAGES,
    GET_CHATS_BY_CLASS,
    GET_MESSAGES,
    INSERT_MESSAGE,
    ROOM_MESSAGES,
)
from .polling import Disposer, PollingTask
from .transport import GraphQLExecutor

logger = logging.getLogger("internconnect.chat")

ChangeCallback = Optional[Callable[["ChatView"], Awaitable[None] | None]]


class ChatService:
    """GraphQL operations behind a single chat room."""

    def __init__(self, client: GraphQLExecutor) -> None:
        self._client = client

    @property
    def supports_live_updates(self) -> bool:
        return bool(getattr(self._client, "supports_subscriptions", False))

    async def fetch_room(self, room_id: str) -> Tuple[ChatRoom, List[Message]]:
        """Return the room and its messages in the order the server sent them."""

        if not (room_id or "").strip():
            raise ValidationError("No chat room selected")

        result = await self._client.execute(GET_CHATS_BY_CLASS, "GetChatsByClass", {"grpid": room_id})
        data = result.raise_for_errors()
        row = data.get("chat_rooms_by_pk")
        if not row:
            raise RoomNotFoundError(room_id)

        room = ChatRoom.from_payload(row)
        messages = [
            Message.from_payload(entry, chat_room_id=room.id or room_id)
            for entry in row.get("messages") or []
        ]
        return room, messages

    async def send_message(
        self,
        room_id: str,
        user: Optional[SessionUser],
        content: str,
    ) -> Optional[Message]:
        """Insert a message and return the stored row, or ``None`` if none came back."""

        if not (room_id or "").strip():
            raise ValidationError("No chat room selected")
        if user is None:
            raise ValidationError("User not logged in")
        text = (content or "").strip()
        if not text:
            raise ValidationError("Message must not be empty")

        result = await self._client.execute(
            INSERT_MESSAGE,
            "InsertMessage",
            {"content": text, "user_id": user.id, "chat_room_id": room_id},
        )
        data = result.raise_for_errors()
        returning = (data.get("insert_messages") or {}).get("returning") or []
        if not returning:
            return None
        return Message.from_payload(returning[0], chat_room_id=room_id)

    async def fetch_feed(self) -> List[Message]:
        """Return every message, including those posted outside any room."""

        result = await self._client.execute(GET_MESSAGES, "GetMessages", {})
        data = result.raise_for_errors()
        return [Message.from_payload(entry) for entry in data.get("messages") or []]

    async def post_to_feed(self, user: Optional[SessionUser], content: str) -> Optional[Message]:
        if user is None:
            raise ValidationError("User not logged in")
        text = (content or "").strip()
        if not text:
            raise ValidationError("Message must not be empty")

        result = await self._client.execute(ADD_MESSAGE, "AddMessage", {"content": text, "user_id": user.id})
        data = result.raise_for_errors()
        row = data.get("insert_messages_one")
        if not row:
            return None
        return Message.from_payload(row)

    def follow_room(self, room_id: str) -> AsyncIterator[List[Message]]:
        """Yield the full ordered message list each time the backend pushes one."""

        return self._follow(ROOM_MESSAGES, "RoomMessages", {"chat_room_id": room_id}, room_id)

    def follow_feed(self) -> AsyncIterator[List[Message]]:
        return self._follow(FEED_MESSAGES, "FeedMessages", {}, None)

    async def _follow(
        self,
        document: str,
        operation_name: str,
        variables: Dict[str, Any],
        room_id: Optional[str],
    ) -> AsyncIterator[List[Message]]:
        stream = getattr(self._client, "stream", None)
        if stream is None:
            raise TransportError("Live updates are not available")

        async with aclosing(stream(document, operation_name, variables)) as results:
            async for result in results:
                data = result.raise_for_errors()
                yield [Message.from_payload(entry, chat_room_id=room_id) for entry in data.get("messages") or []]


class ChatView:
    """State of one open chat page, refreshed for as long as it is mounted.

    ``mount()`` fetches immediately and then keeps the message list fresh,
    either with a :class:`PollingTask` or, when the transport supports it, a
    live subscription. The returned disposer stops all refreshing; responses
    that arrive after disposal are dropped instead of applied.
    """

    def __init__(
        self,
        service: ChatService,
        room_id: str,
        user: Optional[SessionUser],
        *,
        interval: float = DEFAULT_POLL_INTERVAL,
        live: Optional[bool] = None,
        on_change: ChangeCallback = None,
    ) -> None:
        self._service = service
        self.room_id = (room_id or "").strip()
        self.user = user
        self._interval = interval
        self._live = service.supports_live_updates if live is None else live
        self._on_change = on_change

        self.room: Optional[ChatRoom] = None
        self.messages: List[Message] = []
        self.error: Optional[str] = None
        self.loading = False
        self.sending = False

        self._poller: Optional[PollingTask] = None
        self._live_task: Optional[asyncio.Task] = None
        self._mounted = False
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def poller(self) -> Optional[PollingTask]:
        return self._poller

    def snapshot(self) -> Dict[str, Any]:
        return {
            "type": "messages",
            "room": self.room.to_dict() if self.room else None,
            "messages": [message.to_dict() for message in self.messages],
            "error": self.error,
        }

    @property
    def label(self) -> str:
        return f"room {self.room_id}"

    def _target_error(self) -> Optional[str]:
        return None if self.room_id else "No chat room selected"

    async def _load(self) -> Tuple[Optional[ChatRoom], List[Message]]:
        return await self._service.fetch_room(self.room_id)

    async def _insert(self, content: str) -> Optional[Message]:
        return await self._service.send_message(self.room_id, self.user, content)

    def _updates(self) -> AsyncIterator[List[Message]]:
        return self._service.follow_room(self.room_id)

    async def refresh(self) -> None:
        if self._disposed or self._target_error():
            return

        self.loading = True
        try:
            room, messages = await self._load()
        except ChatError as exc:
            if self._disposed:
                return
            self.error = str(exc)
            if isinstance(exc, RoomNotFoundError):
                self.messages = []
        else:
            if self._disposed:
                return
            self.room = room
            self.messages = messages
            self.error = None
        finally:
            self.loading = False

        await self._emit()

    async def send(self, content: str) -> Optional[Message]:
        target_error = self._target_error()
        if target_error:
            self.error = target_error
            await self._emit()
            return None
        if self.user is None:
            self.error = "User not logged in"
            await self._emit()
            return None
        if not (content or "").strip():
            return None

        self.sending = True
        self.error = None
        try:
            inserted = await self._insert(content)
        except ChatError as exc:
            if not self._disposed:
                self.error = str(exc)
                await self._emit()
            return None
        finally:
            self.sending = False

        if self._disposed:
            return inserted
        if inserted is None:
            await self.refresh()
        else:
            self.messages = [*self.messages, inserted]
            await self._emit()
        return inserted

    def mount(self) -> Disposer:
        if self._mounted:
            raise RuntimeError("Chat view is already mounted")
        self._mounted = True

        if self._live:
            self._live_task = asyncio.get_running_loop().create_task(
                self._follow(), name=f"chat-{self.label}-live"
            )
        else:
            self._start_polling()
        return self.unmount

    def unmount(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        if self._poller is not None:
            self._poller.dispose()
        if self._live_task is not None and not self._live_task.done():
            self._live_task.cancel()

    async def wait_closed(self) -> None:
        if self._live_task is not None:
            with suppress(asyncio.CancelledError):
                await self._live_task
        if self._poller is not None:
            await self._poller.wait_closed()

    def _start_polling(self) -> None:
        self._poller = PollingTask(
            self.refresh,
            self._interval,
            name=f"chat-{self.label}",
        )
        self._poller.start()

    async def _follow(self) -> None:
        await self.refresh()
        try:
            async with aclosing(self._updates()) as updates:
                async for messages in updates:
                    if self._disposed:
                        return
                    self.messages = messages
                    self.error = None
                    await self._emit()
        except ChatError as exc:
            if self._disposed:
                return
            logger.warning("Live updates for %s stopped: %s", self.label, exc)
            self.error = str(exc)
            await self._emit()

        if not self._disposed:
            logger.info("Falling back to polling for %s", self.label)
            self._start_polling()

    async def _emit(self) -> None:
        if self._on_change is None or self._disposed:
            return
        result = self._on_change(self)
        if inspect.isawaitable(result):
            await result


class FeedView(ChatView):
    """Every message across the app, including posts made outside any room."""

    def __init__(self, service: ChatService, user: Optional[SessionUser], **kwargs: Any) -> None:
        super().__init__(service, "", user, **kwargs)

    @property
    def label(self) -> str:
        return "feed"

    def _target_error(self) -> Optional[str]:
        return None

    async def _load(self) -> Tuple[Optional[ChatRoom], List[Message]]:
        return None, await self._service.fetch_feed()

    async def _insert(self, content: str) -> Optional[Message]:
        return await self._service.post_to_feed(self.user, content)

    def _updates(self) -> AsyncIterator[List[Message]]:
        return self._service.follow_feed()


__all__ = ["ChatService", "ChatView", "FeedView"]
