"""Utilities for driving a live chat view over a browser WebSocket."""
from __future__ import annotations

import json
import logging
from contextlib import suppress
from typing import Any

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect, WebSocketState

from .chat import ChatView

logger = logging.getLogger("internconnect.streaming")


async def send_websocket_json(websocket: WebSocket, payload: dict[str, Any]) -> None:
    """Safely send a JSON payload to a websocket client."""

    if websocket.client_state == WebSocketState.DISCONNECTED:
        return
    with suppress(Exception):
        await websocket.send_json(payload)


async def stream_chat_view(websocket: WebSocket, view: ChatView) -> None:
    """Keep ``view`` mounted while the socket is open and apply browser commands.

    The browser may send ``{"type": "send", "content": ...}``,
    ``{"type": "refresh"}`` or ``{"type": "close"}``. The view is disposed as
    soon as the socket goes away, so no refresh outlives the page.
    """

    dispose = view.mount()
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            text = message.get("text")
            if text is None:
                continue
            try:
                payload = json.loads(text)
            except json.JSONDecodeError:
                continue
            if not isinstance(payload, dict):
                continue

            message_type = payload.get("type")
            if message_type == "send":
                await view.send(str(payload.get("content") or ""))
            elif message_type == "refresh":
                await view.refresh()
            elif message_type == "close":
                break
    except WebSocketDisconnect:
        pass
    finally:
        dispose()
        await view.wait_closed()
        logger.debug("Chat view for %s unmounted", view.label)
        if websocket.application_state != WebSocketState.DISCONNECTED:
            with suppress(Exception):
                await websocket.close()


__all__ = ["send_websocket_json", "stream_chat_view"]
