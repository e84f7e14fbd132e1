"""Persistent socket link for GraphQL subscriptions and the split transport."""
from __future__ import annotations

import asyncio
import json
import logging
import uuid
from contextlib import aclosing, suppress
from typing import Any, AsyncContextManager, AsyncIterator, Callable, Dict, Mapping, Optional

import websockets
from websockets.exceptions import WebSocketException

from .errors import GraphQLResponseError, TransportError
from .transport import ADMIN_SECRET_HEADER, GraphQLClient, GraphQLResponse, build_payload, operation_kind

logger = logging.getLogger("internconnect.subscriptions")

GRAPHQL_TRANSPORT_WS = "graphql-transport-ws"

ConnectFactory = Callable[..., AsyncContextManager[Any]]


async def _send(connection: Any, payload: Dict[str, Any]) -> None:
    await connection.send(json.dumps(payload))


async def _receive(connection: Any, timeout: Optional[float] = None) -> Dict[str, Any]:
    if timeout is None:
        raw = await connection.recv()
    else:
        raw = await asyncio.wait_for(connection.recv(), timeout)
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        message = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise TransportError("Subscription link sent an invalid frame") from exc
    if not isinstance(message, dict):
        raise TransportError("Subscription link sent an invalid frame")
    return message


class SubscriptionLink:
    """Run GraphQL subscriptions over a ``graphql-transport-ws`` WebSocket."""

    def __init__(
        self,
        url: str,
        admin_secret: Optional[str] = None,
        *,
        connect: Optional[ConnectFactory] = None,
        ack_timeout: float = 10.0,
    ) -> None:
        cleaned = (url or "").strip()
        if not cleaned:
            raise ValueError("Subscription endpoint must not be empty")
        self._url = cleaned
        self._admin_secret = (admin_secret or "").strip()
        self._connect = connect or websockets.connect
        self._ack_timeout = ack_timeout

    @property
    def url(self) -> str:
        return self._url

    def _connection_params(self) -> Dict[str, Any]:
        headers = {ADMIN_SECRET_HEADER: self._admin_secret} if self._admin_secret else {}
        return {"headers": headers}

    async def _initialise(self, connection: Any) -> None:
        await _send(connection, {"type": "connection_init", "payload": self._connection_params()})
        while True:
            try:
                message = await _receive(connection, self._ack_timeout)
            except asyncio.TimeoutError as exc:
                raise TransportError("Subscription link did not acknowledge the connection") from exc
            kind = message.get("type")
            if kind == "connection_ack":
                return
            if kind == "ping":
                await _send(connection, {"type": "pong"})
                continue
            raise TransportError(f"Unexpected {kind!r} frame while connecting to the subscription link")

    async def subscribe(
        self,
        document: str,
        operation_name: Optional[str] = None,
        variables: Optional[Mapping[str, Any]] = None,
    ) -> AsyncIterator[GraphQLResponse]:
        """Yield one :class:`GraphQLResponse` per ``next`` frame until the server completes."""

        try:
            async with self._connect(self._url, subprotocols=[GRAPHQL_TRANSPORT_WS]) as connection:
                await self._initialise(connection)
                subscription_id = uuid.uuid4().hex
                await _send(
                    connection,
                    {
                        "id": subscription_id,
                        "type": "subscribe",
                        "payload": build_payload(document, operation_name, variables),
                    },
                )
                logger.info("Subscribed to %s over %s", operation_name or "<anonymous>", self._url)

                finished = False
                try:
                    while True:
                        message = await _receive(connection)
                        kind = message.get("type")
                        if kind == "ping":
                            await _send(connection, {"type": "pong"})
                            continue
                        if message.get("id") != subscription_id:
                            continue
                        if kind == "next":
                            payload = message.get("payload")
                            yield GraphQLResponse.from_payload(payload if isinstance(payload, dict) else {})
                        elif kind == "error":
                            finished = True
                            payload = message.get("payload")
                            errors = payload if isinstance(payload, list) else [{"message": str(payload)}]
                            raise GraphQLResponseError(errors)
                        elif kind == "complete":
                            finished = True
                            return
                finally:
                    if not finished:
                        with suppress(WebSocketException, OSError):
                            await _send(connection, {"id": subscription_id, "type": "complete"})
        except (WebSocketException, OSError) as exc:
            logger.warning("Subscription link %s failed: %s", self._url, exc)
            raise TransportError("Network error") from exc


class SplitTransport:
    """Route subscriptions to the socket link and everything else to HTTP."""

    def __init__(self, http: GraphQLClient, subscriptions: Optional[SubscriptionLink] = None) -> None:
        self._http = http
        self._subscriptions = subscriptions

    @property
    def supports_subscriptions(self) -> bool:
        return self._subscriptions is not None

    async def execute(
        self,
        document: str,
        operation_name: Optional[str] = None,
        variables: Optional[Mapping[str, Any]] = None,
    ) -> GraphQLResponse:
        if operation_kind(document, operation_name) == "subscription":
            raise ValueError("Subscription operations must be consumed with stream()")
        return await self._http.execute(document, operation_name, variables)

    async def stream(
        self,
        document: str,
        operation_name: Optional[str] = None,
        variables: Optional[Mapping[str, Any]] = None,
    ) -> AsyncIterator[GraphQLResponse]:
        if operation_kind(document, operation_name) != "subscription":
            yield await self._http.execute(document, operation_name, variables)
            return

        if self._subscriptions is None:
            raise ValueError("No subscription link is configured")
        async with aclosing(self._subscriptions.subscribe(document, operation_name, variables)) as results:
            async for result in results:
                yield result


__all__ = ["GRAPHQL_TRANSPORT_WS", "SplitTransport", "SubscriptionLink"]
