"""GraphQL transport for the hosted backend."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol

import httpx
from graphql import GraphQLSyntaxError, parse
from graphql.utilities import get_operation_ast

from .errors import GraphQLResponseError, TransportError, first_error_message

logger = logging.getLogger("internconnect.transport")

ADMIN_SECRET_HEADER = "x-hasura-admin-secret"


@dataclass
class GraphQLResponse:
    """Parsed ``{data, errors}`` body of a GraphQL response."""

    data: Optional[Dict[str, Any]] = None
    errors: List[Mapping[str, Any]] = field(default_factory=list)

    @property
    def first_error_message(self) -> Optional[str]:
        return first_error_message(self.errors)

    def raise_for_errors(self) -> Dict[str, Any]:
        """Return ``data`` or raise :class:`GraphQLResponseError` when errors are present."""

        if self.errors:
            raise GraphQLResponseError(self.errors)
        return self.data or {}

    @staticmethod
    def from_payload(payload: Mapping[str, Any]) -> "GraphQLResponse":
        data = payload.get("data")
        errors = payload.get("errors")
        if isinstance(errors, list):
            normalized = [
                entry if isinstance(entry, Mapping) else {"message": str(entry)}
                for entry in errors
            ]
        elif errors:
            normalized = [{"message": str(errors)}]
        else:
            normalized = []
        return GraphQLResponse(
            data=data if isinstance(data, dict) else None,
            errors=normalized,
        )


class GraphQLExecutor(Protocol):
    """Anything that can run a query or mutation, such as :class:`GraphQLClient`."""

    async def execute(
        self,
        document: str,
        operation_name: Optional[str] = None,
        variables: Optional[Mapping[str, Any]] = None,
    ) -> GraphQLResponse: ...


def _normalize_endpoint(endpoint: str) -> str:
    cleaned = (endpoint or "").strip()
    if not cleaned:
        raise ValueError("GraphQL endpoint must not be empty")
    return cleaned


def build_payload(
    document: str,
    operation_name: Optional[str] = None,
    variables: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    return {
        "query": document,
        "operationName": operation_name,
        "variables": dict(variables or {}),
    }


def operation_kind(document: str, operation_name: Optional[str] = None) -> str:
    """Return the root kind (query, mutation or subscription) of the selected operation."""

    try:
        ast = parse(document)
    except GraphQLSyntaxError as exc:
        raise ValueError(f"Invalid GraphQL document: {exc.message}") from exc

    operation = get_operation_ast(ast, operation_name)
    if operation is None:
        if operation_name:
            raise ValueError(f"Operation {operation_name!r} is not defined in the document")
        raise ValueError("Document defines several operations; an operation name is required")
    return operation.operation.value


class GraphQLClient:
    """Issue GraphQL operations as JSON POST requests."""

    def __init__(
        self,
        endpoint: str,
        admin_secret: Optional[str] = None,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._endpoint = _normalize_endpoint(endpoint)
        self._admin_secret = (admin_secret or "").strip()
        self._timeout = timeout
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._admin_secret:
            # Grants admin access to the backing store; only acceptable behind a trusted server.
            headers[ADMIN_SECRET_HEADER] = self._admin_secret
        return headers

    async def execute(
        self,
        document: str,
        operation_name: Optional[str] = None,
        variables: Optional[Mapping[str, Any]] = None,
    ) -> GraphQLResponse:
        """Run a query or mutation and return the parsed ``{data, errors}`` body."""

        payload = build_payload(document, operation_name, variables)

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
                response = await client.post(self._endpoint, json=payload, headers=self._headers())
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            logger.warning("GraphQL request %s failed: %s", operation_name or "<anonymous>", exc)
            raise TransportError("Network error") from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 400:
            message = "Network error"
            if isinstance(body, dict):
                message = first_error_message(body.get("errors")) or message
            logger.warning(
                "GraphQL endpoint responded with status %s for %s",
                response.status_code,
                operation_name or "<anonymous>",
            )
            raise TransportError(message, status_code=response.status_code)

        if not isinstance(body, dict):
            raise TransportError("GraphQL endpoint returned an invalid response")

        result = GraphQLResponse.from_payload(body)
        if result.errors:
            logger.info(
                "GraphQL operation %s returned errors: %s",
                operation_name or "<anonymous>",
                result.first_error_message,
            )
        return result


__all__ = [
    "ADMIN_SECRET_HEADER",
    "GraphQLClient",
    "GraphQLExecutor",
    "GraphQLResponse",
    "build_payload",
    "operation_kind",
]
