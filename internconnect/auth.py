"""Registration and login against the hosted user table."""
from __future__ import annotations

import logging
from typing import Optional

from passlib.context import CryptContext

from .errors import AuthenticationError, TransportError, ValidationError
from .models import SessionUser, User
from .operations import GET_USER, REGISTER_USER
from .transport import GraphQLExecutor

logger = logging.getLogger("internconnect.auth")

_pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("Password must not be empty")
    return _pwd_context.hash(password)


def verify_password(password: str, hashed: Optional[str]) -> bool:
    """Check ``password`` against a stored hash; unrecognised values never match."""

    if not password or not hashed:
        return False
    try:
        return _pwd_context.verify(password, hashed)
    except (ValueError, TypeError):
        # Legacy rows hold the password itself; those are rejected.
        return False


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class AuthService:
    """Look up and create users through the GraphQL backend."""

    def __init__(self, client: GraphQLExecutor) -> None:
        self._client = client

    async def login(self, email: str, password: str) -> SessionUser:
        if not (email or "").strip() or not (password or "").strip():
            raise ValidationError("Please fill in both email and password")

        normalized = normalize_email(email)
        result = await self._client.execute(GET_USER, "GetUser", {"email": normalized})
        data = result.raise_for_errors()

        rows = data.get("users") or []
        if not rows:
            raise AuthenticationError("User not found")

        user = User.from_payload(rows[0])
        if not verify_password(password, user.password_hash):
            raise AuthenticationError("Incorrect password")

        session_user = user.to_session()
        if session_user is None:
            raise ValidationError("User record is missing required fields")
        return session_user

    async def register(self, name: str, email: str, password: str) -> SessionUser:
        cleaned_name = (name or "").strip()
        normalized = normalize_email(email)
        if not cleaned_name or not normalized or not (password or "").strip():
            raise ValidationError("Please fill in all fields")

        result = await self._client.execute(
            REGISTER_USER,
            "RegisterUser",
            {"name": cleaned_name, "email": normalized, "password_hash": hash_password(password)},
        )
        data = result.raise_for_errors()

        created = SessionUser.from_mapping(data.get("insert_users_one"))
        if created is None:
            raise TransportError("GraphQL endpoint returned an invalid response")
        logger.info("Registered user %s", created.id)
        return created


__all__ = ["AuthService", "hash_password", "normalize_email", "verify_password"]
