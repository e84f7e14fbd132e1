"""Client-side session persistence for the chat web interface."""

from __future__ import annotations

import enum
import json
import logging
from contextlib import contextmanager
from dataclasses import asdict
from typing import Any, Callable, Iterator, List, Mapping, MutableMapping, Optional, Union

from .models import SessionUser, User

logger = logging.getLogger("internconnect.session")

SESSION_KEY = "loggedInUser"

SessionListener = Callable[[Optional[SessionUser]], None]


class AuthState(enum.Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


def _coerce(user: Union[SessionUser, User, Mapping[str, Any], None]) -> Optional[SessionUser]:
    if user is None:
        return None
    if isinstance(user, SessionUser):
        return SessionUser.from_mapping(user.to_dict())
    if isinstance(user, User):
        return user.to_session()
    return SessionUser.from_mapping(user)


class SessionStore:
    """Keep the signed-in user and its durable copy in step.

    ``storage`` is any mutable mapping that survives between page loads; the
    web interface hands in the browser's session cookie. Only the projection
    ``{id, name, email}`` is ever written, serialized as JSON under
    :data:`SESSION_KEY`.
    """

    def __init__(self, storage: MutableMapping[str, Any], *, key: str = SESSION_KEY) -> None:
        self._storage = storage
        self._key = key
        self._user: Optional[SessionUser] = None
        self._authenticating = False
        self._listeners: List[SessionListener] = []

    @property
    def current(self) -> Optional[SessionUser]:
        return self._user

    @property
    def state(self) -> AuthState:
        if self._authenticating:
            return AuthState.AUTHENTICATING
        if self._user is not None:
            return AuthState.AUTHENTICATED
        return AuthState.ANONYMOUS

    def load(self) -> Optional[SessionUser]:
        """Restore the stored session, discarding anything malformed."""

        raw = self._storage.get(self._key)
        if raw is None:
            self._user = None
            return None

        data: object = raw
        if isinstance(raw, (str, bytes)):
            try:
                data = json.loads(raw)
            except ValueError:
                logger.warning("Stored session is not valid JSON; discarding it")
                data = None

        user = SessionUser.from_mapping(data)
        if user is None:
            logger.info("Stored session is incomplete; removing it")
            self._storage.pop(self._key, None)
        self._user = user
        return user

    def set(self, user: Union[SessionUser, User, Mapping[str, Any], None]) -> Optional[SessionUser]:
        """Replace the in-memory session and synchronize durable storage."""

        self._user = _coerce(user)
        self._sync()
        self._notify()
        return self._user

    def clear(self) -> None:
        self.set(None)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register ``listener`` for session changes and return an unsubscribe callable."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @contextmanager
    def authenticating(self) -> Iterator["SessionStore"]:
        """Mark a login attempt as in flight for the duration of the block."""

        self._authenticating = True
        try:
            yield self
        finally:
            self._authenticating = False

    def _sync(self) -> None:
        if self._user is None:
            self._storage.pop(self._key, None)
            return
        self._storage[self._key] = json.dumps(asdict(self._user))

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._user)
            except Exception:
                logger.exception("Session listener failed")


__all__ = ["AuthState", "SESSION_KEY", "SessionListener", "SessionStore"]
