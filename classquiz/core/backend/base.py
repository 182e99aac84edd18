"""Interfaces to the hosted backend: data store, identity provider, object storage.

The service layer only talks to these protocols. ``memory`` and ``rest``
provide the two implementations.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
import logging
from threading import Lock
from typing import Any, Protocol

from classquiz.core.models import AuthSession, AuthUser

logger = logging.getLogger(__name__)

Row = dict[str, Any]
AuthListener = Callable[[str, AuthSession | None], None]

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"


class StoreError(Exception):
    """Structured failure returned by the backend: a message and a backend-specific code."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class DataStore(Protocol):
    def select(
        self,
        table: str,
        *,
        eq: Mapping[str, Any] | None = None,
        in_: Mapping[str, Sequence[Any]] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]: ...

    def insert(self, table: str, rows: Sequence[Row]) -> list[Row]: ...

    def update(self, table: str, row_id: str, values: Mapping[str, Any]) -> Row: ...

    def delete(self, table: str, row_id: str) -> None: ...


class IdentityProvider(Protocol):
    def sign_up(self, email: str, password: str) -> AuthSession: ...

    def sign_in_with_password(self, email: str, password: str) -> AuthSession: ...

    def sign_in_with_otp(self, email: str, redirect_to: str | None = None) -> None: ...

    def sign_out(self, access_token: str) -> None: ...

    def get_user(self, access_token: str) -> AuthUser | None: ...

    def on_auth_state_change(self, listener: AuthListener) -> "Subscription": ...


class ObjectStorage(Protocol):
    def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> None: ...

    def get_public_url(self, bucket: str, path: str) -> str: ...


@dataclass(slots=True)
class Backend:
    """The three backend services a running application is wired to."""

    store: DataStore
    identity: IdentityProvider
    storage: ObjectStorage
    on_close: Callable[[], None] | None = None

    def close(self) -> None:
        """Release connections held by the adapters; safe to call more than once."""
        if self.on_close is not None:
            self.on_close()
            self.on_close = None


class Subscription:
    """Handle returned by ``on_auth_state_change``; call ``unsubscribe`` at teardown."""

    def __init__(self, listeners: "AuthStateListeners", listener: AuthListener) -> None:
        self._listeners = listeners
        self._listener = listener

    def unsubscribe(self) -> None:
        self._listeners.remove(self._listener)


class AuthStateListeners:
    """Registry of identity change callbacks shared by identity providers."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._listeners: list[AuthListener] = []

    def add(self, listener: AuthListener) -> Subscription:
        with self._lock:
            self._listeners.append(listener)
        return Subscription(self, listener)

    def remove(self, listener: AuthListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def notify(self, event: str, session: AuthSession | None) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event, session)
            except Exception:
                logger.exception("Auth state listener failed for %s", event)
