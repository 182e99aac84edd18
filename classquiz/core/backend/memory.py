"""In-process backend used for development, demos and tests.

Mimics the hosted backend closely enough for the service layer: ids and
timestamps are filled in on insert, deletes cascade along the same foreign
keys the hosted schema declares, and failures can be injected per table and
operation to exercise error paths.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import copy
from datetime import datetime, timezone
from threading import Lock
from typing import Any
from uuid import uuid4

from classquiz.core.backend.base import (
    SIGNED_IN,
    SIGNED_OUT,
    AuthListener,
    AuthStateListeners,
    Backend,
    Row,
    StoreError,
    Subscription,
)
from classquiz.core.models import AuthSession, AuthUser

_TIMESTAMP_COLUMNS = {
    "teachers": "created_at",
    "classes": "created_at",
    "class_members": "joined_at",
    "questions": "created_at",
    "sessions": "created_at",
    "session_participants": "joined_at",
}
_ROW_DEFAULTS: dict[str, dict[str, Any]] = {
    "sessions": {"is_active": True, "description": None, "course_id": None, "expires_at": None},
    "classes": {"description": None},
    "questions": {"image_url": None, "image_filename": None},
    "tags": {"description": None, "color": "#6366f1"},
    "courses": {"description": None},
}
# parent table -> [(child table, foreign key column)]
_CASCADES: dict[str, list[tuple[str, str]]] = {
    "classes": [("class_members", "class_id"), ("sessions", "class_id")],
    "sessions": [
        ("session_tags", "session_id"),
        ("session_questions", "session_id"),
        ("session_participants", "session_id"),
    ],
    "questions": [
        ("answers", "question_id"),
        ("question_tags", "question_id"),
        ("session_questions", "question_id"),
    ],
    "tags": [("question_tags", "tag_id"), ("session_tags", "tag_id")],
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class FailureInjector:
    """Lets tests and demos make specific backend operations fail."""

    def __init__(self) -> None:
        self._failures: dict[tuple[str, str], StoreError] = {}

    def fail(self, operation: str, target: str, message: str = "Simulated failure", code: str = "simulated") -> None:
        self._failures[(operation, target)] = StoreError(message, code)

    def clear(self) -> None:
        self._failures.clear()

    def check(self, operation: str, target: str) -> None:
        error = self._failures.get((operation, target))
        if error is not None:
            raise StoreError(error.message, error.code)


class InMemoryDataStore:
    """Thread-safe table store keyed by table name."""

    def __init__(self, failures: FailureInjector | None = None) -> None:
        self._lock = Lock()
        self._tables: dict[str, list[Row]] = {}
        self.failures = failures or FailureInjector()

    def select(
        self,
        table: str,
        *,
        eq: Mapping[str, Any] | None = None,
        in_: Mapping[str, Sequence[Any]] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        with self._lock:
            self.failures.check("select", table)
            rows = [row for row in self._tables.get(table, []) if _matches(row, eq, in_)]
            if order_by is not None:
                rows = _ordered(rows, order_by, descending)
            if limit is not None:
                rows = rows[:limit]
            return copy.deepcopy(rows)

    def insert(self, table: str, rows: Sequence[Row]) -> list[Row]:
        with self._lock:
            self.failures.check("insert", table)
            inserted = [self._prepare_row(table, row) for row in rows]
            self._tables.setdefault(table, []).extend(inserted)
            return copy.deepcopy(inserted)

    def update(self, table: str, row_id: str, values: Mapping[str, Any]) -> Row:
        with self._lock:
            self.failures.check("update", table)
            for row in self._tables.get(table, []):
                if row["id"] == row_id:
                    row.update(values)
                    return copy.deepcopy(row)
        raise StoreError(f"No row with id {row_id} in {table}", code="PGRST116")

    def delete(self, table: str, row_id: str) -> None:
        with self._lock:
            self.failures.check("delete", table)
            self._delete_where(table, "id", {row_id})

    def _prepare_row(self, table: str, row: Row) -> Row:
        prepared = dict(_ROW_DEFAULTS.get(table, {}))
        prepared.update(copy.deepcopy(row))
        prepared.setdefault("id", str(uuid4()))
        timestamp_column = _TIMESTAMP_COLUMNS.get(table)
        if timestamp_column and not prepared.get(timestamp_column):
            prepared[timestamp_column] = _now_iso()
        return prepared

    def _delete_where(self, table: str, column: str, values: set[Any]) -> None:
        rows = self._tables.get(table, [])
        removed_ids = {row["id"] for row in rows if row.get(column) in values}
        if not removed_ids:
            return
        self._tables[table] = [row for row in rows if row["id"] not in removed_ids]
        for child_table, foreign_key in _CASCADES.get(table, []):
            self._delete_where(child_table, foreign_key, removed_ids)


def _matches(row: Row, eq: Mapping[str, Any] | None, in_: Mapping[str, Sequence[Any]] | None) -> bool:
    if eq and any(row.get(column) != value for column, value in eq.items()):
        return False
    if in_ and any(row.get(column) not in set(values) for column, values in in_.items()):
        return False
    return True


def _ordered(rows: list[Row], column: str, descending: bool) -> list[Row]:
    # NULLs sort last in both directions, as in the hosted store
    present = [row for row in rows if row.get(column) is not None]
    missing = [row for row in rows if row.get(column) is None]
    present.sort(key=lambda row: row[column], reverse=descending)
    return present + missing


class InMemoryIdentityProvider:
    """Password and magic-link identity flows backed by dictionaries."""

    def __init__(self, failures: FailureInjector | None = None) -> None:
        self._lock = Lock()
        self._passwords: dict[str, str] = {}
        self._user_ids: dict[str, str] = {}
        self._tokens: dict[str, AuthUser] = {}
        self._pending_links: dict[str, str | None] = {}
        self._listeners = AuthStateListeners()
        self.failures = failures or FailureInjector()

    def sign_up(self, email: str, password: str) -> AuthSession:
        with self._lock:
            self.failures.check("sign_up", "auth")
            if email in self._passwords:
                raise StoreError("User already registered", code="user_already_exists")
            self._passwords[email] = password
            session = self._issue_session(email)
        self._listeners.notify(SIGNED_IN, session)
        return session

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        with self._lock:
            self.failures.check("sign_in", "auth")
            if self._passwords.get(email) != password:
                raise StoreError("Invalid login credentials", code="invalid_credentials")
            session = self._issue_session(email)
        self._listeners.notify(SIGNED_IN, session)
        return session

    def sign_in_with_otp(self, email: str, redirect_to: str | None = None) -> None:
        with self._lock:
            self.failures.check("otp", "auth")
            self._pending_links[email] = redirect_to

    def complete_magic_link(self, email: str) -> AuthSession:
        """Simulate the user clicking the emailed sign-in link."""
        with self._lock:
            if email not in self._pending_links:
                raise StoreError("Email link is invalid or has expired", code="otp_expired")
            del self._pending_links[email]
            session = self._issue_session(email)
        self._listeners.notify(SIGNED_IN, session)
        return session

    def sign_out(self, access_token: str) -> None:
        with self._lock:
            self.failures.check("sign_out", "auth")
            self._tokens.pop(access_token, None)
        self._listeners.notify(SIGNED_OUT, None)

    def get_user(self, access_token: str) -> AuthUser | None:
        with self._lock:
            self.failures.check("get_user", "auth")
            return self._tokens.get(access_token)

    def on_auth_state_change(self, listener: AuthListener) -> Subscription:
        return self._listeners.add(listener)

    def _issue_session(self, email: str) -> AuthSession:
        user_id = self._user_ids.setdefault(email, str(uuid4()))
        user = AuthUser(id=user_id, email=email)
        token = uuid4().hex
        self._tokens[token] = user
        return AuthSession(access_token=token, user=user)


class InMemoryObjectStorage:
    """Keeps uploaded objects in memory and serves made-up public URLs."""

    def __init__(self, public_base_url: str = "memory://storage", failures: FailureInjector | None = None) -> None:
        self._lock = Lock()
        self._objects: dict[tuple[str, str], tuple[bytes, str]] = {}
        self._public_base_url = public_base_url.rstrip("/")
        self.failures = failures or FailureInjector()

    def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> None:
        with self._lock:
            self.failures.check("upload", bucket)
            if (bucket, path) in self._objects:
                raise StoreError("The resource already exists", code="Duplicate")
            self._objects[(bucket, path)] = (bytes(data), content_type)

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{self._public_base_url}/{bucket}/{path}"

    def get_object(self, bucket: str, path: str) -> tuple[bytes, str] | None:
        with self._lock:
            return self._objects.get((bucket, path))


def create_memory_backend() -> Backend:
    """Build a memory backend whose three services share one failure injector."""
    failures = FailureInjector()
    return Backend(
        store=InMemoryDataStore(failures),
        identity=InMemoryIdentityProvider(failures),
        storage=InMemoryObjectStorage(failures=failures),
    )
