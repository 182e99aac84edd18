"""HTTP client for a hosted backend speaking the PostgREST / GoTrue / Storage dialect.

Every call is a single request; failures are translated to ``StoreError``
and never retried.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
from typing import Any
from urllib.parse import quote

import httpx

from classquiz.constants.network_constants import BACKEND_TIMEOUT_SECONDS
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

logger = logging.getLogger(__name__)


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def _format_in(values: Sequence[Any]) -> str:
    quoted = []
    for value in values:
        text = _format_value(value)
        if any(ch in text for ch in ',()"'):
            text = '"' + text.replace('"', '\\"') + '"'
        quoted.append(text)
    return f"in.({','.join(quoted)})"


def _raise_for_error(response: httpx.Response) -> None:
    if not response.is_error:
        return
    message = response.reason_phrase or f"HTTP {response.status_code}"
    code: str | None = str(response.status_code)
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error_description") or payload.get("msg") or message
        code = payload.get("code") or payload.get("error_code") or payload.get("error") or code
    raise StoreError(str(message), code=str(code) if code is not None else None)


class _RestClient:
    """Shared ``httpx.Client`` with the backend's API key headers."""

    def __init__(self, client: httpx.Client) -> None:
        self.http = client

    def close(self) -> None:
        self.http.close()

    def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self.http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("Backend request %s %s failed: %s", method, url, exc)
            raise StoreError(str(exc) or exc.__class__.__name__, code="network") from exc
        _raise_for_error(response)
        return response


class RestDataStore:
    def __init__(self, client: _RestClient) -> None:
        self._client = client

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
        params: list[tuple[str, str]] = [("select", "*")]
        for column, value in (eq or {}).items():
            params.append((column, f"eq.{_format_value(value)}"))
        for column, values in (in_ or {}).items():
            params.append((column, _format_in(values)))
        if order_by is not None:
            params.append(("order", f"{order_by}.{'desc' if descending else 'asc'}.nullslast"))
        if limit is not None:
            params.append(("limit", str(limit)))
        response = self._client.request("GET", f"/rest/v1/{table}", params=params)
        return list(response.json())

    def insert(self, table: str, rows: Sequence[Row]) -> list[Row]:
        response = self._client.request(
            "POST",
            f"/rest/v1/{table}",
            json=list(rows),
            headers={"Prefer": "return=representation"},
        )
        return list(response.json())

    def update(self, table: str, row_id: str, values: Mapping[str, Any]) -> Row:
        response = self._client.request(
            "PATCH",
            f"/rest/v1/{table}",
            params={"id": f"eq.{row_id}"},
            json=dict(values),
            headers={"Prefer": "return=representation"},
        )
        rows = response.json()
        if not rows:
            raise StoreError(f"No row with id {row_id} in {table}", code="PGRST116")
        return rows[0]

    def delete(self, table: str, row_id: str) -> None:
        self._client.request("DELETE", f"/rest/v1/{table}", params={"id": f"eq.{row_id}"})


class RestIdentityProvider:
    def __init__(self, client: _RestClient) -> None:
        self._client = client
        self._listeners = AuthStateListeners()

    def sign_up(self, email: str, password: str) -> AuthSession:
        response = self._client.request("POST", "/auth/v1/signup", json={"email": email, "password": password})
        session = _session_from_payload(response.json())
        self._listeners.notify(SIGNED_IN, session)
        return session

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        response = self._client.request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        session = _session_from_payload(response.json())
        self._listeners.notify(SIGNED_IN, session)
        return session

    def sign_in_with_otp(self, email: str, redirect_to: str | None = None) -> None:
        params = {"redirect_to": redirect_to} if redirect_to else None
        self._client.request("POST", "/auth/v1/otp", params=params, json={"email": email, "create_user": True})

    def sign_out(self, access_token: str) -> None:
        self._client.request("POST", "/auth/v1/logout", headers={"Authorization": f"Bearer {access_token}"})
        self._listeners.notify(SIGNED_OUT, None)

    def get_user(self, access_token: str) -> AuthUser | None:
        try:
            response = self._client.request(
                "GET", "/auth/v1/user", headers={"Authorization": f"Bearer {access_token}"}
            )
        except StoreError as exc:
            if exc.code in {"401", "403", "bad_jwt", "session_not_found"}:
                return None
            raise
        payload = response.json()
        return AuthUser(id=payload["id"], email=payload["email"])

    def on_auth_state_change(self, listener: AuthListener) -> Subscription:
        return self._listeners.add(listener)


def _session_from_payload(payload: dict[str, Any]) -> AuthSession:
    user = payload.get("user") or {}
    token = payload.get("access_token")
    if not token or not user.get("id"):
        raise StoreError("Sign-in requires email confirmation before a session is issued", code="email_not_confirmed")
    return AuthSession(access_token=token, user=AuthUser(id=user["id"], email=user.get("email", "")))


class RestObjectStorage:
    def __init__(self, client: _RestClient, base_url: str) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")

    def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> None:
        self._client.request(
            "POST",
            f"/storage/v1/object/{bucket}/{quote(path)}",
            content=data,
            headers={"Content-Type": content_type},
        )

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{self._base_url}/storage/v1/object/public/{bucket}/{quote(path)}"


def create_rest_backend(
    base_url: str,
    api_key: str,
    *,
    timeout: float = BACKEND_TIMEOUT_SECONDS,
    transport: httpx.BaseTransport | None = None,
) -> Backend:
    """Build a backend whose three services share one HTTP connection pool."""
    http = httpx.Client(
        base_url=base_url.rstrip("/"),
        headers={"apikey": api_key, "Authorization": f"Bearer {api_key}"},
        timeout=timeout,
        transport=transport,
    )
    client = _RestClient(http)
    return Backend(
        store=RestDataStore(client),
        identity=RestIdentityProvider(client),
        storage=RestObjectStorage(client, base_url),
        on_close=client.close,
    )
