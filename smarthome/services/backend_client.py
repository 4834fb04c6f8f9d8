"""Async client for the hosted backend: GoTrue-style auth + PostgREST-style tables.

One ``BackendClient`` per browser client, so each holds its own auth session.
Clients may share a single ``aiohttp.ClientSession`` for transport.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable

import aiohttp

from smarthome.exceptions import (
    AuthenticationError,
    ServiceConnectionError,
    ServiceError,
)
from smarthome.models.user import AuthSession, AuthUser

logger = logging.getLogger(__name__)

# Auth state change events
SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"

AuthStateCallback = Callable[[str, "AuthSession | None"], None]


def _error_message(body: Any, status: int) -> str:
    """Pull the human-readable message out of an error body."""
    if isinstance(body, dict):
        for key in ("msg", "message", "error_description", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    if isinstance(body, str) and body:
        return body
    return f"Request failed with status {status}"


class Transport:
    """HTTP plumbing shared by the auth and table facades."""

    def __init__(
        self,
        api_key: str,
        websession: aiohttp.ClientSession | None = None,
        timeout: float | None = None,
    ) -> None:
        self.api_key = api_key
        self._websession = websession
        self._own_session = websession is None
        self._timeout = timeout

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._websession is None:
            if self._timeout:
                self._websession = aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(total=self._timeout)
                )
            else:
                self._websession = aiohttp.ClientSession()
            self._own_session = True
        return self._websession

    async def close(self) -> None:
        if self._own_session and self._websession:
            await self._websession.close()
            self._websession = None

    async def send(
        self,
        method: str,
        url: str,
        params: dict[str, str] | None,
        payload: Any,
        headers: dict[str, str],
    ) -> tuple[int, str]:
        """Raw HTTP exchange: returns (status, body text)."""
        websession = await self._ensure_session()
        try:
            async with websession.request(
                method, url, params=params, json=payload, headers=headers
            ) as response:
                return response.status, await response.text()
        except aiohttp.ClientError as err:
            raise ServiceConnectionError(f"Failed to connect to service: {err}") from err

    async def request(
        self,
        method: str,
        url: str,
        *,
        bearer: str | None = None,
        params: dict[str, str] | None = None,
        payload: Any = None,
        headers: dict[str, str] | None = None,
        error_cls: type[ServiceError] = ServiceError,
    ) -> Any:
        """Send one request and return the decoded JSON body (None when empty)."""
        request_headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {bearer or self.api_key}",
        }
        if headers:
            request_headers.update(headers)
        status, text = await self.send(method, url, params, payload, request_headers)

        body: Any = None
        if text:
            try:
                body = json.loads(text)
            except ValueError:
                if status < 400:
                    raise ServiceError(f"Invalid response from service: {text[:200]}", status)
                body = text

        if status >= 400:
            message = _error_message(body, status)
            logger.debug("%s %s failed (%s): %s", method, url, status, message)
            raise error_cls(message, status)
        return body


@dataclass
class Subscription:
    """Handle returned by ``AuthClient.on_auth_state_change``."""

    id: int
    _client: "AuthClient"

    def unsubscribe(self) -> None:
        self._client._listeners.pop(self.id, None)


@dataclass
class SignUpResult:
    user: AuthUser | None
    session: AuthSession | None


class AuthClient:
    """Password auth against the ``/auth/v1`` API, with change notifications."""

    def __init__(self, transport: Transport, base_url: str) -> None:
        self._transport = transport
        self._base_url = base_url.rstrip("/")
        self._session: AuthSession | None = None
        self._listeners: dict[int, AuthStateCallback] = {}
        self._next_listener_id = 0
        self._refresh_lock = asyncio.Lock()

    @property
    def access_token(self) -> str | None:
        return self._session.access_token if self._session else None

    def on_auth_state_change(self, callback: AuthStateCallback) -> Subscription:
        self._next_listener_id += 1
        self._listeners[self._next_listener_id] = callback
        return Subscription(self._next_listener_id, self)

    def _notify(self, event: str, session: AuthSession | None) -> None:
        logger.debug("Auth state change: %s", event)
        for callback in list(self._listeners.values()):
            callback(event, session)

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        data = await self._transport.request(
            "POST",
            f"{self._base_url}/token",
            params={"grant_type": "password"},
            payload={"email": email, "password": password},
            error_cls=AuthenticationError,
        )
        self._session = AuthSession.model_validate(data)
        self._notify(SIGNED_IN, self._session)
        return self._session

    async def sign_up(
        self, email: str, password: str, redirect_to: str | None = None
    ) -> SignUpResult:
        """Register a new identity.

        With email confirmation disabled the service answers with a full
        session; otherwise only the (unconfirmed) user comes back.
        """
        params = {"redirect_to": redirect_to} if redirect_to else None
        data = await self._transport.request(
            "POST",
            f"{self._base_url}/signup",
            params=params,
            payload={"email": email, "password": password},
            error_cls=AuthenticationError,
        )
        if isinstance(data, dict) and data.get("access_token"):
            self._session = AuthSession.model_validate(data)
            self._notify(SIGNED_IN, self._session)
            return SignUpResult(user=self._session.user, session=self._session)
        user = AuthUser.model_validate(data) if isinstance(data, dict) and data.get("id") else None
        return SignUpResult(user=user, session=None)

    async def sign_out(self) -> None:
        """Revoke the session remotely. Local state is cleared even on failure."""
        session, self._session = self._session, None
        try:
            if session is not None:
                await self._transport.request(
                    "POST",
                    f"{self._base_url}/logout",
                    bearer=session.access_token,
                    error_cls=AuthenticationError,
                )
        finally:
            self._notify(SIGNED_OUT, None)

    async def refresh_session(self) -> AuthSession | None:
        if self._session is None or not self._session.refresh_token:
            return None
        try:
            data = await self._transport.request(
                "POST",
                f"{self._base_url}/token",
                params={"grant_type": "refresh_token"},
                payload={"refresh_token": self._session.refresh_token},
                error_cls=AuthenticationError,
            )
        except AuthenticationError:
            self._session = None
            self._notify(SIGNED_OUT, None)
            raise
        self._session = AuthSession.model_validate(data)
        self._notify(TOKEN_REFRESHED, self._session)
        return self._session

    async def get_session(self) -> AuthSession | None:
        """Current session, refreshed first if it has expired.

        Concurrent callers share one refresh: a refresh token is single use.
        """
        session = self._session
        if session is None or not session.is_expired:
            return session
        async with self._refresh_lock:
            if self._session is not session:
                # Refreshed or signed out while waiting
                return self._session
            logger.info("Session for %s expired, refreshing", session.user.id)
            return await self.refresh_session()


class TableClient:
    """Row access against the ``/rest/v1`` API, authorized as the signed-in user."""

    def __init__(self, transport: Transport, base_url: str, auth: AuthClient) -> None:
        self._transport = transport
        self._base_url = base_url.rstrip("/")
        self._auth = auth

    async def _bearer(self) -> str | None:
        # Refreshes an expired session first
        session = await self._auth.get_session()
        return session.access_token if session else None

    @staticmethod
    def _filters(eq: dict[str, Any] | None) -> dict[str, str]:
        params = {}
        for column, value in (eq or {}).items():
            if isinstance(value, bool):
                value = str(value).lower()
            params[column] = f"eq.{value}"
        return params

    async def select(
        self,
        table: str,
        eq: dict[str, Any] | None = None,
        order: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        params = {"select": "*", **self._filters(eq)}
        if order:
            params["order"] = f"{order}.{'desc' if descending else 'asc'}"
        rows = await self._transport.request(
            "GET",
            f"{self._base_url}/{table}",
            bearer=await self._bearer(),
            params=params,
        )
        return rows or []

    async def insert(self, table: str, row: dict[str, Any]) -> None:
        await self._transport.request(
            "POST",
            f"{self._base_url}/{table}",
            bearer=await self._bearer(),
            payload=row,
            headers={"Prefer": "return=minimal"},
        )

    async def update(
        self, table: str, values: dict[str, Any], eq: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """Update matching rows and return them as stored (empty if none matched)."""
        if not eq:
            raise ValueError("Refusing to update without a filter")
        rows = await self._transport.request(
            "PATCH",
            f"{self._base_url}/{table}",
            bearer=await self._bearer(),
            params=self._filters(eq),
            payload=values,
            headers={"Prefer": "return=representation"},
        )
        return rows or []


class BackendClient:
    """Entry point: ``client.auth`` and ``client.tables``."""

    def __init__(
        self,
        auth_url: str,
        rest_url: str,
        api_key: str,
        websession: aiohttp.ClientSession | None = None,
        timeout: float | None = None,
        transport: Transport | None = None,
    ) -> None:
        self._transport = transport or Transport(api_key, websession, timeout)
        self.auth = AuthClient(self._transport, auth_url)
        self.tables = TableClient(self._transport, rest_url, self.auth)

    @classmethod
    def from_settings(cls, websession: aiohttp.ClientSession | None = None) -> BackendClient:
        from smarthome.config import settings

        return cls(
            settings.auth_url,
            settings.rest_url,
            settings.supabase_anon_key,
            websession=websession,
            timeout=settings.request_timeout,
        )

    async def close(self) -> None:
        await self._transport.close()

    async def __aenter__(self) -> BackendClient:
        await self._transport._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
