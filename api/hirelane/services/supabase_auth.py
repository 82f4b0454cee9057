from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import httpx

from hirelane.core.auth import Role
from hirelane.core.config import get_settings
from hirelane.services.errors import (
    AuthenticationError,
    LifecycleError,
    LifecycleValidationError,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6

# Accounts created by the two-role client carry "applicant" in their metadata.
_LEGACY_ROLE_ALIASES = {"applicant": Role.CANDIDATE}


@dataclass(slots=True)
class AuthUser:
    id: str
    email: str | None
    role_hint: Role | None


@dataclass(slots=True)
class AuthSession:
    user: AuthUser
    access_token: str | None
    refresh_token: str | None
    expires_in: int | None


def resolve_role_hint(user: dict[str, Any]) -> Role | None:
    for key in ("app_metadata", "user_metadata"):
        metadata = user.get(key)
        if not isinstance(metadata, dict):
            continue
        raw = metadata.get("role")
        if not isinstance(raw, str) or not raw:
            continue
        if raw in _LEGACY_ROLE_ALIASES:
            return _LEGACY_ROLE_ALIASES[raw]
        try:
            return Role(raw)
        except ValueError:
            continue
    return None


def _to_auth_user(payload: dict[str, Any]) -> AuthUser:
    user_id = payload.get("id")
    if not isinstance(user_id, str) or not user_id:
        raise AuthenticationError("auth provider returned no user id")
    email = payload.get("email")
    return AuthUser(
        id=user_id,
        email=email if isinstance(email, str) and email else None,
        role_hint=resolve_role_hint(payload),
    )


class SupabaseAuthClient:
    """Thin GoTrue client. Only ``get_user`` is retried; writes go out once."""

    def __init__(
        self,
        *,
        supabase_url: str | None,
        anon_key: str | None,
        timeout_seconds: float = 5.0,
        read_retries: int = 2,
        retry_base_seconds: float = 0.2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.supabase_url = supabase_url.rstrip("/") if supabase_url else None
        self.anon_key = anon_key
        self.timeout_seconds = timeout_seconds
        self.read_retries = read_retries
        self.retry_base_seconds = retry_base_seconds
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.supabase_url and self.anon_key)

    async def sign_up(self, *, email: str, password: str, role: Role | None = None) -> AuthSession:
        if not email or "@" not in email:
            raise LifecycleValidationError("a valid email is required")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise LifecycleValidationError(f"password must be at least {MIN_PASSWORD_LENGTH} characters")

        body: dict[str, Any] = {"email": email, "password": password}
        if role is not None:
            body["data"] = {"role": role.value}
        # GoTrue answers 400/422 for duplicate emails and weak passwords.
        payload = await self._send("POST", "/auth/v1/signup", json=body, rejected_error=LifecycleValidationError)
        return self._to_session(payload)

    async def sign_in(self, *, email: str, password: str) -> AuthSession:
        payload = await self._send(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return self._to_session(payload)

    async def get_user(self, token: str) -> AuthUser:
        attempt = 0
        while True:
            try:
                payload = await self._send("GET", "/auth/v1/user", token=token)
                return _to_auth_user(payload)
            except UpstreamUnavailableError:
                if attempt >= self.read_retries:
                    raise
                delay = self.retry_base_seconds * (2**attempt)
                attempt += 1
                logger.warning("auth user lookup failed; retrying attempt=%s delay=%.2fs", attempt, delay)
                await asyncio.sleep(delay)

    async def update_user_role(self, token: str, role: Role) -> AuthUser:
        payload = await self._send("PUT", "/auth/v1/user", token=token, json={"data": {"role": role.value}})
        return _to_auth_user(payload)

    async def _send(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
        rejected_error: type[LifecycleError] = AuthenticationError,
    ) -> dict[str, Any]:
        if not self.configured:
            raise UpstreamUnavailableError("Supabase auth is not configured")

        headers = {"apikey": str(self.anon_key)}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
                response = await client.request(
                    method,
                    f"{self.supabase_url}{path}",
                    headers=headers,
                    params=params,
                    json=json,
                )
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError("Supabase auth unavailable") from exc

        if response.status_code in {400, 422}:
            raise rejected_error(self._error_message(response))
        if response.status_code in {401, 403}:
            raise AuthenticationError(self._error_message(response))
        if response.status_code >= 300:
            raise UpstreamUnavailableError(f"Supabase auth request failed status={response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamUnavailableError("Supabase auth returned a non-JSON body") from exc
        if not isinstance(payload, dict):
            raise UpstreamUnavailableError("Supabase auth returned an unexpected body")
        return payload

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return "authentication failed"
        if isinstance(payload, dict):
            for key in ("error_description", "msg", "message", "error"):
                value = payload.get(key)
                if isinstance(value, str) and value:
                    return value
        return "authentication failed"

    @staticmethod
    def _to_session(payload: dict[str, Any]) -> AuthSession:
        # Sign-up pending email confirmation returns the bare user object.
        user_payload = payload.get("user") if isinstance(payload.get("user"), dict) else payload
        expires_in = payload.get("expires_in")
        return AuthSession(
            user=_to_auth_user(user_payload),
            access_token=payload.get("access_token"),
            refresh_token=payload.get("refresh_token"),
            expires_in=int(expires_in) if isinstance(expires_in, (int, float)) else None,
        )


@lru_cache
def get_auth_client() -> SupabaseAuthClient:
    settings = get_settings()
    return SupabaseAuthClient(
        supabase_url=settings.supabase_url,
        anon_key=settings.supabase_anon_key,
        timeout_seconds=settings.auth_timeout_seconds,
        read_retries=settings.auth_read_retries,
        retry_base_seconds=settings.auth_retry_base_seconds,
    )
