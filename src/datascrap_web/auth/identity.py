"""Client for the external identity service (GoTrue-compatible REST API).

Only the public anon key is used here. Requests that read user data carry
the user's own access token, so the service's row-level policies apply.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx

from ..models import Profile, Session, User
from ..utils import epoch_seconds, log_event

DEFAULT_TIMEOUT_SECONDS = 10
SUPPORTED_OAUTH_PROVIDERS = ("google", "github")

logger = logging.getLogger("datascrap_web.auth")


class IdentityError(Exception):
    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


@dataclass(frozen=True)
class AuthResult:
    user: User | None
    session: Session | None


class IdentityClient:
    def __init__(
        self,
        url: str,
        anon_key: str,
        *,
        http: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.url = url.rstrip("/")
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            base_url=self.url,
            headers={"apikey": anon_key, "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def get_user(self, access_token: str) -> User | None:
        """Return the user behind ``access_token``, or ``None`` when the token is rejected."""
        response = await self._send("GET", "/auth/v1/user", token=access_token)
        if response.status_code in (401, 403):
            return None
        data = self._json_or_raise(response)
        return _parse_user(data)

    async def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        response = await self._send(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return _parse_auth_result(self._json_or_raise(response))

    async def sign_up(
        self,
        email: str,
        password: str,
        *,
        full_name: str | None = None,
        redirect_to: str | None = None,
    ) -> AuthResult:
        payload: dict[str, Any] = {"email": email, "password": password}
        if full_name:
            payload["data"] = {"full_name": full_name}
        params = {"redirect_to": redirect_to} if redirect_to else None
        response = await self._send("POST", "/auth/v1/signup", params=params, json=payload)
        return _parse_auth_result(self._json_or_raise(response))

    async def refresh_session(self, refresh_token: str) -> AuthResult:
        response = await self._send(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        return _parse_auth_result(self._json_or_raise(response))

    async def exchange_code_for_session(self, code: str, code_verifier: str) -> AuthResult:
        response = await self._send(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "pkce"},
            json={"auth_code": code, "code_verifier": code_verifier},
        )
        result = _parse_auth_result(self._json_or_raise(response))
        if result.session is None:
            raise IdentityError("Code exchange returned no session")
        return result

    async def sign_out(self, access_token: str) -> bool:
        try:
            response = await self._send("POST", "/auth/v1/logout", token=access_token)
        except IdentityError as exc:
            log_event(logger, logging.ERROR, "sign_out_failed", error=exc.message)
            return False
        if response.is_error and response.status_code not in (401, 403, 404):
            log_event(logger, logging.ERROR, "sign_out_failed", status=response.status_code)
            return False
        return True

    def authorize_url(self, provider: str, redirect_to: str, code_challenge: str) -> str:
        if provider not in SUPPORTED_OAUTH_PROVIDERS:
            raise IdentityError(f"Unsupported sign-in provider: {provider}")
        query = urlencode(
            {
                "provider": provider,
                "redirect_to": redirect_to,
                "code_challenge": code_challenge,
                "code_challenge_method": "s256",
            }
        )
        return f"{self.url}/auth/v1/authorize?{query}"

    async def get_user_profile(self, access_token: str, user_id: str) -> Profile | None:
        try:
            response = await self._send(
                "GET",
                "/rest/v1/profiles",
                token=access_token,
                params={"user_id": f"eq.{user_id}", "select": "*"},
                headers={"Accept": "application/vnd.pgrst.object+json"},
            )
            data = self._json_or_raise(response)
        except IdentityError as exc:
            log_event(logger, logging.ERROR, "profile_fetch_failed", user_id=user_id, error=exc.message)
            return None
        if not isinstance(data, dict):
            return None
        return Profile(
            user_id=str(data.get("user_id") or user_id),
            subscription_status=data.get("subscription_status"),
            subscription_tier=data.get("subscription_tier"),
            data=data,
        )

    async def _send(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        params: dict[str, Any] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        request_headers = dict(headers or {})
        if token:
            request_headers["Authorization"] = f"Bearer {token}"
        try:
            return await self._http.request(
                method, path, params=params, json=json, headers=request_headers
            )
        except httpx.HTTPError as exc:
            log_event(logger, logging.WARNING, "identity_unreachable", path=path, error=type(exc).__name__)
            raise IdentityError("Authentication service is unavailable. Please try again.") from exc

    @staticmethod
    def _json_or_raise(response: httpx.Response) -> Any:
        try:
            data = response.json() if response.content else None
        except ValueError:
            data = None
        if response.is_error:
            raise IdentityError(_error_message(data, response.status_code), status=response.status_code)
        return data


def has_active_subscription(profile: Profile | None) -> bool:
    if profile is None:
        return False
    return profile.subscription_status == "active" and get_subscription_tier(profile) != "free"


def get_subscription_tier(profile: Profile | None) -> str:
    if profile is None:
        return "free"
    return profile.subscription_tier or "free"


def generate_code_verifier() -> str:
    return secrets.token_urlsafe(48)


def code_challenge_for(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def _parse_user(data: Any) -> User | None:
    if not isinstance(data, dict) or not data.get("id"):
        return None
    metadata = data.get("user_metadata") or {}
    if not isinstance(metadata, dict):
        metadata = {}
    return User(
        id=str(data["id"]),
        email=data.get("email"),
        full_name=metadata.get("full_name") or metadata.get("name"),
        metadata=metadata,
    )


def _parse_auth_result(data: Any) -> AuthResult:
    if not isinstance(data, dict):
        raise IdentityError("Unexpected response from authentication service")
    if not data.get("access_token"):
        # sign-up awaiting email confirmation returns the bare user
        return AuthResult(user=_parse_user(data.get("user") or data), session=None)
    user = _parse_user(data.get("user"))
    expires_at = data.get("expires_at")
    if expires_at is None and data.get("expires_in") is not None:
        expires_at = epoch_seconds() + int(data["expires_in"])
    session = Session(
        access_token=str(data["access_token"]),
        refresh_token=data.get("refresh_token"),
        expires_at=int(expires_at) if expires_at is not None else None,
        user_id=user.id if user else None,
    )
    return AuthResult(user=user, session=session)


def _error_message(data: Any, status: int) -> str:
    if isinstance(data, dict):
        for key in ("error_description", "msg", "message", "error"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    return f"Authentication request failed ({status})"
