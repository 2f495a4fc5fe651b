"""Session boundary between the dashboard and the identity service.

The identity session lives in one encrypted, HTTP-only cookie. Lookups are
memoized on ``request.state`` so a single render asks the identity service
at most once; nothing is kept between requests.
"""

from __future__ import annotations

import json
import logging

from fastapi import Request, Response

from ..models import Session, User
from ..security.secrets import SecretBox, SecretError
from ..utils import epoch_seconds, log_event
from .identity import IdentityClient, IdentityError

LOGIN_PATH = "/login"
DASHBOARD_PATH = "/dashboard"

logger = logging.getLogger("datascrap_web.auth")

_UNSET = object()


class AuthRedirect(Exception):
    """Raised to end the current render with a redirect."""

    def __init__(self, location: str) -> None:
        super().__init__(location)
        self.location = location


def encode_session(box: SecretBox, session: Session, aad: bytes) -> str:
    payload = {
        "access_token": session.access_token,
        "refresh_token": session.refresh_token,
        "expires_at": session.expires_at,
        "user_id": session.user_id,
    }
    return box.encrypt(json.dumps(payload, sort_keys=True), aad)


def decode_session(box: SecretBox, value: str, aad: bytes) -> Session | None:
    try:
        data = json.loads(box.decrypt(value, aad))
    except (SecretError, ValueError):
        return None
    if not isinstance(data, dict) or not data.get("access_token"):
        return None
    expires_at = data.get("expires_at")
    return Session(
        access_token=str(data["access_token"]),
        refresh_token=data.get("refresh_token"),
        expires_at=int(expires_at) if isinstance(expires_at, int) else None,
        user_id=data.get("user_id"),
    )


def is_secure_request(request: Request) -> bool:
    forwarded_proto = request.headers.get("x-forwarded-proto", "").lower()
    if forwarded_proto:
        return forwarded_proto == "https"
    return request.url.scheme == "https"


def store_session(request: Request, response: Response, session: Session) -> None:
    state = request.app.state
    cookie_name = state.config.session.cookie_name
    response.set_cookie(
        cookie_name,
        encode_session(state.session_box, session, cookie_name.encode("utf-8")),
        httponly=True,
        secure=is_secure_request(request),
        samesite="lax",
        max_age=state.config.session.max_age_seconds,
    )


def clear_session(request: Request, response: Response) -> None:
    response.delete_cookie(request.app.state.config.session.cookie_name)


def apply_session_changes(request: Request, response: Response) -> None:
    """Write back a refreshed session, or drop a dead one, after the view ran."""
    if getattr(request.state, "session_cleared", False):
        clear_session(request, response)
        return
    refreshed = getattr(request.state, "session_refreshed", None)
    if refreshed is not None:
        store_session(request, response, refreshed)


def read_session_cookie(request: Request) -> Session | None:
    state = request.app.state
    cookie_name = state.config.session.cookie_name
    value = request.cookies.get(cookie_name)
    if not value:
        return None
    return decode_session(state.session_box, value, cookie_name.encode("utf-8"))


async def get_session(request: Request) -> Session | None:
    cached = getattr(request.state, "session", _UNSET)
    if cached is not _UNSET:
        return cached
    session = read_session_cookie(request)
    if session is not None and session.is_expired(epoch_seconds()):
        session = await _refresh(request, session)
    request.state.session = session
    return session


async def _refresh(request: Request, session: Session) -> Session | None:
    identity: IdentityClient = request.app.state.identity
    if not session.refresh_token:
        request.state.session_cleared = True
        return None
    try:
        result = await identity.refresh_session(session.refresh_token)
    except IdentityError as exc:
        log_event(logger, logging.INFO, "session_refresh_failed", status=exc.status)
        if exc.status is not None:
            request.state.session_cleared = True
        return None
    request.state.session_refreshed = result.session
    log_event(logger, logging.DEBUG, "session_refreshed", user_id=session.user_id)
    return result.session


async def get_access_token(request: Request) -> str | None:
    session = await get_session(request)
    return session.access_token if session else None


def token_provider_for(request: Request):
    async def provide() -> str | None:
        return await get_access_token(request)

    return provide


async def get_current_user(request: Request) -> User | None:
    """Identity of the caller, or ``None``. Never raises."""
    cached = getattr(request.state, "user", _UNSET)
    if cached is not _UNSET:
        return cached
    user: User | None = None
    session = await get_session(request)
    if session is not None:
        identity: IdentityClient = request.app.state.identity
        try:
            user = await identity.get_user(session.access_token)
        except IdentityError as exc:
            log_event(logger, logging.WARNING, "current_user_lookup_failed", error=exc.message)
        else:
            if user is None:
                request.state.session_cleared = True
    request.state.user = user
    return user


async def require_auth(request: Request) -> User:
    user = await get_current_user(request)
    if user is None:
        raise AuthRedirect(LOGIN_PATH)
    return user


async def redirect_if_authenticated(request: Request) -> None:
    if await get_current_user(request) is not None:
        raise AuthRedirect(DASHBOARD_PATH)

