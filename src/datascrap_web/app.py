from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from urllib.parse import quote, urlencode

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles

try:
    from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware
except ImportError:
    ProxyHeadersMiddleware = None

from .api.client import APIError, ErrorCategory, build_http_client
from .auth.identity import (
    IdentityClient,
    IdentityError,
    code_challenge_for,
    generate_code_verifier,
)
from .auth.session import (
    DASHBOARD_PATH,
    LOGIN_PATH,
    AuthRedirect,
    apply_session_changes,
    clear_session,
    get_access_token,
    is_secure_request,
    redirect_if_authenticated,
    store_session,
)
from .config import Config, load_config
from .dashboard_ui import TEMPLATES, base_context, ui_router
from .security.secrets import load_secret_box
from .utils import configure_logging, log_event

PKCE_COOKIE_NAME = "ds_pkce"
PKCE_COOKIE_MAX_AGE = 600

logger = logging.getLogger("datascrap_web.app")


def create_app(
    config: Config | None = None,
    *,
    api_transport: httpx.AsyncBaseTransport | None = None,
    identity_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    configure_logging("datascrap_web")
    config = config or load_config()
    session_box = load_secret_box(config.session.secret_key)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.api_http = build_http_client(
            config.api.base_url, config.api.timeout_seconds, api_transport
        )
        app.state.identity = IdentityClient(
            config.identity.url,
            config.identity.anon_key,
            transport=identity_transport,
        )
        log_event(logger, logging.INFO, "app_started", api=config.api.base_url)
        try:
            yield
        finally:
            await app.state.api_http.aclose()
            await app.state.identity.aclose()

    app = FastAPI(title=f"{config.site.name} Web", lifespan=lifespan)
    app.state.config = config
    app.state.session_box = session_box

    if ProxyHeadersMiddleware:
        app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

    app.mount(
        "/static",
        StaticFiles(directory=os.path.join(os.path.dirname(__file__), "static")),
        name="static",
    )

    @app.middleware("http")
    async def _session_cookie_middleware(request: Request, call_next):
        response = await call_next(request)
        apply_session_changes(request, response)
        return response

    @app.exception_handler(AuthRedirect)
    async def _auth_redirect_handler(request: Request, exc: AuthRedirect):
        return RedirectResponse(exc.location, status_code=303)

    @app.exception_handler(APIError)
    async def _api_error_handler(request: Request, exc: APIError):
        if exc.category is ErrorCategory.NOT_AUTHORIZED:
            log_event(logger, logging.INFO, "api_unauthorized_redirect", path=request.url.path)
            request.state.session_cleared = True
            return RedirectResponse(LOGIN_PATH, status_code=303)
        return TEMPLATES.TemplateResponse(
            request,
            "error.html",
            {**base_context(request), "title": "Something went wrong", "message": exc.message},
            status_code=exc.status if exc.status and exc.status >= 400 else 502,
        )

    @app.get("/health")
    def health() -> dict[str, object]:
        return {
            "ok": True,
            "version": _get_version(),
            "time": datetime.now(tz=timezone.utc).isoformat(),
        }

    @app.get("/", response_class=HTMLResponse)
    def landing(request: Request):
        return TEMPLATES.TemplateResponse(request, "landing.html", base_context(request))

    @app.get("/login", response_class=HTMLResponse, dependencies=[Depends(redirect_if_authenticated)])
    def login_page(request: Request, error: str | None = None, notice: str | None = None):
        return TEMPLATES.TemplateResponse(
            request,
            "auth/login.html",
            {**base_context(request), "error": error, "notice": notice},
        )

    @app.post("/login")
    async def login_submit(request: Request):
        form = await request.form()
        email = str(form.get("email") or "").strip()
        password = str(form.get("password") or "")
        identity: IdentityClient = request.app.state.identity
        try:
            result = await identity.sign_in_with_password(email, password)
            if result.session is None:
                raise IdentityError("Please confirm your email address before signing in.")
        except IdentityError as exc:
            log_event(logger, logging.INFO, "login_failed", status=exc.status)
            return TEMPLATES.TemplateResponse(
                request,
                "auth/login.html",
                {**base_context(request), "error": exc.message, "email": email},
                status_code=400,
            )
        response = RedirectResponse(DASHBOARD_PATH, status_code=303)
        store_session(request, response, result.session)
        log_event(logger, logging.INFO, "login_succeeded", user_id=result.session.user_id)
        return response

    @app.get("/signup", response_class=HTMLResponse, dependencies=[Depends(redirect_if_authenticated)])
    def signup_page(request: Request):
        return TEMPLATES.TemplateResponse(request, "auth/signup.html", base_context(request))

    @app.post("/signup")
    async def signup_submit(request: Request):
        form = await request.form()
        email = str(form.get("email") or "").strip()
        password = str(form.get("password") or "")
        full_name = str(form.get("full_name") or "").strip() or None
        identity: IdentityClient = request.app.state.identity
        try:
            result = await identity.sign_up(
                email,
                password,
                full_name=full_name,
                redirect_to=f"{config.site.url}/auth/callback",
            )
        except IdentityError as exc:
            return TEMPLATES.TemplateResponse(
                request,
                "auth/signup.html",
                {**base_context(request), "error": exc.message, "email": email, "full_name": full_name},
                status_code=400,
            )
        if result.session is None:
            return RedirectResponse(
                f"{LOGIN_PATH}?notice=Check+your+email+to+confirm+your+account", status_code=303
            )
        response = RedirectResponse(DASHBOARD_PATH, status_code=303)
        store_session(request, response, result.session)
        return response

    @app.get("/auth/oauth/{provider}")
    def oauth_start(request: Request, provider: str, next: str = DASHBOARD_PATH):
        identity: IdentityClient = request.app.state.identity
        verifier = generate_code_verifier()
        redirect_to = f"{config.site.url}/auth/callback?" + urlencode({"next": _safe_next(next)})
        try:
            url = identity.authorize_url(provider, redirect_to, code_challenge_for(verifier))
        except IdentityError as exc:
            return RedirectResponse(f"{LOGIN_PATH}?error={quote(exc.message)}", status_code=303)
        response = RedirectResponse(url, status_code=303)
        response.set_cookie(
            PKCE_COOKIE_NAME,
            session_box.encrypt(verifier, PKCE_COOKIE_NAME.encode("utf-8")),
            httponly=True,
            secure=is_secure_request(request),
            samesite="lax",
            max_age=PKCE_COOKIE_MAX_AGE,
        )
        return response

    @app.get("/auth/callback")
    async def auth_callback(request: Request, code: str | None = None, next: str = DASHBOARD_PATH):
        identity: IdentityClient = request.app.state.identity
        failure = RedirectResponse(f"{LOGIN_PATH}?error=Authentication failed", status_code=303)
        failure.delete_cookie(PKCE_COOKIE_NAME)
        verifier_blob = request.cookies.get(PKCE_COOKIE_NAME)
        if not code or not verifier_blob:
            return failure
        try:
            verifier = session_box.decrypt(verifier_blob, PKCE_COOKIE_NAME.encode("utf-8"))
            result = await identity.exchange_code_for_session(code, verifier)
        except (IdentityError, ValueError) as exc:
            log_event(logger, logging.INFO, "auth_callback_failed", error=type(exc).__name__)
            return failure
        response = RedirectResponse(_safe_next(next), status_code=303)
        response.delete_cookie(PKCE_COOKIE_NAME)
        store_session(request, response, result.session)
        return response

    @app.post("/logout")
    async def logout(request: Request):
        token = await get_access_token(request)
        if token:
            identity: IdentityClient = request.app.state.identity
            await identity.sign_out(token)
        response = RedirectResponse(LOGIN_PATH, status_code=303)
        clear_session(request, response)
        return response

    app.include_router(ui_router(), prefix=DASHBOARD_PATH)
    return app


def _safe_next(value: str | None) -> str:
    # only same-site absolute paths
    if not value or not value.startswith("/") or value.startswith("//"):
        return DASHBOARD_PATH
    return value


def _get_version() -> str:
    try:
        from importlib.metadata import version

        return version("datascrap-web")
    except Exception:  # noqa: BLE001
        return "unknown"
