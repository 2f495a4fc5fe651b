"""HTTP transport for the DataScrap backend.

Every outbound call to the backend goes through :class:`ApiClient`. The
client attaches the caller's bearer token, unwraps the JSON body on success
and turns every failure into an :class:`APIError` carrying one
:class:`ErrorCategory`.
"""

from __future__ import annotations

import logging
from enum import Enum
from functools import lru_cache
from typing import Any, Awaitable, Callable, Mapping

import httpx
from pydantic import TypeAdapter, ValidationError

from ..utils import log_event

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}

TokenProvider = Callable[[], Awaitable["str | None"]]

logger = logging.getLogger("datascrap_web.api")


class ErrorCategory(str, Enum):
    NOT_AUTHORIZED = "not_authorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    SERVER_ERROR = "server_error"
    CONNECTIVITY = "connectivity"
    UNKNOWN = "unknown"


CATEGORY_MESSAGES = {
    ErrorCategory.NOT_AUTHORIZED: "You are not authorized. Please log in.",
    ErrorCategory.FORBIDDEN: "You do not have permission to perform this action.",
    ErrorCategory.NOT_FOUND: "The requested resource was not found.",
    ErrorCategory.VALIDATION: "Validation error. Please check your input.",
    ErrorCategory.SERVER_ERROR: "Server error. Please try again later.",
    ErrorCategory.CONNECTIVITY: "No response from server. Please check your connection.",
}

GENERIC_MESSAGE = "An unexpected error occurred"


class APIError(Exception):
    """Normalized backend failure: ``{message, detail?, status?}`` plus its category."""

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        status: int | None = None,
        detail: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.category = category
        self.status = status
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"message": self.message}
        if self.detail is not None:
            data["detail"] = self.detail
        if self.status is not None:
            data["status"] = self.status
        return data

    def __repr__(self) -> str:
        return f"APIError(category={self.category.value!r}, status={self.status!r}, message={self.message!r})"


def category_for_status(status: int) -> ErrorCategory:
    if status == 401:
        return ErrorCategory.NOT_AUTHORIZED
    if status == 403:
        return ErrorCategory.FORBIDDEN
    if status == 404:
        return ErrorCategory.NOT_FOUND
    if status == 422:
        return ErrorCategory.VALIDATION
    if status >= 500:
        return ErrorCategory.SERVER_ERROR
    return ErrorCategory.UNKNOWN


def error_from_response(response: httpx.Response) -> APIError:
    status = response.status_code
    data = _json_or_none(response)
    detail = data.get("detail") if isinstance(data, dict) else None
    backend_message = data.get("message") if isinstance(data, dict) else None
    category = category_for_status(status)
    message = CATEGORY_MESSAGES.get(category)
    if message is None:
        if isinstance(detail, str) and detail:
            message = detail
        elif isinstance(backend_message, str) and backend_message:
            message = backend_message
        else:
            message = f"Error {status}"
    return APIError(message, category=category, status=status, detail=detail)


def error_from_exception(exc: Exception) -> APIError:
    if isinstance(exc, httpx.TransportError):
        return APIError(
            CATEGORY_MESSAGES[ErrorCategory.CONNECTIVITY],
            category=ErrorCategory.CONNECTIVITY,
        )
    return APIError(str(exc) or GENERIC_MESSAGE, category=ErrorCategory.UNKNOWN)


def build_http_client(
    base_url: str = DEFAULT_BASE_URL,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=base_url or DEFAULT_BASE_URL,
        headers=DEFAULT_HEADERS,
        timeout=timeout,
        transport=transport,
    )


class ApiClient:
    """Thin async wrapper over one :class:`httpx.AsyncClient`.

    ``token_provider`` is awaited before every request; the token it returns
    is used for that request only and is never stored on the client.
    """

    def __init__(
        self,
        http: httpx.AsyncClient | None = None,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        token_provider: TokenProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._owns_http = http is None
        self._http = http or build_http_client(base_url, timeout, transport)
        self._token_provider = token_provider

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def get(
        self,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        response_model: Any = None,
    ) -> Any:
        return await self.request("GET", path, params=params, headers=headers, response_model=response_model)

    async def post(
        self,
        path: str,
        json: Any = None,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        response_model: Any = None,
    ) -> Any:
        return await self.request(
            "POST", path, params=params, json=json, headers=headers, response_model=response_model
        )

    async def patch(
        self,
        path: str,
        json: Any = None,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        response_model: Any = None,
    ) -> Any:
        return await self.request(
            "PATCH", path, params=params, json=json, headers=headers, response_model=response_model
        )

    async def delete(
        self,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        response_model: Any = None,
    ) -> Any:
        return await self.request("DELETE", path, params=params, headers=headers, response_model=response_model)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
        response_model: Any = None,
    ) -> Any:
        request_headers = dict(headers or {})
        token = await self._resolve_token()
        if token:
            request_headers["Authorization"] = f"Bearer {token}"
        query = _clean_params(params)
        log_event(logger, logging.DEBUG, "api_request", method=method, path=path, params=query or {})
        try:
            response = await self._http.request(
                method,
                path,
                params=query or None,
                json=json,
                headers=request_headers,
            )
        except httpx.HTTPError as exc:
            error = error_from_exception(exc)
            self._log_error(method, path, error, exc)
            raise error from exc

        if response.is_error:
            error = error_from_response(response)
            self._log_error(method, path, error)
            raise error

        log_event(logger, logging.DEBUG, "api_response", method=method, path=path, status=response.status_code)
        data = _json_or_none(response)
        if response_model is None:
            return data
        try:
            return _adapter(response_model).validate_python(data)
        except ValidationError as exc:
            error = APIError("Unexpected response from server.", status=response.status_code)
            self._log_error(method, path, error, exc)
            raise error from exc

    async def _resolve_token(self) -> str | None:
        if self._token_provider is None:
            return None
        try:
            return await self._token_provider()
        except Exception as exc:  # noqa: BLE001
            log_event(logger, logging.ERROR, "api_token_provider_failed", error=type(exc).__name__)
            return None

    @staticmethod
    def _log_error(method: str, path: str, error: APIError, exc: Exception | None = None) -> None:
        log_event(
            logger,
            logging.WARNING,
            "api_error",
            method=method,
            path=path,
            category=error.category.value,
            status=error.status,
            cause=type(exc).__name__ if exc else None,
        )


def _clean_params(params: Mapping[str, Any] | None) -> dict[str, Any]:
    if not params:
        return {}
    cleaned: dict[str, Any] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, Enum):
            value = value.value
        cleaned[key] = value
    return cleaned


def _json_or_none(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


@lru_cache(maxsize=64)
def _adapter(model: Any) -> TypeAdapter:
    return TypeAdapter(model)
