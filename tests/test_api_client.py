import asyncio

import httpx
import pytest

from datascrap_web.api.client import (
    CATEGORY_MESSAGES,
    APIError,
    ApiClient,
    ErrorCategory,
    category_for_status,
)
from datascrap_web.api.types import SourceList


def _client(handler, token=None):
    async def provide():
        return token

    return ApiClient(
        base_url="http://backend.test",
        transport=httpx.MockTransport(handler),
        token_provider=provide if token is not None else None,
    )


def _call(client, method, path, **kwargs):
    async def run():
        async with client:
            return await getattr(client, method)(path, **kwargs)

    return asyncio.run(run())


@pytest.mark.parametrize(
    "status, category",
    [
        (401, ErrorCategory.NOT_AUTHORIZED),
        (403, ErrorCategory.FORBIDDEN),
        (404, ErrorCategory.NOT_FOUND),
        (422, ErrorCategory.VALIDATION),
        (500, ErrorCategory.SERVER_ERROR),
        (503, ErrorCategory.SERVER_ERROR),
        (409, ErrorCategory.UNKNOWN),
    ],
)
def test_category_for_status(status, category):
    assert category_for_status(status) is category


def test_unauthorized_response_is_not_authorized():
    def handler(request):
        return httpx.Response(401, json={"detail": "Not authenticated"})

    with pytest.raises(APIError) as excinfo:
        _call(_client(handler), "get", "/api/v1/sources")

    error = excinfo.value
    assert error.category is ErrorCategory.NOT_AUTHORIZED
    assert error.status == 401
    assert error.message == CATEGORY_MESSAGES[ErrorCategory.NOT_AUTHORIZED]
    assert error.detail == "Not authenticated"


def test_timeout_is_connectivity_error():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(APIError) as excinfo:
        _call(_client(handler), "get", "/api/v1/sources")

    assert excinfo.value.category is ErrorCategory.CONNECTIVITY
    assert excinfo.value.status is None
    assert excinfo.value.message == "No response from server. Please check your connection."


def test_connection_refused_is_connectivity_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(APIError) as excinfo:
        _call(_client(handler), "post", "/api/v1/sources", json={"name": "x"})

    assert excinfo.value.category is ErrorCategory.CONNECTIVITY


def test_unknown_status_uses_backend_detail():
    def handler(request):
        return httpx.Response(409, json={"detail": "Source already exists"})

    with pytest.raises(APIError) as excinfo:
        _call(_client(handler), "post", "/api/v1/sources", json={})

    assert excinfo.value.category is ErrorCategory.UNKNOWN
    assert excinfo.value.message == "Source already exists"
    assert excinfo.value.to_dict() == {
        "message": "Source already exists",
        "detail": "Source already exists",
        "status": 409,
    }


def test_unknown_status_without_body_falls_back_to_status():
    def handler(request):
        return httpx.Response(418)

    with pytest.raises(APIError) as excinfo:
        _call(_client(handler), "get", "/api/v1/sources")

    assert excinfo.value.message == "Error 418"


def test_bearer_token_attached_per_request():
    seen = []
    tokens = iter(["first", "second"])

    def handler(request):
        seen.append(request.headers.get("Authorization"))
        return httpx.Response(200, json={"ok": True})

    async def provide():
        return next(tokens)

    async def run():
        async with ApiClient(
            base_url="http://backend.test",
            transport=httpx.MockTransport(handler),
            token_provider=provide,
        ) as client:
            await client.get("/api/v1/sources")
            await client.get("/api/v1/sources")

    asyncio.run(run())
    assert seen == ["Bearer first", "Bearer second"]


def test_no_authorization_header_without_token():
    seen = []

    def handler(request):
        seen.append(request.headers.get("Authorization"))
        return httpx.Response(200, json={})

    _call(_client(handler, token=""), "get", "/api/v1/sources")
    assert seen == [None]


def test_failing_token_provider_sends_request_without_token():
    seen = []

    def handler(request):
        seen.append(request.headers.get("Authorization"))
        return httpx.Response(200, json={"ok": True})

    async def provide():
        raise RuntimeError("session store unavailable")

    client = ApiClient(
        base_url="http://backend.test",
        transport=httpx.MockTransport(handler),
        token_provider=provide,
    )
    assert _call(client, "get", "/api/v1/sources") == {"ok": True}
    assert seen == [None]


def test_none_params_are_dropped():
    seen = []

    def handler(request):
        seen.append(dict(request.url.params))
        return httpx.Response(200, json={})

    _call(_client(handler), "get", "/api/v1/sources", params={"page": 1, "status": None})
    assert seen == [{"page": "1"}]


def test_success_returns_body_without_envelope():
    def handler(request):
        return httpx.Response(
            200,
            json={"sources": [], "total": 0, "page": 1, "page_size": 50, "extra": "ignored"},
        )

    page = _call(_client(handler), "get", "/api/v1/sources", response_model=SourceList)
    assert isinstance(page, SourceList)
    assert page.sources == []
    assert page.total == 0


def test_malformed_body_is_reported_as_api_error():
    def handler(request):
        return httpx.Response(200, json={"sources": "nope"})

    with pytest.raises(APIError) as excinfo:
        _call(_client(handler), "get", "/api/v1/sources", response_model=SourceList)

    assert excinfo.value.message == "Unexpected response from server."
