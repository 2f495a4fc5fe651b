from __future__ import annotations

import base64
import itertools
import json
from urllib.parse import parse_qs

import httpx
import pytest
from fastapi.testclient import TestClient

from datascrap_web.app import create_app
from datascrap_web.auth.session import encode_session
from datascrap_web.config import ApiConfig, Config, IdentityConfig, SessionConfig, SiteConfig
from datascrap_web.models import Session
from datascrap_web.security.secrets import load_secret_box
from datascrap_web.utils import epoch_seconds

GOOD_TOKEN = "good-token"
REFRESH_TOKEN = "refresh-1"
USER_ID = "user-1"
USER_EMAIL = "reader@example.com"
USER_PASSWORD = "hunter22"
SESSION_KEY = base64.urlsafe_b64encode(b"k" * 32).decode("utf-8")
TIMESTAMP = "2025-01-05T10:00:00Z"


def _json(request: httpx.Request):
    if not request.content:
        return {}
    return json.loads(request.content)


class FakeBackend:
    """In-memory stand-in for the DataScrap REST API."""

    def __init__(self) -> None:
        self.sources: dict[str, dict] = {}
        self.articles: dict[str, dict] = {}
        self.digests: dict[str, dict] = {}
        self.digest_articles: dict[str, list[str]] = {}
        self.failures: dict[str, int] = {}
        self.requests: list[httpx.Request] = []
        self.valid_token = GOOD_TOKEN
        self._ids = itertools.count(1)

    def fail(self, path: str, status: int) -> None:
        self.failures[path] = status

    def add_source(self, **fields) -> dict:
        source_id = f"src-{next(self._ids)}"
        source = {
            "id": source_id,
            "user_id": USER_ID,
            "name": "Example",
            "url": "https://example.com",
            "type": "website",
            "status": "active",
            "scrape_frequency": 3600,
            "last_scraped_at": None,
            "articles_count": 0,
            "created_at": TIMESTAMP,
            "updated_at": TIMESTAMP,
        }
        source.update(fields)
        self.sources[source_id] = source
        return source

    def add_article(self, source_id: str, **fields) -> dict:
        article_id = f"art-{next(self._ids)}"
        article = {
            "id": article_id,
            "source_id": source_id,
            "user_id": USER_ID,
            "title": "An article",
            "url": f"https://example.com/{article_id}",
            "content": "Body text",
            "excerpt": None,
            "summary": None,
            "author": None,
            "published_at": TIMESTAMP,
            "scraped_at": TIMESTAMP,
            "created_at": TIMESTAMP,
            "updated_at": TIMESTAMP,
        }
        article.update(fields)
        self.articles[article_id] = article
        return article

    def add_digest(self, article_ids: list[str] | None = None, **fields) -> dict:
        digest_id = f"dig-{next(self._ids)}"
        digest = {
            "id": digest_id,
            "user_id": USER_ID,
            "title": "Morning digest",
            "status": "draft",
            "content": None,
            "article_count": len(article_ids or []),
            "delivery_method": "email",
            "sent_at": None,
            "created_at": TIMESTAMP,
            "updated_at": TIMESTAMP,
        }
        digest.update(fields)
        self.digests[digest_id] = digest
        self.digest_articles[digest_id] = list(article_ids or [])
        return digest

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.failures:
            return httpx.Response(self.failures[path], json={"detail": "forced failure"})
        if request.headers.get("Authorization") != f"Bearer {self.valid_token}":
            return httpx.Response(401, json={"detail": "Not authenticated"})
        parts = path.strip("/").split("/")[2:]
        resource, rest = parts[0], parts[1:]
        method = request.method
        if resource == "sources":
            return self._collection(request, self.sources, "sources", rest, method)
        if resource == "articles":
            if rest == ["stats", "overview"]:
                return httpx.Response(200, json=self._stats())
            if rest == ["summarize"] and method == "POST":
                body = _json(request)
                if body.get("article_id") not in self.articles:
                    return httpx.Response(404, json={"detail": "Article not found"})
                return httpx.Response(200, json={"message": "Summarization started", "job_id": "job-sum"})
            return self._collection(request, self.articles, "articles", rest, method)
        if resource == "digests":
            if rest == ["generate"] and method == "POST":
                body = _json(request)
                digest = self.add_digest(list(self.articles)[: body.get("max_articles", 10)])
                return httpx.Response(
                    200,
                    json={"message": "Digest generation started", "job_id": "job-gen", "digest_id": digest["id"]},
                )
            if rest == ["deliver"] and method == "POST":
                body = _json(request)
                if body.get("digest_id") not in self.digests:
                    return httpx.Response(404, json={"detail": "Digest not found"})
                return httpx.Response(200, json={"message": "Delivery started", "job_id": "job-del"})
            if len(rest) == 2 and rest[1] == "articles":
                if rest[0] not in self.digests:
                    return httpx.Response(404, json={"detail": "Digest not found"})
                return httpx.Response(
                    200, json=[self.articles[item] for item in self.digest_articles[rest[0]] if item in self.articles]
                )
            return self._collection(request, self.digests, "digests", rest, method)
        return httpx.Response(404, json={"detail": "Not Found"})

    def _collection(self, request, store: dict, name: str, rest: list[str], method: str) -> httpx.Response:
        label = name[:-1].capitalize()
        if not rest:
            if method == "GET":
                return self._list(request, store, name)
            if method == "POST":
                body = _json(request)
                item = self.add_source(**body) if name == "sources" else None
                return httpx.Response(201, json=item)
            return httpx.Response(405, json={"detail": "Method Not Allowed"})
        item_id = rest[0]
        if item_id not in store:
            return httpx.Response(404, json={"detail": f"{label} not found"})
        if len(rest) == 2 and rest[1] == "scrape" and method == "POST":
            return httpx.Response(200, json={"message": "Scraping started", "job_id": "job-scrape"})
        if method == "GET":
            return httpx.Response(200, json=store[item_id])
        if method == "PATCH":
            store[item_id].update(_json(request))
            return httpx.Response(200, json=store[item_id])
        if method == "DELETE":
            del store[item_id]
            return httpx.Response(200, json={"message": f"{label} deleted successfully"})
        return httpx.Response(405, json={"detail": "Method Not Allowed"})

    def _list(self, request: httpx.Request, store: dict, name: str) -> httpx.Response:
        params = request.url.params
        page = int(params.get("page", 1))
        page_size = int(params.get("page_size", 10))
        if page < 1 or not 1 <= page_size <= 100:
            return httpx.Response(
                422,
                json={"detail": [{"loc": ["query", "page_size"], "msg": "out of range", "type": "value_error"}]},
            )
        items = list(store.values())
        for key in ("status", "type", "delivery_method", "source_id"):
            if key in params:
                items = [item for item in items if item.get(key) == params[key]]
        if "search" in params:
            needle = params["search"].lower()
            items = [item for item in items if needle in item.get("title", "").lower()]
        start = (page - 1) * page_size
        return httpx.Response(
            200,
            json={name: items[start : start + page_size], "total": len(items), "page": page, "page_size": page_size},
        )

    def _stats(self) -> dict:
        by_source: dict[str, int] = {}
        for article in self.articles.values():
            name = self.sources.get(article["source_id"], {}).get("name", article["source_id"])
            by_source[name] = by_source.get(name, 0) + 1
        total = len(self.articles)
        return {
            "total": total,
            "last_24_hours": total,
            "last_7_days": total,
            "last_30_days": total,
            "by_source": by_source,
        }


class FakeIdentity:
    """In-memory stand-in for the GoTrue-style identity service."""

    def __init__(self) -> None:
        self.valid_tokens = {GOOD_TOKEN}
        self.refresh_tokens = {REFRESH_TOKEN: GOOD_TOKEN}
        self.auth_codes = {"code-1"}
        self.confirm_signups = False
        self.profile: dict | None = {
            "user_id": USER_ID,
            "subscription_status": "active",
            "subscription_tier": "pro",
        }
        self.unavailable = False
        self.requests: list[httpx.Request] = []

    def user_payload(self) -> dict:
        return {"id": USER_ID, "email": USER_EMAIL, "user_metadata": {"full_name": "Ada Reader"}}

    def session_payload(self, access_token: str = GOOD_TOKEN) -> dict:
        return {
            "access_token": access_token,
            "refresh_token": REFRESH_TOKEN,
            "expires_in": 3600,
            "token_type": "bearer",
            "user": self.user_payload(),
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.unavailable:
            raise httpx.ConnectError("identity down", request=request)
        path = request.url.path
        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        if path == "/auth/v1/user":
            if token not in self.valid_tokens:
                return httpx.Response(401, json={"msg": "invalid JWT"})
            return httpx.Response(200, json=self.user_payload())
        if path == "/auth/v1/token":
            grant = request.url.params.get("grant_type")
            body = _json(request)
            if grant == "password":
                if body.get("email") == USER_EMAIL and body.get("password") == USER_PASSWORD:
                    return httpx.Response(200, json=self.session_payload())
                return httpx.Response(400, json={"error_description": "Invalid login credentials"})
            if grant == "refresh_token":
                access = self.refresh_tokens.get(body.get("refresh_token"))
                if access is None:
                    return httpx.Response(400, json={"error_description": "Invalid Refresh Token"})
                return httpx.Response(200, json=self.session_payload(access))
            if grant == "pkce":
                if body.get("auth_code") in self.auth_codes and body.get("code_verifier"):
                    return httpx.Response(200, json=self.session_payload())
                return httpx.Response(400, json={"error_description": "invalid flow state"})
        if path == "/auth/v1/signup":
            if self.confirm_signups:
                return httpx.Response(200, json=self.user_payload())
            return httpx.Response(200, json=self.session_payload())
        if path == "/auth/v1/logout":
            return httpx.Response(204)
        if path == "/rest/v1/profiles":
            if self.profile is None:
                return httpx.Response(406, json={"message": "JSON object requested, multiple (or no) rows returned"})
            return httpx.Response(200, json=self.profile)
        return httpx.Response(404, json={"msg": "not found"})


def make_config(**site) -> Config:
    return Config(
        api=ApiConfig(base_url="http://backend.test", timeout_seconds=5),
        identity=IdentityConfig(url="http://identity.test", anon_key="anon-key"),
        session=SessionConfig(secret_key=SESSION_KEY, cookie_name="ds_session", max_age_seconds=3600),
        site=SiteConfig(name=site.get("name", "DataScrap"), url=site.get("url", "http://testserver")),
    )


def session_cookie(
    access_token: str = GOOD_TOKEN,
    refresh_token: str | None = REFRESH_TOKEN,
    expires_at: int | None = None,
) -> str:
    session = Session(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=expires_at if expires_at is not None else epoch_seconds() + 3600,
        user_id=USER_ID,
    )
    return encode_session(load_secret_box(SESSION_KEY), session, b"ds_session")


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def identity() -> FakeIdentity:
    return FakeIdentity()


@pytest.fixture
def config() -> Config:
    return make_config()


@pytest.fixture
def app(config, backend, identity):
    return create_app(
        config,
        api_transport=httpx.MockTransport(backend.handler),
        identity_transport=httpx.MockTransport(identity.handler),
    )


@pytest.fixture
def client(app):
    with TestClient(app, follow_redirects=False) as test_client:
        yield test_client


@pytest.fixture
def authed_client(client):
    client.cookies.set("ds_session", session_cookie())
    return client


def form_query(location: str) -> dict[str, list[str]]:
    return parse_qs(location.split("?", 1)[1]) if "?" in location else {}
