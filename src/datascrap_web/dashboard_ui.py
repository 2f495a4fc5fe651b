from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import quote, urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from .api.client import ApiClient, ErrorCategory
from .api.services import Services, build_services
from .api.types import (
    ArticleListParams,
    ArticleSummarizeRequest,
    DeliveryMethod,
    DigestDeliveryRequest,
    DigestGenerateRequest,
    DigestListParams,
    DigestStatus,
    SourceCreate,
    SourceListParams,
    SourceStatus,
    SourceType,
    SourceUpdate,
)
from .auth.identity import IdentityClient, get_subscription_tier
from .auth.session import get_access_token, require_auth, token_provider_for
from .models import User
from .utils import format_date, log_event
from .views import View, ViewState, load_collection, run_action

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES = Jinja2Templates(directory=str(BASE_DIR / "templates"))
TEMPLATES.env.filters["date"] = format_date

DEFAULT_PAGE_SIZE = 50
ARTICLES_PAGE_SIZE = 20

NAV_ITEMS = [
    ("Dashboard", "/dashboard"),
    ("Sources", "/dashboard/sources"),
    ("Articles", "/dashboard/articles"),
    ("Digests", "/dashboard/digests"),
    ("Analytics", "/dashboard/analytics"),
]

logger = logging.getLogger("datascrap_web.ui")


def base_context(request: Request) -> dict[str, object]:
    config = request.app.state.config
    return {
        "site_name": config.site.name,
        "nav_items": NAV_ITEMS,
        "current_path": request.url.path,
        "user": getattr(request.state, "user", None),
        "is_authenticated": bool(request.cookies.get(config.session.cookie_name)),
    }


def get_services(request: Request) -> Services:
    client = ApiClient(request.app.state.api_http, token_provider=token_provider_for(request))
    return build_services(client)


def _redirect(path: str, **query: str | None) -> RedirectResponse:
    params = {key: value for key, value in query.items() if value}
    url = f"{path}?{urlencode(params)}" if params else path
    return RedirectResponse(url, status_code=303)


def _enum_or_none(enum_type, value: str | None):
    if not value or value == "all":
        return None
    try:
        return enum_type(value)
    except ValueError:
        return None


def _int_or_default(value: str | None, default: int) -> int:
    try:
        number = int(value) if value else default
    except ValueError:
        return default
    return number if number > 0 else default


def _render(request: Request, template: str, status_code: int = 200, **context: object):
    return TEMPLATES.TemplateResponse(
        request,
        template,
        {**base_context(request), **context},
        status_code=status_code,
    )


def _not_found(request: Request, what: str):
    return _render(
        request,
        "dashboard/not_found.html",
        status_code=404,
        title=f"{what} not found",
        message=f"The {what.lower()} you are looking for does not exist or was deleted.",
    )


def ui_router() -> APIRouter:
    router = APIRouter(dependencies=[Depends(require_auth)])

    # -- overview -----------------------------------------------------------

    @router.get("", response_class=HTMLResponse)
    async def dashboard(
        request: Request,
        user: User = Depends(require_auth),
        services: Services = Depends(get_services),
    ):
        sources_view = await load_collection(
            lambda: services.sources.list(SourceListParams(page=1, page_size=1)),
            "sources",
            label="overview_sources",
        )
        digests_view = await load_collection(
            lambda: services.digests.list(DigestListParams(page=1, page_size=5)),
            "digests",
            label="overview_digests",
        )
        stats, stats_error = await run_action(services.articles.get_stats, label="overview_stats")
        identity: IdentityClient = request.app.state.identity
        token = await get_access_token(request)
        profile = await identity.get_user_profile(token, user.id) if token else None
        return _render(
            request,
            "dashboard/overview.html",
            sources_total=_total(sources_view),
            digests_total=_total(digests_view),
            articles_total=stats.total if stats else None,
            recent=digests_view,
            stats_error=stats_error,
            tier=get_subscription_tier(profile),
        )

    # -- sources ------------------------------------------------------------

    @router.get("/sources", response_class=HTMLResponse)
    def sources_page(
        request: Request,
        status: str | None = None,
        type: str | None = None,
        notice: str | None = None,
        error: str | None = None,
    ):
        query = urlencode({key: value for key, value in {"status": status, "type": type}.items() if value})
        return _render(
            request,
            "dashboard/sources.html",
            content_url=f"/dashboard/sources/content?{query}",
            status=status or "all",
            type=type or "all",
            statuses=list(SourceStatus),
            types=list(SourceType),
            notice=notice,
            error=error,
        )

    @router.get("/sources/content", response_class=HTMLResponse)
    async def sources_content(
        request: Request,
        status: str | None = None,
        type: str | None = None,
        page: str | None = None,
        services: Services = Depends(get_services),
    ):
        params = SourceListParams(
            page=_int_or_default(page, 1),
            page_size=DEFAULT_PAGE_SIZE,
            status=_enum_or_none(SourceStatus, status),
            type=_enum_or_none(SourceType, type),
        )
        view = await load_collection(lambda: services.sources.list(params), "sources", label="sources")
        return _render(request, "dashboard/_sources_content.html", view=view)

    @router.get("/sources/new", response_class=HTMLResponse)
    def sources_new(request: Request):
        return _render(request, "dashboard/source_form.html", types=list(SourceType), form={})

    @router.post("/sources/new")
    async def sources_create(request: Request, services: Services = Depends(get_services)):
        form = await request.form()
        values = {key: str(form.get(key) or "").strip() for key in ("name", "url", "type", "scrape_frequency")}
        try:
            payload = SourceCreate(
                name=values["name"],
                url=values["url"],
                type=values["type"] or SourceType.WEBSITE.value,
                status=SourceStatus.ACTIVE,
                scrape_frequency=int(values["scrape_frequency"]) if values["scrape_frequency"] else None,
            )
        except ValueError:
            return _render(
                request,
                "dashboard/source_form.html",
                status_code=400,
                types=list(SourceType),
                form=values,
                error="Please check the source details and try again.",
            )
        created, error = await run_action(lambda: services.sources.create(payload), label="source_create")
        if error is not None:
            return _render(
                request,
                "dashboard/source_form.html",
                status_code=400,
                types=list(SourceType),
                form=values,
                error=f"Failed to create source. {error.message}",
            )
        log_event(logger, logging.INFO, "source_created", source_id=created.id, type=created.type.value)
        return _redirect("/dashboard/sources", notice=f"Source \"{created.name}\" added.")

    @router.post("/sources/{source_id}/scrape")
    async def sources_scrape(source_id: str, services: Services = Depends(get_services)):
        ack, error = await run_action(lambda: services.sources.scrape(source_id), label="source_scrape")
        if error is not None:
            return _redirect("/dashboard/sources", error=error.message)
        return _redirect("/dashboard/sources", notice=ack.message)

    @router.post("/sources/{source_id}/status")
    async def sources_set_status(
        request: Request, source_id: str, services: Services = Depends(get_services)
    ):
        form = await request.form()
        status = _enum_or_none(SourceStatus, str(form.get("status") or ""))
        if status is None:
            return _redirect("/dashboard/sources", error="Unknown source status.")
        updated, error = await run_action(
            lambda: services.sources.update(source_id, SourceUpdate(status=status)),
            label="source_update",
        )
        if error is not None:
            return _redirect("/dashboard/sources", error=error.message)
        return _redirect("/dashboard/sources", notice=f"Source \"{updated.name}\" is now {updated.status.value}.")

    @router.post("/sources/{source_id}/delete")
    async def sources_delete(source_id: str, services: Services = Depends(get_services)):
        result, error = await run_action(lambda: services.sources.delete(source_id), label="source_delete")
        if error is not None:
            return _redirect("/dashboard/sources", error=error.message)
        return _redirect("/dashboard/sources", notice=result.message)

    # -- articles -----------------------------------------------------------

    @router.get("/articles", response_class=HTMLResponse)
    async def articles_page(
        request: Request,
        search: str | None = None,
        source_id: str | None = None,
        page: str | None = None,
        notice: str | None = None,
        error: str | None = None,
        services: Services = Depends(get_services),
    ):
        sources_view = await load_collection(
            lambda: services.sources.list(SourceListParams(page=1, page_size=100)),
            "sources",
            label="article_filters",
        )
        query = urlencode(
            {
                key: value
                for key, value in {"search": search, "source_id": source_id, "page": page}.items()
                if value
            }
        )
        return _render(
            request,
            "dashboard/articles.html",
            content_url=f"/dashboard/articles/content?{query}",
            search=search or "",
            source_id=source_id or "all",
            sources=sources_view.items,
            notice=notice,
            error=error,
        )

    @router.get("/articles/content", response_class=HTMLResponse)
    async def articles_content(
        request: Request,
        search: str | None = None,
        source_id: str | None = None,
        page: str | None = None,
        services: Services = Depends(get_services),
    ):
        params = ArticleListParams(
            page=_int_or_default(page, 1),
            page_size=ARTICLES_PAGE_SIZE,
            search=search or None,
            source_id=source_id if source_id and source_id != "all" else None,
        )
        view = await load_collection(lambda: services.articles.list(params), "articles", label="articles")
        stats, _ = await run_action(services.articles.get_stats, label="article_stats")
        base_query = {key: value for key, value in {"search": search, "source_id": source_id}.items() if value}
        return _render(
            request,
            "dashboard/_articles_content.html",
            view=view,
            stats=stats,
            base_query=urlencode(base_query),
        )

    @router.get("/articles/{article_id}", response_class=HTMLResponse)
    async def article_detail(
        request: Request,
        article_id: str,
        notice: str | None = None,
        error: str | None = None,
        services: Services = Depends(get_services),
    ):
        article, load_error = await run_action(lambda: services.articles.get(article_id), label="article_get")
        if load_error is not None and load_error.category is ErrorCategory.NOT_FOUND:
            return _not_found(request, "Article")
        source = None
        if article is not None:
            source, _ = await run_action(lambda: services.sources.get(article.source_id), label="article_source")
        return _render(
            request,
            "dashboard/article_detail.html",
            article=article,
            source=source,
            load_error=load_error,
            notice=notice,
            error=error,
        )

    @router.post("/articles/{article_id}/summarize")
    async def article_summarize(article_id: str, services: Services = Depends(get_services)):
        ack, error = await run_action(
            lambda: services.articles.summarize(ArticleSummarizeRequest(article_id=article_id)),
            label="article_summarize",
        )
        target = f"/dashboard/articles/{quote(article_id)}"
        if error is not None:
            return _redirect(target, error=error.message)
        return _redirect(target, notice=ack.message)

    @router.post("/articles/{article_id}/delete")
    async def article_delete(article_id: str, services: Services = Depends(get_services)):
        result, error = await run_action(lambda: services.articles.delete(article_id), label="article_delete")
        if error is not None:
            return _redirect(f"/dashboard/articles/{quote(article_id)}", error=error.message)
        return _redirect("/dashboard/articles", notice=result.message)

    # -- digests ------------------------------------------------------------

    @router.get("/digests", response_class=HTMLResponse)
    def digests_page(
        request: Request,
        status: str | None = None,
        delivery_method: str | None = None,
        notice: str | None = None,
        error: str | None = None,
    ):
        query = urlencode(
            {
                key: value
                for key, value in {"status": status, "delivery_method": delivery_method}.items()
                if value
            }
        )
        return _render(
            request,
            "dashboard/digests.html",
            content_url=f"/dashboard/digests/content?{query}",
            status=status or "all",
            delivery_method=delivery_method or "all",
            statuses=list(DigestStatus),
            delivery_methods=list(DeliveryMethod),
            notice=notice,
            error=error,
        )

    @router.get("/digests/content", response_class=HTMLResponse)
    async def digests_content(
        request: Request,
        status: str | None = None,
        delivery_method: str | None = None,
        page: str | None = None,
        services: Services = Depends(get_services),
    ):
        params = DigestListParams(
            page=_int_or_default(page, 1),
            page_size=DEFAULT_PAGE_SIZE,
            status=_enum_or_none(DigestStatus, status),
            delivery_method=_enum_or_none(DeliveryMethod, delivery_method),
        )
        view = await load_collection(lambda: services.digests.list(params), "digests", label="digests")
        return _render(request, "dashboard/_digests_content.html", view=view)

    @router.post("/digests/generate")
    async def digests_generate(request: Request, services: Services = Depends(get_services)):
        form = await request.form()
        try:
            payload = DigestGenerateRequest(
                max_articles=_int_or_default(str(form.get("max_articles") or ""), 10),
                delivery_method=_enum_or_none(DeliveryMethod, str(form.get("delivery_method") or "")),
            )
        except ValueError:
            return _redirect("/dashboard/digests", error="Digests can include between 1 and 50 articles.")
        ack, error = await run_action(lambda: services.digests.generate(payload), label="digest_generate")
        if error is not None:
            return _redirect("/dashboard/digests", error=error.message)
        if ack.digest_id:
            return _redirect(f"/dashboard/digests/{quote(ack.digest_id)}", notice=ack.message)
        return _redirect("/dashboard/digests", notice=ack.message)

    @router.get("/digests/{digest_id}", response_class=HTMLResponse)
    async def digest_detail(
        request: Request,
        digest_id: str,
        notice: str | None = None,
        error: str | None = None,
        services: Services = Depends(get_services),
    ):
        digest, load_error = await run_action(lambda: services.digests.get(digest_id), label="digest_get")
        if load_error is not None and load_error.category is ErrorCategory.NOT_FOUND:
            return _not_found(request, "Digest")
        articles_view = View(state=ViewState.EMPTY)
        if digest is not None:
            articles, articles_error = await run_action(
                lambda: services.digests.get_articles(digest_id), label="digest_articles"
            )
            if articles_error is not None:
                articles_view = View(state=ViewState.ERROR, error=articles_error)
            elif articles:
                articles_view = View(state=ViewState.POPULATED, items=articles)
        return _render(
            request,
            "dashboard/digest_detail.html",
            digest=digest,
            load_error=load_error,
            articles=articles_view,
            delivery_methods=list(DeliveryMethod),
            notice=notice,
            error=error,
        )

    @router.post("/digests/{digest_id}/deliver")
    async def digest_deliver(
        request: Request, digest_id: str, services: Services = Depends(get_services)
    ):
        form = await request.form()
        payload = DigestDeliveryRequest(
            digest_id=digest_id,
            delivery_method=_enum_or_none(DeliveryMethod, str(form.get("delivery_method") or "")),
            recipient_email=str(form.get("recipient_email") or "").strip() or None,
            notion_database_id=str(form.get("notion_database_id") or "").strip() or None,
        )
        ack, error = await run_action(lambda: services.digests.deliver(payload), label="digest_deliver")
        target = f"/dashboard/digests/{quote(digest_id)}"
        if error is not None:
            return _redirect(target, error=error.message)
        return _redirect(target, notice=ack.message)

    @router.post("/digests/{digest_id}/delete")
    async def digest_delete(digest_id: str, services: Services = Depends(get_services)):
        result, error = await run_action(lambda: services.digests.delete(digest_id), label="digest_delete")
        if error is not None:
            return _redirect(f"/dashboard/digests/{quote(digest_id)}", error=error.message)
        return _redirect("/dashboard/digests", notice=result.message)

    # -- analytics ----------------------------------------------------------

    @router.get("/analytics", response_class=HTMLResponse)
    async def analytics(request: Request, services: Services = Depends(get_services)):
        stats, stats_error = await run_action(services.articles.get_stats, label="analytics_stats")
        by_method = []
        for method in DeliveryMethod:
            view = await load_collection(
                lambda: services.digests.list(DigestListParams(page=1, page_size=1, delivery_method=method)),
                "digests",
                label="analytics_digests",
            )
            by_method.append((method.value, _total(view)))
        by_source = sorted((stats.by_source.items() if stats else []), key=lambda item: item[1], reverse=True)
        peak = max([count for _, count in by_source] or [0])
        return _render(
            request,
            "dashboard/analytics.html",
            stats=stats,
            stats_error=stats_error,
            by_source=by_source,
            peak=peak,
            by_method=by_method,
        )

    return router


def _total(view: View) -> int | None:
    if view.state is ViewState.ERROR or view.pagination is None:
        return None
    return view.pagination.total
