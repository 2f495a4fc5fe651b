from __future__ import annotations

from ..client import ApiClient
from ..types import (
    ArticleList,
    ArticleListParams,
    ArticleResponse,
    ArticleStats,
    ArticleSummarizeRequest,
    ArticleUpdate,
    JobAck,
    MessageResponse,
)

BASE_PATH = "/api/v1/articles"


class ArticlesService:
    """Scraped articles. Articles are created by the backend, never here."""

    def __init__(self, client: ApiClient) -> None:
        self.client = client

    async def list(self, params: ArticleListParams | None = None) -> ArticleList:
        query = params.to_params() if params else None
        return await self.client.get(BASE_PATH, params=query, response_model=ArticleList)

    async def get(self, article_id: str) -> ArticleResponse:
        return await self.client.get(f"{BASE_PATH}/{article_id}", response_model=ArticleResponse)

    async def update(self, article_id: str, payload: ArticleUpdate) -> ArticleResponse:
        return await self.client.patch(
            f"{BASE_PATH}/{article_id}", payload.to_payload(), response_model=ArticleResponse
        )

    async def delete(self, article_id: str) -> MessageResponse:
        return await self.client.delete(f"{BASE_PATH}/{article_id}", response_model=MessageResponse)

    async def summarize(self, request: ArticleSummarizeRequest) -> JobAck:
        return await self.client.post(
            f"{BASE_PATH}/summarize", request.to_payload(), response_model=JobAck
        )

    async def get_stats(self) -> ArticleStats:
        return await self.client.get(f"{BASE_PATH}/stats/overview", response_model=ArticleStats)
