from __future__ import annotations

from ..client import ApiClient
from ..types import (
    JobAck,
    MessageResponse,
    SourceCreate,
    SourceList,
    SourceListParams,
    SourceResponse,
    SourceUpdate,
)

BASE_PATH = "/api/v1/sources"


class SourcesService:
    """Registered websites and RSS feeds."""

    def __init__(self, client: ApiClient) -> None:
        self.client = client

    async def list(self, params: SourceListParams | None = None) -> SourceList:
        query = params.to_params() if params else None
        return await self.client.get(BASE_PATH, params=query, response_model=SourceList)

    async def get(self, source_id: str) -> SourceResponse:
        return await self.client.get(f"{BASE_PATH}/{source_id}", response_model=SourceResponse)

    async def create(self, payload: SourceCreate) -> SourceResponse:
        return await self.client.post(BASE_PATH, payload.to_payload(), response_model=SourceResponse)

    async def update(self, source_id: str, payload: SourceUpdate) -> SourceResponse:
        return await self.client.patch(
            f"{BASE_PATH}/{source_id}", payload.to_payload(), response_model=SourceResponse
        )

    async def delete(self, source_id: str) -> MessageResponse:
        return await self.client.delete(f"{BASE_PATH}/{source_id}", response_model=MessageResponse)

    async def scrape(self, source_id: str) -> JobAck:
        """Ask the backend to scrape a source now; completion is not awaited."""
        return await self.client.post(f"{BASE_PATH}/{source_id}/scrape", response_model=JobAck)
