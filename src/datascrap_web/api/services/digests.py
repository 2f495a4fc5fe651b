from __future__ import annotations

from ..client import ApiClient
from ..types import (
    ArticleResponse,
    DigestCreate,
    DigestDeliveryRequest,
    DigestGenerateAck,
    DigestGenerateRequest,
    DigestList,
    DigestListParams,
    DigestResponse,
    DigestUpdate,
    JobAck,
    MessageResponse,
)

BASE_PATH = "/api/v1/digests"


class DigestsService:
    """Generated digests and their delivery."""

    def __init__(self, client: ApiClient) -> None:
        self.client = client

    async def list(self, params: DigestListParams | None = None) -> DigestList:
        query = params.to_params() if params else None
        return await self.client.get(BASE_PATH, params=query, response_model=DigestList)

    async def get(self, digest_id: str) -> DigestResponse:
        return await self.client.get(f"{BASE_PATH}/{digest_id}", response_model=DigestResponse)

    async def create(self, payload: DigestCreate) -> DigestResponse:
        return await self.client.post(BASE_PATH, payload.to_payload(), response_model=DigestResponse)

    async def update(self, digest_id: str, payload: DigestUpdate) -> DigestResponse:
        return await self.client.patch(
            f"{BASE_PATH}/{digest_id}", payload.to_payload(), response_model=DigestResponse
        )

    async def delete(self, digest_id: str) -> MessageResponse:
        return await self.client.delete(f"{BASE_PATH}/{digest_id}", response_model=MessageResponse)

    async def generate(self, request: DigestGenerateRequest) -> DigestGenerateAck:
        return await self.client.post(
            f"{BASE_PATH}/generate", request.to_payload(), response_model=DigestGenerateAck
        )

    async def deliver(self, request: DigestDeliveryRequest) -> JobAck:
        return await self.client.post(
            f"{BASE_PATH}/deliver", request.to_payload(), response_model=JobAck
        )

    async def get_articles(self, digest_id: str) -> list[ArticleResponse]:
        return await self.client.get(
            f"{BASE_PATH}/{digest_id}/articles", response_model=list[ArticleResponse]
        )
