"""Wire shapes exchanged with the DataScrap backend.

These mirror the backend's request/response schemas. Responses tolerate
extra fields so that backend additions do not break the dashboard.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    def to_payload(self) -> dict[str, Any]:
        """Serialize only the fields the caller actually set."""
        return self.model_dump(mode="json", exclude_unset=True)


class QueryParams(BaseModel):
    model_config = ConfigDict(extra="forbid")

    def to_params(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


# -- common -----------------------------------------------------------------


class ListParams(QueryParams):
    page: int | None = Field(default=None, ge=1)
    page_size: int | None = Field(default=None, ge=1)


class PaginatedResponse(WireModel):
    total: int = Field(ge=0)
    page: int = Field(ge=1)
    page_size: int = Field(ge=1)


class MessageResponse(WireModel):
    message: str


class JobAck(WireModel):
    message: str
    job_id: str | None = None


# -- sources ----------------------------------------------------------------


class SourceType(str, Enum):
    WEBSITE = "website"
    RSS = "rss"


class SourceStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


class SourceCreate(WireModel):
    name: str
    url: str
    type: SourceType
    status: SourceStatus = SourceStatus.ACTIVE
    scrape_frequency: int | None = Field(default=None, gt=0)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class SourceUpdate(WireModel):
    name: str | None = None
    url: str | None = None
    type: SourceType | None = None
    status: SourceStatus | None = None
    scrape_frequency: int | None = Field(default=None, gt=0)


class SourceResponse(WireModel):
    id: str
    user_id: str
    name: str
    url: str
    type: SourceType
    status: SourceStatus
    scrape_frequency: int | None = Field(default=None, gt=0)
    last_scraped_at: str | None = None
    articles_count: int = 0
    created_at: str
    updated_at: str


class SourceList(PaginatedResponse):
    sources: list[SourceResponse]


class SourceListParams(ListParams):
    status: SourceStatus | None = None
    type: SourceType | None = None


# -- articles ---------------------------------------------------------------


class ArticleUpdate(WireModel):
    title: str | None = None
    content: str | None = None
    excerpt: str | None = None
    summary: str | None = None
    author: str | None = None
    published_at: str | None = None


class ArticleResponse(WireModel):
    id: str
    source_id: str
    user_id: str
    title: str
    url: str
    content: str | None = None
    excerpt: str | None = None
    summary: str | None = None
    author: str | None = None
    published_at: str | None = None
    scraped_at: str
    created_at: str
    updated_at: str


class ArticleList(PaginatedResponse):
    articles: list[ArticleResponse]


class ArticleListParams(ListParams):
    source_id: str | None = None
    search: str | None = None
    start_date: str | None = None
    end_date: str | None = None


class ArticleSummarizeRequest(WireModel):
    article_id: str
    max_length: int = Field(default=500, ge=100, le=2000)
    model: str = "gpt-4"

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class ArticleStats(WireModel):
    total: int = 0
    last_24_hours: int = 0
    last_7_days: int = 0
    last_30_days: int = 0
    by_source: dict[str, int] = Field(default_factory=dict)


# -- digests ----------------------------------------------------------------


class DigestStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class DigestFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"


class DeliveryMethod(str, Enum):
    EMAIL = "email"
    NOTION = "notion"
    BOTH = "both"


class DigestCreate(WireModel):
    title: str | None = None
    frequency: DigestFrequency | None = None
    delivery_method: DeliveryMethod | None = None
    article_ids: list[str] | None = None
    auto_generate: bool | None = None


class DigestUpdate(WireModel):
    title: str | None = None
    status: DigestStatus | None = None
    content: dict[str, Any] | None = None


class DigestResponse(WireModel):
    id: str
    user_id: str
    title: str
    status: DigestStatus
    content: dict[str, Any] | None = None
    article_count: int = 0
    delivery_method: DeliveryMethod
    sent_at: str | None = None
    created_at: str
    updated_at: str


class DigestList(PaginatedResponse):
    digests: list[DigestResponse]


class DigestListParams(ListParams):
    status: DigestStatus | None = None
    delivery_method: DeliveryMethod | None = None
    start_date: str | None = None
    end_date: str | None = None


class DigestGenerateRequest(WireModel):
    source_ids: list[str] | None = None
    start_date: str | None = None
    end_date: str | None = None
    max_articles: int = Field(default=10, ge=1, le=50)
    delivery_method: DeliveryMethod | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class DigestGenerateAck(JobAck):
    digest_id: str | None = None


class DigestDeliveryRequest(WireModel):
    digest_id: str
    delivery_method: DeliveryMethod | None = None
    recipient_email: str | None = None
    notion_database_id: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
