from __future__ import annotations

from dataclasses import dataclass

from ..client import ApiClient
from .articles import ArticlesService
from .digests import DigestsService
from .sources import SourcesService


@dataclass(frozen=True)
class Services:
    sources: SourcesService
    articles: ArticlesService
    digests: DigestsService


def build_services(client: ApiClient) -> Services:
    return Services(
        sources=SourcesService(client),
        articles=ArticlesService(client),
        digests=DigestsService(client),
    )


__all__ = [
    "ArticlesService",
    "DigestsService",
    "Services",
    "SourcesService",
    "build_services",
]
