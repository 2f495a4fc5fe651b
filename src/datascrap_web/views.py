from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from .api.client import APIError, ErrorCategory
from .utils import log_event

logger = logging.getLogger("datascrap_web.views")


class ViewState(str, Enum):
    EMPTY = "empty"
    ERROR = "error"
    POPULATED = "populated"


@dataclass(frozen=True)
class Pagination:
    page: int
    page_size: int
    total: int

    @property
    def pages(self) -> int:
        return max(1, math.ceil(self.total / self.page_size))

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.pages

    @property
    def first_index(self) -> int:
        if self.total == 0:
            return 0
        return (self.page - 1) * self.page_size + 1

    @property
    def past_end(self) -> bool:
        return self.total > 0 and self.page > self.pages

    @property
    def last_index(self) -> int:
        return min(self.total, self.page * self.page_size)


@dataclass
class View:
    state: ViewState
    items: list[Any] = field(default_factory=list)
    pagination: Pagination | None = None
    error: APIError | None = None

    @property
    def error_message(self) -> str | None:
        return self.error.message if self.error else None


async def load_collection(
    fetch: Callable[[], Awaitable[Any]],
    items_field: str,
    *,
    label: str,
) -> View:
    """Run one list call and reduce it to empty, error or populated.

    A 401 is re-raised so the session redirect still happens.
    """
    try:
        page = await fetch()
    except APIError as exc:
        if exc.category is ErrorCategory.NOT_AUTHORIZED:
            raise
        log_event(logger, logging.WARNING, "view_load_failed", view=label, category=exc.category.value)
        return View(state=ViewState.ERROR, error=exc)
    items = list(getattr(page, items_field))
    pagination = Pagination(page=page.page, page_size=page.page_size, total=page.total)
    if not items and pagination.total == 0:
        return View(state=ViewState.EMPTY, pagination=pagination)
    return View(state=ViewState.POPULATED, items=items, pagination=pagination)


async def run_action(action: Callable[[], Awaitable[Any]], *, label: str) -> tuple[Any, APIError | None]:
    """Run one mutating call; returns ``(result, None)`` or ``(None, error)``."""
    try:
        return await action(), None
    except APIError as exc:
        if exc.category is ErrorCategory.NOT_AUTHORIZED:
            raise
        log_event(logger, logging.WARNING, "view_action_failed", action=label, category=exc.category.value)
        return None, exc
