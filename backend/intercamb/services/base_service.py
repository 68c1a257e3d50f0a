"""
BaseService: common plumbing for domain services.

All domain services inherit from this to get the query façade, the
underlying store for writes, and cursor-page assembly.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog

from ..database import DocumentStore, QueryFacade, QueryOptions

logger = structlog.get_logger("intercamb.services")


@dataclass
class CursorPage:
    """One page of a cursor-paginated listing."""
    data: list = field(default_factory=list)
    next_cursor: Any = None


class BaseService:
    """Base class for domain services."""

    def __init__(self, queries: QueryFacade):
        self.queries = queries

    @property
    def store(self) -> DocumentStore:
        return self.queries.store

    @staticmethod
    def _cursor_page(items: list, options: QueryOptions | None) -> CursorPage:
        """
        Wrap a listing; ``next_cursor`` is set only when the page is full.

        A full page may still be the last one: the next request then returns
        an empty page.
        """
        next_cursor = None
        if options is not None and options.limit is not None and len(items) == options.limit:
            next_cursor = items[-1]["_id"]
        return CursorPage(data=items, next_cursor=next_cursor)
