"""
Page-window pagination over SQLAlchemy select statements.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from fastapi import Query
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


class PageParams:
    """
    Page parameters for list endpoints.

    Attributes:
        page: Page number (1-indexed)
        limit: Number of items per page
    """
    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number"),
        limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT, description="Items per page"),
    ):
        self.page = page
        self.limit = limit

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @classmethod
    def of(cls, page: int = 1, limit: int = DEFAULT_LIMIT) -> "PageParams":
        """Build params outside of a request (services, tests)."""
        return cls(page=page, limit=limit)


@dataclass
class Page(Generic[T]):
    items: list[T] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = DEFAULT_LIMIT

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def map(self, fn) -> dict[str, Any]:
        return {
            "items": [fn(item) for item in self.items],
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "total_pages": self.total_pages,
        }


async def paginate(db: AsyncSession, query: Select, params: PageParams) -> Page:
    """Count the filtered query, then fetch one page window of it.

    The query must already carry its filters and ordering.
    """
    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = (await db.execute(count_query)).scalar_one()

    result = await db.execute(query.limit(params.limit).offset(params.offset))
    items = list(result.scalars().all())

    return Page(items=items, total=total, page=params.page, limit=params.limit)
