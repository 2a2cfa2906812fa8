from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Generic, Sequence, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import ValidationFailure

T = TypeVar("T")

MAX_PAGE_SIZE = 200


@dataclass(slots=True)
class PageRequest:
    page: int
    page_size: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @classmethod
    def from_params(cls, page: int | None, page_size: int | None) -> "PageRequest | None":
        """Pagination only applies when both parameters are supplied."""

        if page is None or page_size is None:
            return None
        if page < 1 or page_size < 1:
            raise ValidationFailure("page and pageSize must be positive integers")
        return cls(page=page, page_size=min(page_size, MAX_PAGE_SIZE))


@dataclass(slots=True)
class Page(Generic[T]):
    data: Sequence[T]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0


async def fetch_rows(
    session: AsyncSession, statement: Select, paging: PageRequest | None
) -> tuple[list, int | None]:
    """Run ``statement`` optionally windowed by ``paging``.

    Returns the rows and, when paginated, the unpaginated total.
    """

    if paging is None:
        result = await session.execute(statement)
        return list(result.all()), None

    count_statement = select(func.count()).select_from(statement.order_by(None).subquery())
    total = int(await session.scalar(count_statement) or 0)
    result = await session.execute(statement.limit(paging.page_size).offset(paging.offset))
    return list(result.all()), total
