"""
Pagination Schemas

Page wrapper for list endpoints (GET /api/orders).
"""

from math import ceil
from typing import Callable, Generic, List, TypeVar

from pydantic import BaseModel, Field

T = TypeVar('T')


class PaginatedResponse(BaseModel, Generic[T]):
    items: List[T]
    total: int = Field(description="Rows matching the filter")
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def from_query(cls, query, page: int, page_size: int, render: Callable = None) -> "PaginatedResponse[T]":
        """
        Run one page of a SQLAlchemy query.

        render converts each ORM row to the item schema; rows are used as-is
        when it is omitted.
        """
        total = query.count()
        rows = query.offset((page - 1) * page_size).limit(page_size).all()
        total_pages = ceil(total / page_size) if page_size else 0

        return cls(
            items=[render(row) for row in rows] if render else rows,
            total=total,
            page=page,
            page_size=page_size,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_previous=page > 1,
        )
