"""Reusable pagination helpers."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, Generic, TypeVar

from fastapi import Query
from pydantic import BaseModel

T = TypeVar("T")


class PaginationParams(BaseModel):
    """Pagination query params."""

    limit: int
    offset: int


def get_pagination_params(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> PaginationParams:
    """FastAPI dependency for pagination params."""
    return PaginationParams(limit=limit, offset=offset)


class Page(BaseModel, Generic[T]):
    """Generic paginated response."""

    items: list[T]
    total: int
    limit: int
    offset: int


def build_page(
    items: Sequence[Any],
    total: int,
    params: PaginationParams,
    serializer: Callable[[Any], T] | None = None,
) -> Page[T]:
    """Build page object from query result and params, serializing ORM rows if asked."""
    serialized = [serializer(item) for item in items] if serializer is not None else list(items)
    return Page(items=serialized, total=total, limit=params.limit, offset=params.offset)
