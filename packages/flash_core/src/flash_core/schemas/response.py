"""
Core Pydantic schemas shared across modules.
"""

import math
from typing import Generic, Literal, TypeAlias, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

SortDirection: TypeAlias = Literal["asc", "desc"]


class PaginationMeta(BaseModel):
    """
    Page bookkeeping returned next to a page of records.

    Example:
        >>> PaginationMeta.for_page(total=31, page=2, per_page=15).last_page
        3
    """

    model_config = ConfigDict(frozen=True)

    total: int = Field(..., ge=0, description="Total number of items across all pages")
    last_page: int = Field(..., ge=0, description="Number of the last page")
    current_page: int = Field(..., ge=1, description="1-indexed page number")
    per_page: int = Field(..., ge=1, description="Maximum items per page")
    prev: int | None = Field(default=None, description="Previous page, if any")
    next: int | None = Field(default=None, description="Next page, if any")

    @classmethod
    def for_page(cls, total: int, page: int, per_page: int) -> "PaginationMeta":
        last_page = math.ceil(total / per_page)
        return cls(
            total=total,
            last_page=last_page,
            current_page=page,
            per_page=per_page,
            prev=page - 1 if page > 1 else None,
            next=page + 1 if page < last_page else None,
        )


class PaginatedResult(BaseModel, Generic[T]):
    """
    Generic paginated result for the Flash ecosystem.

    Example:
        >>> page = PaginatedResult[dict](
        ...     data=[{"id": 1}],
        ...     meta=PaginationMeta.for_page(total=1, page=1, per_page=15),
        ... )
        >>> page.meta.next is None
        True
    """

    model_config = ConfigDict(from_attributes=True)

    data: list[T] = Field(..., description="Items in the current page")
    meta: PaginationMeta


def parse_ordering(ordering: str) -> list[tuple[str, SortDirection]]:
    """
    Parse a ``"field1,-field2"`` ordering string into instructions.

    >>> parse_ordering("-priority,created_at")
    [('priority', 'desc'), ('created_at', 'asc')]
    """
    instructions: list[tuple[str, SortDirection]] = []
    for part in ordering.split(","):
        field = part.strip()
        if not field:
            continue
        if field.startswith("-"):
            instructions.append((field[1:], "desc"))
        else:
            instructions.append((field, "asc"))
    return instructions
