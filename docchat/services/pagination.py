import math
from dataclasses import dataclass
from typing import Generic, List, Sequence, TypeVar

from docchat.exceptions import ValidationFailed

T = TypeVar("T")

MAX_PAGE_SIZE = 100


@dataclass
class Page(Generic[T]):
    items: List[T]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0

    @property
    def has_next(self) -> bool:
        return self.page * self.limit < self.total

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    def info(self) -> dict:
        return {
            "current_page": self.page,
            "total_pages": self.total_pages,
            "total": self.total,
            "has_next": self.has_next,
            "has_prev": self.has_prev,
        }


def paginate(items: Sequence[T], page: int = 1, limit: int = 10) -> Page[T]:
    """Offset/limit slice over an already ordered sequence"""
    if page < 1:
        raise ValidationFailed("Page must be 1 or greater", [{"field": "page", "value": page}])
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationFailed(
            f"Limit must be between 1 and {MAX_PAGE_SIZE}", [{"field": "limit", "value": limit}]
        )
    start = (page - 1) * limit
    return Page(items=list(items[start:start + limit]), page=page, limit=limit, total=len(items))
