"""Page/limit pagination for list endpoints."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Page:
    items: list[Any]
    total_items: int
    current_page: int
    items_per_page: int

    @property
    def total_pages(self) -> int:
        if self.items_per_page <= 0:
            return 0
        return (self.total_items + self.items_per_page - 1) // self.items_per_page

    def pagination(self) -> dict[str, int]:
        return {
            "total_items": self.total_items,
            "total_pages": self.total_pages,
            "current_page": self.current_page,
            "items_per_page": self.items_per_page,
        }


def paginate(query, *, page: int, limit: int) -> Page:
    """Count the filtered query, then fetch one page of it (pages are 1-based)."""
    page = max(int(page), 1)
    limit = max(int(limit), 1)
    total = query.count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return Page(items=items, total_items=total, current_page=page, items_per_page=limit)
