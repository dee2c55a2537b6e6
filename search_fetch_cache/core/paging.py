"""Page slicing and the pagination envelope shared by the history listings."""

from __future__ import annotations

import math
from typing import Any


def paginate(items: list[Any], page: int, limit: int) -> tuple[list[Any], int]:
    """Return the requested page and the total page count."""
    total_pages = math.ceil(len(items) / limit)
    start = (page - 1) * limit
    return items[start : start + limit], total_pages


def page_envelope(key: str, rows: list[Any], total_count: int, page: int, total_pages: int) -> dict[str, Any]:
    return {
        key: rows,
        "totalCount": total_count,
        "currentPage": page,
        "totalPages": total_pages,
        "hasNextPage": page < total_pages,
        "hasPreviousPage": page > 1,
    }
