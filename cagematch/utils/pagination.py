"""
Pagination and sort helpers shared by list endpoints.
"""

import math
from typing import Any, Dict, List, Tuple


def parse_sort(sort: str) -> List[Tuple[str, int]]:
    """Turn "-createdAt" style keys into a pymongo sort spec.

    Ties fall back to _id in the same direction so paging is stable.
    """
    direction = -1 if sort.startswith("-") else 1
    field = sort.lstrip("-")
    return [(field, direction), ("_id", direction)]


def page_window(page: int, limit: int) -> Tuple[int, int]:
    """(skip, limit) for a 1-based page."""
    return (page - 1) * limit, limit


def paginate(page: int, limit: int, total: int) -> Dict[str, Any]:
    pages = math.ceil(total / limit) if limit else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": pages,
        "hasNext": page < pages,
        "hasPrev": page > 1,
    }
