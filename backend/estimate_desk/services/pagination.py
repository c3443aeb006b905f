from __future__ import annotations

from typing import Callable


def paginate(query, *, page: int, limit: int, serialize: Callable) -> dict:
    """
    Run a list query one page at a time.

    Returns:
        Dict with 'items', 'count', and pagination metadata.
    """
    page = max(page, 1)
    total = query.order_by(None).count()
    total_pages = (total + limit - 1) // limit if total > 0 else 1

    rows = query.offset((page - 1) * limit).limit(limit).all()

    return {
        "items": [serialize(r) for r in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
