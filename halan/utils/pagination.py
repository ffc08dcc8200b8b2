from typing import Any, Dict, List, Tuple
from math import ceil
from sqlalchemy.orm import Query


def paginate(query: Query, page: int, limit: int) -> Tuple[List[Any], Dict[str, Any]]:
    """
    Apply offset/limit to ``query`` and build the pagination block
    dashboards expect next to the items.
    """
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    total_pages = ceil(total / limit) if limit > 0 else 0

    return items, {
        "currentPage": page,
        "totalPages": total_pages,
        "totalItems": total,
        "itemsPerPage": limit,
        "hasNext": page < total_pages,
        "hasPrev": page > 1
    }
