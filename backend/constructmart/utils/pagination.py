import math
from typing import Any, Dict, List, Tuple


def pagination_meta(total: int, page: int, limit: int) -> Dict[str, int]:
    return {
        "total_items": total,
        "total_pages": math.ceil(total / limit) if limit else 0,
        "current_page": page,
        "limit": limit,
    }


def paginate(query, page: int, limit: int) -> Tuple[List[Any], Dict[str, int]]:
    """Apply offset/limit to a SQLAlchemy query and return ``(items, meta)``."""
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, pagination_meta(total, page, limit)
