# schemas/common.py

from pydantic import BaseModel
from typing import Generic, List, TypeVar

T = TypeVar("T")


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class Page(BaseModel, Generic[T]):
    data: List[T]
    pagination: Pagination


def paginate(items, total: int, page: int, limit: int) -> dict:
    return {
        "data": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": (total + limit - 1) // limit,
        },
    }
