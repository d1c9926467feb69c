# schemas/category.py

from pydantic import BaseModel, Field
from datetime import datetime
from typing import List


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    parent_id: int | None = None
    display_order: int = Field(0, ge=0)
    is_active: bool = True


class CategoryUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    parent_id: int | None = None
    display_order: int | None = Field(None, ge=0)
    is_active: bool | None = None


class CategoryRef(BaseModel):
    id: int
    name: str
    display_order: int
    is_active: bool

    class Config:
        from_attributes = True


class CategoryResponse(BaseModel):
    id: int
    name: str
    parent_id: int | None
    display_order: int
    is_active: bool
    created_at: datetime
    updated_at: datetime | None
    child_count: int
    product_count: int


class CategoryDetailResponse(CategoryResponse):
    parent: CategoryRef | None
    children: List[CategoryRef]


class CategoryTreeNode(BaseModel):
    id: int
    name: str
    parent_id: int | None
    display_order: int
    product_count: int
    children: List["CategoryTreeNode"]


class CategoryCount(BaseModel):
    id: int
    name: str
    parent_id: int | None
    is_active: bool
    child_count: int
    product_count: int


class CategoryStatsResponse(BaseModel):
    total_categories: int
    root_categories: int
    sub_categories: int
    categories_with_products: int
    categories: List[CategoryCount]
