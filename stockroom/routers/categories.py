# stockroom/routers/categories.py

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from stockroom.database import get_db
from stockroom.core.auth import get_current_user
from stockroom.schemas.category import (
    CategoryCreate,
    CategoryDetailResponse,
    CategoryResponse,
    CategoryStatsResponse,
    CategoryTreeNode,
    CategoryUpdate,
)
from stockroom.services import category_tree

router = APIRouter(
    prefix="/categories",
    tags=["Categories"],
)


@router.post(
    "",
    response_model=CategoryDetailResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_category(
    category_data: CategoryCreate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    category = category_tree.create_category(
        db,
        name=category_data.name,
        parent_id=category_data.parent_id,
        display_order=category_data.display_order,
        is_active=category_data.is_active,
    )
    return category_tree.get_category(db, category.id)


@router.get("", response_model=list[CategoryResponse])
def list_categories(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return category_tree.list_categories(db, include_inactive)


@router.get("/tree", response_model=list[CategoryTreeNode])
def get_category_tree(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return category_tree.get_category_tree(db)


@router.get("/stats", response_model=CategoryStatsResponse)
def get_category_stats(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return category_tree.get_category_stats(db)


@router.get("/{category_id}", response_model=CategoryDetailResponse)
def get_category(
    category_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return category_tree.get_category(db, category_id)


@router.put("/{category_id}", response_model=CategoryDetailResponse)
def update_category(
    category_id: int,
    category_data: CategoryUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    category_tree.update_category(
        db,
        category_id,
        category_data.model_dump(exclude_unset=True),
    )
    return category_tree.get_category(db, category_id)


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    category_tree.delete_category(db, category_id)
    return None
