# stockroom/routers/products.py

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from stockroom.database import get_db
from stockroom.core.auth import get_current_user
from stockroom.core.exceptions import NotFoundError
from stockroom.models.categories import Category
from stockroom.models.products import Product
from stockroom.schemas.common import Page, paginate
from stockroom.schemas.product import (
    ProductCreate,
    ProductUpdate,
    ProductResponse,
)
from stockroom.services.stock_ledger import open_inventory

router = APIRouter(
    prefix="/products",
    tags=["Products"],
)

logger = logging.getLogger("stockroom.products")


def _active_products(db: Session):
    return db.query(Product).filter(
        Product.deleted_at.is_(None),
        Product.is_active.is_(True),
    )


def _get_product_or_404(db: Session, product_id: int) -> Product:
    product = (
        _active_products(db)
        .options(joinedload(Product.category), joinedload(Product.inventory))
        .filter(Product.id == product_id)
        .first()
    )

    if not product:
        raise NotFoundError("Product", product_id)

    return product


def _require_active_category(db: Session, category_id: int):
    category = (
        db.query(Category)
        .filter(Category.id == category_id, Category.is_active.is_(True))
        .first()
    )
    if not category:
        raise NotFoundError("Category", category_id)


@router.post(
    "",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_product(
    product_data: ProductCreate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    # Product codes are unique across live and deleted products
    existing_product = (
        db.query(Product)
        .filter(Product.product_code == product_data.product_code)
        .first()
    )
    if existing_product:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Product with this code already exists",
        )

    if product_data.category_id is not None:
        _require_active_category(db, product_data.category_id)

    try:
        product = Product(
            product_code=product_data.product_code,
            name=product_data.name,
            description=product_data.description,
            category_id=product_data.category_id,
            unit_price=product_data.unit_price,
            cost_price=product_data.cost_price,
            created_by=current_user.id,
        )
        db.add(product)
        db.flush()

        # Product, inventory and opening movement commit together
        open_inventory(
            db,
            product,
            actor_id=current_user.id,
            initial_stock=product_data.initial_stock,
            warehouse_location=product_data.warehouse_location,
            minimum_stock=product_data.minimum_stock,
            maximum_stock=product_data.maximum_stock,
            reorder_point=product_data.reorder_point,
            unit_cost=product_data.cost_price,
        )

        db.commit()

    except Exception:
        db.rollback()
        raise

    logger.info(
        f"Product {product.id} ({product.product_code}) created "
        f"with opening stock {product_data.initial_stock}"
    )

    return _get_product_or_404(db, product.id)


@router.get("", response_model=Page[ProductResponse])
def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: str | None = Query(None, max_length=100),
    category_id: int | None = None,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    query = _active_products(db)

    if category_id is not None:
        query = query.filter(Product.category_id == category_id)

    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                Product.name.ilike(pattern),
                Product.product_code.ilike(pattern),
                Product.description.ilike(pattern),
            )
        )

    total = query.count()

    products = (
        query
        .options(joinedload(Product.category), joinedload(Product.inventory))
        .order_by(Product.created_at.desc(), Product.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return paginate(products, total, page, limit)


@router.get("/{product_id}", response_model=ProductResponse)
def get_product(
    product_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return _get_product_or_404(db, product_id)


@router.put("/{product_id}", response_model=ProductResponse)
def update_product(
    product_id: int,
    product_data: ProductUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    product = _get_product_or_404(db, product_id)

    changes = product_data.model_dump(exclude_unset=True)

    if changes.get("category_id") is not None:
        _require_active_category(db, changes["category_id"])

    for field in ("name", "unit_price"):
        if field in changes and changes[field] is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"{field} cannot be empty",
            )

    try:
        for field, value in changes.items():
            setattr(product, field, value)

        db.commit()

    except Exception:
        db.rollback()
        raise

    logger.info(f"Product {product_id} updated: {sorted(changes)}")

    return _get_product_or_404(db, product_id)


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_product(
    product_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    product = _get_product_or_404(db, product_id)

    # Soft delete: the stock ledger keeps referencing the product
    try:
        product.deleted_at = datetime.now(timezone.utc)
        product.is_active = False
        db.commit()

    except Exception:
        db.rollback()
        raise

    logger.info(f"Product {product_id} deleted by user {current_user.id}")

    return None
