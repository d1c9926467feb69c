# =========================================================
# INVENTORY ROUTER
#
# Thin request layer over the stock ledger:
# - POST /inventory/{product_id}/movements is the ONLY way
#   to change a product's stock quantity
# - reads: snapshot, ledger history, low stock, stats,
#   ledger/snapshot reconciliation
# =========================================================

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stockroom.database import get_db
from stockroom.core.auth import get_current_user
from stockroom.schemas.common import Page, paginate
from stockroom.schemas.inventory import (
    InventoryResponse,
    InventorySettingsUpdate,
    InventoryStatsResponse,
    LowStockItem,
    MovementCreate,
    MovementResponse,
    ReconciliationResponse,
)
from stockroom.services import stock_ledger

router = APIRouter(
    prefix="/inventory",
    tags=["Inventory"],
)


# =========================================================
# COLLECTION ROUTES (declared before /{product_id})
# =========================================================
@router.get("/movements", response_model=Page[MovementResponse])
def list_movements(
    product_id: int | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    movements, total = stock_ledger.get_movements(db, product_id, page, limit)
    return paginate(movements, total, page, limit)


@router.get("/low-stock", response_model=list[LowStockItem])
def list_low_stock(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return [
        {"product": inventory.product, "inventory": inventory}
        for inventory in stock_ledger.get_low_stock_products(db)
    ]


@router.get("/stats", response_model=InventoryStatsResponse)
def inventory_stats(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return stock_ledger.get_inventory_stats(db)


# =========================================================
# PER-PRODUCT ROUTES
# =========================================================
@router.post(
    "/{product_id}/movements",
    response_model=MovementResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_movement(
    product_id: int,
    movement_data: MovementCreate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return stock_ledger.apply_movement(
        db,
        product_id,
        movement_data.movement_type,
        movement_data.quantity,
        actor_id=current_user.id,
        unit_cost=movement_data.unit_cost,
        reference_type=movement_data.reference_type,
        reference_id=movement_data.reference_id,
        notes=movement_data.notes,
        destination_location=movement_data.destination_location,
    )


@router.get("/{product_id}", response_model=InventoryResponse)
def get_inventory(
    product_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return stock_ledger.get_current_level(db, product_id)


@router.put("/{product_id}", response_model=InventoryResponse)
def update_inventory_settings(
    product_id: int,
    settings_data: InventorySettingsUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return stock_ledger.update_inventory_settings(
        db,
        product_id,
        settings_data.model_dump(exclude_unset=True),
    )


@router.get("/{product_id}/reconcile", response_model=ReconciliationResponse)
def reconcile_inventory(
    product_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return stock_ledger.reconcile(db, product_id)
