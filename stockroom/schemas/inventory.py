from decimal import Decimal
from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from typing import Literal

MovementTypeName = Literal["RECEIVE", "ISSUE", "ADJUST", "TRANSFER", "RETURN"]
ReferenceTypeName = Literal["ORDER", "PURCHASE", "ADJUSTMENT", "RETURN", "INITIAL", "TRANSFER"]


class MovementCreate(BaseModel):
    movement_type: MovementTypeName
    # ADJUST: the counted stock level (0 allowed). Others: units moved.
    quantity: int = Field(..., ge=0, le=1_000_000_000)
    unit_cost: Decimal | None = Field(None, ge=0, lt=100_000_000)
    reference_type: ReferenceTypeName | None = None
    reference_id: str | None = Field(None, max_length=100)
    notes: str | None = Field(None, max_length=1000)
    destination_location: str | None = Field(None, min_length=1, max_length=50)

    @model_validator(mode="after")
    def check_quantity(self):
        if self.movement_type != "ADJUST" and self.quantity <= 0:
            raise ValueError("quantity must be greater than zero")
        if self.movement_type == "TRANSFER" and not self.destination_location:
            raise ValueError("destination_location is required for TRANSFER")
        return self


class InventorySettingsUpdate(BaseModel):
    reserved_stock: int | None = Field(None, ge=0)
    minimum_stock: int | None = Field(None, ge=0)
    maximum_stock: int | None = Field(None, ge=0)
    reorder_point: int | None = Field(None, ge=0)

    # On-hand quantity and location only change through movements
    class Config:
        extra = "forbid"


class InventoryResponse(BaseModel):
    id: int
    product_id: int
    warehouse_location: str
    quantity_on_hand: int
    reserved_stock: int
    available_stock: int
    minimum_stock: int
    maximum_stock: int | None
    reorder_point: int | None
    is_low_stock: bool
    alert_type: str | None
    last_movement_at: datetime | None

    class Config:
        from_attributes = True


class ProductSummary(BaseModel):
    id: int
    product_code: str
    name: str

    class Config:
        from_attributes = True


class ActorSummary(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class MovementResponse(BaseModel):
    id: int
    product_id: int
    movement_type: MovementTypeName
    quantity: int
    quantity_delta: int
    previous_stock: int
    new_stock: int
    unit_cost: Decimal | None
    reference_type: ReferenceTypeName | None
    reference_id: str | None
    notes: str | None
    from_location: str | None
    to_location: str | None
    created_by: int
    created_at: datetime
    product: ProductSummary | None = None
    creator: ActorSummary | None = None

    class Config:
        from_attributes = True


class LowStockItem(BaseModel):
    product: ProductSummary
    inventory: InventoryResponse


class ReconciliationResponse(BaseModel):
    product_id: int
    quantity_on_hand: int
    ledger_quantity: int
    movement_count: int
    in_sync: bool


class InventoryStatsResponse(BaseModel):
    total_products: int
    low_stock_count: int
    out_of_stock_count: int
    normal_stock_count: int
    total_inventory_value: Decimal
    alerts_count: int
