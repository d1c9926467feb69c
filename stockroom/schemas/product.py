from decimal import Decimal
from pydantic import BaseModel, Field, model_validator
from datetime import datetime


class CategoryRef(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class ProductCreate(BaseModel):
    product_code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    category_id: int | None = None

    unit_price: Decimal = Field(
        ...,
        gt=0,
        lt=100_000_000,
        max_digits=12,
        decimal_places=2,
        description="Unit price must be below 100 million"
    )

    cost_price: Decimal | None = Field(
        None,
        ge=0,
        lt=100_000_000,
        max_digits=12,
        decimal_places=2,
        description="Cost price must be below 100 million"
    )

    # Opening inventory
    initial_stock: int = Field(0, ge=0)
    warehouse_location: str = Field("MAIN", min_length=1, max_length=50)
    minimum_stock: int = Field(0, ge=0)
    maximum_stock: int | None = Field(None, ge=0)
    reorder_point: int | None = Field(None, ge=0)

    @model_validator(mode="after")
    def check_stock_levels(self):
        if self.maximum_stock is not None and self.maximum_stock < self.minimum_stock:
            raise ValueError("maximum_stock cannot be lower than minimum_stock")
        return self


class ProductUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    category_id: int | None = None
    unit_price: Decimal | None = Field(None, gt=0, lt=100_000_000)
    cost_price: Decimal | None = Field(None, ge=0, lt=100_000_000)


class ProductInventory(BaseModel):
    warehouse_location: str
    quantity_on_hand: int
    reserved_stock: int
    available_stock: int
    minimum_stock: int
    reorder_point: int | None

    class Config:
        from_attributes = True


class ProductResponse(BaseModel):
    id: int
    product_code: str
    name: str
    description: str | None
    category_id: int | None
    category: CategoryRef | None = None
    unit_price: Decimal
    cost_price: Decimal | None
    is_active: bool
    inventory: ProductInventory | None = None
    created_at: datetime
    updated_at: datetime | None = None

    class Config:
        from_attributes = True
