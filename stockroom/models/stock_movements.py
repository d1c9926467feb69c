# stockroom/models/stock_movements.py

import enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    event,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from stockroom.core.exceptions import ImmutableRecordError
from stockroom.database import Base
from stockroom.models.products import Product
from stockroom.models.users import User


class MovementType(str, enum.Enum):
    RECEIVE = "RECEIVE"
    ISSUE = "ISSUE"
    ADJUST = "ADJUST"
    TRANSFER = "TRANSFER"
    RETURN = "RETURN"


class ReferenceType(str, enum.Enum):
    ORDER = "ORDER"
    PURCHASE = "PURCHASE"
    ADJUSTMENT = "ADJUSTMENT"
    RETURN = "RETURN"
    INITIAL = "INITIAL"
    TRANSFER = "TRANSFER"


def _in_list(column, enum_cls):
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"


class StockMovement(Base):
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, index=True)

    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)

    movement_type = Column(String, nullable=False)

    # Quantity as requested; for ADJUST this is the counted target level
    quantity = Column(Integer, nullable=False)
    # Signed change applied to quantity_on_hand
    quantity_delta = Column(Integer, nullable=False)
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)

    unit_cost = Column(Numeric(12, 2), nullable=True)

    reference_type = Column(String, nullable=True)
    reference_id = Column(String, nullable=True)
    notes = Column(Text, nullable=True)

    from_location = Column(String, nullable=True)
    to_location = Column(String, nullable=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    product = relationship(Product)
    creator = relationship(User)

    __table_args__ = (
        Index("ix_stock_movements_product_created", "product_id", "created_at"),
        CheckConstraint(_in_list("movement_type", MovementType), name="ck_movement_type_valid"),
        CheckConstraint(
            "reference_type IS NULL OR " + _in_list("reference_type", ReferenceType),
            name="ck_reference_type_valid",
        ),
        CheckConstraint("quantity >= 0", name="ck_movement_quantity_non_negative"),
        CheckConstraint("new_stock = previous_stock + quantity_delta", name="ck_movement_delta_consistent"),
        CheckConstraint("unit_cost IS NULL OR unit_cost >= 0", name="ck_movement_unit_cost_non_negative"),
    )


# Ledger rows are append-only

@event.listens_for(StockMovement, "before_update")
def _reject_movement_update(mapper, connection, target):
    raise ImmutableRecordError(f"Stock movement {target.id} cannot be modified")


@event.listens_for(StockMovement, "before_delete")
def _reject_movement_delete(mapper, connection, target):
    raise ImmutableRecordError(f"Stock movement {target.id} cannot be deleted")
