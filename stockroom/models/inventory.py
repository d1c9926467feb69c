# stockroom/models/inventory.py

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, ForeignKey, String, and_, or_
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import relationship

from stockroom.database import Base


class Inventory(Base):
    __tablename__ = "inventory"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)

    warehouse_location = Column(String, nullable=False, default="MAIN")

    # Written only by the stock ledger
    quantity_on_hand = Column(Integer, nullable=False, default=0)
    reserved_stock = Column(Integer, nullable=False, default=0)

    minimum_stock = Column(Integer, nullable=False, default=0)
    maximum_stock = Column(Integer, nullable=True)
    reorder_point = Column(Integer, nullable=True)

    last_movement_at = Column(DateTime(timezone=True), nullable=True)

    # Optimistic concurrency: every UPDATE checks and bumps this
    version = Column(Integer, nullable=False, default=1)

    product = relationship("Product", back_populates="inventory")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("quantity_on_hand >= 0", name="ck_inventory_quantity_non_negative"),
        CheckConstraint("reserved_stock >= 0", name="ck_inventory_reserved_non_negative"),
        CheckConstraint("reserved_stock <= quantity_on_hand", name="ck_inventory_reserved_within_on_hand"),
        CheckConstraint("minimum_stock >= 0", name="ck_inventory_minimum_non_negative"),
        CheckConstraint(
            "maximum_stock IS NULL OR maximum_stock >= minimum_stock",
            name="ck_inventory_maximum_above_minimum",
        ),
        CheckConstraint("reorder_point IS NULL OR reorder_point >= 0", name="ck_inventory_reorder_non_negative"),
    )

    @hybrid_property
    def available_stock(self):
        return self.quantity_on_hand - self.reserved_stock

    @hybrid_property
    def is_low_stock(self):
        if self.quantity_on_hand <= 0:
            return True
        if self.reorder_point is not None:
            return self.available_stock <= self.reorder_point
        return self.available_stock < self.minimum_stock

    @is_low_stock.expression
    def is_low_stock(cls):
        available = cls.quantity_on_hand - cls.reserved_stock
        return or_(
            cls.quantity_on_hand <= 0,
            and_(cls.reorder_point.isnot(None), available <= cls.reorder_point),
            and_(cls.reorder_point.is_(None), available < cls.minimum_stock),
        )

    @property
    def alert_type(self):
        if self.quantity_on_hand <= 0:
            return "OUT_OF_STOCK"
        if self.is_low_stock:
            return "REORDER_POINT" if self.reorder_point is not None else "LOW_STOCK"
        if self.maximum_stock is not None and self.quantity_on_hand > self.maximum_stock:
            return "OVERSTOCKED"
        return None
