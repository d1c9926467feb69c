# stockroom/models/products.py

from sqlalchemy import Boolean, CheckConstraint, Column, Index, Integer, String, Numeric, ForeignKey, DateTime, Text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from stockroom.database import Base
from stockroom.models.categories import Category
from stockroom.models.inventory import Inventory


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    product_code = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    unit_price = Column(Numeric(12, 2), nullable=False)
    cost_price = Column(Numeric(12, 2), nullable=True)

    category_id = Column(
        Integer,
        ForeignKey("categories.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    is_active = Column(Boolean, default=True, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    category = relationship(Category)
    inventory = relationship(Inventory, back_populates="product", uselist=False, cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_products_active_deleted", "is_active", "deleted_at"),
        CheckConstraint("unit_price > 0", name="ck_unit_price_positive"),
        CheckConstraint("cost_price IS NULL OR cost_price >= 0", name="ck_cost_price_non_negative"),
    )
