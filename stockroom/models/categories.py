# stockroom/models/categories.py

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.sql import func

from stockroom.database import Base


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)

    # Plain id reference; the tree is assembled by grouping on this column
    parent_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)

    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_categories_parent_order", "parent_id", "display_order"),
        CheckConstraint("display_order >= 0", name="ck_display_order_non_negative"),
        CheckConstraint("parent_id IS NULL OR parent_id <> id", name="ck_category_not_own_parent"),
    )
