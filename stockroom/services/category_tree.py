# =========================================================
# CATEGORY TREE
#
# Categories form a forest through a plain parent_id column.
# Writes keep it acyclic:
# - a category can never become its own ancestor
# - a parent must exist and be active
# - deletes never cascade (children and products block them)
#
# Reads build nested views by grouping rows on parent_id,
# never by walking live object references.
# =========================================================

import logging
from collections import defaultdict

from sqlalchemy import func
from sqlalchemy.orm import Session

from stockroom.core.exceptions import (
    CycleError,
    HasChildrenError,
    HasProductsError,
    NotFoundError,
    StockroomError,
)
from stockroom.models.categories import Category
from stockroom.models.products import Product

logger = logging.getLogger("stockroom.categories")


UPDATABLE_FIELDS = ("name", "parent_id", "display_order", "is_active")


# =========================================================
# HELPERS
# =========================================================
def _get_category(db: Session, category_id: int, lock: bool = False) -> Category:
    query = db.query(Category).filter(Category.id == category_id)

    if lock:
        query = query.with_for_update()

    category = query.first()

    if category is None:
        raise NotFoundError("Category", category_id)

    return category


def _require_active_parent(db: Session, parent_id: int) -> Category:
    parent = (
        db.query(Category)
        .filter(Category.id == parent_id, Category.is_active.is_(True))
        .first()
    )

    if parent is None:
        raise NotFoundError("Parent category", parent_id)

    return parent


def _check_no_cycle(db: Session, category_id: int, new_parent_id: int):
    """
    Walk up from the proposed parent; category_id must not show up.

    A parent that is missing or inactive cannot anchor the chain and is
    rejected the same way.
    """
    rows = db.query(Category.id, Category.parent_id, Category.is_active).all()
    parents = {row.id: row.parent_id for row in rows}
    active = {row.id for row in rows if row.is_active}

    if new_parent_id not in active:
        raise CycleError(category_id, new_parent_id, "parent does not exist or is inactive")

    visited = set()
    current = new_parent_id

    while current is not None:
        # Revisiting a node means the stored data already holds a loop
        if current == category_id or current in visited:
            raise CycleError(category_id, new_parent_id)

        visited.add(current)
        current = parents.get(current)


def _child_counts(db: Session) -> dict:
    rows = (
        db.query(Category.parent_id, func.count(Category.id))
        .filter(Category.parent_id.isnot(None))
        .group_by(Category.parent_id)
        .all()
    )
    return dict(rows)


def _product_counts(db: Session) -> dict:
    rows = (
        db.query(Product.category_id, func.count(Product.id))
        .filter(
            Product.category_id.isnot(None),
            Product.deleted_at.is_(None),
        )
        .group_by(Product.category_id)
        .all()
    )
    return dict(rows)


def _serialize(category: Category, child_counts: dict, product_counts: dict) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "parent_id": category.parent_id,
        "display_order": category.display_order,
        "is_active": category.is_active,
        "created_at": category.created_at,
        "updated_at": category.updated_at,
        "child_count": child_counts.get(category.id, 0),
        "product_count": product_counts.get(category.id, 0),
    }


def _sibling_key(category: Category):
    return (category.display_order, category.name)


# =========================================================
# WRITES
# =========================================================
def create_category(
    db: Session,
    name: str,
    parent_id: int | None = None,
    display_order: int = 0,
    is_active: bool = True,
) -> Category:
    try:
        if parent_id is not None:
            _require_active_parent(db, parent_id)

        category = Category(
            name=name,
            parent_id=parent_id,
            display_order=display_order,
            is_active=is_active,
        )
        db.add(category)
        db.commit()

    except Exception:
        db.rollback()
        raise

    db.refresh(category)

    logger.info(f"Category {category.id} created (parent={parent_id})")

    return category


def update_category(db: Session, category_id: int, changes: dict) -> Category:
    # Only parent_id may be explicitly cleared
    changes = {
        field: value
        for field, value in changes.items()
        if field in UPDATABLE_FIELDS and (value is not None or field == "parent_id")
    }

    try:
        category = _get_category(db, category_id, lock=True)

        new_parent_id = changes.get("parent_id", category.parent_id)

        if "parent_id" in changes and new_parent_id != category.parent_id and new_parent_id is not None:
            if new_parent_id == category_id:
                raise CycleError(category_id, new_parent_id)

            _check_no_cycle(db, category_id, new_parent_id)

        for field, value in changes.items():
            setattr(category, field, value)

        db.commit()

    except StockroomError as exc:
        db.rollback()
        logger.info(f"Category {category_id} update rejected: {exc.code}")
        raise

    except Exception:
        db.rollback()
        raise

    db.refresh(category)

    logger.info(f"Category {category_id} updated: {sorted(changes)}")

    return category


def delete_category(db: Session, category_id: int):
    try:
        category = _get_category(db, category_id, lock=True)

        child_count = (
            db.query(func.count(Category.id))
            .filter(Category.parent_id == category_id)
            .scalar()
        )
        if child_count:
            raise HasChildrenError(category_id, child_count)

        product_count = (
            db.query(func.count(Product.id))
            .filter(
                Product.category_id == category_id,
                Product.deleted_at.is_(None),
            )
            .scalar()
        )
        if product_count:
            raise HasProductsError(category_id, product_count)

        # Soft-deleted products lose the link instead of blocking the delete
        (
            db.query(Product)
            .filter(Product.category_id == category_id)
            .update({Product.category_id: None}, synchronize_session=False)
        )

        db.delete(category)
        db.commit()

    except StockroomError as exc:
        db.rollback()
        logger.info(f"Category {category_id} delete rejected: {exc.code}")
        raise

    except Exception:
        db.rollback()
        raise

    logger.info(f"Category {category_id} deleted")


# =========================================================
# READS
# =========================================================
def get_category(db: Session, category_id: int) -> dict:
    category = _get_category(db, category_id)

    children = (
        db.query(Category)
        .filter(Category.parent_id == category_id)
        .order_by(Category.display_order.asc(), Category.name.asc())
        .all()
    )

    parent = None
    if category.parent_id is not None:
        parent = db.query(Category).filter(Category.id == category.parent_id).first()

    product_count = (
        db.query(func.count(Product.id))
        .filter(
            Product.category_id == category_id,
            Product.deleted_at.is_(None),
        )
        .scalar()
    )

    result = _serialize(category, {category_id: len(children)}, {category_id: product_count})
    result["parent"] = parent
    result["children"] = children

    return result


def list_categories(db: Session, include_inactive: bool = False) -> list[dict]:
    query = db.query(Category)

    if not include_inactive:
        query = query.filter(Category.is_active.is_(True))

    categories = query.order_by(Category.display_order.asc(), Category.id.asc()).all()

    child_counts = _child_counts(db)
    product_counts = _product_counts(db)

    return [_serialize(c, child_counts, product_counts) for c in categories]


def get_category_tree(db: Session) -> list[dict]:
    """
    Active categories as nested nodes.

    A category whose parent is missing or inactive is shown as a root.
    Rows that cannot be reached from any root (a stored loop) are left
    out and logged; reading the tree never fails on bad data.
    """
    categories = db.query(Category).filter(Category.is_active.is_(True)).all()
    product_counts = _product_counts(db)

    by_id = {c.id: c for c in categories}
    children = defaultdict(list)
    roots = []

    for category in categories:
        if category.parent_id is None or category.parent_id not in by_id:
            roots.append(category)
        else:
            children[category.parent_id].append(category)

    tree = []
    visited = set()
    stack = [(root, tree) for root in sorted(roots, key=_sibling_key, reverse=True)]

    while stack:
        category, siblings = stack.pop()

        if category.id in visited:
            continue
        visited.add(category.id)

        node = {
            "id": category.id,
            "name": category.name,
            "parent_id": category.parent_id,
            "display_order": category.display_order,
            "product_count": product_counts.get(category.id, 0),
            "children": [],
        }
        siblings.append(node)

        for child in sorted(children[category.id], key=_sibling_key, reverse=True):
            stack.append((child, node["children"]))

    unreachable = set(by_id) - visited
    if unreachable:
        logger.warning(f"Category tree skipped unreachable categories: {sorted(unreachable)}")

    return tree


def get_category_stats(db: Session) -> dict:
    categories = (
        db.query(Category)
        .order_by(Category.display_order.asc(), Category.id.asc())
        .all()
    )

    child_counts = _child_counts(db)
    product_counts = _product_counts(db)

    active = [c for c in categories if c.is_active]
    root_categories = sum(1 for c in active if c.parent_id is None)

    return {
        "total_categories": len(active),
        "root_categories": root_categories,
        "sub_categories": len(active) - root_categories,
        "categories_with_products": sum(1 for c in active if product_counts.get(c.id)),
        "categories": [
            {
                "id": c.id,
                "name": c.name,
                "parent_id": c.parent_id,
                "is_active": c.is_active,
                "child_count": child_counts.get(c.id, 0),
                "product_count": product_counts.get(c.id, 0),
            }
            for c in categories
        ],
    }
