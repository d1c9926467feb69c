# =========================================================
# STOCK LEDGER
#
# Every change to a product's on-hand quantity goes through
# apply_movement(), which writes in ONE transaction:
# - one immutable StockMovement row (the ledger)
# - the matching update to the product's Inventory row (the snapshot)
#
# Direction is derived from the movement type:
# - RECEIVE / RETURN : + quantity
# - ISSUE            : - quantity
# - ADJUST           : quantity is the counted level, delta = level - on hand
# - TRANSFER         : single warehouse bucket, delta 0, location changes
#
# On-hand may never drop below reserved stock (nor below zero).
# Same-product writers are serialized by SELECT ... FOR UPDATE
# plus the inventory version counter; conflicts are retried.
# =========================================================

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.orm.exc import StaleDataError

from stockroom.core.config import settings
from stockroom.core.exceptions import (
    ConflictError,
    InsufficientStockError,
    InvalidMovementError,
    InventoryRuleError,
    NotFoundError,
    StockroomError,
)
from stockroom.models.inventory import Inventory
from stockroom.models.products import Product
from stockroom.models.stock_movements import MovementType, ReferenceType, StockMovement

logger = logging.getLogger("stockroom.ledger")


INCREASING_TYPES = {MovementType.RECEIVE, MovementType.RETURN}

DEFAULT_REFERENCE_TYPES = {
    MovementType.ADJUST: ReferenceType.ADJUSTMENT,
    MovementType.RETURN: ReferenceType.RETURN,
    MovementType.TRANSFER: ReferenceType.TRANSFER,
}

SETTINGS_FIELDS = ("reserved_stock", "minimum_stock", "maximum_stock", "reorder_point")

# serialization_failure, deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


# =========================================================
# HELPERS
# =========================================================
def _coerce(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidMovementError(f"Unknown {label}: {value}")


def _is_write_conflict(exc: SQLAlchemyError) -> bool:
    if isinstance(exc, StaleDataError):
        return True

    if isinstance(exc, OperationalError):
        orig = exc.orig
        sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        if sqlstate in _RETRYABLE_SQLSTATES:
            return True
        return "database is locked" in str(orig)

    return False


def _get_product(db: Session, product_id: int, include_deleted: bool = False) -> Product:
    query = db.query(Product).filter(Product.id == product_id)

    if not include_deleted:
        query = query.filter(
            Product.deleted_at.is_(None),
            Product.is_active.is_(True),
        )

    product = query.first()

    if product is None:
        raise NotFoundError("Product", product_id)

    return product


def _lock_inventory(db: Session, product_id: int) -> Inventory:
    inventory = (
        db.query(Inventory)
        .filter(Inventory.product_id == product_id)
        .populate_existing()
        .with_for_update()
        .first()
    )

    if inventory is None:
        raise NotFoundError("Inventory", product_id)

    return inventory


def movement_delta(movement_type: MovementType, quantity: int, on_hand: int) -> int:
    if movement_type in INCREASING_TYPES:
        return quantity
    if movement_type is MovementType.ISSUE:
        return -quantity
    if movement_type is MovementType.ADJUST:
        return quantity - on_hand
    return 0


def _validate_request(movement_type, quantity, unit_cost, destination_location):
    if movement_type is MovementType.ADJUST:
        if quantity < 0:
            raise InvalidMovementError("Adjusted stock level cannot be negative")
    elif quantity <= 0:
        raise InvalidMovementError("Movement quantity must be greater than zero")

    if unit_cost is not None and unit_cost < 0:
        raise InvalidMovementError("Unit cost cannot be negative")

    if movement_type is MovementType.TRANSFER and not destination_location:
        raise InvalidMovementError("Transfer requires a destination location")


def _record_movement(
    db: Session,
    inventory: Inventory,
    movement_type: MovementType,
    quantity: int,
    *,
    actor_id: int,
    unit_cost: Decimal | None = None,
    reference_type: ReferenceType | None = None,
    reference_id: str | None = None,
    notes: str | None = None,
    destination_location: str | None = None,
) -> StockMovement:
    """Write one movement and its inventory change inside the caller's transaction."""
    previous_stock = inventory.quantity_on_hand
    delta = movement_delta(movement_type, quantity, previous_stock)
    new_stock = previous_stock + delta

    if new_stock < 0 or new_stock < inventory.reserved_stock:
        raise InsufficientStockError(
            inventory.product_id,
            previous_stock,
            inventory.reserved_stock,
            delta,
        )

    from_location = None
    to_location = None

    if movement_type is MovementType.TRANSFER:
        if quantity > previous_stock:
            raise InsufficientStockError(
                inventory.product_id,
                previous_stock,
                inventory.reserved_stock,
                -quantity,
            )
        if destination_location == inventory.warehouse_location:
            raise InvalidMovementError(
                f"Stock is already held at {destination_location}"
            )
        from_location = inventory.warehouse_location
        to_location = destination_location
        inventory.warehouse_location = destination_location

    if reference_type is None:
        reference_type = DEFAULT_REFERENCE_TYPES.get(movement_type)

    movement = StockMovement(
        product_id=inventory.product_id,
        movement_type=movement_type.value,
        quantity=quantity,
        quantity_delta=delta,
        previous_stock=previous_stock,
        new_stock=new_stock,
        unit_cost=unit_cost,
        reference_type=reference_type.value if reference_type else None,
        reference_id=reference_id,
        notes=notes,
        from_location=from_location,
        to_location=to_location,
        created_by=actor_id,
    )

    inventory.quantity_on_hand = new_stock
    inventory.last_movement_at = datetime.now(timezone.utc)

    db.add(movement)
    db.flush()

    return movement


# =========================================================
# APPLY MOVEMENT
# =========================================================
def apply_movement(
    db: Session,
    product_id: int,
    movement_type,
    quantity: int,
    *,
    actor_id: int,
    unit_cost: Decimal | None = None,
    reference_type=None,
    reference_id: str | None = None,
    notes: str | None = None,
    destination_location: str | None = None,
) -> StockMovement:
    movement_type = _coerce(MovementType, movement_type, "movement type")
    if reference_type is not None:
        reference_type = _coerce(ReferenceType, reference_type, "reference type")

    _validate_request(movement_type, quantity, unit_cost, destination_location)

    attempts = max(1, settings.STOCK_WRITE_RETRIES)

    for attempt in range(1, attempts + 1):
        try:
            _get_product(db, product_id)
            inventory = _lock_inventory(db, product_id)

            movement = _record_movement(
                db,
                inventory,
                movement_type,
                quantity,
                actor_id=actor_id,
                unit_cost=unit_cost,
                reference_type=reference_type,
                reference_id=reference_id,
                notes=notes,
                destination_location=destination_location,
            )

            db.commit()

        except StockroomError as exc:
            db.rollback()
            logger.info(
                f"Movement rejected: product={product_id} "
                f"type={movement_type.value} quantity={quantity} reason={exc.code}"
            )
            raise

        except SQLAlchemyError as exc:
            db.rollback()

            if not _is_write_conflict(exc):
                raise

            logger.warning(
                f"Write conflict on product {product_id} "
                f"(attempt {attempt}/{attempts})"
            )
            continue

        except Exception:
            db.rollback()
            raise

        db.refresh(movement)

        logger.info(
            f"Movement {movement.id}: product={product_id} "
            f"type={movement.movement_type} delta={movement.quantity_delta} "
            f"stock {movement.previous_stock} -> {movement.new_stock} "
            f"by user {actor_id}"
        )

        return movement

    raise ConflictError(product_id, attempts)


# =========================================================
# OPENING STOCK (PRODUCT CREATION)
# =========================================================
def open_inventory(
    db: Session,
    product: Product,
    *,
    actor_id: int,
    initial_stock: int = 0,
    warehouse_location: str = "MAIN",
    minimum_stock: int = 0,
    maximum_stock: int | None = None,
    reorder_point: int | None = None,
    unit_cost: Decimal | None = None,
) -> Inventory:
    """
    Create the inventory row for a new product.

    Opening stock is booked as a RECEIVE movement with reference
    INITIAL so the ledger replays to the snapshot from day one.
    Does not commit: runs inside the product creation transaction.
    """
    if initial_stock < 0:
        raise InvalidMovementError("Initial stock cannot be negative")

    if maximum_stock is not None and maximum_stock < minimum_stock:
        raise InventoryRuleError("Maximum stock cannot be lower than minimum stock")

    inventory = Inventory(
        product_id=product.id,
        warehouse_location=warehouse_location,
        quantity_on_hand=0,
        reserved_stock=0,
        minimum_stock=minimum_stock,
        maximum_stock=maximum_stock,
        reorder_point=reorder_point,
    )
    db.add(inventory)
    db.flush()

    if initial_stock > 0:
        _record_movement(
            db,
            inventory,
            MovementType.RECEIVE,
            initial_stock,
            actor_id=actor_id,
            unit_cost=unit_cost,
            reference_type=ReferenceType.INITIAL,
            notes="Opening stock",
        )

    return inventory


# =========================================================
# READ SIDE
# =========================================================
def get_movements(
    db: Session,
    product_id: int | None = None,
    page: int = 1,
    limit: int = 20,
):
    """Return (movements, total), newest first."""
    page = max(page, 1)
    limit = max(limit, 1)

    query = db.query(StockMovement)

    if product_id is not None:
        # History stays readable after a product is soft-deleted
        _get_product(db, product_id, include_deleted=True)
        query = query.filter(StockMovement.product_id == product_id)

    total = query.count()

    movements = (
        query
        .options(
            joinedload(StockMovement.product),
            joinedload(StockMovement.creator),
        )
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return movements, total


def get_current_level(db: Session, product_id: int) -> Inventory:
    product = _get_product(db, product_id)

    if product.inventory is None:
        raise NotFoundError("Inventory", product_id)

    return product.inventory


def replay_level(db: Session, product_id: int) -> int:
    """On-hand quantity rebuilt from the ledger alone, starting at zero."""
    total = (
        db.query(func.coalesce(func.sum(StockMovement.quantity_delta), 0))
        .filter(StockMovement.product_id == product_id)
        .scalar()
    )
    return int(total)


def reconcile(db: Session, product_id: int) -> dict:
    inventory = get_current_level(db, product_id)

    ledger_quantity = replay_level(db, product_id)
    movement_count = (
        db.query(func.count(StockMovement.id))
        .filter(StockMovement.product_id == product_id)
        .scalar()
    )

    in_sync = ledger_quantity == inventory.quantity_on_hand

    if not in_sync:
        logger.error(
            f"Ledger drift on product {product_id}: "
            f"snapshot {inventory.quantity_on_hand}, ledger {ledger_quantity}"
        )

    return {
        "product_id": product_id,
        "quantity_on_hand": inventory.quantity_on_hand,
        "ledger_quantity": ledger_quantity,
        "movement_count": movement_count,
        "in_sync": in_sync,
    }


def get_low_stock_products(db: Session) -> list[Inventory]:
    return (
        db.query(Inventory)
        .join(Product, Inventory.product_id == Product.id)
        .options(joinedload(Inventory.product).joinedload(Product.category))
        .filter(
            Product.deleted_at.is_(None),
            Product.is_active.is_(True),
            Inventory.is_low_stock,
        )
        .order_by(Inventory.quantity_on_hand.asc(), Inventory.product_id.asc())
        .all()
    )


def get_inventory_stats(db: Session) -> dict:
    active_filter = [
        Product.deleted_at.is_(None),
        Product.is_active.is_(True),
    ]

    total_products = (
        db.query(func.count(Product.id))
        .filter(*active_filter)
        .scalar()
    )

    out_of_stock_count = (
        db.query(func.count(Inventory.id))
        .join(Product, Inventory.product_id == Product.id)
        .filter(*active_filter, Inventory.quantity_on_hand <= 0)
        .scalar()
    )

    low_stock_count = (
        db.query(func.count(Inventory.id))
        .join(Product, Inventory.product_id == Product.id)
        .filter(
            *active_filter,
            Inventory.quantity_on_hand > 0,
            Inventory.is_low_stock,
        )
        .scalar()
    )

    total_value = (
        db.query(func.coalesce(func.sum(Product.cost_price * Inventory.quantity_on_hand), 0))
        .join(Inventory, Inventory.product_id == Product.id)
        .filter(*active_filter)
        .scalar()
    )

    return {
        "total_products": total_products,
        "low_stock_count": low_stock_count,
        "out_of_stock_count": out_of_stock_count,
        "normal_stock_count": total_products - low_stock_count - out_of_stock_count,
        "total_inventory_value": Decimal(str(total_value)),
        "alerts_count": low_stock_count + out_of_stock_count,
    }


# =========================================================
# INVENTORY SETTINGS
# =========================================================
def update_inventory_settings(db: Session, product_id: int, changes: dict) -> Inventory:
    """
    Update reservation and threshold settings.

    quantity_on_hand and warehouse_location are not accepted here:
    both only move through the ledger.
    """
    unknown = set(changes) - set(SETTINGS_FIELDS)
    if unknown:
        raise InventoryRuleError(f"Fields cannot be updated directly: {', '.join(sorted(unknown))}")

    try:
        _get_product(db, product_id)
        inventory = _lock_inventory(db, product_id)

        merged = {field: getattr(inventory, field) for field in SETTINGS_FIELDS}
        merged.update(changes)

        if merged["reserved_stock"] is None or merged["reserved_stock"] < 0:
            raise InventoryRuleError("Reserved stock must be zero or more")

        if merged["reserved_stock"] > inventory.quantity_on_hand:
            raise InventoryRuleError(
                f"Reserved stock ({merged['reserved_stock']}) cannot exceed "
                f"stock on hand ({inventory.quantity_on_hand})"
            )

        if merged["minimum_stock"] is None or merged["minimum_stock"] < 0:
            raise InventoryRuleError("Minimum stock must be zero or more")

        if merged["maximum_stock"] is not None and merged["maximum_stock"] < merged["minimum_stock"]:
            raise InventoryRuleError("Maximum stock cannot be lower than minimum stock")

        if merged["reorder_point"] is not None and merged["reorder_point"] < 0:
            raise InventoryRuleError("Reorder point must be zero or more")

        for field, value in changes.items():
            setattr(inventory, field, value)

        db.commit()

    except StockroomError:
        db.rollback()
        raise

    except StaleDataError:
        db.rollback()
        raise ConflictError(product_id, 1)

    except Exception:
        db.rollback()
        raise

    db.refresh(inventory)

    logger.info(f"Inventory settings updated for product {product_id}: {sorted(changes)}")

    return inventory
