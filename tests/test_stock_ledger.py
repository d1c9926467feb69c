"""
Tests for the stock ledger service.

Covers:
- apply_movement(): direction per movement type, reserved-stock and zero
  floor guards, no partial writes on rejection
- ledger replay reproducing the inventory snapshot
- conflict retries and the optimistic version check
- immutability of movement rows
- low stock detection, stats and inventory settings
"""

import random
from decimal import Decimal

import pytest
from sqlalchemy.orm.exc import StaleDataError

from stockroom.core.config import settings
from stockroom.core.exceptions import (
    ConflictError,
    ImmutableRecordError,
    InsufficientStockError,
    InvalidMovementError,
    InventoryRuleError,
    NotFoundError,
)
from stockroom.models.inventory import Inventory
from stockroom.models.stock_movements import StockMovement
from stockroom.services import stock_ledger
from stockroom.services.stock_ledger import apply_movement


def movement_count(db, product_id):
    return db.query(StockMovement).filter(StockMovement.product_id == product_id).count()


def on_hand(db, product_id):
    db.expire_all()
    return stock_ledger.get_current_level(db, product_id).quantity_on_hand


def reserve(db, product_id, quantity):
    stock_ledger.update_inventory_settings(db, product_id, {"reserved_stock": quantity})


# ---------------------------------------------------------------------------
# Direction policy
# ---------------------------------------------------------------------------


def test_receive_issue_scenario(db, user, make_product):
    product = make_product()

    apply_movement(db, product.id, "RECEIVE", 100, actor_id=user.id)
    assert on_hand(db, product.id) == 100
    assert movement_count(db, product.id) == 1

    apply_movement(db, product.id, "ISSUE", 30, actor_id=user.id)
    assert on_hand(db, product.id) == 70
    assert movement_count(db, product.id) == 2
    assert stock_ledger.replay_level(db, product.id) == 70

    with pytest.raises(InsufficientStockError):
        apply_movement(db, product.id, "ISSUE", 1000, actor_id=user.id)

    assert on_hand(db, product.id) == 70
    assert movement_count(db, product.id) == 2


def test_movement_row_records_before_and_after(db, user, make_product):
    product = make_product(initial_stock=10)

    movement = apply_movement(
        db,
        product.id,
        "RECEIVE",
        5,
        actor_id=user.id,
        unit_cost=Decimal("2.50"),
        reference_type="PURCHASE",
        reference_id="PO-1001",
        notes="Weekly delivery",
    )

    assert movement.movement_type == "RECEIVE"
    assert movement.quantity == 5
    assert movement.quantity_delta == 5
    assert movement.previous_stock == 10
    assert movement.new_stock == 15
    assert movement.unit_cost == Decimal("2.50")
    assert movement.reference_type == "PURCHASE"
    assert movement.reference_id == "PO-1001"
    assert movement.created_by == user.id
    assert movement.created_at is not None


def test_return_increases_stock_and_defaults_reference(db, user, make_product):
    product = make_product(initial_stock=4)

    movement = apply_movement(db, product.id, "RETURN", 2, actor_id=user.id)

    assert movement.quantity_delta == 2
    assert movement.reference_type == "RETURN"
    assert on_hand(db, product.id) == 6


def test_adjust_sets_counted_level(db, user, make_product):
    product = make_product(initial_stock=70)

    down = apply_movement(db, product.id, "ADJUST", 50, actor_id=user.id, notes="Stock count")
    assert down.quantity_delta == -20
    assert down.reference_type == "ADJUSTMENT"
    assert on_hand(db, product.id) == 50

    up = apply_movement(db, product.id, "ADJUST", 55, actor_id=user.id)
    assert up.quantity_delta == 5

    same = apply_movement(db, product.id, "ADJUST", 55, actor_id=user.id)
    assert same.quantity_delta == 0

    to_zero = apply_movement(db, product.id, "ADJUST", 0, actor_id=user.id)
    assert to_zero.new_stock == 0
    assert stock_ledger.replay_level(db, product.id) == 0


def test_transfer_moves_location_without_changing_quantity(db, user, make_product):
    product = make_product(initial_stock=12)

    movement = apply_movement(
        db,
        product.id,
        "TRANSFER",
        12,
        actor_id=user.id,
        destination_location="BACKROOM",
    )

    assert movement.quantity_delta == 0
    assert movement.from_location == "MAIN"
    assert movement.to_location == "BACKROOM"

    inventory = stock_ledger.get_current_level(db, product.id)
    assert inventory.warehouse_location == "BACKROOM"
    assert inventory.quantity_on_hand == 12


def test_transfer_rejections(db, user, make_product):
    product = make_product(initial_stock=3)

    with pytest.raises(InvalidMovementError):
        apply_movement(db, product.id, "TRANSFER", 1, actor_id=user.id)

    with pytest.raises(InvalidMovementError):
        apply_movement(db, product.id, "TRANSFER", 1, actor_id=user.id, destination_location="MAIN")

    with pytest.raises(InsufficientStockError):
        apply_movement(db, product.id, "TRANSFER", 4, actor_id=user.id, destination_location="DOCK")

    assert movement_count(db, product.id) == 1


@pytest.mark.parametrize("movement_type", ["RECEIVE", "ISSUE", "RETURN", "TRANSFER"])
def test_quantity_must_be_positive(db, user, make_product, movement_type):
    product = make_product(initial_stock=5)

    with pytest.raises(InvalidMovementError):
        apply_movement(db, product.id, movement_type, 0, actor_id=user.id, destination_location="DOCK")


def test_unknown_movement_type_rejected(db, user, make_product):
    product = make_product()

    with pytest.raises(InvalidMovementError):
        apply_movement(db, product.id, "TELEPORT", 1, actor_id=user.id)


def test_missing_or_deleted_product(db, user, make_product):
    with pytest.raises(NotFoundError):
        apply_movement(db, 999, "RECEIVE", 1, actor_id=user.id)

    product = make_product(initial_stock=1)
    product.is_active = False
    db.commit()

    with pytest.raises(NotFoundError):
        apply_movement(db, product.id, "RECEIVE", 1, actor_id=user.id)


# ---------------------------------------------------------------------------
# Reserved stock guard
# ---------------------------------------------------------------------------


def test_issue_cannot_dip_into_reserved_stock(db, user, make_product):
    product = make_product(initial_stock=10)
    reserve(db, product.id, 8)

    with pytest.raises(InsufficientStockError) as excinfo:
        apply_movement(db, product.id, "ISSUE", 5, actor_id=user.id)

    assert excinfo.value.reserved == 8
    assert on_hand(db, product.id) == 10
    assert movement_count(db, product.id) == 1

    apply_movement(db, product.id, "ISSUE", 2, actor_id=user.id)
    inventory = stock_ledger.get_current_level(db, product.id)
    assert inventory.quantity_on_hand == 8
    assert inventory.available_stock == 0


def test_adjust_below_reserved_is_rejected(db, user, make_product):
    product = make_product(initial_stock=10)
    reserve(db, product.id, 6)

    with pytest.raises(InsufficientStockError):
        apply_movement(db, product.id, "ADJUST", 5, actor_id=user.id)

    assert on_hand(db, product.id) == 10


# ---------------------------------------------------------------------------
# Ledger replay
# ---------------------------------------------------------------------------


def test_replay_matches_snapshot_for_random_sequence(db, user, make_product):
    product = make_product()
    rng = random.Random(20261019)
    committed = 0

    for _ in range(60):
        movement_type = rng.choice(["RECEIVE", "ISSUE", "ISSUE", "ADJUST", "RETURN"])
        quantity = rng.randint(0 if movement_type == "ADJUST" else 1, 40)
        try:
            apply_movement(db, product.id, movement_type, quantity, actor_id=user.id)
            committed += 1
        except InsufficientStockError:
            pass

    report = stock_ledger.reconcile(db, product.id)

    assert report["in_sync"] is True
    assert report["ledger_quantity"] == report["quantity_on_hand"]
    assert report["movement_count"] == committed
    assert report["quantity_on_hand"] >= 0


def test_opening_stock_is_booked_in_ledger(db, make_product):
    product = make_product(initial_stock=25)

    movements, total = stock_ledger.get_movements(db, product.id)

    assert total == 1
    assert movements[0].movement_type == "RECEIVE"
    assert movements[0].reference_type == "INITIAL"
    assert stock_ledger.replay_level(db, product.id) == 25


def test_movements_newest_first_and_paginated(db, user, make_product):
    product = make_product()
    other = make_product()

    for quantity in (1, 2, 3, 4, 5):
        apply_movement(db, product.id, "RECEIVE", quantity, actor_id=user.id)
    apply_movement(db, other.id, "RECEIVE", 9, actor_id=user.id)

    first_page, total = stock_ledger.get_movements(db, product.id, page=1, limit=2)
    assert total == 5
    assert [m.quantity for m in first_page] == [5, 4]

    last_page, _ = stock_ledger.get_movements(db, product.id, page=3, limit=2)
    assert [m.quantity for m in last_page] == [1]

    everything, total_all = stock_ledger.get_movements(db)
    assert total_all == 6
    assert everything[0].product_id == other.id


def test_history_survives_soft_delete(db, user, make_product):
    product = make_product(initial_stock=3)
    product.deleted_at = product.created_at
    product.is_active = False
    db.commit()

    movements, total = stock_ledger.get_movements(db, product.id)

    assert total == 1
    assert movements[0].new_stock == 3


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


def test_conflict_retries_then_gives_up(db, user, make_product, monkeypatch):
    product = make_product(initial_stock=10)
    calls = {"n": 0}

    def always_conflicts(*args, **kwargs):
        calls["n"] += 1
        raise StaleDataError("inventory row changed underneath")

    monkeypatch.setattr(stock_ledger, "_record_movement", always_conflicts)

    with pytest.raises(ConflictError) as excinfo:
        apply_movement(db, product.id, "ISSUE", 1, actor_id=user.id)

    assert calls["n"] == settings.STOCK_WRITE_RETRIES
    assert excinfo.value.attempts == settings.STOCK_WRITE_RETRIES
    assert on_hand(db, product.id) == 10
    assert movement_count(db, product.id) == 1


def test_transient_conflict_is_retried(db, user, make_product, monkeypatch):
    product = make_product(initial_stock=10)
    real_record = stock_ledger._record_movement
    calls = {"n": 0}

    def conflicts_once(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise StaleDataError("inventory row changed underneath")
        return real_record(*args, **kwargs)

    monkeypatch.setattr(stock_ledger, "_record_movement", conflicts_once)

    apply_movement(db, product.id, "ISSUE", 4, actor_id=user.id)

    assert calls["n"] == 2
    assert on_hand(db, product.id) == 6
    assert movement_count(db, product.id) == 2


def test_stale_inventory_write_is_detected(db, other_session, user, make_product):
    product = make_product(initial_stock=10)

    stale = other_session.query(Inventory).filter(Inventory.product_id == product.id).one()

    apply_movement(db, product.id, "ISSUE", 3, actor_id=user.id)

    stale.minimum_stock = 2
    with pytest.raises(StaleDataError):
        other_session.flush()
    other_session.rollback()


# ---------------------------------------------------------------------------
# Immutability
# ---------------------------------------------------------------------------


def test_movement_rows_cannot_be_updated(db, user, make_product):
    product = make_product(initial_stock=1)
    movement = db.query(StockMovement).filter(StockMovement.product_id == product.id).one()

    movement.notes = "rewritten"
    with pytest.raises(ImmutableRecordError):
        db.flush()
    db.rollback()


def test_movement_rows_cannot_be_deleted(db, user, make_product):
    product = make_product(initial_stock=1)
    movement = db.query(StockMovement).filter(StockMovement.product_id == product.id).one()

    db.delete(movement)
    with pytest.raises(ImmutableRecordError):
        db.flush()
    db.rollback()

    assert movement_count(db, product.id) == 1


# ---------------------------------------------------------------------------
# Low stock, stats, settings
# ---------------------------------------------------------------------------


def test_low_stock_detection(db, user, make_product):
    by_reorder_point = make_product(initial_stock=10, reorder_point=10)
    by_minimum = make_product(initial_stock=4, minimum_stock=5)
    out_of_stock = make_product(initial_stock=0)
    healthy = make_product(initial_stock=50, minimum_stock=5, reorder_point=20)
    overstocked = make_product(initial_stock=80, maximum_stock=60)

    low_ids = [inventory.product_id for inventory in stock_ledger.get_low_stock_products(db)]

    assert low_ids == [out_of_stock.id, by_minimum.id, by_reorder_point.id]
    assert healthy.id not in low_ids

    assert stock_ledger.get_current_level(db, out_of_stock.id).alert_type == "OUT_OF_STOCK"
    assert stock_ledger.get_current_level(db, by_minimum.id).alert_type == "LOW_STOCK"
    assert stock_ledger.get_current_level(db, by_reorder_point.id).alert_type == "REORDER_POINT"
    assert stock_ledger.get_current_level(db, overstocked.id).alert_type == "OVERSTOCKED"
    assert stock_ledger.get_current_level(db, healthy.id).alert_type is None


def test_reserved_stock_counts_against_reorder_point(db, user, make_product):
    product = make_product(initial_stock=30, reorder_point=10)
    assert not stock_ledger.get_current_level(db, product.id).is_low_stock

    reserve(db, product.id, 25)

    low_ids = [inventory.product_id for inventory in stock_ledger.get_low_stock_products(db)]
    assert product.id in low_ids


def test_low_stock_follows_latest_movement(db, user, make_product):
    product = make_product(initial_stock=20, reorder_point=5)
    assert stock_ledger.get_low_stock_products(db) == []

    apply_movement(db, product.id, "ISSUE", 16, actor_id=user.id)

    assert [i.product_id for i in stock_ledger.get_low_stock_products(db)] == [product.id]


def test_inventory_stats(db, user, make_product):
    make_product(initial_stock=10, cost_price=Decimal("2.00"))
    make_product(initial_stock=2, minimum_stock=5, cost_price=Decimal("1.50"))
    make_product(initial_stock=0)

    stats = stock_ledger.get_inventory_stats(db)

    assert stats["total_products"] == 3
    assert stats["low_stock_count"] == 1
    assert stats["out_of_stock_count"] == 1
    assert stats["normal_stock_count"] == 1
    assert stats["alerts_count"] == 2
    assert stats["total_inventory_value"] == Decimal("23")


def test_settings_enforce_inventory_rules(db, user, make_product):
    product = make_product(initial_stock=5)

    with pytest.raises(InventoryRuleError):
        stock_ledger.update_inventory_settings(db, product.id, {"reserved_stock": 6})

    with pytest.raises(InventoryRuleError):
        stock_ledger.update_inventory_settings(db, product.id, {"minimum_stock": 10, "maximum_stock": 3})

    with pytest.raises(InventoryRuleError):
        stock_ledger.update_inventory_settings(db, product.id, {"quantity_on_hand": 500})

    with pytest.raises(InventoryRuleError):
        stock_ledger.update_inventory_settings(db, product.id, {"warehouse_location": "DOCK"})

    inventory = stock_ledger.update_inventory_settings(
        db,
        product.id,
        {"reserved_stock": 5, "minimum_stock": 2, "maximum_stock": 40, "reorder_point": 3},
    )

    assert inventory.reserved_stock == 5
    assert inventory.maximum_stock == 40
    assert inventory.quantity_on_hand == 5
    assert movement_count(db, product.id) == 1


def test_ledger_models_resolve_their_relationships():
    from sqlalchemy.orm import configure_mappers

    from stockroom.models.categories import Category
    from stockroom.models.products import Product
    from stockroom.models.users import User

    configure_mappers()

    assert StockMovement.creator.property.mapper.class_ is User
    assert StockMovement.product.property.mapper.class_ is Product
    assert Product.category.property.mapper.class_ is Category
    assert Product.inventory.property.mapper.class_ is Inventory
