# =========================================================
# STOCKROOM DOMAIN ERRORS
#
# Raised by the services layer, translated to JSON responses
# by the handler registered in main.py.
#
# Every error carries:
# - code: machine-readable identifier
# - status_code: HTTP status the request layer answers with
# =========================================================

from fastapi import status


class StockroomError(Exception):
    code: str = "STOCKROOM_ERROR"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(StockroomError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


# ---------------- STOCK LEDGER ----------------

class InsufficientStockError(StockroomError):
    code = "INSUFFICIENT_STOCK"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, product_id: int, on_hand: int, reserved: int, requested_delta: int):
        self.product_id = product_id
        self.on_hand = on_hand
        self.reserved = reserved
        self.requested_delta = requested_delta
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"on hand {on_hand}, reserved {reserved}, change {requested_delta}"
        )


class InvalidMovementError(StockroomError):
    code = "INVALID_MOVEMENT"


class InventoryRuleError(StockroomError):
    code = "INVENTORY_RULE_VIOLATION"


class ConflictError(StockroomError):
    code = "WRITE_CONFLICT"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, product_id: int, attempts: int):
        self.product_id = product_id
        self.attempts = attempts
        super().__init__(
            f"Concurrent update on product {product_id} "
            f"could not be applied after {attempts} attempts"
        )


class ImmutableRecordError(StockroomError):
    code = "IMMUTABLE_RECORD"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


# ---------------- CATEGORY TREE ----------------

class CycleError(StockroomError):
    code = "CATEGORY_CYCLE"

    def __init__(self, category_id: int, parent_id: int, reason: str = "it would create a cycle"):
        self.category_id = category_id
        self.parent_id = parent_id
        self.reason = reason
        super().__init__(
            f"Category {parent_id} cannot be the parent of category {category_id}: {reason}"
        )


class HasChildrenError(StockroomError):
    code = "CATEGORY_HAS_CHILDREN"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, category_id: int, child_count: int):
        self.category_id = category_id
        self.child_count = child_count
        super().__init__(
            f"Category {category_id} has {child_count} child categories; "
            "reassign or remove them first"
        )


class HasProductsError(StockroomError):
    code = "CATEGORY_HAS_PRODUCTS"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, category_id: int, product_count: int):
        self.category_id = category_id
        self.product_count = product_count
        super().__init__(
            f"Category {category_id} is used by {product_count} products; "
            "reassign or remove them first"
        )
