"""Typed errors raised by the inventory ledgers.

Every error carries a machine readable ``code`` next to its human readable
message so the HTTP layer can render it without parsing strings::

    ClickStoreError
    +-- NotFoundError
    +-- InvariantViolation
    |   +-- InsufficientStockError
    |   +-- SerialConflictError
    |   +-- StockMismatchError
    +-- PersistenceFailure
"""
from __future__ import annotations

from collections.abc import Iterable


class ClickStoreError(Exception):
    """Base class for all inventory errors."""

    code = "click_store_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ClickStoreError):
    code = "not_found"

    def __init__(self, entity: str, record_id: str) -> None:
        self.entity = entity
        self.record_id = record_id
        super().__init__(f"{entity} {record_id} not found")


class InvariantViolation(ClickStoreError):
    """A transition would break stock/serial/assignment consistency."""

    code = "invariant_violation"


class InsufficientStockError(InvariantViolation):
    code = "insufficient_stock"

    def __init__(self, item_id: str, requested: int, available: int) -> None:
        self.item_id = item_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Item {item_id} has {available} unit(s) available, {requested} requested"
        )


class SerialConflictError(InvariantViolation):
    code = "serial_conflict"

    def __init__(self, message: str, serials: Iterable[str]) -> None:
        self.serials = list(serials)
        super().__init__(f"{message}: {', '.join(self.serials)}")


class StockMismatchError(InvariantViolation):
    code = "stock_mismatch"

    def __init__(self, item_id: str, stock: int, serial_count: int) -> None:
        self.item_id = item_id
        self.stock = stock
        self.serial_count = serial_count
        super().__init__(
            f"Item {item_id} is serialized: stock ({stock}) must equal the number of "
            f"serial numbers ({serial_count})"
        )


class PersistenceFailure(ClickStoreError):
    """The storage collaborator failed to read or write."""

    code = "persistence_failure"


__all__ = [
    "ClickStoreError",
    "InsufficientStockError",
    "InvariantViolation",
    "NotFoundError",
    "PersistenceFailure",
    "SerialConflictError",
    "StockMismatchError",
]
