"""Serialized inventory ledgers for the Click Store back office."""
from __future__ import annotations

from .errors import (
    ClickStoreError,
    InsufficientStockError,
    InvariantViolation,
    NotFoundError,
    PersistenceFailure,
    SerialConflictError,
    StockMismatchError,
)
from .lifecycle import LifecycleOrchestrator, Pool, RecordLocks
from .records import Assignment, Company, Customer, ItemKind, MaintenanceItem, StockItem
from .store import JsonFileStore, LedgerStore, MemoryStore

__all__ = [
    "Assignment",
    "ClickStoreError",
    "Company",
    "Customer",
    "InsufficientStockError",
    "InvariantViolation",
    "ItemKind",
    "JsonFileStore",
    "LedgerStore",
    "LifecycleOrchestrator",
    "MaintenanceItem",
    "MemoryStore",
    "NotFoundError",
    "PersistenceFailure",
    "Pool",
    "RecordLocks",
    "SerialConflictError",
    "StockItem",
    "StockMismatchError",
]
