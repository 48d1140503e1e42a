"""Catalog operations: creating, reading and editing records.

These helpers write through the store but never commit; callers wrap them in
an orchestrator unit of work.
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from typing import Any, TypeVar

from . import schemas
from .errors import NotFoundError, SerialConflictError
from .records import (
    Assignment,
    Company,
    Customer,
    ItemKind,
    MaintenanceItem,
    StockItem,
    _now,
)
from .serials import check_serial_count, duplicates
from .store import LedgerStore

Contact = TypeVar("Contact", Customer, Company)


def _check_duplicates(serials: Sequence[str]) -> None:
    repeated = duplicates(serials)
    if repeated:
        raise SerialConflictError("Duplicate serial numbers", repeated)


async def _serials_out_of_stock(store: LedgerStore, item_id: str) -> dict[str, str]:
    """Serials of an item currently held by a customer or a maintenance batch."""

    located: dict[str, str] = {}
    for assignment in await store.list(Assignment, item_id=item_id):
        for serial in assignment.serial_numbers:
            located[serial] = f"customer {assignment.customer_id}"
    for batch in await store.list(MaintenanceItem, original_item_id=item_id):
        for serial in batch.serial_numbers:
            located[serial] = f"maintenance batch {batch.id}"
    return located


async def create_item(
    store: LedgerStore, kind: ItemKind, data: schemas.StockItemCreate
) -> StockItem:
    serials = list(data.serial_numbers)
    _check_duplicates(serials)
    stock = len(serials) if data.stock is None else data.stock
    item = StockItem(
        kind=kind,
        name=data.name,
        description=data.description,
        price=data.price,
        category=data.category,
        brand=data.brand,
        stock=stock,
        serial_numbers=serials,
        serialized=bool(serials),
    )
    check_serial_count(item)
    return await store.create(item)


async def list_items(store: LedgerStore, kind: ItemKind) -> list[StockItem]:
    return await store.list(StockItem, kind=kind)


async def get_item(store: LedgerStore, kind: ItemKind, item_id: str) -> StockItem:
    item = await store.get(StockItem, item_id)
    if item is None or item.kind is not kind:
        raise NotFoundError(kind.value.capitalize(), item_id)
    return item


async def update_item(
    store: LedgerStore, item: StockItem, data: schemas.StockItemUpdate
) -> StockItem:
    changes: dict[str, Any] = data.model_dump(exclude_unset=True)
    for key in [key for key, value in changes.items() if value is None]:
        del changes[key]

    serials = changes.get("serial_numbers", item.serial_numbers)
    if "serial_numbers" in changes:
        _check_duplicates(serials)
        located = await _serials_out_of_stock(store, item.id)
        taken = [serial for serial in serials if serial in located]
        if taken:
            raise SerialConflictError("Serial numbers are not on the shelf", taken)
        if "stock" not in changes and (serials or item.serialized):
            changes["stock"] = len(serials)
        changes["serialized"] = item.serialized or bool(serials)

    check_serial_count(
        replace(
            item,
            stock=changes.get("stock", item.stock),
            serial_numbers=serials,
            serialized=changes.get("serialized", item.serialized),
        )
    )

    changes["updated_at"] = _now()
    return await store.update(StockItem, item.id, **changes)


async def create_contact(
    store: LedgerStore, entity: type[Contact], data: schemas.ContactBase
) -> Contact:
    return await store.create(entity(**data.model_dump()))


async def list_contacts(store: LedgerStore, entity: type[Contact]) -> list[Contact]:
    return await store.list(entity)


async def get_contact(store: LedgerStore, entity: type[Contact], record_id: str) -> Contact:
    return await store.require(entity, record_id)


async def update_contact(
    store: LedgerStore, entity: type[Contact], record_id: str, data: schemas.ContactUpdate
) -> Contact:
    await store.require(entity, record_id)
    changes = {
        key: value for key, value in data.model_dump(exclude_unset=True).items() if value is not None
    }
    changes["updated_at"] = _now()
    return await store.update(entity, record_id, **changes)


__all__ = [name for name in globals() if not name.startswith("_")]
