"""Persistence collaborators the ledgers are written against."""
from __future__ import annotations

import abc
import json
import logging
from copy import deepcopy
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, TypeVar

from .errors import NotFoundError, PersistenceFailure
from .records import (
    ENTITY_NAMES,
    Assignment,
    Company,
    Customer,
    ItemKind,
    MaintenanceItem,
    Record,
    StockItem,
    _now,
    _parse_timestamp,
)
from .serials import normalize_serials

logger = logging.getLogger(__name__)

R = TypeVar("R", StockItem, Customer, Company, Assignment, MaintenanceItem)

ENTITIES: tuple[type, ...] = (StockItem, Customer, Company, Assignment, MaintenanceItem)


class LedgerStore(abc.ABC):
    """CRUD over every record type plus a unit-of-work boundary.

    Records handed out are copies: a change only reaches the store through
    :meth:`update`, and only becomes durable on :meth:`commit`.
    """

    @abc.abstractmethod
    async def list(self, entity: type[R], **filters: Any) -> list[R]:
        """Return records of ``entity`` in creation order, filtered by equality."""

    @abc.abstractmethod
    async def get(self, entity: type[R], record_id: str) -> R | None:
        ...

    @abc.abstractmethod
    async def create(self, record: R) -> R:
        ...

    @abc.abstractmethod
    async def update(self, entity: type[R], record_id: str, **changes: Any) -> R:
        ...

    @abc.abstractmethod
    async def delete(self, entity: type[R], record_id: str) -> None:
        ...

    @abc.abstractmethod
    async def commit(self) -> None:
        ...

    @abc.abstractmethod
    async def rollback(self) -> None:
        ...

    async def require(self, entity: type[R], record_id: str) -> R:
        record = await self.get(entity, record_id)
        if record is None:
            raise NotFoundError(ENTITY_NAMES[entity], record_id)
        return record


class MemoryStore(LedgerStore):
    """Dictionary backed store with snapshot based commit/rollback."""

    def __init__(self) -> None:
        self._tables: dict[type, dict[str, Record]] = {entity: {} for entity in ENTITIES}
        self._committed = deepcopy(self._tables)

    def _table(self, entity: type) -> dict[str, Record]:
        try:
            return self._tables[entity]
        except KeyError as exc:
            raise TypeError(f"Unsupported record type {entity!r}") from exc

    async def list(self, entity: type[R], **filters: Any) -> list[R]:
        return [
            deepcopy(record)
            for record in self._table(entity).values()
            if all(getattr(record, key) == value for key, value in filters.items())
        ]

    async def get(self, entity: type[R], record_id: str) -> R | None:
        record = self._table(entity).get(record_id)
        return deepcopy(record) if record is not None else None

    async def create(self, record: R) -> R:
        table = self._table(type(record))
        if record.id in table:
            raise PersistenceFailure(
                f"{ENTITY_NAMES[type(record)]} {record.id} already exists"
            )
        table[record.id] = deepcopy(record)
        return deepcopy(record)

    async def update(self, entity: type[R], record_id: str, **changes: Any) -> R:
        record = self._table(entity).get(record_id)
        if record is None:
            raise NotFoundError(ENTITY_NAMES[entity], record_id)
        for key, value in changes.items():
            if not hasattr(record, key):
                raise AttributeError(f"{entity.__name__} has no field {key!r}")
            setattr(record, key, deepcopy(value))
        return deepcopy(record)

    async def delete(self, entity: type[R], record_id: str) -> None:
        if self._table(entity).pop(record_id, None) is None:
            raise NotFoundError(ENTITY_NAMES[entity], record_id)

    async def commit(self) -> None:
        self._committed = deepcopy(self._tables)

    async def rollback(self) -> None:
        self._tables = deepcopy(self._committed)


def _pick(raw: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def _decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value if value not in (None, "") else 0))
    except InvalidOperation:
        return Decimal("0")


def _coerce_item(raw: dict[str, Any], kind: ItemKind) -> StockItem:
    serials = normalize_serials(_pick(raw, "serial_numbers", "serialNumbers"))
    return StockItem(
        id=str(raw["id"]),
        kind=kind,
        name=str(_pick(raw, "name", default="")),
        description=str(_pick(raw, "description", default="")),
        price=_decimal(raw.get("price")),
        stock=int(_pick(raw, "stock", default=0)),
        category=str(_pick(raw, "category", default="")),
        brand=str(_pick(raw, "brand", default="")),
        serial_numbers=serials,
        serialized=bool(_pick(raw, "serialized", default=bool(serials))),
        created_at=_parse_timestamp(_pick(raw, "created_at", "createdAt")) or _now(),
        updated_at=_parse_timestamp(_pick(raw, "updated_at", "updatedAt")),
    )


def _coerce_contact(raw: dict[str, Any], entity: type) -> Any:
    return entity(
        id=str(raw["id"]),
        name=str(_pick(raw, "name", default="")),
        email=str(_pick(raw, "email", default="")),
        phone=str(_pick(raw, "phone", default="")),
        address=str(_pick(raw, "address", default="")),
        created_at=_parse_timestamp(_pick(raw, "created_at", "createdAt")) or _now(),
        updated_at=_parse_timestamp(_pick(raw, "updated_at", "updatedAt")),
    )


def _coerce_assignment(raw: dict[str, Any], kind: ItemKind) -> Assignment:
    if kind is ItemKind.PRODUCT:
        item_id = _pick(raw, "item_id", "product_id", "productId")
    else:
        item_id = _pick(raw, "item_id", "accessory_id", "accessoryId")
    return Assignment(
        id=str(raw["id"]),
        kind=kind,
        customer_id=str(_pick(raw, "customer_id", "customerId")),
        item_id=str(item_id),
        quantity=int(_pick(raw, "quantity", default=0)),
        serial_numbers=normalize_serials(_pick(raw, "serial_numbers", "serialNumbers")),
        assigned_at=_parse_timestamp(_pick(raw, "assigned_at", "assignedAt")) or _now(),
    )


def _coerce_maintenance(raw: dict[str, Any]) -> MaintenanceItem:
    original = _pick(raw, "original_item_id", "original_product_id", "originalProductId")
    return MaintenanceItem(
        id=str(raw["id"]),
        kind=ItemKind(_pick(raw, "kind", default=ItemKind.PRODUCT.value)),
        original_item_id=None if original is None else str(original),
        name=str(_pick(raw, "name", default="")),
        description=str(_pick(raw, "description", default="")),
        price=_decimal(raw.get("price")),
        category=str(_pick(raw, "category", default="")),
        brand=str(_pick(raw, "brand", default="")),
        stock=int(_pick(raw, "stock", default=0)),
        serial_numbers=normalize_serials(_pick(raw, "serial_numbers", "serialNumbers")),
        shelf_positions={
            str(serial): int(index)
            for serial, index in (_pick(raw, "shelf_positions", "shelfPositions") or {}).items()
        },
        company_id=_pick(raw, "company_id", "companyId"),
        created_at=_parse_timestamp(_pick(raw, "created_at", "createdAt")) or _now(),
    )


def _assignment_row(assignment: Assignment) -> dict[str, Any]:
    row = assignment.to_dict()
    item_key = "product_id" if assignment.kind is ItemKind.PRODUCT else "accessory_id"
    row[item_key] = row.pop("item_id")
    return row


def _maintenance_row(item: MaintenanceItem) -> dict[str, Any]:
    row = item.to_dict()
    row["original_product_id"] = row.pop("original_item_id")
    return row


class JsonFileStore(MemoryStore):
    """Memory store persisted as one JSON document.

    The document follows the JSON file server layout (``products``,
    ``customer_products`` ...). Reading accepts camelCase or snake_case keys
    and ``;`` delimited serial strings; writing always emits snake_case.
    """

    def __init__(self, storage_path: Path | str) -> None:
        super().__init__()
        self.storage_path = Path(storage_path)
        self._load()

    def _load(self) -> None:
        if not self.storage_path.exists():
            self._write(self._document())
            return
        raw = self.storage_path.read_text(encoding="utf-8") or "{}"
        try:
            state = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise PersistenceFailure(f"Cannot parse {self.storage_path}: {exc}") from exc
        if not isinstance(state, dict):
            raise PersistenceFailure(f"{self.storage_path} does not hold a JSON object")

        tables = self._tables
        for raw_item in state.get("products") or []:
            item = _coerce_item(raw_item, ItemKind.PRODUCT)
            tables[StockItem][item.id] = item
        for raw_item in state.get("accessories") or []:
            item = _coerce_item(raw_item, ItemKind.ACCESSORY)
            tables[StockItem][item.id] = item
        for raw_customer in state.get("customers") or []:
            customer = _coerce_contact(raw_customer, Customer)
            tables[Customer][customer.id] = customer
        for raw_company in state.get("companies") or []:
            company = _coerce_contact(raw_company, Company)
            tables[Company][company.id] = company
        for raw_assignment in state.get("customer_products") or []:
            assignment = _coerce_assignment(raw_assignment, ItemKind.PRODUCT)
            tables[Assignment][assignment.id] = assignment
        for raw_assignment in state.get("customer_accessories") or []:
            assignment = _coerce_assignment(raw_assignment, ItemKind.ACCESSORY)
            tables[Assignment][assignment.id] = assignment
        for raw_maintenance in state.get("maintenance_items") or []:
            maintenance = _coerce_maintenance(raw_maintenance)
            tables[MaintenanceItem][maintenance.id] = maintenance
        self._committed = deepcopy(self._tables)
        logger.info(
            "Loaded %d item(s) and %d assignment(s) from %s",
            len(tables[StockItem]),
            len(tables[Assignment]),
            self.storage_path,
        )

    def _document(self) -> dict[str, list[dict[str, Any]]]:
        items = list(self._tables[StockItem].values())
        assignments = list(self._tables[Assignment].values())
        return {
            "products": [i.to_dict() for i in items if i.kind is ItemKind.PRODUCT],
            "accessories": [i.to_dict() for i in items if i.kind is ItemKind.ACCESSORY],
            "customers": [c.to_dict() for c in self._tables[Customer].values()],
            "companies": [c.to_dict() for c in self._tables[Company].values()],
            "customer_products": [
                _assignment_row(a) for a in assignments if a.kind is ItemKind.PRODUCT
            ],
            "customer_accessories": [
                _assignment_row(a) for a in assignments if a.kind is ItemKind.ACCESSORY
            ],
            "maintenance_items": [
                _maintenance_row(m) for m in self._tables[MaintenanceItem].values()
            ],
        }

    def _write(self, document: dict[str, Any]) -> None:
        try:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self.storage_path.with_suffix(".tmp")
            temp_path.write_text(
                json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8"
            )
            temp_path.replace(self.storage_path)
        except OSError as exc:
            raise PersistenceFailure(f"Cannot write {self.storage_path}: {exc}") from exc

    async def commit(self) -> None:
        self._write(self._document())
        await super().commit()


__all__ = ["ENTITIES", "JsonFileStore", "LedgerStore", "MemoryStore"]
