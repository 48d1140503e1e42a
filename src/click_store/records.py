"""Plain records shared by the ledgers and the persistence collaborators."""
from __future__ import annotations

import enum
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def new_id() -> str:
    return str(uuid.uuid4())


class ItemKind(str, enum.Enum):
    """Display category of a stock holding item."""

    PRODUCT = "product"
    ACCESSORY = "accessory"


@dataclass
class StockItem:
    """A product or accessory and the units currently on its shelf.

    ``serialized`` is set once the item has been given any serial number; from
    then on ``stock`` must equal ``len(serial_numbers)``.
    """

    name: str
    kind: ItemKind = ItemKind.PRODUCT
    id: str = field(default_factory=new_id)
    description: str = ""
    price: Decimal = Decimal("0")
    stock: int = 0
    category: str = ""
    brand: str = ""
    serial_numbers: list[str] = field(default_factory=list)
    serialized: bool = False
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime | None = None

    @property
    def anonymous_stock(self) -> int:
        """Units on the shelf that carry no serial number."""

        return max(0, self.stock - len(self.serial_numbers))

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["kind"] = self.kind.value
        payload["price"] = str(self.price)
        payload["created_at"] = _serialize_timestamp(self.created_at)
        payload["updated_at"] = _serialize_timestamp(self.updated_at)
        return payload


@dataclass
class Customer:
    name: str
    id: str = field(default_factory=new_id)
    email: str = ""
    phone: str = ""
    address: str = ""
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["created_at"] = _serialize_timestamp(self.created_at)
        payload["updated_at"] = _serialize_timestamp(self.updated_at)
        return payload


@dataclass
class Company:
    """A repair company responsible for maintenance batches."""

    name: str
    id: str = field(default_factory=new_id)
    email: str = ""
    phone: str = ""
    address: str = ""
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["created_at"] = _serialize_timestamp(self.created_at)
        payload["updated_at"] = _serialize_timestamp(self.updated_at)
        return payload


@dataclass
class Assignment:
    """Units of one item held by one customer."""

    customer_id: str
    item_id: str
    quantity: int
    kind: ItemKind = ItemKind.PRODUCT
    id: str = field(default_factory=new_id)
    serial_numbers: list[str] = field(default_factory=list)
    assigned_at: datetime = field(default_factory=_now)

    @property
    def anonymous_units(self) -> int:
        return max(0, self.quantity - len(self.serial_numbers))

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["kind"] = self.kind.value
        payload["assigned_at"] = _serialize_timestamp(self.assigned_at)
        return payload


@dataclass
class MaintenanceItem:
    """A batch of units pulled from circulation for repair.

    The descriptive fields are a snapshot of the source item taken when the
    batch was created, so the item can be rebuilt if it no longer exists.
    ``shelf_positions`` maps each serial taken off the shelf to the index it
    had there, so a restore can put it back in place.
    """

    name: str
    stock: int
    kind: ItemKind = ItemKind.PRODUCT
    id: str = field(default_factory=new_id)
    original_item_id: str | None = None
    description: str = ""
    price: Decimal = Decimal("0")
    category: str = ""
    brand: str = ""
    serial_numbers: list[str] = field(default_factory=list)
    shelf_positions: dict[str, int] = field(default_factory=dict)
    company_id: str | None = None
    created_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["kind"] = self.kind.value
        payload["price"] = str(self.price)
        payload["created_at"] = _serialize_timestamp(self.created_at)
        return payload


Record = StockItem | Customer | Company | Assignment | MaintenanceItem

ENTITY_NAMES: dict[type, str] = {
    StockItem: "Item",
    Customer: "Customer",
    Company: "Company",
    Assignment: "Assignment",
    MaintenanceItem: "Maintenance item",
}


__all__ = [
    "Assignment",
    "Company",
    "Customer",
    "ENTITY_NAMES",
    "ItemKind",
    "MaintenanceItem",
    "Record",
    "StockItem",
    "new_id",
]
