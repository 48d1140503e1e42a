"""Pydantic schemas used by the API."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .records import ItemKind
from .serials import normalize_serials


class CamelModel(BaseModel):
    """Speaks camelCase on the wire and accepts snake_case input too."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _serial_list(value: Any) -> Any:
    if value is None or isinstance(value, (str, list, tuple)):
        return normalize_serials(value) if value is not None else None
    return value


class StockItemBase(CamelModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    price: Decimal = Field(Decimal("0"), ge=0)
    category: str = ""
    brand: str = ""


class StockItemCreate(StockItemBase):
    stock: int | None = Field(
        default=None,
        ge=0,
        description="Defaults to the number of serial numbers when omitted.",
    )
    serial_numbers: list[str] = Field(
        default_factory=list,
        description="Individual unit serials; a ';' delimited string is accepted too.",
    )

    _normalize_serials = field_validator("serial_numbers", mode="before")(_serial_list)


class StockItemUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    price: Decimal | None = Field(default=None, ge=0)
    category: str | None = None
    brand: str | None = None
    stock: int | None = Field(default=None, ge=0)
    serial_numbers: list[str] | None = None

    _normalize_serials = field_validator("serial_numbers", mode="before")(_serial_list)


class StockItemOut(StockItemBase):
    id: str
    kind: ItemKind
    stock: int
    serial_numbers: list[str]
    serialized: bool
    created_at: datetime
    updated_at: datetime | None = None


class ContactBase(CamelModel):
    name: str = Field(..., min_length=1)
    email: str = ""
    phone: str = ""
    address: str = ""


class ContactUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1)
    email: str | None = None
    phone: str | None = None
    address: str | None = None


class CustomerCreate(ContactBase):
    pass


class CustomerUpdate(ContactUpdate):
    pass


class CustomerOut(ContactBase):
    id: str
    created_at: datetime
    updated_at: datetime | None = None


class CompanyCreate(ContactBase):
    pass


class CompanyUpdate(ContactUpdate):
    pass


class CompanyOut(ContactBase):
    id: str
    created_at: datetime
    updated_at: datetime | None = None


class AssignmentCreate(CamelModel):
    """Assign either a quantity (first serials in stored order) or named serials."""

    customer_id: str
    item_id: str
    quantity: int | None = Field(default=None, gt=0)
    serial_numbers: list[str] | None = None

    _normalize_serials = field_validator("serial_numbers", mode="before")(_serial_list)

    @model_validator(mode="after")
    def _quantity_or_serials(self) -> "AssignmentCreate":
        if (self.quantity is None) == (not self.serial_numbers):
            raise ValueError("Provide either quantity or serialNumbers")
        return self


class AssignmentReturn(CamelModel):
    customer_id: str
    item_id: str
    serial_numbers: list[str] = Field(default_factory=list)
    quantity: int | None = Field(
        default=None, gt=0, description="Anonymous (serial-less) units to return."
    )

    _normalize_serials = field_validator("serial_numbers", mode="before")(_serial_list)

    @model_validator(mode="after")
    def _something_to_return(self) -> "AssignmentReturn":
        if not self.serial_numbers and self.quantity is None:
            raise ValueError("Provide serialNumbers and/or quantity to return")
        return self


class AssignmentOut(CamelModel):
    id: str
    kind: ItemKind
    customer_id: str
    item_id: str
    quantity: int
    serial_numbers: list[str]
    assigned_at: datetime


class AssignmentReturnOut(CamelModel):
    assignment: AssignmentOut | None = None
    item: StockItemOut


class MaintenanceCreate(CamelModel):
    """Omit both serials and quantity to move the whole item into maintenance."""

    item_id: str
    company_id: str | None = None
    serial_numbers: list[str] | None = None
    quantity: int | None = Field(default=None, gt=0)

    _normalize_serials = field_validator("serial_numbers", mode="before")(_serial_list)

    @model_validator(mode="after")
    def _not_both(self) -> "MaintenanceCreate":
        if self.serial_numbers and self.quantity is not None:
            raise ValueError("Provide serialNumbers or quantity, not both")
        return self


class MaintenanceOut(CamelModel):
    id: str
    kind: ItemKind
    original_item_id: str | None = Field(default=None, alias="originalProductId")
    name: str
    description: str
    price: Decimal
    category: str
    brand: str
    stock: int
    serial_numbers: list[str]
    company_id: str | None = None
    created_at: datetime


class HealthStatus(CamelModel):
    status: str = "ok"
    environment: str


class ReportSummary(CamelModel):
    total_products: int
    total_accessories: int
    total_customers: int
    total_companies: int
    total_stock: int
    low_stock_products: int
    total_value: Decimal
    average_product_price: Decimal
    total_assignments: int
    assigned_units: int
    recent_assignments: int
    maintenance_batches: int
    units_in_maintenance: int


class ConsistencyIssue(CamelModel):
    code: Literal[
        "stock_mismatch",
        "duplicate_serial",
        "serial_conflict",
        "orphan_assignment",
        "invalid_quantity",
    ]
    item_id: str | None = None
    detail: str


class ConsistencyReport(CamelModel):
    ok: bool
    issues: list[ConsistencyIssue] = Field(default_factory=list)


class ErrorOut(BaseModel):
    status: Literal["error"] = "error"
    code: str
    detail: str


__all__ = [
    "CamelModel",
    "StockItemBase",
    "StockItemCreate",
    "StockItemUpdate",
    "StockItemOut",
    "ContactBase",
    "ContactUpdate",
    "CustomerCreate",
    "CustomerUpdate",
    "CustomerOut",
    "CompanyCreate",
    "CompanyUpdate",
    "CompanyOut",
    "AssignmentCreate",
    "AssignmentReturn",
    "AssignmentOut",
    "AssignmentReturnOut",
    "MaintenanceCreate",
    "MaintenanceOut",
    "HealthStatus",
    "ReportSummary",
    "ConsistencyIssue",
    "ConsistencyReport",
    "ErrorOut",
]
