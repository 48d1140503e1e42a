"""Database tables backing the ledgers."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base
from .records import ItemKind, _now

_KIND = Enum(ItemKind, native_enum=False, length=16, values_callable=lambda kinds: [k.value for k in kinds])


class TimestampMixin:
    """Mixin providing created/updated timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class StockItemRow(Base, TimestampMixin):
    __tablename__ = "stock_items"
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_stock_items_stock_positive"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    kind: Mapped[ItemKind] = mapped_column(_KIND, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    category: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    brand: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    serial_numbers: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    serialized: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class CustomerRow(Base, TimestampMixin):
    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    phone: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    address: Mapped[str] = mapped_column(String(255), default="", nullable=False)


class CompanyRow(Base, TimestampMixin):
    __tablename__ = "companies"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    phone: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    address: Mapped[str] = mapped_column(String(255), default="", nullable=False)


class AssignmentRow(Base):
    __tablename__ = "assignments"
    __table_args__ = (
        UniqueConstraint("customer_id", "item_id", name="uq_assignments_customer_item"),
        CheckConstraint("quantity > 0", name="ck_assignments_quantity_positive"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    kind: Mapped[ItemKind] = mapped_column(_KIND, nullable=False)
    customer_id: Mapped[str] = mapped_column(
        ForeignKey("customers.id", ondelete="CASCADE"), index=True, nullable=False
    )
    item_id: Mapped[str] = mapped_column(
        ForeignKey("stock_items.id", ondelete="CASCADE"), index=True, nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    serial_numbers: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, nullable=False
    )


class MaintenanceRow(Base):
    __tablename__ = "maintenance_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    kind: Mapped[ItemKind] = mapped_column(_KIND, nullable=False)
    # No foreign key: a whole-item transfer deletes the original row.
    original_item_id: Mapped[str | None] = mapped_column(String(36), index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    category: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    brand: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    serial_numbers: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    shelf_positions: Mapped[dict[str, int]] = mapped_column(JSON, default=dict, nullable=False)
    company_id: Mapped[str | None] = mapped_column(
        ForeignKey("companies.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, nullable=False
    )


__all__ = [
    "AssignmentRow",
    "CompanyRow",
    "CustomerRow",
    "MaintenanceRow",
    "StockItemRow",
]
