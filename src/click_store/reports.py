"""Dashboard aggregates and the ledger consistency audit."""
from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta
from decimal import Decimal

from . import schemas
from .records import Assignment, Company, Customer, ItemKind, MaintenanceItem, StockItem, _now
from .store import LedgerStore


async def summarize(
    store: LedgerStore,
    *,
    low_stock_threshold: int = 10,
    recent_days: int = 7,
    now: datetime | None = None,
) -> schemas.ReportSummary:
    now = now or _now()
    items = await store.list(StockItem)
    products = [item for item in items if item.kind is ItemKind.PRODUCT]
    assignments = await store.list(Assignment)
    batches = await store.list(MaintenanceItem)
    recent_since = now - timedelta(days=recent_days)

    average_price = Decimal("0")
    if products:
        average_price = sum((p.price for p in products), Decimal("0")) / len(products)

    return schemas.ReportSummary(
        total_products=len(products),
        total_accessories=len(items) - len(products),
        total_customers=len(await store.list(Customer)),
        total_companies=len(await store.list(Company)),
        total_stock=sum(item.stock for item in items),
        low_stock_products=sum(1 for p in products if p.stock < low_stock_threshold),
        total_value=sum((item.price * item.stock for item in items), Decimal("0")),
        average_product_price=average_price.quantize(Decimal("0.01")),
        total_assignments=len(assignments),
        assigned_units=sum(a.quantity for a in assignments),
        recent_assignments=sum(1 for a in assignments if a.assigned_at > recent_since),
        maintenance_batches=len(batches),
        units_in_maintenance=sum(batch.stock for batch in batches),
    )


async def audit(store: LedgerStore) -> schemas.ConsistencyReport:
    """Check stock/serial conservation and serial disjointness for every item.

    Used after a crash or a failed commit to find records that were only
    partially written.
    """

    issues: list[schemas.ConsistencyIssue] = []
    items = {item.id: item for item in await store.list(StockItem)}
    customer_ids = {customer.id for customer in await store.list(Customer)}
    assignments = await store.list(Assignment)
    batches = await store.list(MaintenanceItem)

    for item in items.values():
        if item.serialized and item.stock != len(item.serial_numbers):
            issues.append(
                schemas.ConsistencyIssue(
                    code="stock_mismatch",
                    item_id=item.id,
                    detail=f"stock {item.stock} != {len(item.serial_numbers)} serial number(s)",
                )
            )
        repeated = [s for s, count in Counter(item.serial_numbers).items() if count > 1]
        if repeated:
            issues.append(
                schemas.ConsistencyIssue(
                    code="duplicate_serial",
                    item_id=item.id,
                    detail=f"repeated on the shelf: {', '.join(repeated)}",
                )
            )

    locations: dict[tuple[str, str], str] = {}

    def _place(item_id: str, serial: str, where: str) -> None:
        previous = locations.setdefault((item_id, serial), where)
        if previous != where:
            issues.append(
                schemas.ConsistencyIssue(
                    code="serial_conflict",
                    item_id=item_id,
                    detail=f"serial {serial} is in {previous} and in {where}",
                )
            )

    for item in items.values():
        for serial in dict.fromkeys(item.serial_numbers):
            _place(item.id, serial, "stock")
    for assignment in assignments:
        if assignment.item_id not in items or assignment.customer_id not in customer_ids:
            issues.append(
                schemas.ConsistencyIssue(
                    code="orphan_assignment",
                    item_id=assignment.item_id,
                    detail=f"assignment {assignment.id} references a missing customer or item",
                )
            )
        if assignment.quantity <= 0 or assignment.quantity < len(assignment.serial_numbers):
            issues.append(
                schemas.ConsistencyIssue(
                    code="invalid_quantity",
                    item_id=assignment.item_id,
                    detail=(
                        f"assignment {assignment.id} has quantity {assignment.quantity} "
                        f"for {len(assignment.serial_numbers)} serial number(s)"
                    ),
                )
            )
        for serial in assignment.serial_numbers:
            _place(assignment.item_id, serial, f"assignment {assignment.id}")
    for batch in batches:
        if batch.original_item_id is None:
            continue
        for serial in batch.serial_numbers:
            _place(batch.original_item_id, serial, f"maintenance batch {batch.id}")

    return schemas.ConsistencyReport(ok=not issues, issues=issues)


__all__ = ["audit", "summarize"]
