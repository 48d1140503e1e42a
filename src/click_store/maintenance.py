"""Maintenance ledger: units pulled out of circulation for repair."""
from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from .errors import SerialConflictError
from .records import MaintenanceItem, StockItem, _now
from .store import LedgerStore

logger = logging.getLogger(__name__)


def _snapshot(
    item: StockItem,
    stock: int,
    serials: Sequence[str],
    company_id: str | None,
    positions: Mapping[str, int] | None = None,
) -> MaintenanceItem:
    return MaintenanceItem(
        kind=item.kind,
        original_item_id=item.id,
        name=item.name,
        description=item.description,
        price=item.price,
        category=item.category,
        brand=item.brand,
        stock=stock,
        serial_numbers=list(serials),
        shelf_positions=dict(positions or {}),
        company_id=company_id,
    )


def _reinsert(
    shelf: Sequence[str], added: Sequence[str], positions: Mapping[str, int]
) -> list[str]:
    """Put restored serials back at their old shelf index where one is known."""

    merged = list(shelf)
    for index, serial in sorted((positions[s], s) for s in added if s in positions):
        merged.insert(min(index, len(merged)), serial)
    merged.extend(serial for serial in added if serial not in positions)
    return merged


class MaintenanceLedger:
    def __init__(self, store: LedgerStore) -> None:
        self.store = store

    async def list(self, company_id: str | None = None) -> list[MaintenanceItem]:
        if company_id is None:
            return await self.store.list(MaintenanceItem)
        return await self.store.list(MaintenanceItem, company_id=company_id)

    async def for_item(self, item_id: str) -> list[MaintenanceItem]:
        return await self.store.list(MaintenanceItem, original_item_id=item_id)

    async def send_batch(
        self,
        item: StockItem,
        *,
        serials: Sequence[str] = (),
        count: int | None = None,
        company_id: str | None = None,
        positions: Mapping[str, int] | None = None,
    ) -> MaintenanceItem:
        """Open a batch for units already taken off the source item.

        ``count`` defaults to the number of serials; any excess is anonymous.
        ``positions`` holds the shelf index of each serial that came off the shelf.
        """

        stock = len(serials) if count is None else count
        return await self.store.create(_snapshot(item, stock, serials, company_id, positions))

    async def convert_whole(self, item: StockItem, company_id: str | None = None) -> MaintenanceItem:
        """Turn the whole item into a maintenance batch and delete the item record."""

        batch = await self.store.create(
            _snapshot(item, item.stock, item.serial_numbers, company_id)
        )
        await self.store.delete(StockItem, item.id)
        return batch

    async def restore(self, maintenance_id: str, *, strict: bool = True) -> StockItem:
        """Merge a batch back into its original item, recreating the item if needed."""

        batch = await self.store.require(MaintenanceItem, maintenance_id)
        existing = None
        if batch.original_item_id is not None:
            existing = await self.store.get(StockItem, batch.original_item_id)

        if existing is None:
            restored = StockItem(
                kind=batch.kind,
                name=batch.name,
                description=batch.description,
                price=batch.price,
                category=batch.category,
                brand=batch.brand,
                stock=batch.stock,
                serial_numbers=list(batch.serial_numbers),
                serialized=bool(batch.serial_numbers),
            )
            if batch.original_item_id is not None:
                restored.id = batch.original_item_id
            item = await self.store.create(restored)
        else:
            overlap = [s for s in batch.serial_numbers if s in existing.serial_numbers]
            if overlap:
                if strict:
                    raise SerialConflictError(
                        f"Item {existing.id} already holds serial numbers from the batch",
                        overlap,
                    )
                logger.warning(
                    "Restoring batch %s: serials already on item %s: %s",
                    batch.id,
                    existing.id,
                    overlap,
                )
            added = [s for s in batch.serial_numbers if s not in existing.serial_numbers]
            merged = _reinsert(existing.serial_numbers, added, batch.shelf_positions)
            item = await self.store.update(
                StockItem,
                existing.id,
                # Overlapping serials are already counted in the item stock.
                stock=existing.stock + batch.stock - len(overlap),
                serial_numbers=merged,
                serialized=existing.serialized or bool(batch.serial_numbers),
                updated_at=_now(),
            )
        await self.store.delete(MaintenanceItem, batch.id)
        return item

    async def discard(self, maintenance_id: str) -> MaintenanceItem:
        batch = await self.store.require(MaintenanceItem, maintenance_id)
        await self.store.delete(MaintenanceItem, batch.id)
        return batch

    async def detach_company(self, company_id: str) -> int:
        batches = await self.list(company_id)
        for batch in batches:
            await self.store.update(MaintenanceItem, batch.id, company_id=None)
        return len(batches)


__all__ = ["MaintenanceLedger"]
