"""Assignment ledger: which customer holds which units of an item."""
from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from .errors import NotFoundError
from .records import Assignment, StockItem, _now
from .store import LedgerStore

logger = logging.getLogger(__name__)


class AssignmentLedger:
    """CRUD over assignments with merge-on-reassign semantics.

    The ledger never touches item stock; the orchestrator moves the freed or
    taken units through the serial ledger.
    """

    def __init__(self, store: LedgerStore) -> None:
        self.store = store

    async def find(self, customer_id: str, item_id: str) -> Assignment | None:
        matches = await self.store.list(Assignment, customer_id=customer_id, item_id=item_id)
        return matches[0] if matches else None

    async def require(self, customer_id: str, item_id: str) -> Assignment:
        assignment = await self.find(customer_id, item_id)
        if assignment is None:
            raise NotFoundError("Assignment", f"for customer {customer_id} and item {item_id}")
        return assignment

    async def for_item(self, item_id: str) -> list[Assignment]:
        return await self.store.list(Assignment, item_id=item_id)

    async def for_customer(self, customer_id: str) -> list[Assignment]:
        return await self.store.list(Assignment, customer_id=customer_id)

    async def assign(
        self, customer_id: str, item: StockItem, quantity: int, serials: Sequence[str] = ()
    ) -> Assignment:
        """Record ``quantity`` units (``serials`` among them) as held by the customer."""

        existing = await self.find(customer_id, item.id)
        if existing is None:
            return await self.store.create(
                Assignment(
                    customer_id=customer_id,
                    item_id=item.id,
                    kind=item.kind,
                    quantity=quantity,
                    serial_numbers=list(serials),
                )
            )
        merged = existing.serial_numbers + [
            serial for serial in serials if serial not in existing.serial_numbers
        ]
        return await self.store.update(
            Assignment,
            existing.id,
            quantity=existing.quantity + quantity,
            serial_numbers=merged,
            assigned_at=_now(),
        )

    async def unassign(self, assignment_id: str) -> Assignment:
        assignment = await self.store.require(Assignment, assignment_id)
        await self.store.delete(Assignment, assignment_id)
        return assignment

    async def partial_return(
        self, customer_id: str, item_id: str, serials: Iterable[str]
    ) -> tuple[Assignment | None, list[str]]:
        """Take the named serials out of an assignment.

        Serials the customer does not hold are ignored. Returns the remaining
        assignment (``None`` once it is emptied and deleted) and the serials
        that were actually released.
        """

        assignment = await self.require(customer_id, item_id)
        wanted = set(serials)
        released = [serial for serial in assignment.serial_numbers if serial in wanted]
        kept = [serial for serial in assignment.serial_numbers if serial not in wanted]
        return await self._shrink(assignment, len(released), kept), released

    async def release_units(self, assignment: Assignment, count: int) -> Assignment | None:
        """Drop ``count`` anonymous units from an assignment."""

        return await self._shrink(assignment, count, assignment.serial_numbers)

    async def _shrink(
        self, assignment: Assignment, count: int, serials: list[str]
    ) -> Assignment | None:
        quantity = assignment.quantity - count
        if quantity <= 0:
            await self.store.delete(Assignment, assignment.id)
            return None
        return await self.store.update(
            Assignment, assignment.id, quantity=quantity, serial_numbers=serials
        )

    async def purge(
        self, *, customer_id: str | None = None, item_id: str | None = None
    ) -> list[Assignment]:
        """Delete every assignment of a customer or of an item."""

        filters = {}
        if customer_id is not None:
            filters["customer_id"] = customer_id
        if item_id is not None:
            filters["item_id"] = item_id
        if not filters:
            raise ValueError("purge needs a customer_id or an item_id")
        removed = await self.store.list(Assignment, **filters)
        for assignment in removed:
            await self.store.delete(Assignment, assignment.id)
        if removed:
            logger.debug("Purged %d assignment(s) for %s", len(removed), filters)
        return removed


__all__ = ["AssignmentLedger"]
