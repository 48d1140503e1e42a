"""Lifecycle orchestrator: moves units between the Available, Assigned and
InMaintenance pools.

Every public operation is one unit of work. It takes per-record locks, checks
its preconditions before writing anything, applies all ledger writes and
commits; on any failure the store is rolled back so no half-applied
transition becomes durable.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import AsyncExitStack, asynccontextmanager

from . import crud, schemas
from .assignments import AssignmentLedger
from .errors import (
    InsufficientStockError,
    InvariantViolation,
    NotFoundError,
    PersistenceFailure,
    SerialConflictError,
)
from .maintenance import MaintenanceLedger
from .records import (
    Assignment,
    Company,
    Customer,
    ItemKind,
    MaintenanceItem,
    StockItem,
    _now,
)
from .serials import duplicates, normalize_serials, remove_serials, return_serials, take_serials
from .store import LedgerStore

logger = logging.getLogger(__name__)


class Pool(str, enum.Enum):
    """The three mutually exclusive places a unit can be."""

    AVAILABLE = "available"
    ASSIGNED = "assigned"
    IN_MAINTENANCE = "in_maintenance"


class RecordLocks:
    """Process wide asyncio locks keyed by record, shared by all orchestrators."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        # Tasks holding or waiting for each lock; a lock is dropped at zero.
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        # Sorted acquisition keeps two multi-key operations from deadlocking.
        ordered = sorted(set(keys))
        for key in ordered:
            self._locks.setdefault(key, asyncio.Lock())
            self._users[key] = self._users.get(key, 0) + 1
        try:
            async with AsyncExitStack() as stack:
                for key in ordered:
                    await stack.enter_async_context(self._locks[key])
                yield
        finally:
            for key in ordered:
                self._users[key] -= 1
                if not self._users[key]:
                    del self._users[key]
                    del self._locks[key]


def _item_key(item_id: str) -> str:
    return f"item:{item_id}"


def _customer_key(customer_id: str) -> str:
    return f"customer:{customer_id}"


class LifecycleOrchestrator:
    """The only writer of stock items, assignments and maintenance batches.

    ``strict`` rejects over-assignment and unknown serials with typed errors.
    With ``strict=False`` the legacy best-effort behaviour is used: stock is
    floored at zero and missing serials are skipped.
    """

    def __init__(
        self,
        store: LedgerStore,
        *,
        locks: RecordLocks | None = None,
        strict: bool = True,
    ) -> None:
        self.store = store
        self.locks = locks or RecordLocks()
        self.strict = strict
        self.assignments = AssignmentLedger(store)
        self.maintenance = MaintenanceLedger(store)

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------
    @asynccontextmanager
    async def _unit_of_work(self, operation: str, *keys: str) -> AsyncIterator[None]:
        async with self.locks.hold(*keys):
            try:
                yield
                await self.store.commit()
            except Exception as exc:
                await self._rollback(operation, exc)
                raise

    async def _rollback(self, operation: str, cause: Exception) -> None:
        if isinstance(cause, PersistenceFailure):
            logger.error("%s failed in storage; rolling back: %s", operation, cause)
        else:
            logger.info("%s rejected: %s", operation, cause)
        try:
            await self.store.rollback()
        except PersistenceFailure:
            logger.critical(
                "Consistency warning: rollback of %s failed, ledgers may be partially written",
                operation,
            )
            raise

    async def _save_item(self, item: StockItem) -> StockItem:
        return await self.store.update(
            StockItem,
            item.id,
            stock=item.stock,
            serial_numbers=item.serial_numbers,
            serialized=item.serialized,
            updated_at=_now(),
        )

    def _clamp(self, item: StockItem, requested: int, available: int) -> None:
        if requested <= available:
            return
        if self.strict:
            raise InsufficientStockError(item.id, requested, available)
        logger.warning(
            "Item %s: %d unit(s) requested but only %d available; clamping",
            item.id,
            requested,
            available,
        )

    def _reject_unknown(self, message: str, unknown: list[str]) -> None:
        if not unknown:
            return
        if self.strict:
            raise SerialConflictError(message, unknown)
        logger.warning("%s (ignored): %s", message, ", ".join(unknown))

    def _check_duplicates(self, serials: list[str]) -> None:
        repeated = duplicates(serials)
        if repeated:
            raise SerialConflictError("Duplicate serial numbers in request", repeated)

    # ------------------------------------------------------------------
    # Available -> Assigned
    # ------------------------------------------------------------------
    async def assign_by_quantity(self, customer_id: str, item_id: str, quantity: int) -> Assignment:
        """Assign ``quantity`` units; serialized items hand out their first serials."""

        if quantity <= 0:
            raise InvariantViolation("Quantity must be greater than zero")
        async with self._unit_of_work(
            "assign_by_quantity", _item_key(item_id), _customer_key(customer_id)
        ):
            await self.store.require(Customer, customer_id)
            item = await self.store.require(StockItem, item_id)
            self._clamp(item, quantity, item.stock)

            taken, item.serial_numbers = take_serials(item, quantity)
            item.stock = max(0, item.stock - quantity)
            await self._save_item(item)
            assignment = await self.assignments.assign(customer_id, item, quantity, taken)
        logger.info(
            "Assigned %d unit(s) of %s to customer %s (serials: %s)",
            quantity,
            item_id,
            customer_id,
            taken,
        )
        return assignment

    async def assign_by_serials(
        self, customer_id: str, item_id: str, serials: Iterable[str]
    ) -> Assignment:
        requested = normalize_serials(serials)
        if not requested:
            raise InvariantViolation("At least one serial number is required")
        self._check_duplicates(requested)
        async with self._unit_of_work(
            "assign_by_serials", _item_key(item_id), _customer_key(customer_id)
        ):
            await self.store.require(Customer, customer_id)
            item = await self.store.require(StockItem, item_id)
            self._reject_unknown(
                f"Serial numbers not available on item {item_id}",
                [serial for serial in requested if serial not in item.serial_numbers],
            )
            moved = remove_serials(item, requested)
            if not moved:
                raise InvariantViolation(f"None of the serial numbers are on item {item_id}")
            await self._save_item(item)
            assignment = await self.assignments.assign(customer_id, item, len(moved), moved)
        logger.info("Assigned serials %s of %s to customer %s", moved, item_id, customer_id)
        return assignment

    # ------------------------------------------------------------------
    # Assigned -> Available
    # ------------------------------------------------------------------
    async def return_to_stock(
        self,
        customer_id: str,
        item_id: str,
        serials: Iterable[str] = (),
        quantity: int | None = None,
    ) -> tuple[Assignment | None, StockItem]:
        """Return named serials and/or anonymous units from a customer to the shelf.

        Returns the remaining assignment (``None`` once emptied) and the item.
        """

        requested = normalize_serials(serials)
        if not requested and not quantity:
            raise InvariantViolation("Nothing to return")
        if quantity is not None and quantity < 0:
            raise InvariantViolation("Quantity must not be negative")
        self._check_duplicates(requested)
        async with self._unit_of_work(
            "return_to_stock", _item_key(item_id), _customer_key(customer_id)
        ):
            item = await self.store.require(StockItem, item_id)
            assignment: Assignment | None = await self.assignments.require(customer_id, item_id)

            released: list[str] = []
            if requested:
                self._reject_unknown(
                    f"Serial numbers not held by customer {customer_id}",
                    [s for s in requested if s not in assignment.serial_numbers],
                )
                assignment, released = await self.assignments.partial_return(
                    customer_id, item_id, requested
                )

            anonymous = 0
            if quantity:
                available = assignment.anonymous_units if assignment is not None else 0
                self._clamp(item, quantity, available)
                anonymous = min(quantity, available)
                if anonymous:
                    assignment = await self.assignments.release_units(assignment, anonymous)

            return_serials(item, released, anonymous=anonymous)
            item = await self._save_item(item)
        logger.info(
            "Customer %s returned %d unit(s) of %s (serials: %s)",
            customer_id,
            len(released) + anonymous,
            item_id,
            released,
        )
        return assignment, item

    async def remove_assignment(self, assignment_id: str) -> Assignment:
        """Delete an assignment and put every unit it held back on the shelf."""

        current = await self.store.require(Assignment, assignment_id)
        async with self._unit_of_work(
            "remove_assignment", _item_key(current.item_id), _customer_key(current.customer_id)
        ):
            assignment = await self.assignments.unassign(assignment_id)
            await self._restock(assignment)
        logger.info("Removed assignment %s", assignment_id)
        return assignment

    async def _restock(self, assignment: Assignment) -> None:
        item = await self.store.get(StockItem, assignment.item_id)
        if item is None:
            logger.warning(
                "Assignment %s references missing item %s; units dropped",
                assignment.id,
                assignment.item_id,
            )
            return
        return_serials(item, assignment.serial_numbers, anonymous=assignment.anonymous_units)
        await self._save_item(item)

    # ------------------------------------------------------------------
    # Available / Assigned -> InMaintenance
    # ------------------------------------------------------------------
    async def send_to_maintenance(
        self,
        item_id: str,
        *,
        company_id: str | None = None,
        serials: Iterable[str] | None = None,
        quantity: int | None = None,
    ) -> MaintenanceItem:
        """Open a maintenance batch.

        Named serials are taken from the shelf or, when a customer holds them,
        out of that customer's assignment. ``quantity`` moves shelf units (first
        serials in stored order). With neither, the whole item record becomes
        the batch; the item and every assignment of it are deleted.
        """

        requested = normalize_serials(serials)
        self._check_duplicates(requested)
        if quantity is not None and quantity <= 0:
            raise InvariantViolation("Quantity must be greater than zero")
        async with self._unit_of_work("send_to_maintenance", _item_key(item_id)):
            item = await self.store.require(StockItem, item_id)
            if company_id is not None:
                await self.store.require(Company, company_id)

            if requested:
                batch = await self._send_serials(item, requested, company_id)
            elif quantity is not None:
                self._clamp(item, quantity, item.stock)
                count = min(quantity, item.stock)
                if not count:
                    raise InvariantViolation(f"Item {item_id} has no stock to send")
                taken, item.serial_numbers = take_serials(item, count)
                item.stock -= count
                await self._save_item(item)
                batch = await self.maintenance.send_batch(
                    item,
                    serials=taken,
                    count=count,
                    company_id=company_id,
                    positions={serial: index for index, serial in enumerate(taken)},
                )
            else:
                dropped = await self.assignments.purge(item_id=item.id)
                if dropped:
                    logger.warning(
                        "Whole-item maintenance of %s deleted %d customer assignment(s): %s",
                        item.id,
                        len(dropped),
                        [assignment.id for assignment in dropped],
                    )
                batch = await self.maintenance.convert_whole(item, company_id)
        logger.info(
            "Sent %d unit(s) of %s to maintenance batch %s", batch.stock, item_id, batch.id
        )
        return batch

    async def _send_serials(
        self, item: StockItem, requested: list[str], company_id: str | None
    ) -> MaintenanceItem:
        holders: dict[str, Assignment] = {}
        for assignment in await self.assignments.for_item(item.id):
            for serial in assignment.serial_numbers:
                holders[serial] = assignment
        self._reject_unknown(
            f"Serial numbers unknown to item {item.id}",
            [s for s in requested if s not in item.serial_numbers and s not in holders],
        )

        shelf_index = {serial: index for index, serial in enumerate(item.serial_numbers)}
        on_shelf = remove_serials(item, requested)
        by_customer: dict[str, list[str]] = {}
        for serial in requested:
            if serial not in on_shelf and serial in holders:
                by_customer.setdefault(holders[serial].customer_id, []).append(serial)
        for customer_id, held in by_customer.items():
            await self.assignments.partial_return(customer_id, item.id, held)

        moved = [
            serial
            for serial in requested
            if serial in on_shelf or serial in holders
        ]
        if not moved:
            raise InvariantViolation(f"None of the serial numbers belong to item {item.id}")
        await self._save_item(item)
        return await self.maintenance.send_batch(
            item,
            serials=moved,
            company_id=company_id,
            positions={serial: shelf_index[serial] for serial in on_shelf},
        )

    # ------------------------------------------------------------------
    # InMaintenance -> Available
    # ------------------------------------------------------------------
    async def restore_from_maintenance(self, maintenance_id: str) -> StockItem:
        batch = await self.store.require(MaintenanceItem, maintenance_id)
        keys = [f"maintenance:{maintenance_id}"]
        if batch.original_item_id is not None:
            keys.append(_item_key(batch.original_item_id))
        async with self._unit_of_work("restore_from_maintenance", *keys):
            item = await self.maintenance.restore(maintenance_id, strict=self.strict)
        logger.info("Restored maintenance batch %s into item %s", maintenance_id, item.id)
        return item

    async def discard_maintenance(self, maintenance_id: str) -> MaintenanceItem:
        """Remove a batch for good; its units leave the inventory."""

        async with self._unit_of_work(
            "discard_maintenance", f"maintenance:{maintenance_id}"
        ):
            batch = await self.maintenance.discard(maintenance_id)
        logger.info("Discarded maintenance batch %s (%d unit(s))", batch.id, batch.stock)
        return batch

    # ------------------------------------------------------------------
    # Catalog writes and cascades
    # ------------------------------------------------------------------
    async def create_item(self, kind: ItemKind, data: schemas.StockItemCreate) -> StockItem:
        async with self._unit_of_work("create_item"):
            item = await crud.create_item(self.store, kind, data)
        logger.info("Created %s %s with %d unit(s)", kind.value, item.id, item.stock)
        return item

    async def update_item(
        self, kind: ItemKind, item_id: str, data: schemas.StockItemUpdate
    ) -> StockItem:
        async with self._unit_of_work("update_item", _item_key(item_id)):
            item = await crud.get_item(self.store, kind, item_id)
            item = await crud.update_item(self.store, item, data)
        return item

    async def delete_item(self, kind: ItemKind, item_id: str) -> list[Assignment]:
        """Delete an item together with every assignment referencing it."""

        async with self._unit_of_work("delete_item", _item_key(item_id)):
            item = await crud.get_item(self.store, kind, item_id)
            dropped = await self.assignments.purge(item_id=item.id)
            await self.store.delete(StockItem, item.id)
        logger.info("Deleted %s %s and %d assignment(s)", kind.value, item_id, len(dropped))
        return dropped

    async def create_customer(self, data: schemas.CustomerCreate) -> Customer:
        async with self._unit_of_work("create_customer"):
            return await crud.create_contact(self.store, Customer, data)

    async def update_customer(self, customer_id: str, data: schemas.CustomerUpdate) -> Customer:
        async with self._unit_of_work("update_customer", _customer_key(customer_id)):
            return await crud.update_contact(self.store, Customer, customer_id, data)

    async def delete_customer(self, customer_id: str) -> list[Assignment]:
        """Delete a customer; the units they held go back to Available."""

        # Assignments are only created under the customer key, so the item set
        # read here cannot grow before commit. Customer keys sort before item
        # keys, which keeps this nested acquisition in the global lock order.
        async with self.locks.hold(_customer_key(customer_id)):
            held = await self.assignments.for_customer(customer_id)
            item_keys = {_item_key(a.item_id) for a in held}
            async with self._unit_of_work("delete_customer", *item_keys):
                await self.store.require(Customer, customer_id)
                returned = await self.assignments.purge(customer_id=customer_id)
                for assignment in returned:
                    await self._restock(assignment)
                await self.store.delete(Customer, customer_id)
        logger.info(
            "Deleted customer %s and returned %d assignment(s) to stock",
            customer_id,
            len(returned),
        )
        return returned

    async def create_company(self, data: schemas.CompanyCreate) -> Company:
        async with self._unit_of_work("create_company"):
            return await crud.create_contact(self.store, Company, data)

    async def update_company(self, company_id: str, data: schemas.CompanyUpdate) -> Company:
        async with self._unit_of_work("update_company", f"company:{company_id}"):
            return await crud.update_contact(self.store, Company, company_id, data)

    async def delete_company(self, company_id: str) -> None:
        async with self._unit_of_work("delete_company", f"company:{company_id}"):
            await self.store.require(Company, company_id)
            detached = await self.maintenance.detach_company(company_id)
            await self.store.delete(Company, company_id)
        logger.info("Deleted company %s (%d batch(es) detached)", company_id, detached)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    async def locate(self, item_id: str, serial: str) -> tuple[Pool, str]:
        """Return the pool holding ``serial`` and the id of the record holding it."""

        item = await self.store.get(StockItem, item_id)
        if item is not None and serial in item.serial_numbers:
            return Pool.AVAILABLE, item.id
        for assignment in await self.assignments.for_item(item_id):
            if serial in assignment.serial_numbers:
                return Pool.ASSIGNED, assignment.id
        for batch in await self.maintenance.for_item(item_id):
            if serial in batch.serial_numbers:
                return Pool.IN_MAINTENANCE, batch.id
        raise NotFoundError("Serial", f"{serial} of item {item_id}")


__all__ = ["LifecycleOrchestrator", "Pool", "RecordLocks"]
