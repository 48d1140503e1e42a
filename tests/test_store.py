from __future__ import annotations

import json
from decimal import Decimal

import pytest

from click_store.database import create_engine, create_session_factory
from click_store.errors import NotFoundError, PersistenceFailure
from click_store.lifecycle import LifecycleOrchestrator
from click_store.management import import_json_document
from click_store.records import Assignment, Customer, ItemKind, MaintenanceItem, StockItem
from click_store.sql_store import SqlAlchemyStore
from click_store.store import JsonFileStore, MemoryStore


LEGACY_DOCUMENT = {
    "products": [
        {
            "id": "p1",
            "name": "Roteador",
            "price": 199.9,
            "stock": 2,
            "serialNumbers": "R1; R2",
            "createdAt": "2024-03-01T12:00:00Z",
        },
        {"id": "p2", "name": "Cabo", "price": "5.50", "stock": 40},
    ],
    "accessories": [{"id": "a1", "name": "Fonte", "price": 30, "stock": 1, "serial_numbers": ["F1"]}],
    "customers": [{"id": "c1", "name": "Ana Souza", "email": "ana@example.com"}],
    "customer_products": [
        {"id": "cp1", "customerId": "c1", "productId": "p1", "quantity": 1, "serialNumbers": "R9"}
    ],
    "customer_accessories": [
        {"id": "ca1", "customer_id": "c1", "accessory_id": "a1", "quantity": 2, "serial_numbers": []}
    ],
    "maintenance_items": [
        {"id": "m1", "name": "Roteador", "stock": 1, "originalProductId": "p1", "serialNumbers": ["R7"]}
    ],
}


@pytest.fixture()
def legacy_path(tmp_path):
    path = tmp_path / "db.json"
    path.write_text(json.dumps(LEGACY_DOCUMENT), encoding="utf-8")
    return path


async def test_json_store_reads_legacy_document(legacy_path) -> None:
    store = JsonFileStore(legacy_path)

    router = await store.get(StockItem, "p1")
    assert router.kind is ItemKind.PRODUCT
    assert router.serial_numbers == ["R1", "R2"]
    assert router.serialized
    assert router.price == Decimal("199.9")
    assert router.created_at.year == 2024

    cable = await store.get(StockItem, "p2")
    assert cable.serial_numbers == []
    assert not cable.serialized
    assert cable.stock == 40

    fonte = await store.get(StockItem, "a1")
    assert fonte.kind is ItemKind.ACCESSORY

    product_assignment = await store.get(Assignment, "cp1")
    assert product_assignment.item_id == "p1"
    assert product_assignment.serial_numbers == ["R9"]
    accessory_assignment = await store.get(Assignment, "ca1")
    assert accessory_assignment.item_id == "a1"
    assert accessory_assignment.kind is ItemKind.ACCESSORY

    batch = await store.get(MaintenanceItem, "m1")
    assert batch.original_item_id == "p1"
    assert batch.serial_numbers == ["R7"]


async def test_json_store_commit_writes_snake_case_document(legacy_path) -> None:
    store = JsonFileStore(legacy_path)
    orchestrator = LifecycleOrchestrator(store)

    await orchestrator.assign_by_quantity("c1", "p1", 1)

    document = json.loads(legacy_path.read_text(encoding="utf-8"))
    router = next(row for row in document["products"] if row["id"] == "p1")
    assert router["serial_numbers"] == ["R2"]
    assert router["stock"] == 1
    assert "serialNumbers" not in router
    assignment = next(row for row in document["customer_products"] if row["id"] == "cp1")
    assert assignment["product_id"] == "p1"
    assert assignment["quantity"] == 2
    assert assignment["serial_numbers"] == ["R9", "R1"]
    assert document["maintenance_items"][0]["original_product_id"] == "p1"
    assert [row["id"] for row in document["products"]] == ["p1", "p2"]

    reloaded = JsonFileStore(legacy_path)
    assert (await reloaded.get(StockItem, "p1")).serial_numbers == ["R2"]
    assert (await reloaded.get(Assignment, "cp1")).quantity == 2


async def test_json_store_rejected_operation_leaves_file_untouched(legacy_path) -> None:
    store = JsonFileStore(legacy_path)
    orchestrator = LifecycleOrchestrator(store)
    before = legacy_path.read_text(encoding="utf-8")

    with pytest.raises(NotFoundError):
        await orchestrator.assign_by_quantity("missing", "p2", 1)

    assert legacy_path.read_text(encoding="utf-8") == before
    assert (await store.get(StockItem, "p2")).stock == 40


async def test_json_store_creates_missing_file(tmp_path) -> None:
    path = tmp_path / "data" / "db.json"

    store = JsonFileStore(path)

    assert path.exists()
    document = json.loads(path.read_text(encoding="utf-8"))
    assert document["products"] == []
    assert document["maintenance_items"] == []
    assert await store.list(StockItem) == []


def test_json_store_rejects_corrupt_file(tmp_path) -> None:
    path = tmp_path / "db.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(PersistenceFailure):
        JsonFileStore(path)


async def test_memory_store_hands_out_copies() -> None:
    store = MemoryStore()
    customer = await store.create(Customer(name="Ana Souza"))

    customer.name = "changed"

    assert (await store.get(Customer, customer.id)).name == "Ana Souza"


async def test_memory_store_rollback_restores_last_commit() -> None:
    store = MemoryStore()
    kept = await store.create(Customer(name="Kept"))
    await store.commit()

    await store.create(Customer(name="Dropped"))
    await store.update(Customer, kept.id, name="Renamed")
    await store.rollback()

    customers = await store.list(Customer)
    assert [c.name for c in customers] == ["Kept"]


async def test_memory_store_reports_missing_records() -> None:
    store = MemoryStore()

    assert await store.get(Customer, "nope") is None
    with pytest.raises(NotFoundError):
        await store.require(Customer, "nope")
    with pytest.raises(NotFoundError):
        await store.update(Customer, "nope", name="x")
    with pytest.raises(NotFoundError):
        await store.delete(Customer, "nope")


async def test_import_json_document_into_sql(legacy_path, test_settings) -> None:
    db_engine = create_engine(test_settings)
    try:
        imported = await import_json_document(legacy_path, db_engine)
        again = await import_json_document(legacy_path, db_engine)

        async with create_session_factory(db_engine)() as session:
            store = SqlAlchemyStore(session)
            router = await store.get(StockItem, "p1")
            batch = await store.get(MaintenanceItem, "m1")
    finally:
        await db_engine.dispose()

    assert imported["StockItem"] == 3
    assert imported["Assignment"] == 2
    assert set(again.values()) == {0}
    assert router.serial_numbers == ["R1", "R2"]
    assert router.price == Decimal("199.90")
    assert batch.original_item_id == "p1"


async def test_json_store_keeps_shelf_positions_of_a_batch(legacy_path) -> None:
    store = JsonFileStore(legacy_path)
    orchestrator = LifecycleOrchestrator(store)

    batch = await orchestrator.send_to_maintenance("p1", serials=["R2"])

    reloaded = JsonFileStore(legacy_path)
    assert (await reloaded.get(MaintenanceItem, batch.id)).shelf_positions == {"R2": 1}
    restored = await LifecycleOrchestrator(reloaded).restore_from_maintenance(batch.id)
    assert restored.serial_numbers == ["R1", "R2"]
