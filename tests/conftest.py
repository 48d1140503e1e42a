from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Sequence

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from click_store import schemas
from click_store.api import create_app
from click_store.config import Settings
from click_store.lifecycle import LifecycleOrchestrator
from click_store.management import init_database
from click_store.records import ItemKind, StockItem
from click_store.store import MemoryStore


@pytest.fixture()
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture()
def orchestrator(store: MemoryStore) -> LifecycleOrchestrator:
    return LifecycleOrchestrator(store)


async def make_item(
    orchestrator: LifecycleOrchestrator,
    serials: Sequence[str] = (),
    *,
    stock: int | None = None,
    name: str = "Roteador",
    kind: ItemKind = ItemKind.PRODUCT,
) -> StockItem:
    payload = schemas.StockItemCreate(
        name=name, price="120.00", serial_numbers=list(serials), stock=stock
    )
    return await orchestrator.create_item(kind, payload)


@pytest.fixture()
def test_settings(tmp_path) -> Settings:
    db_path = tmp_path / "test.db"
    return Settings(
        database_url=f"sqlite+aiosqlite:///{db_path}",
        environment="test",
        app_name="Test Click Store",
    )


@pytest.fixture()
async def app(test_settings: Settings) -> AsyncIterator[FastAPI]:
    app = create_app(test_settings)
    await init_database(app.state.engine)

    yield app

    await app.state.engine.dispose()


@pytest.fixture()
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
