"""Administrative tasks: creating the schema and importing JSON documents."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncEngine

from . import models  # noqa: F401  registers the tables on Base.metadata
from .config import get_settings
from .database import Base, create_session_factory, engine
from .sql_store import SqlAlchemyStore
from .store import ENTITIES, JsonFileStore

logger = logging.getLogger(__name__)


async def init_database(db_engine: AsyncEngine | None = None) -> None:
    """Create the ledger tables if they do not exist yet."""

    engine_to_use = db_engine or engine
    async with engine_to_use.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def import_json_document(
    path: Path | str, db_engine: AsyncEngine | None = None
) -> dict[str, int]:
    """Copy every record of a JSON document into the database.

    Records whose id already exists are skipped, so the import can be re-run.
    Returns the number of imported records per entity.
    """

    engine_to_use = db_engine or engine
    await init_database(engine_to_use)
    source = JsonFileStore(path)
    imported: dict[str, int] = {}
    async with create_session_factory(engine_to_use)() as session:
        target = SqlAlchemyStore(session)
        try:
            # Parents before children so foreign keys resolve.
            for entity in ENTITIES:
                count = 0
                for record in await source.list(entity):
                    if await target.get(entity, record.id) is None:
                        await target.create(record)
                        count += 1
                imported[entity.__name__] = count
            await target.commit()
        except Exception:
            await target.rollback()
            raise
    logger.info("Imported %s from %s", imported, path)
    return imported


def cli_init_database() -> None:
    """CLI wrapper executed from :mod:`python -m`."""

    asyncio.run(init_database())


def cli_import_json() -> None:
    """Import the configured JSON document into the configured database."""

    logging.basicConfig(level=logging.INFO)
    asyncio.run(import_json_document(get_settings().json_storage_path))


if __name__ == "__main__":
    cli_init_database()
