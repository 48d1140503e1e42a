"""SQLAlchemy implementation of the ledger store."""
from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from copy import copy
from dataclasses import fields
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import NotFoundError, PersistenceFailure
from .models import AssignmentRow, CompanyRow, CustomerRow, MaintenanceRow, StockItemRow
from .records import ENTITY_NAMES, Assignment, Company, Customer, MaintenanceItem, StockItem
from .store import LedgerStore, R

logger = logging.getLogger(__name__)

ROW_TYPES: dict[type, type] = {
    StockItem: StockItemRow,
    Customer: CustomerRow,
    Company: CompanyRow,
    Assignment: AssignmentRow,
    MaintenanceItem: MaintenanceRow,
}


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("Database error while %s", action)
        raise PersistenceFailure(f"Database error while {action}") from exc


def _detach(value: Any) -> Any:
    # JSON columns only see a change when they get a new container.
    if isinstance(value, (list, dict)):
        return copy(value)
    return value


def _to_record(entity: type[R], row: Any) -> R:
    values: dict[str, Any] = {}
    for field in fields(entity):
        value = getattr(row, field.name)
        # SQLite drops tzinfo on the way back.
        if isinstance(value, datetime) and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        values[field.name] = _detach(value)
    return entity(**values)


def _to_values(record: Any) -> dict[str, Any]:
    return {field.name: _detach(getattr(record, field.name)) for field in fields(record)}


class SqlAlchemyStore(LedgerStore):
    """Ledger store bound to one :class:`AsyncSession` (one request)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list(self, entity: type[R], **filters: Any) -> list[R]:
        model = ROW_TYPES[entity]
        order_column = model.assigned_at if model is AssignmentRow else model.created_at
        stmt = select(model).filter_by(**filters).order_by(order_column, model.id)
        with _translate_errors(f"listing {entity.__name__}"):
            result = await self.session.execute(stmt)
        return [_to_record(entity, row) for row in result.scalars().all()]

    async def _row(self, entity: type, record_id: str) -> Any:
        with _translate_errors(f"loading {entity.__name__} {record_id}"):
            return await self.session.get(ROW_TYPES[entity], record_id)

    async def get(self, entity: type[R], record_id: str) -> R | None:
        row = await self._row(entity, record_id)
        return None if row is None else _to_record(entity, row)

    async def create(self, record: R) -> R:
        entity = type(record)
        row = ROW_TYPES[entity](**_to_values(record))
        with _translate_errors(f"creating {entity.__name__} {record.id}"):
            self.session.add(row)
            await self.session.flush()
        return _to_record(entity, row)

    async def update(self, entity: type[R], record_id: str, **changes: Any) -> R:
        row = await self._row(entity, record_id)
        if row is None:
            raise NotFoundError(ENTITY_NAMES[entity], record_id)
        for key, value in changes.items():
            if not hasattr(row, key):
                raise AttributeError(f"{entity.__name__} has no field {key!r}")
            setattr(row, key, _detach(value))
        with _translate_errors(f"updating {entity.__name__} {record_id}"):
            await self.session.flush()
        return _to_record(entity, row)

    async def delete(self, entity: type[R], record_id: str) -> None:
        row = await self._row(entity, record_id)
        if row is None:
            raise NotFoundError(ENTITY_NAMES[entity], record_id)
        with _translate_errors(f"deleting {entity.__name__} {record_id}"):
            await self.session.delete(row)
            await self.session.flush()

    async def commit(self) -> None:
        with _translate_errors("committing"):
            await self.session.commit()

    async def rollback(self) -> None:
        with _translate_errors("rolling back"):
            await self.session.rollback()


__all__ = ["ROW_TYPES", "SqlAlchemyStore"]
