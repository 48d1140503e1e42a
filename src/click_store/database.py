"""Database engine and session helpers."""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .config import Settings, get_settings


class Base(DeclarativeBase):
    """Base class for the ledger tables."""


def create_engine(settings: Settings | None = None) -> AsyncEngine:
    """Create an async engine for ``settings`` (the cached settings by default)."""

    settings = settings or get_settings()
    return create_async_engine(settings.database_url, echo=settings.echo_sql)


def create_session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Records are copied out of rows, so nothing needs reloading after commit.
    return async_sessionmaker(bind=db_engine, expire_on_commit=False)


engine = create_engine()


__all__ = ["Base", "create_engine", "create_session_factory", "engine"]
