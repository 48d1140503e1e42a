"""Application configuration objects."""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pydantic settings used to configure the application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(
        default="Click Store",
        description="Human friendly name for the API.",
    )
    environment: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Deployment environment flag.",
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./click_store.db",
        description="SQLAlchemy compatible database URL.",
    )
    echo_sql: bool = Field(
        default=False,
        description="Enable SQL echo logging for debugging.",
    )
    storage_backend: Literal["sql", "json"] = Field(
        default="sql",
        description="Persistence collaborator used by the ledgers.",
    )
    json_storage_path: str = Field(
        default="./data/db.json",
        description="Location of the JSON document when storage_backend is 'json'.",
    )
    strict_stock: bool = Field(
        default=True,
        description="Reject over-assignment instead of clamping stock at zero.",
    )
    low_stock_threshold: int = Field(
        default=10,
        ge=0,
        description="Items with less stock than this are reported as low stock.",
    )
    recent_assignment_days: int = Field(
        default=7,
        ge=0,
        description="Window used by the dashboard's recent assignment counter.",
    )
    log_level: str = Field(default="INFO", description="Root logging level.")

    @field_validator("database_url")
    @classmethod
    def _validate_sqlite_path(cls, value: str) -> str:
        if value.startswith("sqlite") and ":memory:" not in value and "///" not in value:
            raise ValueError(
                "SQLite database URLs should be in the form sqlite+aiosqlite:///path/to/db"
            )
        return value


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of :class:`Settings`."""

    return Settings()


__all__ = ["Settings", "get_settings"]
