"""ASGI entrypoint for running the service."""
from __future__ import annotations

import logging

import uvicorn

from .config import get_settings


def run() -> None:
    """Convenience wrapper used by ``python -m click_store``."""

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "click_store.api:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
