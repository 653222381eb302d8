"""Engine construction and health probing for the lead database."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel, create_engine

from leadsniper.config import settings

logger = logging.getLogger(__name__)

# async (or psycopg3) driver suffix -> sync driver suffix
_SYNC_DRIVERS = {"+asyncpg": "+psycopg2", "+psycopg": "+psycopg2", "+aiosqlite": ""}

_SSL_TRUTHY = {"1", "true", "require", "required", "yes"}


def coerce_sync_database_url(url: URL) -> tuple[str, dict[str, Any], str]:
    """Rewrite ``url`` for a sync driver.

    Returns the rendered URL, driver ``connect_args`` and the final driver name.
    An asyncpg-style ``ssl=...`` query flag becomes psycopg2 ``sslmode=require``.
    """
    drivername = url.drivername
    for suffix, replacement in _SYNC_DRIVERS.items():
        if drivername.endswith(suffix):
            drivername = drivername[: -len(suffix)] + replacement
            break

    query = dict(url.query)
    ssl_flag = str(query.pop("ssl", "")).lower()
    connect_args: dict[str, Any] = {}
    if drivername.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    elif ssl_flag in _SSL_TRUTHY and "sslmode" not in query:
        connect_args["sslmode"] = "require"

    rewritten = url.set(drivername=drivername, query=query)
    return rewritten.render_as_string(hide_password=False), connect_args, drivername


def backend_tag(drivername: str) -> str:
    """Short label for metrics and logs: ``sqlite`` or ``postgres``."""
    return "sqlite" if drivername.startswith("sqlite") else "postgres"


def create_database_engine(
    database_url: str,
    *,
    pool_min_size: int | None = None,
    pool_max_size: int | None = None,
    auto_create_schema: bool = False,
) -> tuple[Engine, str]:
    if not database_url:
        raise ValueError("DATABASE_URL is required to create a database engine.")

    sync_url, connect_args, drivername = coerce_sync_database_url(make_url(database_url))
    tag = backend_tag(drivername)
    engine_kwargs: dict[str, Any] = {"connect_args": connect_args}
    if tag != "sqlite":
        size = max(pool_min_size or settings.db_pool_min_size, 1)
        ceiling = max(pool_max_size or settings.db_pool_max_size, size)
        engine_kwargs.update(
            pool_size=size, max_overflow=ceiling - size, pool_recycle=300, pool_pre_ping=True
        )

    engine = create_engine(sync_url, **engine_kwargs)
    if auto_create_schema:
        from leadsniper.models import records  # noqa: F401 - registers tables

        SQLModel.metadata.create_all(engine)
    logger.info("database.engine.initialized", extra={"backend": tag})
    return engine, tag


def check_database_health(engine: Engine | None) -> bool:
    """True when no engine is configured or it answers ``SELECT 1``."""
    if engine is None:
        return True
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("database.health.failed", extra={"error": type(exc).__name__})
        return False
    return True
