"""Alembic environment for the lead tables.

DATABASE_URL is resolved from the environment, then alembic.ini, then the
application settings. Async driver names are rewritten to their sync
equivalents so the same URL works for the API and for migrations.
"""

from __future__ import annotations

import logging
import os
from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine.url import make_url
from sqlmodel import SQLModel

from leadsniper.config import settings
from leadsniper.core.database import coerce_sync_database_url
from leadsniper.models import records  # noqa: F401 - registers table metadata

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("leadsniper.alembic")
logger.setLevel(logging.INFO)
target_metadata = SQLModel.metadata


def _url_candidates() -> list[tuple[str, str | None]]:
    runtime = config.get_section("alembic:runtime") or {}
    return [
        ("environment variable", os.environ.get("DATABASE_URL")),
        ("alembic.ini", config.get_main_option("sqlalchemy.url") or runtime.get("sqlalchemy.url")),
        ("app settings", settings.database_url),
    ]


def resolve_database_url() -> tuple[str, dict[str, Any]]:
    for source, value in _url_candidates():
        if not value:
            continue
        parsed = make_url(value)
        url, connect_args, _ = coerce_sync_database_url(parsed)
        rendered = parsed.render_as_string(hide_password=True)
        logger.info("Alembic resolved DATABASE_URL from %s: %s", source, rendered)
        config.print_stdout(f"[Alembic] DATABASE_URL source={source}: {rendered}")
        return url, connect_args
    raise RuntimeError("DATABASE_URL must be set to run migrations.")


def _migrate(**configure_kwargs: Any) -> None:
    context.configure(target_metadata=target_metadata, compare_type=True, **configure_kwargs)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    """Emit SQL without connecting (``alembic upgrade --sql``)."""
    url, _ = resolve_database_url()
    _migrate(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})


def run_migrations_online() -> None:
    url, connect_args = resolve_database_url()
    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = url
    engine = engine_from_config(
        section, prefix="sqlalchemy.", poolclass=pool.NullPool, connect_args=connect_args
    )
    try:
        with engine.connect() as connection:
            _migrate(connection=connection)
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
