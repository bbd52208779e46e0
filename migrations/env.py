"""Alembic environment for the entity memory tables (async engine)."""
import asyncio
import logging
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from entity_memory.core.config import ensure_asyncpg_url, get_settings
from entity_memory.storage.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

_log = logging.getLogger("entity_memory.migrations")


def _resolve_url() -> str:
    # -x url=... beats alembic.ini, which beats DATABASE__POSTGRES_URL.
    url = context.get_x_argument(as_dictionary=True).get("url")
    url = url or config.get_main_option("sqlalchemy.url")
    if not url:
        url = get_settings().database.postgres_url
        _log.info("migrations using database URL from settings")
    return ensure_asyncpg_url(url)


config.set_main_option("sqlalchemy.url", _resolve_url())


def _configure(**kwargs) -> None:
    context.configure(target_metadata=Base.metadata, compare_type=True, **kwargs)
    with context.begin_transaction():
        context.run_migrations()


def run_offline() -> None:
    """Emit SQL to stdout without connecting."""
    _configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )


def _run_with_connection(connection: Connection) -> None:
    _configure(connection=connection)


async def run_online() -> None:
    engine = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_with_connection)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_offline()
else:
    asyncio.run(run_online())
