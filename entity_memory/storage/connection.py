"""Database connection manager for the entity memory backend."""

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..core.config import Settings, ensure_asyncpg_url, get_settings
from ..core.exceptions import StorageConnectionError

_logger = structlog.get_logger(__name__)


class DatabaseManager:
    """Owns the engine and session factory.

    Constructed explicitly by whatever process wires the system together and
    passed to :class:`~entity_memory.memory.service.EntityMemoryService`.
    """

    pg_engine: AsyncEngine | None
    pg_session_factory: async_sessionmaker[AsyncSession] | None

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.pg_engine = None
        self.pg_session_factory = None

    @classmethod
    async def create(cls, settings: Settings | None = None) -> "DatabaseManager":
        """Async factory that guarantees clean disposal on partial failure."""
        instance = cls(settings)
        try:
            instance._init_connections()
        except Exception as e:
            await instance.close()
            _logger.error("db_manager_init_failed", error=str(e), exc_info=True)
            raise StorageConnectionError(f"Could not initialise database engine: {e}") from e
        return instance

    def _init_connections(self) -> None:
        db = self.settings.database
        url = ensure_asyncpg_url(db.postgres_url)
        engine_kwargs: dict = {"echo": db.echo, "pool_pre_ping": True}
        if url.startswith("postgresql"):
            engine_kwargs.update(pool_size=db.pool_size, max_overflow=db.max_overflow)
        self.pg_engine = create_async_engine(url, **engine_kwargs)
        self.pg_session_factory = async_sessionmaker(
            self.pg_engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self.pg_session_factory is None:
            raise StorageConnectionError("DatabaseManager not initialized or already closed")
        return self.pg_session_factory

    async def close(self) -> None:
        """Dispose of the engine and its pooled connections."""
        if self.pg_engine:
            await self.pg_engine.dispose()
            self.pg_engine = None
            self.pg_session_factory = None
