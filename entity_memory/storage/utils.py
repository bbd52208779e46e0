"""Shared storage utilities (datetime normalization, dialect helpers, lock-conflict detection)."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import ConfigurationError

# deadlock_detected, lock_not_available
LOCK_CONFLICT_SQLSTATES = frozenset({"40P01", "55P03"})
_LOCK_CONFLICT_CLASS_NAMES = frozenset({"DeadlockDetectedError", "LockNotAvailableError"})


def naive_utc(dt: datetime | None) -> datetime | None:
    """Convert to naive UTC for PostgreSQL TIMESTAMP WITHOUT TIME ZONE."""
    if dt is None:
        return None
    if dt.tzinfo:
        return dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def utc_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def dialect_insert(session: AsyncSession, table: Any) -> Any:
    """Return an ``INSERT`` construct that supports ``ON CONFLICT`` for the session's backend."""
    name = session.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert(table)
    if name == "sqlite":
        return sqlite.insert(table)
    raise ConfigurationError(f"Unsupported database dialect for entity memory: {name}")


def is_lock_conflict(exc: BaseException) -> bool:
    """True if *exc* signals a deadlock or lock-wait timeout that is worth one retry.

    Walks ``exc.orig`` and its cause chain looking for a lock-related
    SQLSTATE or asyncpg exception class. SQLite reports "database is locked".
    """
    if not isinstance(exc, DBAPIError):
        return False
    seen: set[int] = set()
    current: BaseException | None = exc.orig
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        code = getattr(current, "sqlstate", None) or getattr(current, "pgcode", None)
        if code in LOCK_CONFLICT_SQLSTATES:
            return True
        if type(current).__name__ in _LOCK_CONFLICT_CLASS_NAMES:
            return True
        if "database is locked" in str(current):
            return True
        current = current.__cause__ or current.__context__
    return False
