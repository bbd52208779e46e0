"""SQLAlchemy models for the entity memory tables and the rendered-file store."""

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

from .utils import utc_now

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
JSONDocument = JSON().with_variant(JSONB(), "postgresql")
# SQLite only autoincrements INTEGER PRIMARY KEY.
BigId = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    """Declarative base for all storage models."""

    pass


class MemoryProfileModel(Base):
    """One versioned profile document per tenant."""

    __tablename__ = "memory_profiles"

    id = Column(BigId, primary_key=True, autoincrement=True)
    tenant_id = Column(String(128), nullable=False, unique=True)
    profile_data = Column(JSONDocument, nullable=False, default=dict)
    version = Column(Integer, nullable=False, default=1)
    last_interaction_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)


class MemoryEpisodeModel(Base):
    """Episode log - append-only; only ``is_superseded`` ever changes."""

    __tablename__ = "memory_episodes"

    id = Column(BigId, primary_key=True, autoincrement=True)
    tenant_id = Column(String(128), nullable=False)
    episode_type = Column(String(64), nullable=False)
    channel = Column(String(32), nullable=False, default="system")
    content = Column(Text, nullable=False)
    meta = Column("metadata", JSONDocument, nullable=True)  # DB column "metadata"
    is_superseded = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        Index("ix_memory_episodes_tenant_created", "tenant_id", "created_at"),
        Index("ix_memory_episodes_tenant_type", "tenant_id", "episode_type"),
    )


class MemoryConcernModel(Base):
    """Tracked concerns; at most one row per (tenant_id, concern_key)."""

    __tablename__ = "memory_concerns"

    id = Column(BigId, primary_key=True, autoincrement=True)
    tenant_id = Column(String(128), nullable=False)
    concern_key = Column(String(100), nullable=False)
    display_name = Column(String(200), nullable=False)
    severity = Column(String(16), nullable=False, default="medium")
    status = Column(String(16), nullable=False, default="active")
    mention_count = Column(Integer, nullable=False, default=1)
    evidence = Column(JSONDocument, nullable=False, default=list)
    first_seen_at = Column(DateTime, nullable=False, default=utc_now)
    last_seen_at = Column(DateTime, nullable=False, default=utc_now)
    resolved_at = Column(DateTime, nullable=True)
    followup_due = Column(Date, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        UniqueConstraint("tenant_id", "concern_key", name="uq_memory_concerns_tenant_key"),
        Index("ix_memory_concerns_tenant_status", "tenant_id", "status"),
    )


class BootstrapFileModel(Base):
    """Named text file per tenant (e.g. the rendered MEMORY.md)."""

    __tablename__ = "tenant_bootstrap_files"

    id = Column(BigId, primary_key=True, autoincrement=True)
    tenant_id = Column(String(128), nullable=False, index=True)
    file_name = Column(String(64), nullable=False)
    content = Column(Text, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        UniqueConstraint("tenant_id", "file_name", name="uq_tenant_bootstrap_files_tenant_file"),
    )
