"""Entity memory schema: memory_profiles, memory_episodes, memory_concerns, tenant_bootstrap_files.

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # -------------------------------------------------------------------------
    # memory_profiles: one versioned JSON document per tenant
    # -------------------------------------------------------------------------
    op.create_table(
        "memory_profiles",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(128), nullable=False),
        sa.Column("profile_data", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("last_interaction_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", name="memory_profiles_tenant_id_key"),
    )

    # -------------------------------------------------------------------------
    # memory_episodes: append-only event log
    # -------------------------------------------------------------------------
    op.create_table(
        "memory_episodes",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(128), nullable=False),
        sa.Column("episode_type", sa.String(64), nullable=False),
        sa.Column("channel", sa.String(32), nullable=False, server_default="system"),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("metadata", JSONB, nullable=True),
        sa.Column("is_superseded", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_memory_episodes_tenant_created",
        "memory_episodes",
        ["tenant_id", "created_at"],
    )
    op.create_index(
        "ix_memory_episodes_tenant_type",
        "memory_episodes",
        ["tenant_id", "episode_type"],
    )

    # -------------------------------------------------------------------------
    # memory_concerns: at most one row per (tenant_id, concern_key)
    # -------------------------------------------------------------------------
    op.create_table(
        "memory_concerns",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(128), nullable=False),
        sa.Column("concern_key", sa.String(100), nullable=False),
        sa.Column("display_name", sa.String(200), nullable=False),
        sa.Column("severity", sa.String(16), nullable=False, server_default="medium"),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("mention_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("evidence", JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("first_seen_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("last_seen_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("followup_due", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "concern_key", name="uq_memory_concerns_tenant_key"),
    )
    op.create_index(
        "ix_memory_concerns_tenant_status",
        "memory_concerns",
        ["tenant_id", "status"],
    )

    # -------------------------------------------------------------------------
    # tenant_bootstrap_files: named text files per tenant (rendered MEMORY.md)
    # -------------------------------------------------------------------------
    op.create_table(
        "tenant_bootstrap_files",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(128), nullable=False),
        sa.Column("file_name", sa.String(64), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint(
            "tenant_id", "file_name", name="uq_tenant_bootstrap_files_tenant_file"
        ),
    )
    op.create_index(
        "ix_tenant_bootstrap_files_tenant_id",
        "tenant_bootstrap_files",
        ["tenant_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_tenant_bootstrap_files_tenant_id", table_name="tenant_bootstrap_files")
    op.drop_table("tenant_bootstrap_files")

    op.drop_index("ix_memory_concerns_tenant_status", table_name="memory_concerns")
    op.drop_table("memory_concerns")

    op.drop_index("ix_memory_episodes_tenant_type", table_name="memory_episodes")
    op.drop_index("ix_memory_episodes_tenant_created", table_name="memory_episodes")
    op.drop_table("memory_episodes")

    op.drop_table("memory_profiles")
