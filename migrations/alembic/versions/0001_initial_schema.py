"""Initial schema - profiles, media, sources, quotes, daily quotes, keys, tags, Notion jobs

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Uniqueness constraints carry the cross-request invariants: concurrent
writers converge through INSERT ... ON CONFLICT DO NOTHING against them.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        sa.UUID(),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _created_at_column() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.TIMESTAMP(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def upgrade() -> None:
    # Enable pgcrypto extension for gen_random_uuid()
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # ==========================================================================
    # profiles table
    # ==========================================================================
    op.create_table(
        "profiles",
        _id_column(),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("utc_offset", sa.Integer(), nullable=True),
        sa.Column("user_status", sa.Text(), server_default="ACTIVE", nullable=False),
        sa.Column("daily_emails", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("capacities_api_key", sa.Text(), nullable=True),
        sa.Column("capacities_space_id", sa.Text(), nullable=True),
        sa.Column("supernotes_api_key", sa.Text(), nullable=True),
        sa.Column("notion_auth_data", sa.Text(), nullable=True),
        sa.Column("notion_database_id", sa.Text(), nullable=True),
        sa.Column("ai_input_tokens_used", sa.Integer(), server_default="0", nullable=False),
        sa.Column("ai_output_tokens_used", sa.Integer(), server_default="0", nullable=False),
        sa.Column("stripe_customer_id", sa.Text(), nullable=True),
        sa.Column("stripe_subscription_id", sa.Text(), nullable=True),
        _created_at_column(),
        sa.Column("expired_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", name="uq_profiles_user_id"),
        sa.CheckConstraint(
            "user_status IN ('ACTIVE', 'PENDING', 'TERMINATED')",
            name="ck_profiles_user_status",
        ),
    )

    # ==========================================================================
    # media table
    # ==========================================================================
    op.create_table(
        "media",
        _id_column(),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("uploaded_by", sa.Text(), nullable=True),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "url", name="uq_media_user_url"),
    )

    # ==========================================================================
    # sources table
    # ==========================================================================
    op.create_table(
        "sources",
        _id_column(),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("subtitle", sa.Text(), nullable=True),
        sa.Column("author", sa.Text(), server_default="", nullable=False),
        sa.Column("type", sa.Text(), server_default="BOOK", nullable=False),
        sa.Column("origin", sa.Text(), server_default="UNEARTHED", nullable=False),
        sa.Column("asin", sa.Text(), nullable=True),
        sa.Column("media_id", sa.UUID(), nullable=True),
        sa.Column("ignored", sa.Boolean(), server_default="false", nullable=False),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["media_id"], ["media.id"], ondelete="SET NULL"),
        # One source per title within an import origin
        sa.UniqueConstraint("user_id", "origin", "title", name="uq_sources_user_origin_title"),
    )
    op.create_index("ix_sources_user_id", "sources", ["user_id"])

    # ==========================================================================
    # quotes table
    # ==========================================================================
    op.create_table(
        "quotes",
        _id_column(),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("source_id", sa.UUID(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        # Ciphertext, or '' when there is no note
        sa.Column("note", sa.Text(), server_default="", nullable=False),
        sa.Column("color", sa.Text(), nullable=True),
        sa.Column("location", sa.Text(), nullable=True),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["source_id"], ["sources.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "source_id", "content", name="uq_quotes_natural_key"),
    )
    op.create_index("ix_quotes_user_id", "quotes", ["user_id"])

    # ==========================================================================
    # daily_quotes table
    # ==========================================================================
    op.create_table(
        "daily_quotes",
        _id_column(),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("quote_id", sa.UUID(), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("email_sent", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("capacities_updated", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("supernotes_updated", sa.Boolean(), server_default="false", nullable=False),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["quote_id"], ["quotes.id"], ondelete="CASCADE"),
        # At most one reflection per user per logical day
        sa.UniqueConstraint("user_id", "day", name="uq_daily_quotes_user_day"),
    )

    # ==========================================================================
    # api_keys table
    # ==========================================================================
    op.create_table(
        "api_keys",
        _id_column(),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("key_hash", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_api_keys_user_id", "api_keys", ["user_id"])

    # ==========================================================================
    # tags and source_tags tables
    # ==========================================================================
    op.create_table(
        "tags",
        _id_column(),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "title", name="uq_tags_user_title"),
    )

    op.create_table(
        "source_tags",
        sa.Column("source_id", sa.UUID(), nullable=False),
        sa.Column("tag_id", sa.UUID(), nullable=False),
        sa.PrimaryKeyConstraint("source_id", "tag_id"),
        sa.ForeignKeyConstraint(["source_id"], ["sources.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["tag_id"], ["tags.id"], ondelete="CASCADE"),
    )

    # ==========================================================================
    # notion_source_jobs table
    # ==========================================================================
    op.create_table(
        "notion_source_jobs",
        _id_column(),
        sa.Column("source_id", sa.UUID(), nullable=False),
        sa.Column("profile_id", sa.UUID(), nullable=False),
        sa.Column("shard", sa.Integer(), server_default="0", nullable=False),
        sa.Column("status", sa.Text(), server_default="READY", nullable=False),
        sa.Column("attempts", sa.Integer(), server_default="0", nullable=False),
        sa.Column("new_connection", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        _created_at_column(),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["source_id"], ["sources.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["profile_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "status IN ('READY', 'PENDING', 'COMPLETE')",
            name="ck_notion_source_jobs_status",
        ),
    )
    op.create_index(
        "ix_notion_source_jobs_shard_status", "notion_source_jobs", ["shard", "status"]
    )

    # Partial unique index: at most one open job per source
    op.create_index(
        "uq_notion_source_jobs_open_source",
        "notion_source_jobs",
        ["source_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('READY', 'PENDING')"),
    )


def downgrade() -> None:
    op.drop_index("uq_notion_source_jobs_open_source", table_name="notion_source_jobs")
    op.drop_index("ix_notion_source_jobs_shard_status", table_name="notion_source_jobs")
    op.drop_table("notion_source_jobs")
    op.drop_table("source_tags")
    op.drop_table("tags")
    op.drop_index("ix_api_keys_user_id", table_name="api_keys")
    op.drop_table("api_keys")
    op.drop_table("daily_quotes")
    op.drop_index("ix_quotes_user_id", table_name="quotes")
    op.drop_table("quotes")
    op.drop_index("ix_sources_user_id", table_name="sources")
    op.drop_table("sources")
    op.drop_table("media")
    op.drop_table("profiles")
