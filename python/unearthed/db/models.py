"""SQLAlchemy ORM models for Unearthed.

Defines all database tables using SQLAlchemy 2.x declarative patterns.
Every row is owned by exactly one identity-provider user id (opaque text).

Cross-request invariants live in the schema, not in application code:
- sources: one row per (user_id, origin, title)
- quotes: one row per (user_id, source_id, content)
- daily_quotes: one row per (user_id, day)
- notion_source_jobs: at most one open (READY/PENDING) job per source
"""

from datetime import date, datetime
from enum import Enum as PyEnum
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# =============================================================================
# Enums
# =============================================================================


class SourceType(str, PyEnum):
    """Kinds of source a quote can come from."""

    BOOK = "BOOK"
    ARTICLE = "ARTICLE"
    OTHER = "OTHER"


class SourceOrigin(str, PyEnum):
    """Where a source was imported from."""

    KINDLE = "KINDLE"
    KOREADER = "KOREADER"
    UNEARTHED = "UNEARTHED"


class UserStatus(str, PyEnum):
    """Profile lifecycle states."""

    ACTIVE = "ACTIVE"
    PENDING = "PENDING"
    TERMINATED = "TERMINATED"


class NotionJobStatus(str, PyEnum):
    """Notion sync queue row states.

    States:
        READY: Enqueued, waiting for its shard consumer
        PENDING: Claimed by a consumer run, not yet finished
        COMPLETE: Delivered to Notion (terminal)
    """

    READY = "READY"
    PENDING = "PENDING"
    COMPLETE = "COMPLETE"


OPEN_JOB_STATUSES = (NotionJobStatus.READY.value, NotionJobStatus.PENDING.value)


def _timestamp_column() -> Mapped[datetime]:
    return mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


# =============================================================================
# Models
# =============================================================================


class Profile(Base):
    """Per-user settings and integration state.

    Third-party credentials are ciphertext produced with the user's key.
    """

    __tablename__ = "profiles"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    utc_offset: Mapped[int | None] = mapped_column(Integer, nullable=True)
    user_status: Mapped[str] = mapped_column(
        Text, nullable=False, default=UserStatus.ACTIVE.value
    )
    daily_emails: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    capacities_api_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    capacities_space_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    supernotes_api_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    notion_auth_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    notion_database_id: Mapped[str | None] = mapped_column(Text, nullable=True)

    ai_input_tokens_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ai_output_tokens_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Billing linkage, written by the billing integration
    stripe_customer_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = _timestamp_column()
    expired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "user_status IN ('ACTIVE', 'PENDING', 'TERMINATED')",
            name="ck_profiles_user_status",
        ),
    )


class Media(Base):
    """Cover image reference attached to sources."""

    __tablename__ = "media"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    uploaded_by: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _timestamp_column()

    __table_args__ = (UniqueConstraint("user_id", "url", name="uq_media_user_url"),)


source_tags = Table(
    "source_tags",
    Base.metadata,
    Column("source_id", Uuid, ForeignKey("sources.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Uuid, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class Source(Base):
    """A book or other content item that quotes belong to.

    Identity for dedup is the title within (user_id, origin): two editions
    with the same title collapse into one source.
    """

    __tablename__ = "sources"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    subtitle: Mapped[str | None] = mapped_column(Text, nullable=True)
    author: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[str] = mapped_column(Text, nullable=False, default=SourceType.BOOK.value)
    origin: Mapped[str] = mapped_column(
        Text, nullable=False, default=SourceOrigin.UNEARTHED.value
    )
    asin: Mapped[str | None] = mapped_column(Text, nullable=True)
    media_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("media.id", ondelete="SET NULL"), nullable=True
    )
    ignored: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = _timestamp_column()

    media: Mapped["Media | None"] = relationship("Media", lazy="joined")
    quotes: Mapped[list["Quote"]] = relationship(
        "Quote", back_populates="source", cascade="all, delete-orphan"
    )
    tags: Mapped[list["Tag"]] = relationship("Tag", secondary=source_tags, back_populates="sources")

    __table_args__ = (
        UniqueConstraint("user_id", "origin", "title", name="uq_sources_user_origin_title"),
        Index("ix_sources_user_id", "user_id"),
    )


class Quote(Base):
    """A highlight. `note` holds ciphertext, or "" when there is no note."""

    __tablename__ = "quotes"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    source_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("sources.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    note: Mapped[str] = mapped_column(Text, nullable=False, default="")
    color: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _timestamp_column()

    source: Mapped["Source"] = relationship("Source", back_populates="quotes")

    __table_args__ = (
        UniqueConstraint("user_id", "source_id", "content", name="uq_quotes_natural_key"),
        Index("ix_quotes_user_id", "user_id"),
    )


class DailyQuote(Base):
    """The quote chosen for a user on one logical day.

    Per-channel flags record which delivery channels already pushed it.
    """

    __tablename__ = "daily_quotes"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    quote_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False
    )
    day: Mapped[date] = mapped_column(Date, nullable=False)
    email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    capacities_updated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    supernotes_updated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = _timestamp_column()

    quote: Mapped["Quote"] = relationship("Quote")

    __table_args__ = (UniqueConstraint("user_id", "day", name="uq_daily_quotes_user_day"),)


class ApiKey(Base):
    """A user-issued API key. Only the bcrypt hash is stored."""

    __tablename__ = "api_keys"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    key_hash: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _timestamp_column()

    __table_args__ = (Index("ix_api_keys_user_id", "user_id"),)


class Tag(Base):
    """User-defined label over sources."""

    __tablename__ = "tags"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _timestamp_column()

    sources: Mapped[list["Source"]] = relationship(
        "Source", secondary=source_tags, back_populates="tags"
    )

    __table_args__ = (UniqueConstraint("user_id", "title", name="uq_tags_user_title"),)


class NotionSourceJob(Base):
    """Queue row asking a shard consumer to push one source to Notion.

    Rows are never deleted by consumers; COMPLETE rows act as a ledger.
    """

    __tablename__ = "notion_source_jobs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    source_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("sources.id", ondelete="CASCADE"), nullable=False
    )
    profile_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    shard: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        Text, nullable=False, default=NotionJobStatus.READY.value
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    new_connection: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _timestamp_column()
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    source: Mapped["Source"] = relationship("Source")
    profile: Mapped["Profile"] = relationship("Profile")

    __table_args__ = (
        CheckConstraint(
            "status IN ('READY', 'PENDING', 'COMPLETE')",
            name="ck_notion_source_jobs_status",
        ),
        Index("ix_notion_source_jobs_shard_status", "shard", "status"),
        Index(
            "uq_notion_source_jobs_open_source",
            "source_id",
            unique=True,
            postgresql_where=text("status IN ('READY', 'PENDING')"),
            sqlite_where=text("status IN ('READY', 'PENDING')"),
        ),
    )
