"""Database module for Unearthed.

Provides engine creation, session management, transaction helpers, and ORM models.
"""

from unearthed.db.conflict import insert_ignoring_conflicts
from unearthed.db.engine import create_db_engine, get_engine
from unearthed.db.models import (
    OPEN_JOB_STATUSES,
    ApiKey,
    Base,
    DailyQuote,
    Media,
    NotionJobStatus,
    NotionSourceJob,
    Profile,
    Quote,
    Source,
    SourceOrigin,
    SourceType,
    Tag,
    UserStatus,
    source_tags,
)
from unearthed.db.session import get_db, session_scope, transaction

__all__ = [
    # Engine and session
    "create_db_engine",
    "get_engine",
    "get_db",
    "session_scope",
    "transaction",
    "insert_ignoring_conflicts",
    # Base
    "Base",
    # Enums
    "SourceType",
    "SourceOrigin",
    "UserStatus",
    "NotionJobStatus",
    "OPEN_JOB_STATUSES",
    # Models
    "Profile",
    "Media",
    "Source",
    "Quote",
    "DailyQuote",
    "ApiKey",
    "Tag",
    "source_tags",
    "NotionSourceJob",
]
