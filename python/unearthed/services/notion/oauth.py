"""Notion connection: OAuth code exchange followed by the first sync."""

import json
from collections.abc import Callable
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from unearthed.db.models import Source, SourceType
from unearthed.db.session import transaction
from unearthed.errors import UpstreamError
from unearthed.logging import get_logger
from unearthed.services.bootstrap import ensure_profile
from unearthed.services.crypto import encrypt_text
from unearthed.services.identity import IdentityDirectoryBase
from unearthed.services.notion.client import NotionClient, exchange_oauth_code
from unearthed.services.notion.jobs import replace_profile_jobs
from unearthed.services.notion.sync import parse_auth_data

logger = get_logger(__name__)


def connect_notion(
    db: Session,
    directory: IdentityDirectoryBase,
    user_id: str,
    code: str,
    *,
    exchange: Callable[[str], dict[str, Any]] = exchange_oauth_code,
    client_factory: Callable[[str], NotionClient] | None = None,
) -> dict[str, Any]:
    """Connect a workspace and queue the user's books for their first sync.

    Steps:
    1. Exchange ``code`` for the auth blob and store it encrypted
    2. Create the "Sources" database under the duplicated template page
    3. Queue every non-ignored book with newConnection=true

    Raises:
        ConfigurationError: Missing encryption key or Notion client credentials.
        UpstreamError: Notion rejected the exchange or database creation.
    """
    encryption_key = directory.require_encryption_key(user_id)
    auth_data = exchange(code)
    connection = parse_auth_data(auth_data)

    profile = ensure_profile(db, user_id)
    with transaction(db):
        profile.notion_auth_data = encrypt_text(json.dumps(auth_data), encryption_key)
        profile.notion_database_id = None

    if not connection.template_page_id:
        raise UpstreamError("Notion connection has no duplicated template page", service="notion")

    factory = client_factory or NotionClient.from_settings
    database_id = factory(connection.access_token).create_sources_database(
        connection.template_page_id
    )
    with transaction(db):
        profile.notion_database_id = database_id

    source_ids = db.scalars(
        select(Source.id)
        .where(
            Source.user_id == user_id,
            Source.type == SourceType.BOOK.value,
            Source.ignored.is_(False),
        )
        .order_by(Source.id)
    ).all()
    queued = replace_profile_jobs(db, profile, source_ids, new_connection=True)

    logger.info("notion_connected", user_id=user_id, queued=queued)
    return {"databaseId": database_id, "queued": queued}
