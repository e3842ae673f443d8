"""Push one source and its quotes into the user's Notion "Sources" database."""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from unearthed.db.models import Profile, Quote, Source
from unearthed.errors import ConfigurationError
from unearthed.logging import get_logger
from unearthed.services.crypto import decrypt_note, decrypt_optional
from unearthed.services.notion.blocks import (
    blocks_for_quote,
    heading_block,
    page_key,
    page_properties,
    plain_text,
    source_key,
)
from unearthed.services.notion.client import NotionClient
from unearthed.services.text import location_sort_key

logger = get_logger(__name__)


class SyncOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass
class NotionConnection:
    """Decrypted workspace connection stored on a profile."""

    access_token: str
    database_id: str | None
    template_page_id: str | None
    notion_user_id: str | None


def parse_auth_data(auth_data: dict[str, Any], database_id: str | None = None) -> NotionConnection:
    token = auth_data.get("access_token")
    if not token:
        raise ConfigurationError("Notion auth data has no access token")
    owner_user = (auth_data.get("owner") or {}).get("user") or {}
    return NotionConnection(
        access_token=token,
        database_id=database_id,
        template_page_id=auth_data.get("duplicated_template_id"),
        notion_user_id=owner_user.get("id"),
    )


def load_connection(profile: Profile, encryption_key: str) -> NotionConnection:
    """Decrypt the profile's Notion auth blob.

    Raises:
        ConfigurationError: Notion is not connected or the database is missing.
        CryptoError: The blob cannot be decrypted.
    """
    raw = decrypt_optional(profile.notion_auth_data, encryption_key)
    if not raw:
        raise ConfigurationError("Notion is not connected")
    connection = parse_auth_data(json.loads(raw), profile.notion_database_id)
    if not connection.database_id:
        raise ConfigurationError("Notion database has not been created")
    return connection


def _quote_blocks(quotes: list[Quote], encryption_key: str, skip: set[str]) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    for quote in sorted(quotes, key=lambda q: location_sort_key(q.location)):
        if quote.content in skip:
            continue
        blocks.extend(
            blocks_for_quote(
                quote.content,
                decrypt_note(quote.note, encryption_key),
                quote.color,
                quote.location,
            )
        )
    return blocks


def _collect(texts: set[str], chunks: list[str]) -> None:
    # A long quote was split either at a space or hard mid-word
    texts.update(chunks)
    texts.add(" ".join(chunks))
    texts.add("".join(chunks))


def _existing_quote_texts(client: NotionClient, page_id: str) -> set[str]:
    """Reassemble adjacent quote blocks into the quote texts already on the page."""
    texts: set[str] = set()
    chunks: list[str] = []
    for block in client.list_children(page_id):
        if block.get("type") == "quote":
            chunks.append(plain_text(block["quote"].get("rich_text")))
            continue
        if chunks:
            _collect(texts, chunks)
            chunks = []
    if chunks:
        _collect(texts, chunks)
    return texts


def _find_page(client: NotionClient, database_id: str, source: Source) -> str | None:
    key = source_key(source.title, source.author)
    for page in client.query_database(database_id):
        if page_key(page) == key:
            return page["id"]
    return None


def _create_page(
    client: NotionClient, database_id: str, source: Source, encryption_key: str
) -> None:
    image_url = source.media.url if source.media is not None else None
    page_id = client.create_page(
        database_id,
        page_properties(source.title, source.subtitle, source.author, source.origin, image_url),
        cover_url=image_url,
    )
    client.append_children(page_id, [heading_block(), *_quote_blocks(source.quotes, encryption_key, set())])


def sync_source(
    client: NotionClient,
    database_id: str,
    source: Source,
    encryption_key: str,
    *,
    new_connection: bool = False,
) -> SyncOutcome:
    """Create the source's page, or append quotes missing from an existing page.

    With ``new_connection`` the database was just created, so no lookup is made.
    """
    page_id = None if new_connection else _find_page(client, database_id, source)
    if page_id is None:
        _create_page(client, database_id, source, encryption_key)
        logger.info("notion_page_created", source_id=str(source.id), quotes=len(source.quotes))
        return SyncOutcome.CREATED

    existing = _existing_quote_texts(client, page_id)
    missing = _quote_blocks(source.quotes, encryption_key, existing)
    if not missing:
        return SyncOutcome.UNCHANGED

    client.append_children(page_id, missing)
    logger.info("notion_page_updated", source_id=str(source.id), blocks=len(missing))
    return SyncOutcome.UPDATED
