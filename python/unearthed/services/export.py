"""Library export consumed by the Obsidian plugin."""

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from unearthed.db.models import Source
from unearthed.logging import get_logger
from unearthed.schemas.quotes import QuoteOut, SourceDetailOut
from unearthed.services.crypto import decrypt_note
from unearthed.services.text import location_sort_key

logger = get_logger(__name__)


def export_library(db: Session, user_id: str, encryption_key: str) -> list[SourceDetailOut]:
    """Every non-ignored source with media, tags and quotes in location order.

    Notes are decrypted; a note that fails to decrypt fails the export.
    """
    sources = db.scalars(
        select(Source)
        .where(Source.user_id == user_id, Source.ignored.is_(False))
        .options(selectinload(Source.quotes), selectinload(Source.tags))
        .order_by(Source.title, Source.id)
    ).all()

    exported = []
    quote_count = 0
    for source in sources:
        detail = SourceDetailOut.model_validate(source)
        detail.quotes = []
        for quote in sorted(source.quotes, key=lambda q: location_sort_key(q.location)):
            item = QuoteOut.model_validate(quote)
            item.note = decrypt_note(quote.note, encryption_key)
            detail.quotes.append(item)
        quote_count += len(detail.quotes)
        exported.append(detail)

    logger.info("library_exported", user_id=user_id, sources=len(exported), quotes=quote_count)
    return exported
