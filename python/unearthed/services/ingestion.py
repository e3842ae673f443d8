"""Deduplicating bulk ingestion of sources and quotes.

Clients (browser extension, desktop app, KOReader plugin) upload whole
libraries at once and re-upload them freely, so every write is a single
skip-on-conflict insert against the schema's natural keys:
- sources: (user_id, origin, title)
- quotes: (user_id, source_id, content)
- media: (user_id, url)

Each call reports two partitions, both re-read from the store:
- insertedRecords: rows this call created
- existingRecords: input rows that were already stored, plus one entry per
  repeat of an identity key within the same batch

Validation happens before any write. One invalid record rejects the whole
batch; quote batches are written in chunks of 100 inside one transaction,
so a failure part-way through leaves nothing behind.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar
from uuid import UUID, uuid4

from pydantic import BaseModel, TypeAdapter, ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from unearthed.db.conflict import insert_ignoring_conflicts
from unearthed.db.models import Media, Quote, Source, SourceOrigin, SourceType
from unearthed.db.session import transaction
from unearthed.errors import ApiErrorCode, InvalidRequestError, NotFoundError
from unearthed.logging import get_logger
from unearthed.schemas.quotes import QuoteIn, QuoteOut
from unearthed.schemas.sources import SourceIn, SourceOut
from unearthed.services.batching import chunked
from unearthed.services.crypto import decrypt_note, encrypt_note
from unearthed.services.text import sanitize_text

logger = get_logger(__name__)

QUOTE_BATCH_SIZE = 100

M = TypeVar("M", bound=BaseModel)


@dataclass
class IngestionResult:
    """Inserted/existing partition returned to ingestion callers."""

    inserted: list[BaseModel] = field(default_factory=list)
    existing: list[BaseModel] = field(default_factory=list)

    def to_wire(self) -> dict[str, list[dict]]:
        return {
            "existingRecords": [r.model_dump(mode="json", by_alias=True) for r in self.existing],
            "insertedRecords": [r.model_dump(mode="json", by_alias=True) for r in self.inserted],
        }


def validate_batch(model: type[M], records: Sequence[M | Mapping[str, Any]]) -> list[M]:
    """Validate every record or none.

    Raises:
        InvalidRequestError: Any record fails validation, or the batch is empty.
    """
    if not records:
        raise InvalidRequestError(message="Batch must contain at least one record")
    if all(isinstance(r, model) for r in records):
        return list(records)  # type: ignore[arg-type]
    try:
        return TypeAdapter(list[model]).validate_python(
            [r.model_dump(by_alias=True) if isinstance(r, BaseModel) else r for r in records]
        )
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise InvalidRequestError(
            message=f"Invalid record at {location}: {first.get('msg', 'invalid')}"
        ) from e


# =============================================================================
# Sources
# =============================================================================


def _ensure_media(db: Session, user_id: str, urls: list[str]) -> dict[str, UUID]:
    """Insert media rows for ``urls`` (skip-on-conflict) and map url -> id."""
    if not urls:
        return {}
    rows = [{"id": uuid4(), "user_id": user_id, "url": url, "uploaded_by": user_id} for url in urls]
    db.execute(insert_ignoring_conflicts(db, Media, rows))
    stored = db.execute(
        select(Media.url, Media.id).where(Media.user_id == user_id, Media.url.in_(urls))
    ).all()
    return {url: media_id for url, media_id in stored}


def ingest_sources(
    db: Session,
    user_id: str,
    records: Sequence[SourceIn | Mapping[str, Any]],
    *,
    stamp_type: SourceType | None = SourceType.BOOK,
    stamp_origin: SourceOrigin | None = SourceOrigin.KINDLE,
) -> IngestionResult:
    """Insert new sources for a user and partition the input.

    Args:
        db: Database session.
        user_id: Owner of every row.
        records: Candidate sources (validated as a whole).
        stamp_type: Type forced onto every row (Kindle imports use BOOK).
        stamp_origin: Origin forced onto every row (Kindle imports use KINDLE).
            When None, each record's own origin (default UNEARTHED) is used.

    Returns:
        IngestionResult of SourceOut rows.

    Raises:
        InvalidRequestError: Any record fails validation.
    """
    sources = validate_batch(SourceIn, records)

    with transaction(db):
        image_urls = sorted({s.image_url for s in sources if s.image_url})
        media_ids = _ensure_media(db, user_id, image_urls)

        rows: list[dict[str, Any]] = []
        seen: set[tuple[str, str]] = set()
        repeats: list[tuple[str, str]] = []
        for s in sources:
            origin = (stamp_origin or s.origin or SourceOrigin.UNEARTHED).value
            key = (origin, s.title)
            if key in seen:
                repeats.append(key)
                continue
            seen.add(key)
            rows.append(
                {
                    "id": uuid4(),
                    "user_id": user_id,
                    "title": s.title,
                    "subtitle": s.subtitle,
                    "author": s.author or "",
                    "type": (stamp_type or s.type or SourceType.BOOK).value,
                    "origin": origin,
                    "asin": s.asin,
                    "media_id": media_ids.get(s.image_url) if s.image_url else None,
                    "ignored": False,
                }
            )

        inserted = db.scalars(
            insert_ignoring_conflicts(db, Source, rows).returning(Source)
        ).all()

    inserted_keys = {(row.origin, row.title) for row in inserted}
    missing = [r for r in rows if (r["origin"], r["title"]) not in inserted_keys]

    existing: list[Source] = []
    if missing:
        stored = db.scalars(
            select(Source).where(
                Source.user_id == user_id,
                Source.title.in_({r["title"] for r in missing}),
            )
        ).all()
        wanted = {(r["origin"], r["title"]) for r in missing}
        existing = [s for s in stored if (s.origin, s.title) in wanted]

    resolved = {(s.origin, s.title): s for s in [*inserted, *existing]}
    existing.extend(resolved[key] for key in repeats if key in resolved)

    logger.info(
        "sources_ingested",
        user_id=user_id,
        submitted=len(sources),
        inserted=len(inserted),
        existing=len(existing),
        media=len(media_ids),
    )
    return IngestionResult(
        inserted=[SourceOut.model_validate(s) for s in inserted],
        existing=[SourceOut.model_validate(s) for s in existing],
    )


# =============================================================================
# Quotes
# =============================================================================


def _require_owned_sources(db: Session, user_id: str, source_ids: set[UUID]) -> None:
    owned = set(
        db.scalars(
            select(Source.id).where(Source.user_id == user_id, Source.id.in_(source_ids))
        ).all()
    )
    missing = source_ids - owned
    if missing:
        raise NotFoundError(
            ApiErrorCode.E_SOURCE_NOT_FOUND,
            f"Unknown source id: {sorted(str(m) for m in missing)[0]}",
        )


def _quote_out(quote: Quote, encryption_key: str) -> QuoteOut:
    out = QuoteOut.model_validate(quote)
    out.note = decrypt_note(quote.note, encryption_key)
    return out


def ingest_quotes(
    db: Session,
    user_id: str,
    encryption_key: str,
    records: Sequence[QuoteIn | Mapping[str, Any]],
    *,
    skip_sanitized_duplicates: bool = False,
) -> IngestionResult:
    """Insert new quotes for a user, encrypting notes, and partition the input.

    Args:
        db: Database session.
        user_id: Owner of every row.
        encryption_key: The user's key; notes are encrypted with it.
        records: Candidate quotes (validated as a whole).
        skip_sanitized_duplicates: Also treat an incoming quote as existing when
            its sanitized content matches any stored quote of the user. Public
            clients re-export the same highlight with different typography.

    Returns:
        IngestionResult of QuoteOut rows with notes decrypted.

    Raises:
        InvalidRequestError: Any record fails validation.
        NotFoundError: A record references a source the user does not own.
    """
    quotes = validate_batch(QuoteIn, records)
    _require_owned_sources(db, user_id, {q.source_id for q in quotes})

    existing_by_sanitized: dict[str, Quote] = {}
    if skip_sanitized_duplicates:
        for stored in db.scalars(select(Quote).where(Quote.user_id == user_id)).all():
            existing_by_sanitized.setdefault(sanitize_text(stored.content), stored)

    sanitized_existing: dict[tuple[UUID, str], Quote] = {}
    rows: list[dict[str, Any]] = []
    seen: set[tuple[UUID, str]] = set()
    repeats: list[tuple[UUID, str]] = []
    for q in quotes:
        key = (q.source_id, q.content)
        if key in seen:
            repeats.append(key)
            continue
        seen.add(key)
        if skip_sanitized_duplicates:
            match = existing_by_sanitized.get(sanitize_text(q.content))
            if match is not None:
                sanitized_existing[key] = match
                continue
        rows.append(
            {
                "id": uuid4(),
                "user_id": user_id,
                "source_id": q.source_id,
                "content": q.content,
                "note": encrypt_note(q.note, encryption_key),
                "color": q.color,
                "location": q.location,
            }
        )

    inserted: list[Quote] = []
    with transaction(db):
        for batch in chunked(rows, QUOTE_BATCH_SIZE):
            inserted.extend(
                db.scalars(insert_ignoring_conflicts(db, Quote, batch).returning(Quote)).all()
            )

    inserted_keys = {(q.source_id, q.content) for q in inserted}
    missing = [r for r in rows if (r["source_id"], r["content"]) not in inserted_keys]

    existing: list[Quote] = list(sanitized_existing.values())
    if missing:
        wanted = {(r["source_id"], r["content"]) for r in missing}
        stored = db.scalars(
            select(Quote).where(
                Quote.user_id == user_id,
                Quote.content.in_({r["content"] for r in missing}),
            )
        ).all()
        existing.extend(q for q in stored if (q.source_id, q.content) in wanted)

    resolved = {(q.source_id, q.content): q for q in [*inserted, *existing]}
    resolved.update(sanitized_existing)
    existing.extend(resolved[key] for key in repeats if key in resolved)

    logger.info(
        "quotes_ingested",
        user_id=user_id,
        submitted=len(quotes),
        inserted=len(inserted),
        existing=len(existing),
        batches=(len(rows) + QUOTE_BATCH_SIZE - 1) // QUOTE_BATCH_SIZE,
    )
    return IngestionResult(
        inserted=[_quote_out(q, encryption_key) for q in inserted],
        existing=[_quote_out(q, encryption_key) for q in existing],
    )
