"""Library service layer: sources, quotes, tags, search and profile settings.

All functions scope every query by the caller's user_id; a row owned by
someone else is reported as not found, never as forbidden.
"""

from uuid import UUID, uuid4

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from unearthed.db.conflict import insert_ignoring_conflicts
from unearthed.db.models import (
    DailyQuote,
    NotionSourceJob,
    Profile,
    Quote,
    Source,
    Tag,
    source_tags,
)
from unearthed.db.session import transaction
from unearthed.errors import ApiErrorCode, InvalidRequestError, NotFoundError
from unearthed.logging import get_logger
from unearthed.schemas.profile import ProfileOut, ProfileUpdate
from unearthed.schemas.quotes import QuoteOut, SourceDetailOut
from unearthed.schemas.sources import SourceOut, SourceUpdate, TagCreate, TagOut
from unearthed.services.crypto import decrypt_note, encrypt_optional
from unearthed.services.text import location_sort_key

logger = get_logger(__name__)

SEARCH_LIMIT = 50


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _get_owned_source(db: Session, user_id: str, source_id: UUID) -> Source:
    source = db.scalars(
        select(Source).where(Source.id == source_id, Source.user_id == user_id)
    ).first()
    if source is None:
        raise NotFoundError(ApiErrorCode.E_SOURCE_NOT_FOUND, "Source not found")
    return source


def _decrypted_quotes(quotes: list[Quote], encryption_key: str) -> list[QuoteOut]:
    out = []
    for quote in sorted(quotes, key=lambda q: location_sort_key(q.location)):
        item = QuoteOut.model_validate(quote)
        item.note = decrypt_note(quote.note, encryption_key)
        out.append(item)
    return out


# =============================================================================
# Sources
# =============================================================================


def get_source(db: Session, user_id: str, source_id: UUID, encryption_key: str) -> SourceDetailOut:
    """A source with media, tags and its quotes (notes decrypted, location order)."""
    source = _get_owned_source(db, user_id, source_id)
    detail = SourceDetailOut.model_validate(source)
    detail.quotes = _decrypted_quotes(source.quotes, encryption_key)
    return detail


def list_sources(db: Session, user_id: str, *, ignored: bool | None = False) -> list[SourceOut]:
    """List the user's sources by title. ``ignored=None`` lists all."""
    query = select(Source).where(Source.user_id == user_id)
    if ignored is not None:
        query = query.where(Source.ignored.is_(ignored))
    rows = db.scalars(query.order_by(Source.title, Source.id)).all()
    return [SourceOut.model_validate(row) for row in rows]


def toggle_ignored(db: Session, user_id: str, source_id: UUID) -> SourceOut:
    source = _get_owned_source(db, user_id, source_id)
    with transaction(db):
        source.ignored = not source.ignored
    logger.info("source_ignored_toggled", source_id=str(source_id), ignored=source.ignored)
    return SourceOut.model_validate(source)


def update_source(db: Session, user_id: str, source_id: UUID, changes: SourceUpdate) -> SourceOut:
    """Manually edit title/subtitle/author.

    Raises:
        NotFoundError: Unknown source.
        InvalidRequestError: The new title collides with another source.
    """
    source = _get_owned_source(db, user_id, source_id)
    fields = changes.model_dump(exclude_unset=True)
    try:
        with transaction(db):
            if fields.get("title"):
                source.title = fields["title"]
            if "subtitle" in fields:
                source.subtitle = fields["subtitle"]
            if "author" in fields:
                source.author = fields["author"] or ""
    except IntegrityError as e:
        raise InvalidRequestError(message="A source with this title already exists") from e
    return SourceOut.model_validate(source)


def delete_source(db: Session, user_id: str, source_id: UUID) -> None:
    """Delete a source with its quotes, daily picks, tag links and Notion jobs."""
    source = _get_owned_source(db, user_id, source_id)
    quote_ids = select(Quote.id).where(Quote.source_id == source.id)
    with transaction(db):
        db.execute(delete(NotionSourceJob).where(NotionSourceJob.source_id == source.id))
        db.execute(delete(DailyQuote).where(DailyQuote.quote_id.in_(quote_ids)))
        db.execute(delete(source_tags).where(source_tags.c.source_id == source.id))
        db.execute(delete(Quote).where(Quote.source_id == source.id))
        db.execute(delete(Source).where(Source.id == source.id))
    db.expunge(source)
    logger.info("source_deleted", user_id=user_id, source_id=str(source_id))


def search(db: Session, user_id: str, query: str, encryption_key: str) -> dict:
    """Case-insensitive substring search over sources and quotes.

    Ignored sources and their quotes are excluded.
    """
    term = query.strip()
    if not term:
        raise InvalidRequestError(message="Search query must not be empty")
    pattern = f"%{_escape_like(term)}%"

    sources = db.scalars(
        select(Source)
        .where(
            Source.user_id == user_id,
            Source.ignored.is_(False),
            or_(
                Source.title.ilike(pattern, escape="\\"),
                Source.subtitle.ilike(pattern, escape="\\"),
                Source.author.ilike(pattern, escape="\\"),
            ),
        )
        .order_by(Source.title)
        .limit(SEARCH_LIMIT)
    ).all()

    quotes = db.scalars(
        select(Quote)
        .join(Source, Source.id == Quote.source_id)
        .where(
            Quote.user_id == user_id,
            Source.ignored.is_(False),
            or_(
                Quote.content.ilike(pattern, escape="\\"),
                Quote.location.ilike(pattern, escape="\\"),
            ),
        )
        .order_by(Quote.created_at, Quote.id)
        .limit(SEARCH_LIMIT)
    ).all()

    return {
        "sources": [SourceOut.model_validate(s).to_wire() for s in sources],
        "quotes": [q.to_wire() for q in _decrypted_quotes(list(quotes), encryption_key)],
    }


# =============================================================================
# Tags
# =============================================================================


def create_tag(db: Session, user_id: str, body: TagCreate) -> TagOut:
    """Create a tag; creating an existing title returns the stored tag."""
    with transaction(db):
        db.execute(
            insert_ignoring_conflicts(
                db,
                Tag,
                [
                    {
                        "id": uuid4(),
                        "user_id": user_id,
                        "title": body.title,
                        "description": body.description,
                    }
                ],
            )
        )
    tag = db.scalars(select(Tag).where(Tag.user_id == user_id, Tag.title == body.title)).one()
    return TagOut.model_validate(tag)


def list_tags(db: Session, user_id: str) -> list[TagOut]:
    rows = db.scalars(select(Tag).where(Tag.user_id == user_id).order_by(Tag.title)).all()
    return [TagOut.model_validate(row) for row in rows]


def _get_owned_tag(db: Session, user_id: str, tag_id: UUID) -> Tag:
    tag = db.scalars(select(Tag).where(Tag.id == tag_id, Tag.user_id == user_id)).first()
    if tag is None:
        raise NotFoundError(ApiErrorCode.E_NOT_FOUND, "Tag not found")
    return tag


def tag_source(db: Session, user_id: str, source_id: UUID, tag_id: UUID) -> None:
    source = _get_owned_source(db, user_id, source_id)
    tag = _get_owned_tag(db, user_id, tag_id)
    with transaction(db):
        db.execute(
            insert_ignoring_conflicts(
                db, source_tags, [{"source_id": source.id, "tag_id": tag.id}]
            )
        )
    db.expire(source, ["tags"])


def untag_source(db: Session, user_id: str, source_id: UUID, tag_id: UUID) -> None:
    source = _get_owned_source(db, user_id, source_id)
    tag = _get_owned_tag(db, user_id, tag_id)
    with transaction(db):
        db.execute(
            delete(source_tags).where(
                source_tags.c.source_id == source.id, source_tags.c.tag_id == tag.id
            )
        )
    db.expire(source, ["tags"])


def list_sources_for_tag(db: Session, user_id: str, tag_id: UUID) -> list[SourceOut]:
    tag = _get_owned_tag(db, user_id, tag_id)
    rows = db.scalars(
        select(Source)
        .join(source_tags, source_tags.c.source_id == Source.id)
        .where(source_tags.c.tag_id == tag.id, Source.user_id == user_id)
        .order_by(Source.title)
    ).all()
    return [SourceOut.model_validate(row) for row in rows]


# =============================================================================
# Profile
# =============================================================================


def profile_out(profile: Profile) -> ProfileOut:
    return ProfileOut(
        id=profile.id,
        user_id=profile.user_id,
        utc_offset=profile.utc_offset,
        user_status=profile.user_status,
        daily_emails=profile.daily_emails,
        capacities_configured=bool(profile.capacities_api_key and profile.capacities_space_id),
        supernotes_configured=bool(profile.supernotes_api_key),
        notion_connected=bool(profile.notion_auth_data and profile.notion_database_id),
        ai_input_tokens_used=profile.ai_input_tokens_used,
        ai_output_tokens_used=profile.ai_output_tokens_used,
    )


def get_profile(db: Session, user_id: str) -> Profile:
    profile = db.scalars(
        select(Profile).where(Profile.user_id == user_id)
    ).first()
    if profile is None:
        raise NotFoundError(ApiErrorCode.E_PROFILE_NOT_FOUND, "Profile not found")
    return profile


def update_profile(
    db: Session, user_id: str, changes: ProfileUpdate, encryption_key: str
) -> ProfileOut:
    """Apply settings; credentials are stored encrypted and "" clears one."""
    profile = get_profile(db, user_id)
    fields = changes.model_dump(exclude_unset=True)
    with transaction(db):
        if "utc_offset" in fields:
            profile.utc_offset = fields["utc_offset"]
        if fields.get("daily_emails") is not None:
            profile.daily_emails = fields["daily_emails"]
        for name in ("capacities_api_key", "capacities_space_id", "supernotes_api_key"):
            if name in fields:
                setattr(profile, name, encrypt_optional(fields[name], encryption_key))
    logger.info("profile_updated", user_id=user_id, fields=sorted(fields))
    return profile_out(profile)
