"""Daily reflection selection.

Each user gets at most one reflection quote per logical day (the calendar
date in the user's own UTC offset). The first caller of the day, whether an
interactive request or a scheduled delivery job, picks a random quote from
the user's non-ignored sources and persists it; every later caller reads
the same row back.

The only guard against two concurrent first callers is the unique
(user_id, day) constraint on daily_quotes: both may pick, both insert with
ON CONFLICT DO NOTHING, and whichever row landed first is re-read and
returned to both. There is no application-level lock.
"""

import random
from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from unearthed.db.conflict import insert_ignoring_conflicts
from unearthed.db.models import DailyQuote, Quote, Source
from unearthed.db.session import transaction
from unearthed.logging import get_logger
from unearthed.schemas.daily import DailyReflectionOut, ReflectionSourceOut
from unearthed.schemas.quotes import QuoteOut
from unearthed.services.crypto import decrypt_note
from unearthed.services.days import format_day, todays_date

logger = get_logger(__name__)


@dataclass
class DailyReflection:
    """Today's reflection with the quote note already decrypted."""

    day: date
    daily_quote: DailyQuote
    quote: Quote
    source: Source
    note: str

    def to_out(self) -> DailyReflectionOut:
        quote = QuoteOut.model_validate(self.quote)
        quote.note = self.note
        return DailyReflectionOut(
            day=format_day(self.day),
            source=ReflectionSourceOut.model_validate(self.source),
            quote=quote,
        )


def find_daily_quote(db: Session, user_id: str, day: date) -> DailyQuote | None:
    """Return the stored selection for (user, day), ignoring source state."""
    return db.scalars(
        select(DailyQuote).where(DailyQuote.user_id == user_id, DailyQuote.day == day)
    ).first()


def _load(db: Session, user_id: str, day: date, encryption_key: str) -> DailyReflection | None:
    row = db.execute(
        select(DailyQuote, Quote, Source)
        .join(Quote, Quote.id == DailyQuote.quote_id)
        .join(Source, Source.id == Quote.source_id)
        .where(DailyQuote.user_id == user_id, DailyQuote.day == day)
    ).first()
    if row is None:
        return None

    daily_quote, quote, source = row
    if source.ignored:
        # The day's pick stays frozen; an ignored source just yields nothing today
        return None

    return DailyReflection(
        day=day,
        daily_quote=daily_quote,
        quote=quote,
        source=source,
        note=decrypt_note(quote.note, encryption_key),
    )


def get_daily_reflection(
    db: Session, user_id: str, day: date, encryption_key: str
) -> DailyReflection | None:
    """Read-only lookup of an existing reflection for ``day``.

    Raises:
        CryptoError: The stored note cannot be decrypted with ``encryption_key``.
    """
    return _load(db, user_id, day, encryption_key)


def get_or_create_daily_reflection(
    db: Session,
    user_id: str,
    utc_offset: int | None,
    encryption_key: str,
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> DailyReflection | None:
    """Return today's reflection, selecting and persisting one if needed.

    Args:
        db: Database session.
        user_id: Owner.
        utc_offset: The user's offset in hours; decides which day "today" is.
        encryption_key: The user's key for decrypting the quote note.
        now: Current instant, for tests. Defaults to the wall clock.
        rng: Random source, for tests. Defaults to the module-level generator.

    Returns:
        The reflection, or None when the user has no quote from a
        non-ignored source (an empty result, not an error).

    Raises:
        CryptoError: The chosen quote's note cannot be decrypted.
    """
    day = todays_date(utc_offset, now)

    if find_daily_quote(db, user_id, day) is not None:
        return _load(db, user_id, day, encryption_key)

    candidates = db.scalars(
        select(Quote.id)
        .join(Source, Source.id == Quote.source_id)
        .where(Quote.user_id == user_id, Source.ignored.is_(False))
        .order_by(Quote.created_at, Quote.id)
    ).all()
    if not candidates:
        logger.info("daily_reflection_empty", user_id=user_id, day=format_day(day))
        return None

    picker = rng or random
    chosen: UUID = candidates[picker.randrange(len(candidates))]

    with transaction(db):
        result = db.execute(
            insert_ignoring_conflicts(
                db,
                DailyQuote,
                [{"id": uuid4(), "user_id": user_id, "quote_id": chosen, "day": day}],
            )
        )

    logger.info(
        "daily_reflection_selected",
        user_id=user_id,
        day=format_day(day),
        candidates=len(candidates),
        won=bool(result.rowcount),
    )

    # Re-read so a caller that lost the race returns the winner's pick
    return _load(db, user_id, day, encryption_key)
