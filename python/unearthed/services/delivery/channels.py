"""Delivery channel identities and the per-channel "already delivered" ledger.

Each channel keeps its own flag on the daily_quotes row, so delivery is
idempotent per (user, day, channel): the email job finding that Capacities
already materialized today's pick still sends its email.
"""

from collections.abc import Sequence
from enum import Enum
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from unearthed.db.models import DailyQuote
from unearthed.db.session import transaction


class DeliveryChannel(str, Enum):
    """Outbound targets for the daily reflection."""

    EMAIL = "email"
    CAPACITIES = "capacities"
    SUPERNOTES = "supernotes"


CHANNEL_FLAGS: dict[DeliveryChannel, str] = {
    DeliveryChannel.EMAIL: "email_sent",
    DeliveryChannel.CAPACITIES: "capacities_updated",
    DeliveryChannel.SUPERNOTES: "supernotes_updated",
}


def is_delivered(daily_quote: DailyQuote, channel: DeliveryChannel) -> bool:
    return bool(getattr(daily_quote, CHANNEL_FLAGS[channel]))


def mark_delivered(db: Session, daily_quote_ids: Sequence[UUID], channel: DeliveryChannel) -> int:
    """Set the channel's flag on the given daily_quotes rows. Returns rows touched."""
    if not daily_quote_ids:
        return 0
    with transaction(db):
        result = db.execute(
            update(DailyQuote)
            .where(DailyQuote.id.in_(list(daily_quote_ids)))
            .values({CHANNEL_FLAGS[channel]: True})
            .execution_options(synchronize_session="fetch")
        )
    return result.rowcount
