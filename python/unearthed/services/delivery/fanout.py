"""Scheduled fan-out of the daily reflection to one delivery channel.

One run of a channel:
1. Enumerates ACTIVE profiles that have the channel configured
2. Per profile, skips when today's row already carries the channel's flag
3. Otherwise gets (or creates) today's reflection and pushes it
4. Sets the channel flag for that row right after a successful push

Every profile is isolated: a decryption failure, missing credential or
upstream error for one recipient is logged and the loop moves on.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from unearthed.config import get_settings
from unearthed.db.models import Profile, UserStatus
from unearthed.errors import ApiErrorCode, ConfigurationError, InvalidRequestError, NotFoundError
from unearthed.logging import get_logger
from unearthed.services.crypto import decrypt_optional
from unearthed.services.days import format_day, todays_date
from unearthed.services.delivery.channels import DeliveryChannel, is_delivered, mark_delivered
from unearthed.services.delivery.email import EMAIL_SUBJECT, MailerBase, get_mailer, render_daily_email
from unearthed.services.delivery.formatting import capacities_markdown, supernotes_markdown
from unearthed.services.delivery.notes_apps import CapacitiesClient, SupernotesClient
from unearthed.services.identity import DirectoryUser, IdentityDirectoryBase
from unearthed.services.reflection import (
    DailyReflection,
    find_daily_quote,
    get_or_create_daily_reflection,
)

logger = get_logger(__name__)


class ChannelDelivery(ABC):
    """How one channel selects recipients and pushes a reflection."""

    channel: DeliveryChannel

    @abstractmethod
    def profile_filters(self) -> list:
        """SQL predicates on Profile for recipients of this channel."""
        ...

    def accepts(self, profile: Profile, user: DirectoryUser) -> bool:
        """Runtime eligibility that needs identity-provider data."""
        return True

    @abstractmethod
    def deliver(
        self, profile: Profile, user: DirectoryUser, encryption_key: str, reflection: DailyReflection
    ) -> None:
        ...


class EmailDelivery(ChannelDelivery):
    channel = DeliveryChannel.EMAIL

    def __init__(self, mailer: MailerBase):
        self.mailer = mailer

    def profile_filters(self) -> list:
        return [Profile.daily_emails.is_(True)]

    def accepts(self, profile: Profile, user: DirectoryUser) -> bool:
        return user.is_premium and bool(user.email)

    def deliver(self, profile, user, encryption_key, reflection) -> None:
        self.mailer.send(user.email, EMAIL_SUBJECT, render_daily_email(reflection))


class CapacitiesDelivery(ChannelDelivery):
    channel = DeliveryChannel.CAPACITIES

    def __init__(self, client: CapacitiesClient):
        self.client = client

    def profile_filters(self) -> list:
        return [
            Profile.capacities_api_key.is_not(None),
            Profile.capacities_api_key != "",
            Profile.capacities_space_id.is_not(None),
            Profile.capacities_space_id != "",
        ]

    def deliver(self, profile, user, encryption_key, reflection) -> None:
        api_key = decrypt_optional(profile.capacities_api_key, encryption_key)
        space_id = decrypt_optional(profile.capacities_space_id, encryption_key)
        if not api_key or not space_id:
            raise ConfigurationError("Capacities credentials are incomplete")
        self.client.save_to_daily_note(api_key, space_id, capacities_markdown(reflection))


class SupernotesDelivery(ChannelDelivery):
    channel = DeliveryChannel.SUPERNOTES

    def __init__(self, client: SupernotesClient):
        self.client = client

    def profile_filters(self) -> list:
        return [Profile.supernotes_api_key.is_not(None), Profile.supernotes_api_key != ""]

    def deliver(self, profile, user, encryption_key, reflection) -> None:
        api_key = decrypt_optional(profile.supernotes_api_key, encryption_key)
        if not api_key:
            raise ConfigurationError("Supernotes API key is missing")
        self.client.put_daily_card(api_key, supernotes_markdown(reflection))


def build_channel_delivery(channel: DeliveryChannel) -> ChannelDelivery:
    """Wire a channel to its configured client."""
    settings = get_settings()
    if channel == DeliveryChannel.EMAIL:
        return EmailDelivery(get_mailer())
    if channel == DeliveryChannel.CAPACITIES:
        return CapacitiesDelivery(
            CapacitiesClient(settings.capacities_api_url, timeout=settings.http_timeout_s)
        )
    return SupernotesDelivery(
        SupernotesClient(settings.supernotes_api_url, timeout=settings.http_timeout_s)
    )


@dataclass
class FanoutSummary:
    """Counts reported by one fan-out run."""

    channel: str
    profiles: int = 0
    delivered: int = 0
    already_delivered: int = 0
    skipped: int = 0
    empty: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def run_channel_fanout(
    db: Session,
    directory: IdentityDirectoryBase,
    delivery: ChannelDelivery,
    *,
    now: datetime | None = None,
) -> FanoutSummary:
    """Push today's reflection over ``delivery`` to every eligible profile."""
    channel = delivery.channel
    profiles = db.scalars(
        select(Profile)
        .where(Profile.user_status == UserStatus.ACTIVE.value, *delivery.profile_filters())
        .order_by(Profile.created_at, Profile.id)
    ).all()
    summary = FanoutSummary(channel=channel.value, profiles=len(profiles))

    logger.info("fanout_started", channel=channel.value, profiles=len(profiles))

    for profile in profiles:
        user_id = profile.user_id
        # Offset 0 is a real offset; only an unset one is skipped
        if profile.utc_offset is None:
            summary.skipped += 1
            continue

        try:
            user = directory.get_user(user_id)
            if user is None or not user.encryption_key:
                summary.skipped += 1
                continue
            if not delivery.accepts(profile, user):
                summary.skipped += 1
                continue

            day = todays_date(profile.utc_offset, now)
            existing = find_daily_quote(db, user_id, day)
            if existing is not None and is_delivered(existing, channel):
                summary.already_delivered += 1
                continue

            reflection = get_or_create_daily_reflection(
                db, user_id, profile.utc_offset, user.encryption_key, now=now
            )
            if reflection is None:
                summary.empty += 1
                continue

            delivery.deliver(profile, user, user.encryption_key, reflection)
            mark_delivered(db, [reflection.daily_quote.id], channel)
            summary.delivered += 1
            logger.info(
                "reflection_delivered",
                channel=channel.value,
                user_id=user_id,
                day=format_day(day),
            )
        except Exception as e:
            db.rollback()
            summary.failed += 1
            logger.warning(
                "reflection_delivery_failed",
                channel=channel.value,
                user_id=user_id,
                error_type=type(e).__name__,
                error=str(e),
            )

    logger.info("fanout_completed", **summary.to_dict())
    return summary


def save_daily_to_capacities(
    db: Session,
    directory: IdentityDirectoryBase,
    user_id: str,
    client: CapacitiesClient | None = None,
    *,
    now: datetime | None = None,
) -> DailyReflection | None:
    """Push the caller's current reflection to Capacities on demand.

    Returns:
        The pushed reflection, or None when the user has nothing to reflect on.

    Raises:
        NotFoundError: The user has no profile.
        InvalidRequestError: Capacities is not configured for the user.
        UpstreamError: Capacities rejected the note.
    """
    profile = db.scalars(select(Profile).where(Profile.user_id == user_id)).first()
    if profile is None:
        raise NotFoundError(ApiErrorCode.E_PROFILE_NOT_FOUND, "Profile not found")

    encryption_key = directory.require_encryption_key(user_id)
    api_key = decrypt_optional(profile.capacities_api_key, encryption_key)
    space_id = decrypt_optional(profile.capacities_space_id, encryption_key)
    if not api_key or not space_id:
        raise InvalidRequestError(message="Capacities is not configured")

    reflection = get_or_create_daily_reflection(
        db, user_id, profile.utc_offset, encryption_key, now=now
    )
    if reflection is None:
        return None

    if client is None:
        settings = get_settings()
        client = CapacitiesClient(settings.capacities_api_url, timeout=settings.http_timeout_s)
    client.save_to_daily_note(api_key, space_id, capacities_markdown(reflection))
    mark_delivered(db, [reflection.daily_quote.id], DeliveryChannel.CAPACITIES)
    logger.info("reflection_pushed_on_demand", channel="capacities", user_id=user_id)
    return reflection
