"""First-seen user bootstrap.

Race-safe creation of a user's profile row, plus provisioning of the
identity-provider metadata every other flow depends on (encryption key
and public-API secret).
"""

from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from unearthed.db.conflict import insert_ignoring_conflicts
from unearthed.db.models import Profile, UserStatus
from unearthed.db.session import transaction
from unearthed.logging import get_logger
from unearthed.services.crypto import generate_user_key
from unearthed.services.identity import (
    ENCRYPTION_KEY,
    SECRET_KEY,
    IdentityDirectoryBase,
    generate_user_secret,
)

logger = get_logger(__name__)


def ensure_profile(db: Session, user_id: str, utc_offset: int | None = None) -> Profile:
    """Ensure a profile exists for ``user_id`` and return it.

    Uses INSERT ... ON CONFLICT DO NOTHING on the unique user_id, so
    concurrent first requests converge on a single row. An existing
    profile's utc_offset is only filled in when it was never set.
    """
    with transaction(db):
        db.execute(
            insert_ignoring_conflicts(
                db,
                Profile,
                [
                    {
                        "id": uuid4(),
                        "user_id": user_id,
                        "utc_offset": utc_offset,
                        "user_status": UserStatus.ACTIVE.value,
                    }
                ],
            )
        )

    profile = db.scalars(select(Profile).where(Profile.user_id == user_id)).one()
    if profile.utc_offset is None and utc_offset is not None:
        with transaction(db):
            profile.utc_offset = utc_offset
    return profile


def ensure_identity_metadata(directory: IdentityDirectoryBase, user_id: str) -> None:
    """Provision the encryption key and public secret if either is missing.

    Keys are never rotated here: an existing key protects existing ciphertext.
    """
    user = directory.get_user(user_id)
    metadata = user.private_metadata if user else {}

    if not metadata.get(ENCRYPTION_KEY):
        directory.set_metadata(user_id, ENCRYPTION_KEY, generate_user_key())
        logger.info("encryption_key_provisioned", user_id=user_id)

    if not metadata.get(SECRET_KEY):
        directory.set_metadata(user_id, SECRET_KEY, generate_user_secret())
        logger.info("user_secret_provisioned", user_id=user_id)


def ensure_user_bootstrap(
    db: Session,
    directory: IdentityDirectoryBase,
    user_id: str,
    utc_offset: int | None = None,
) -> Profile:
    """Idempotently prepare everything a signed-in user needs."""
    profile = ensure_profile(db, user_id, utc_offset)
    ensure_identity_metadata(directory, user_id)
    return profile
