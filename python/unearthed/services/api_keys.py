"""User API key service layer.

API keys let non-browser clients (desktop app, KOReader plugin, Obsidian
plugin) act on behalf of a user:
- Create: 32-char alphanumeric key, returned once, stored as a bcrypt hash
- List / delete: safe fields only
- Verify: linear scan + bcrypt compare over one user's keys
- Bare-key lookup: global scan used by the legacy connect/daily endpoints

Security invariants:
- Plaintext keys never persist and are never logged
- key_hash is never returned to clients
"""

import secrets
import string
from uuid import UUID

import bcrypt
from sqlalchemy import select
from sqlalchemy.orm import Session

from unearthed.db.models import ApiKey
from unearthed.db.session import transaction
from unearthed.errors import ApiErrorCode, NotFoundError
from unearthed.logging import get_logger
from unearthed.schemas.keys import ApiKeyCreated, ApiKeyOut

logger = get_logger(__name__)

API_KEY_LENGTH = 32
API_KEY_ALPHABET = string.ascii_letters + string.digits
BCRYPT_ROUNDS = 10


def generate_api_key() -> str:
    """Generate a 32-character alphanumeric API key."""
    return "".join(secrets.choice(API_KEY_ALPHABET) for _ in range(API_KEY_LENGTH))


def hash_api_key(api_key: str) -> str:
    return bcrypt.hashpw(api_key.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode(
        "utf-8"
    )


def _matches(api_key: str, key_hash: str) -> bool:
    try:
        return bcrypt.checkpw(api_key.encode("utf-8"), key_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def create_api_key(db: Session, user_id: str, name: str | None = None) -> ApiKeyCreated:
    """Issue a new key for the user. The plaintext is only in the return value."""
    api_key = generate_api_key()
    row = ApiKey(user_id=user_id, key_hash=hash_api_key(api_key), name=name)
    with transaction(db):
        db.add(row)
        db.flush()

    logger.info("api_key_created", user_id=user_id, key_id=str(row.id))
    return ApiKeyCreated(id=row.id, name=row.name, created_at=row.created_at, api_key=api_key)


def list_api_keys(db: Session, user_id: str) -> list[ApiKeyOut]:
    rows = db.scalars(
        select(ApiKey).where(ApiKey.user_id == user_id).order_by(ApiKey.created_at.desc())
    ).all()
    return [ApiKeyOut.model_validate(row) for row in rows]


def delete_api_key(db: Session, user_id: str, key_id: UUID) -> None:
    """Delete one of the user's keys.

    Raises:
        NotFoundError: The key does not exist or belongs to someone else.
    """
    row = db.scalars(select(ApiKey).where(ApiKey.id == key_id, ApiKey.user_id == user_id)).first()
    if row is None:
        raise NotFoundError(ApiErrorCode.E_NOT_FOUND, "API key not found")

    with transaction(db):
        db.delete(row)

    logger.info("api_key_deleted", user_id=user_id, key_id=str(key_id))


def verify_api_key_for_user(db: Session, api_key: str, user_id: str) -> bool:
    """Check ``api_key`` against every hashed key the user owns."""
    hashes = db.scalars(select(ApiKey.key_hash).where(ApiKey.user_id == user_id)).all()
    return any(_matches(api_key, key_hash) for key_hash in hashes)


def find_user_by_bare_api_key(db: Session, api_key: str) -> str | None:
    """Return the owner of ``api_key`` by scanning all stored hashes."""
    for owner, key_hash in db.execute(select(ApiKey.user_id, ApiKey.key_hash)).all():
        if _matches(api_key, key_hash):
            return owner
    return None
