"""Quote (highlight) Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from unearthed.schemas.base import StrictWireModel, WireModel
from unearthed.schemas.sources import MediaOut, SourceOut, TagOut


class QuoteIn(StrictWireModel):
    """One highlight in an ingestion batch. `note` is plaintext here."""

    content: str = Field(..., min_length=1)
    note: str | None = ""
    color: str | None = None
    location: str | None = None
    source_id: UUID


class QuoteOut(WireModel):
    """A stored highlight. `note` is the ciphertext unless a read path decrypted it."""

    id: UUID
    user_id: str
    source_id: UUID
    content: str
    note: str = ""
    color: str | None = None
    location: str | None = None
    created_at: datetime | None = None


class SourceDetailOut(SourceOut):
    """A source with its media, tags, and decrypted quotes."""

    media: MediaOut | None = None
    tags: list[TagOut] = []
    quotes: list[QuoteOut] = []
