"""Source (book) Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from unearthed.db.models import SourceOrigin, SourceType
from unearthed.schemas.base import StrictWireModel, WireModel


class SourceIn(StrictWireModel):
    """One source in an ingestion batch.

    `imageUrl` is turned into a media row and replaced by its id.
    """

    title: str = Field(..., min_length=1)
    subtitle: str | None = None
    author: str | None = ""
    type: SourceType | None = None
    origin: SourceOrigin | None = None
    asin: str | None = None
    image_url: str | None = Field(default=None, min_length=1)


class SourceUpdate(StrictWireModel):
    """Manual edit of a source's descriptive fields."""

    title: str | None = Field(default=None, min_length=1)
    subtitle: str | None = None
    author: str | None = None


class MediaOut(WireModel):
    id: UUID
    url: str
    name: str | None = None


class TagOut(WireModel):
    id: UUID
    title: str
    description: str | None = None


class TagCreate(StrictWireModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: str | None = None


class SourceOut(WireModel):
    """A source as stored, including server-only fields."""

    id: UUID
    user_id: str
    title: str
    subtitle: str | None = None
    author: str | None = None
    type: str
    origin: str
    asin: str | None = None
    media_id: UUID | None = None
    ignored: bool
    created_at: datetime | None = None
