"""API key Pydantic schemas.

SECURITY: key_hash is never part of any response model. The plaintext
key appears only in ApiKeyCreated, returned once at creation time.
"""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from unearthed.schemas.base import StrictWireModel, WireModel


class ApiKeyOut(WireModel):
    """Safe, listable view of an API key."""

    id: UUID
    name: str | None = None
    created_at: datetime


class ApiKeyCreated(ApiKeyOut):
    """Response for key creation, carrying the plaintext key."""

    api_key: str


class ApiKeyCreate(StrictWireModel):
    """Request schema for issuing a new key."""

    name: str | None = Field(default=None, max_length=100)


class ConnectOut(WireModel):
    """The secret a public client appends to its key as "apiKey~~~secret"."""

    secret: str
