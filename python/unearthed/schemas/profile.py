"""Profile Pydantic schemas.

Credentials are write-only: responses report whether they are configured,
never their values.
"""

from uuid import UUID

from pydantic import Field

from unearthed.schemas.base import StrictWireModel, WireModel


class ProfileOut(WireModel):
    id: UUID
    user_id: str
    utc_offset: int | None = None
    user_status: str
    daily_emails: bool
    capacities_configured: bool
    supernotes_configured: bool
    notion_connected: bool
    ai_input_tokens_used: int
    ai_output_tokens_used: int


class ProfileUpdate(StrictWireModel):
    """Settings change. An empty string clears a credential."""

    utc_offset: int | None = Field(default=None, ge=-12, le=14)
    daily_emails: bool | None = None
    capacities_api_key: str | None = None
    capacities_space_id: str | None = None
    supernotes_api_key: str | None = None
