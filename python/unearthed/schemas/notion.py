"""Notion integration Pydantic schemas."""

from pydantic import Field

from unearthed.schemas.base import StrictWireModel


class NotionConnectRequest(StrictWireModel):
    """OAuth authorization code handed back by Notion's redirect."""

    code: str = Field(..., min_length=1)
