"""Pydantic schemas for request/response models.

All schemas are re-exported here for convenient imports.
"""

from unearthed.schemas.chat import ChatMessage, ChatReply, ChatRequest
from unearthed.schemas.daily import DailyReflectionOut, ReflectionSourceOut
from unearthed.schemas.keys import ApiKeyCreate, ApiKeyCreated, ApiKeyOut, ConnectOut
from unearthed.schemas.notion import NotionConnectRequest
from unearthed.schemas.profile import ProfileOut, ProfileUpdate
from unearthed.schemas.quotes import QuoteIn, QuoteOut, SourceDetailOut
from unearthed.schemas.sources import (
    MediaOut,
    SourceIn,
    SourceOut,
    SourceUpdate,
    TagCreate,
    TagOut,
)

__all__ = [
    # Ingestion
    "SourceIn",
    "QuoteIn",
    # Library
    "SourceOut",
    "SourceUpdate",
    "SourceDetailOut",
    "QuoteOut",
    "MediaOut",
    "TagOut",
    "TagCreate",
    # Daily reflection
    "DailyReflectionOut",
    "ReflectionSourceOut",
    # Keys
    "ApiKeyOut",
    "ApiKeyCreated",
    "ApiKeyCreate",
    "ConnectOut",
    # Profile
    "ProfileOut",
    "ProfileUpdate",
    # Integrations
    "NotionConnectRequest",
    "ChatMessage",
    "ChatRequest",
    "ChatReply",
]
