"""AI chat Pydantic schemas."""

from typing import Literal

from pydantic import Field

from unearthed.schemas.base import StrictWireModel, WireModel


class ChatMessage(StrictWireModel):
    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1, max_length=20_000)


class ChatRequest(StrictWireModel):
    messages: list[ChatMessage] = Field(..., min_length=1, max_length=50)


class ChatReply(WireModel):
    content: str
    input_tokens: int
    output_tokens: int
