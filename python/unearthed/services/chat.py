"""Chat about a source through an OpenAI-compatible chat completions endpoint.

The call is a plain pass-through: a system turn carrying the book and its
highlights, then the caller's conversation. Token usage reported by the
provider is added to the profile's counters; once the counters reach
AI_TOKEN_QUOTA further calls fail with E_QUOTA_EXCEEDED.
"""

from dataclasses import dataclass
from uuid import UUID

import httpx
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from unearthed.config import get_settings
from unearthed.db.models import Profile, Quote, Source
from unearthed.db.session import transaction
from unearthed.errors import (
    ApiErrorCode,
    ConfigurationError,
    NotFoundError,
    QuotaExceededError,
    UpstreamError,
)
from unearthed.logging import get_logger
from unearthed.schemas.chat import ChatMessage, ChatReply
from unearthed.services.crypto import decrypt_note
from unearthed.services.text import location_sort_key

logger = get_logger(__name__)

MAX_CONTEXT_QUOTES = 200
MAX_REPLY_TOKENS = 1024


@dataclass(frozen=True)
class Turn:
    role: str
    content: str


def build_system_prompt(source: Source, quotes: list[Quote], encryption_key: str) -> str:
    """Describe the book and the reader's highlights for the model."""
    header = f'You are discussing the book "{source.title}"'
    if source.author:
        header += f" by {source.author}"
    lines = [
        header + " with its reader.",
        "These are passages the reader highlighted, with their own notes:",
        "",
    ]
    ordered = sorted(quotes, key=lambda q: location_sort_key(q.location))
    for quote in ordered[:MAX_CONTEXT_QUOTES]:
        lines.append(f"- {quote.content}")
        note = decrypt_note(quote.note, encryption_key)
        if note:
            lines.append(f"  Note: {note}")
    lines += ["", "Ground your answers in these passages where you can."]
    return "\n".join(lines)


def _call_provider(turns: list[Turn]) -> tuple[str, int, int]:
    settings = get_settings()
    if not settings.ai_api_key:
        raise ConfigurationError("AI_API_KEY is not configured")

    body = {
        "model": settings.ai_model,
        "messages": [{"role": t.role, "content": t.content} for t in turns],
        "max_tokens": MAX_REPLY_TOKENS,
        "stream": False,
    }
    try:
        with httpx.Client(timeout=httpx.Timeout(settings.ai_timeout_s, connect=10.0)) as client:
            response = client.post(
                f"{settings.ai_api_url.rstrip('/')}/chat/completions",
                headers={"Authorization": f"Bearer {settings.ai_api_key}"},
                json=body,
            )
    except httpx.TimeoutException as e:
        raise UpstreamError("AI provider timed out", service="ai") from e
    except httpx.RequestError as e:
        raise UpstreamError("AI provider unreachable", service="ai") from e

    if response.status_code != 200:
        raise UpstreamError(
            f"AI provider returned {response.status_code}",
            service="ai",
            status=response.status_code,
        )

    data = response.json()
    choices = data.get("choices") or []
    if not choices:
        raise UpstreamError("AI provider response missing choices", service="ai")
    text = choices[0].get("message", {}).get("content") or ""
    usage = data.get("usage") or {}
    return text, int(usage.get("prompt_tokens") or 0), int(usage.get("completion_tokens") or 0)


def chat_about_source(
    db: Session,
    user_id: str,
    source_id: UUID,
    messages: list[ChatMessage],
    encryption_key: str,
) -> ChatReply:
    """Answer the conversation about one of the user's sources.

    Raises:
        NotFoundError: Unknown source or profile.
        QuotaExceededError: The profile already used its token quota.
        UpstreamError: The provider failed.
        ConfigurationError: No AI key is configured.
    """
    profile = db.scalars(select(Profile).where(Profile.user_id == user_id)).first()
    if profile is None:
        raise NotFoundError(ApiErrorCode.E_PROFILE_NOT_FOUND, "Profile not found")

    used = profile.ai_input_tokens_used + profile.ai_output_tokens_used
    if used >= get_settings().ai_token_quota:
        logger.info("ai_quota_exceeded", user_id=user_id, used=used)
        raise QuotaExceededError()

    source = db.scalars(
        select(Source).where(Source.id == source_id, Source.user_id == user_id)
    ).first()
    if source is None:
        raise NotFoundError(ApiErrorCode.E_SOURCE_NOT_FOUND, "Source not found")

    turns = [Turn("system", build_system_prompt(source, list(source.quotes), encryption_key))]
    turns += [Turn(m.role, m.content) for m in messages]

    text, input_tokens, output_tokens = _call_provider(turns)

    with transaction(db):
        db.execute(
            update(Profile)
            .where(Profile.id == profile.id)
            .values(
                ai_input_tokens_used=Profile.ai_input_tokens_used + input_tokens,
                ai_output_tokens_used=Profile.ai_output_tokens_used + output_tokens,
            )
        )

    logger.info(
        "ai_chat_completed",
        user_id=user_id,
        source_id=str(source_id),
        input_tokens=input_tokens,
        output_tokens=output_tokens,
    )
    return ChatReply(content=text, input_tokens=input_tokens, output_tokens=output_tokens)
