"""AI chat route (premium)."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from unearthed.api.deps import get_db, get_encryption_key, require_premium
from unearthed.auth.middleware import Viewer
from unearthed.responses import success_response
from unearthed.schemas.chat import ChatRequest
from unearthed.services.chat import chat_about_source

router = APIRouter()


@router.post("/chat/{source_id}")
def chat(
    source_id: UUID,
    body: ChatRequest,
    viewer: Annotated[Viewer, Depends(require_premium)],
    db: Annotated[Session, Depends(get_db)],
    encryption_key: Annotated[str, Depends(get_encryption_key)],
) -> dict:
    """Ask about one source; its quotes and notes form the model's context.

    Errors:
        E_QUOTA_EXCEEDED (429): The caller's token quota is used up
        E_UPSTREAM_FAILURE (502): The AI provider failed
    """
    reply = chat_about_source(db, viewer.user_id, source_id, body.messages, encryption_key)
    return success_response(reply.to_wire())
