"""API key routes.

Keys let the desktop app and reading plugins act for the user. Routes are
transport-only: each calls exactly one service function.

- GET /keys: List the user's keys (safe fields only)
- POST /keys: Issue a key; the plaintext is returned once
- DELETE /keys/{key_id}: Delete a key

Security invariants:
- Responses never include key_hash
- Plaintext keys are never logged
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Response
from sqlalchemy.orm import Session

from unearthed.api.deps import get_db, require_session
from unearthed.auth.middleware import Viewer
from unearthed.responses import success_response
from unearthed.schemas.keys import ApiKeyCreate
from unearthed.services import api_keys as api_keys_service

router = APIRouter(tags=["keys"])


@router.get("/keys")
def list_keys(
    viewer: Annotated[Viewer, Depends(require_session)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """List the user's API keys, newest first. Empty list is valid."""
    keys = api_keys_service.list_api_keys(db, viewer.user_id)
    return success_response([k.to_wire() for k in keys])


@router.post("/keys", status_code=201)
def create_key(
    viewer: Annotated[Viewer, Depends(require_session)],
    db: Annotated[Session, Depends(get_db)],
    body: Annotated[ApiKeyCreate | None, Body()] = None,
) -> dict:
    """Issue a new API key.

    Returns:
        201 Created: {"data": {"id", "name", "createdAt", "apiKey"}}
    """
    name = body.name if body is not None else None
    created = api_keys_service.create_api_key(db, viewer.user_id, name)
    return success_response(created.to_wire())


@router.delete("/keys/{key_id}", status_code=204)
def delete_key(
    key_id: UUID,
    viewer: Annotated[Viewer, Depends(require_session)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    """Delete an API key.

    Errors:
        E_NOT_FOUND (404): Key doesn't exist or not owned by viewer
    """
    api_keys_service.delete_api_key(db, viewer.user_id, key_id)
    return Response(status_code=204)
