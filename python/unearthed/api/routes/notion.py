"""Notion routes (premium).

Connecting exchanges the OAuth code and queues the first sync; the pages
themselves are written later by the shard consumers.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from unearthed.api.deps import get_db, get_directory, require_premium
from unearthed.auth.middleware import Viewer
from unearthed.responses import success_response
from unearthed.schemas.notion import NotionConnectRequest
from unearthed.services.identity import IdentityDirectoryBase
from unearthed.services.notion import connect_notion, sync_all_to_notion, sync_source_to_notion

router = APIRouter()


@router.post("/notion/connect")
def connect(
    body: NotionConnectRequest,
    viewer: Annotated[Viewer, Depends(require_premium)],
    db: Annotated[Session, Depends(get_db)],
    directory: Annotated[IdentityDirectoryBase, Depends(get_directory)],
) -> dict:
    """Exchange an OAuth code and queue every book for its first sync.

    Returns:
        {"data": {"databaseId", "queued"}}

    Errors:
        E_CONFIGURATION (500): Notion client credentials are not configured
        E_UPSTREAM_FAILURE (502): Notion rejected the code or database creation
    """
    result = connect_notion(db, directory, viewer.user_id, body.code)
    return success_response(result)


@router.post("/notion/sync")
def sync_all(
    viewer: Annotated[Viewer, Depends(require_premium)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Queue every non-ignored source, replacing the caller's open jobs."""
    return success_response(sync_all_to_notion(db, viewer.user_id))


@router.post("/notion/sync/{source_id}")
def sync_one(
    source_id: UUID,
    viewer: Annotated[Viewer, Depends(require_premium)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    return success_response(sync_source_to_notion(db, viewer.user_id, source_id))
