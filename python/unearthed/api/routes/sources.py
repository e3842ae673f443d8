"""Source routes.

Routes are transport-only:
- Resolve the caller through a dependency
- Call exactly one service function
- Return success(...) or raise ApiError

Ingestion takes a bare JSON array; one invalid element rejects the whole
batch with 400 before anything is written.
"""

from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, Response
from sqlalchemy.orm import Session

from unearthed.api.deps import get_db, get_encryption_key, require_premium, require_session
from unearthed.auth.middleware import Viewer
from unearthed.responses import success_response
from unearthed.schemas.sources import SourceUpdate
from unearthed.services import library as library_service
from unearthed.services.ingestion import ingest_sources

router = APIRouter()


@router.post("/sources")
def create_sources(
    records: Annotated[list[dict[str, Any]], Body()],
    viewer: Annotated[Viewer, Depends(require_session)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Import sources from the browser extension.

    Every row is stamped as a Kindle book. Sources already stored under the
    same title come back in existingRecords.

    Returns:
        {"data": {"existingRecords": [...], "insertedRecords": [...]}}
    """
    result = ingest_sources(db, viewer.user_id, records)
    return success_response(result.to_wire())


@router.get("/sources")
def list_sources(
    viewer: Annotated[Viewer, Depends(require_session)],
    db: Annotated[Session, Depends(get_db)],
    ignored: Annotated[bool, Query(description="List ignored sources instead")] = False,
) -> dict:
    sources = library_service.list_sources(db, viewer.user_id, ignored=ignored)
    return success_response([s.to_wire() for s in sources])


@router.get("/sources/{source_id}")
def get_source(
    source_id: UUID,
    viewer: Annotated[Viewer, Depends(require_session)],
    db: Annotated[Session, Depends(get_db)],
    encryption_key: Annotated[str, Depends(get_encryption_key)],
) -> dict:
    """Get a source with its media, tags and quotes (notes decrypted)."""
    detail = library_service.get_source(db, viewer.user_id, source_id, encryption_key)
    return success_response(detail.to_wire())


@router.patch("/sources/{source_id}")
def update_source(
    source_id: UUID,
    body: SourceUpdate,
    viewer: Annotated[Viewer, Depends(require_session)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    source = library_service.update_source(db, viewer.user_id, source_id, body)
    return success_response(source.to_wire())


@router.post("/sources/{source_id}/ignore")
def toggle_ignored(
    source_id: UUID,
    viewer: Annotated[Viewer, Depends(require_session)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Flip the ignored flag. Ignored sources never feed the daily reflection."""
    source = library_service.toggle_ignored(db, viewer.user_id, source_id)
    return success_response(source.to_wire())


@router.delete("/sources/{source_id}", status_code=204)
def delete_source(
    source_id: UUID,
    viewer: Annotated[Viewer, Depends(require_premium)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    """Delete a source and everything hanging off it (premium).

    Errors:
        E_PREMIUM_REQUIRED (403): Caller is not premium
        E_SOURCE_NOT_FOUND (404): Unknown source or not owned by viewer
    """
    library_service.delete_source(db, viewer.user_id, source_id)
    return Response(status_code=204)
