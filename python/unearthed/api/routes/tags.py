"""Tag routes (premium).

IMPORTANT: /tags/{tag_id}/sources lives here while tag links are managed
under /sources/{source_id}/tags/{tag_id}.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from unearthed.api.deps import get_db, require_premium
from unearthed.auth.middleware import Viewer
from unearthed.responses import success_response
from unearthed.schemas.sources import TagCreate
from unearthed.services import library as library_service

router = APIRouter()


@router.get("/tags")
def list_tags(
    viewer: Annotated[Viewer, Depends(require_premium)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    tags = library_service.list_tags(db, viewer.user_id)
    return success_response([t.to_wire() for t in tags])


@router.post("/tags", status_code=201)
def create_tag(
    body: TagCreate,
    viewer: Annotated[Viewer, Depends(require_premium)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Create a tag. Creating a title that already exists returns that tag."""
    tag = library_service.create_tag(db, viewer.user_id, body)
    return success_response(tag.to_wire())


@router.get("/tags/{tag_id}/sources")
def list_tag_sources(
    tag_id: UUID,
    viewer: Annotated[Viewer, Depends(require_premium)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    sources = library_service.list_sources_for_tag(db, viewer.user_id, tag_id)
    return success_response([s.to_wire() for s in sources])


@router.post("/sources/{source_id}/tags/{tag_id}", status_code=204)
def tag_source(
    source_id: UUID,
    tag_id: UUID,
    viewer: Annotated[Viewer, Depends(require_premium)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    """Attach a tag to a source. Idempotent."""
    library_service.tag_source(db, viewer.user_id, source_id, tag_id)
    return Response(status_code=204)


@router.delete("/sources/{source_id}/tags/{tag_id}", status_code=204)
def untag_source(
    source_id: UUID,
    tag_id: UUID,
    viewer: Annotated[Viewer, Depends(require_premium)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    library_service.untag_source(db, viewer.user_id, source_id, tag_id)
    return Response(status_code=204)
