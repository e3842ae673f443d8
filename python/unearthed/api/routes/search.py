"""Library search route."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from unearthed.api.deps import get_db, get_encryption_key, require_session
from unearthed.auth.middleware import Viewer
from unearthed.responses import success_response
from unearthed.services import library as library_service

router = APIRouter()


@router.get("/search")
def search(
    viewer: Annotated[Viewer, Depends(require_session)],
    db: Annotated[Session, Depends(get_db)],
    encryption_key: Annotated[str, Depends(get_encryption_key)],
    q: Annotated[str, Query(min_length=1, max_length=200, description="Search text")],
) -> dict:
    """Case-insensitive search over titles, authors, quotes and locations.

    Ignored sources and their quotes are left out.
    """
    return success_response(library_service.search(db, viewer.user_id, q, encryption_key))
