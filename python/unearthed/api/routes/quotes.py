"""Quote ingestion route."""

from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from unearthed.api.deps import get_db, get_encryption_key, require_session
from unearthed.auth.middleware import Viewer
from unearthed.responses import success_response
from unearthed.services.ingestion import ingest_quotes

router = APIRouter()


@router.post("/quotes")
def create_quotes(
    records: Annotated[list[dict[str, Any]], Body()],
    viewer: Annotated[Viewer, Depends(require_session)],
    db: Annotated[Session, Depends(get_db)],
    encryption_key: Annotated[str, Depends(get_encryption_key)],
) -> dict:
    """Import quotes for sources the caller owns.

    Notes are encrypted with the caller's key before storage and returned
    decrypted.

    Errors:
        E_INVALID_REQUEST (400): Any element fails validation
        E_SOURCE_NOT_FOUND (404): An element references a foreign source
    """
    result = ingest_quotes(db, viewer.user_id, encryption_key, records)
    return success_response(result.to_wire())
