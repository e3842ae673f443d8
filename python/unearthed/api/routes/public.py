"""Public client routes (desktop app, KOReader and Obsidian plugins).

Two credential shapes reach these routes:
- A bare API key: the legacy /public/connect and /public/daily calls
- "apiKey~~~secret": everything that reads or writes the library
"""

from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from unearthed.api.deps import (
    get_db,
    get_directory,
    get_encryption_key,
    require_api_key_caller,
    require_bare_key_caller,
)
from unearthed.api.routes.daily import reflection_payload
from unearthed.auth.middleware import Viewer
from unearthed.errors import ConfigurationError
from unearthed.responses import success_response
from unearthed.schemas.keys import ConnectOut
from unearthed.services import library as library_service
from unearthed.services.export import export_library
from unearthed.services.identity import SECRET_KEY, IdentityDirectoryBase
from unearthed.services.ingestion import ingest_quotes, ingest_sources
from unearthed.services.reflection import get_or_create_daily_reflection

router = APIRouter(prefix="/public")


@router.post("/connect")
def connect(
    viewer: Annotated[Viewer, Depends(require_bare_key_caller)],
    directory: Annotated[IdentityDirectoryBase, Depends(get_directory)],
) -> dict:
    """Exchange a bare API key for the caller's secret.

    Returns:
        {"data": {"secret": ...}}; clients then send "apiKey~~~secret".
    """
    secret = directory.get_metadata(viewer.user_id, SECRET_KEY)
    if not secret:
        raise ConfigurationError("No secret is provisioned for this user")
    return success_response(ConnectOut(secret=secret).to_wire())


@router.get("/daily")
def get_daily(
    viewer: Annotated[Viewer, Depends(require_bare_key_caller)],
    db: Annotated[Session, Depends(get_db)],
    encryption_key: Annotated[str, Depends(get_encryption_key)],
) -> dict:
    """Today's reflection for a bare-key client; {} when there is none."""
    profile = library_service.get_profile(db, viewer.user_id)
    reflection = get_or_create_daily_reflection(
        db, viewer.user_id, profile.utc_offset, encryption_key
    )
    return success_response(reflection_payload(reflection))


@router.post("/sources")
def create_sources(
    records: Annotated[list[dict[str, Any]], Body()],
    viewer: Annotated[Viewer, Depends(require_api_key_caller)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Import sources keeping each record's own type and origin."""
    result = ingest_sources(db, viewer.user_id, records, stamp_type=None, stamp_origin=None)
    return success_response(result.to_wire())


@router.post("/quotes")
def create_quotes(
    records: Annotated[list[dict[str, Any]], Body()],
    viewer: Annotated[Viewer, Depends(require_api_key_caller)],
    db: Annotated[Session, Depends(get_db)],
    encryption_key: Annotated[str, Depends(get_encryption_key)],
) -> dict:
    """Import quotes, also skipping ones whose sanitized text is already stored."""
    result = ingest_quotes(
        db, viewer.user_id, encryption_key, records, skip_sanitized_duplicates=True
    )
    return success_response(result.to_wire())


@router.get("/export")
def export(
    viewer: Annotated[Viewer, Depends(require_api_key_caller)],
    db: Annotated[Session, Depends(get_db)],
    encryption_key: Annotated[str, Depends(get_encryption_key)],
) -> dict:
    """Every non-ignored source with its quotes, for the Obsidian plugin."""
    sources = export_library(db, viewer.user_id, encryption_key)
    return success_response([s.to_wire() for s in sources])
