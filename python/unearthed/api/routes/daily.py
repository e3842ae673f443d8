"""Daily reflection routes.

GET /daily selects today's quote on first call and returns the same one for
the rest of the caller's day. A user with nothing to reflect on gets an
empty object rather than an error.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from unearthed.api.deps import get_db, get_directory, get_encryption_key, require_session
from unearthed.auth.middleware import Viewer
from unearthed.responses import success_response
from unearthed.services import library as library_service
from unearthed.services.delivery import save_daily_to_capacities
from unearthed.services.identity import IdentityDirectoryBase
from unearthed.services.reflection import DailyReflection, get_or_create_daily_reflection

router = APIRouter()


def reflection_payload(reflection: DailyReflection | None) -> dict:
    return reflection.to_out().to_wire() if reflection is not None else {}


@router.get("/daily")
def get_daily(
    viewer: Annotated[Viewer, Depends(require_session)],
    db: Annotated[Session, Depends(get_db)],
    encryption_key: Annotated[str, Depends(get_encryption_key)],
) -> dict:
    """Today's reflection in the caller's UTC offset.

    Returns:
        {"data": {"day", "source", "quote"}} or {"data": {}}
    """
    profile = library_service.get_profile(db, viewer.user_id)
    reflection = get_or_create_daily_reflection(
        db, viewer.user_id, profile.utc_offset, encryption_key
    )
    return success_response(reflection_payload(reflection))


@router.post("/daily/capacities")
def push_daily_to_capacities(
    viewer: Annotated[Viewer, Depends(require_session)],
    db: Annotated[Session, Depends(get_db)],
    directory: Annotated[IdentityDirectoryBase, Depends(get_directory)],
) -> dict:
    """Save today's reflection to the caller's Capacities daily note.

    Errors:
        E_INVALID_REQUEST (400): Capacities is not configured
        E_UPSTREAM_FAILURE (502): Capacities rejected the note
    """
    reflection = save_daily_to_capacities(db, directory, viewer.user_id)
    return success_response(reflection_payload(reflection))
