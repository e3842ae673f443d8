"""Current user endpoints.

Returns information about the signed-in viewer and edits their settings.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from unearthed.api.deps import get_db, get_encryption_key, require_session
from unearthed.auth.middleware import Viewer
from unearthed.responses import success_response
from unearthed.schemas.profile import ProfileUpdate
from unearthed.services import library as library_service

router = APIRouter()


@router.get("/me")
def get_me(
    viewer: Annotated[Viewer, Depends(require_session)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Get current user information.

    Returns:
        Success envelope with userId, isPremium and the profile settings.
    """
    profile = library_service.get_profile(db, viewer.user_id)
    return success_response(
        {
            "userId": viewer.user_id,
            "isPremium": viewer.is_premium,
            "profile": library_service.profile_out(profile).to_wire(),
        }
    )


@router.patch("/me/profile")
def update_my_profile(
    body: ProfileUpdate,
    viewer: Annotated[Viewer, Depends(require_session)],
    db: Annotated[Session, Depends(get_db)],
    encryption_key: Annotated[str, Depends(get_encryption_key)],
) -> dict:
    """Update utcOffset, dailyEmails and notes-app credentials.

    Credentials are encrypted before storage; an empty string clears one.
    """
    profile = library_service.update_profile(db, viewer.user_id, body, encryption_key)
    return success_response(profile.to_wire())
