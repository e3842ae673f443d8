"""FastAPI dependencies for route handlers.

Common dependencies like database sessions, caller checks and the
identity directory.

Caller dependencies fail closed: a route declares the one credential shape
it accepts, and any other resolved caller is rejected.
"""

from typing import Annotated

from fastapi import Depends, Request

from unearthed.auth.middleware import CallerKind, Viewer, get_viewer
from unearthed.db.session import get_db, get_session_factory
from unearthed.errors import ApiErrorCode, ForbiddenError, UnauthenticatedError
from unearthed.services.identity import IdentityDirectoryBase

__all__ = [
    "get_db",
    "get_session_factory",
    "get_directory",
    "require_session",
    "require_premium",
    "require_api_key_caller",
    "require_bare_key_caller",
    "require_system",
    "get_encryption_key",
]


def get_directory(request: Request) -> IdentityDirectoryBase:
    """Get the shared identity directory from app state."""
    return request.app.state.directory


def _require_kind(viewer: Viewer, kind: CallerKind) -> Viewer:
    if viewer.kind != kind:
        if viewer.is_system:
            raise ForbiddenError(ApiErrorCode.E_FORBIDDEN, "Not available to the scheduler")
        raise UnauthenticatedError(message=f"This endpoint requires a {kind.value} credential")
    return viewer


def require_session(viewer: Annotated[Viewer, Depends(get_viewer)]) -> Viewer:
    """Interactive session caller."""
    return _require_kind(viewer, CallerKind.SESSION)


def require_premium(viewer: Annotated[Viewer, Depends(require_session)]) -> Viewer:
    """Session caller with premium entitlement.

    Raises:
        ForbiddenError(E_PREMIUM_REQUIRED): The caller is not premium.
    """
    if not viewer.is_premium:
        raise ForbiddenError(ApiErrorCode.E_PREMIUM_REQUIRED, "Premium subscription required")
    return viewer


def require_api_key_caller(viewer: Annotated[Viewer, Depends(get_viewer)]) -> Viewer:
    """Public client presenting "apiKey~~~secret"."""
    return _require_kind(viewer, CallerKind.API_KEY)


def require_bare_key_caller(viewer: Annotated[Viewer, Depends(get_viewer)]) -> Viewer:
    """Legacy public client presenting a bare API key."""
    return _require_kind(viewer, CallerKind.BARE_API_KEY)


def require_system(viewer: Annotated[Viewer, Depends(get_viewer)]) -> Viewer:
    """The scheduler, authenticated by the shared cron secret.

    Raises:
        ForbiddenError(E_SYSTEM_ONLY): Any user caller.
    """
    if not viewer.is_system:
        raise ForbiddenError(ApiErrorCode.E_SYSTEM_ONLY, "Scheduler access required")
    return viewer


def get_encryption_key(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    directory: Annotated[IdentityDirectoryBase, Depends(get_directory)],
) -> str:
    """The caller's encryption key.

    Raises:
        ConfigurationError: No key is provisioned for the caller.
    """
    if viewer.user_id is None:
        raise UnauthenticatedError()
    return directory.require_encryption_key(viewer.user_id)
