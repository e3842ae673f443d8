"""Authentication middleware for FastAPI.

Provides:
- AuthMiddleware: Global middleware resolving the caller from the bearer token
- Viewer: Resolved caller identity attached to request.state.viewer
- get_viewer: Dependency for accessing the resolved caller

Bearer shapes, checked in order:
1. The shared cron secret: a system caller with no user identity
2. "apiKey~~~secret": the secret names the user, the API key must be one of theirs
3. A three-part JWT: an interactive session, bootstrapped on every request
4. Anything else: a bare API key, resolved by scanning all stored hashes

Which shape a route accepts is enforced by the dependencies in api/deps.py.
"""

import hmac
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from fastapi import Depends, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from unearthed.auth.verifier import TokenVerifier
from unearthed.db.session import session_scope
from unearthed.errors import ApiError, ApiErrorCode
from unearthed.logging import get_logger, set_user_context
from unearthed.responses import error_json
from unearthed.services.api_keys import find_user_by_bare_api_key, verify_api_key_for_user
from unearthed.services.identity import SECRET_KEY, IdentityDirectoryBase

logger = get_logger(__name__)

# Header names
AUTHORIZATION_HEADER = "authorization"
UTC_OFFSET_HEADER = "x-utc-offset"

# Separator of the compound public bearer
COMPOUND_SEPARATOR = "~~~"

# Paths that don't require authentication
PUBLIC_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}


class CallerKind(str, Enum):
    """How the caller proved its identity."""

    SESSION = "session"
    API_KEY = "api_key"
    BARE_API_KEY = "bare_api_key"
    SYSTEM = "system"


@dataclass
class Viewer:
    """Resolved caller identity.

    Attributes:
        user_id: Identity-provider user id; None for the system caller.
        is_premium: Premium entitlement read from the identity directory.
        kind: Which credential shape the caller presented.
    """

    user_id: str | None
    is_premium: bool
    kind: CallerKind

    @property
    def is_system(self) -> bool:
        return self.kind == CallerKind.SYSTEM


BootstrapCallback = Callable[[str, int | None], None]


class AuthMiddleware(BaseHTTPMiddleware):
    """Resolve every non-public request to a Viewer or reject it with 401.

    Order of checks:
    1. Skip if public path
    2. Extract bearer token
    3. Resolve the token by shape (cron, compound, JWT, bare key)
    4. Bootstrap session callers via callback
    5. Attach Viewer to request state
    """

    def __init__(
        self,
        app: ASGIApp,
        verifier: TokenVerifier,
        directory: IdentityDirectoryBase,
        cron_secret: str | None = None,
        bootstrap_callback: BootstrapCallback | None = None,
    ):
        """Initialize the auth middleware.

        Args:
            app: The ASGI application.
            verifier: TokenVerifier implementation for session JWTs.
            directory: Identity directory for secrets and premium flags.
            cron_secret: Shared scheduler bearer; cron auth is disabled when None.
            bootstrap_callback: Function(user_id, utc_offset) called for each
                session request to ensure the profile and metadata exist.
        """
        super().__init__(app)
        self.verifier = verifier
        self.directory = directory
        self.cron_secret = cron_secret
        self.bootstrap_callback = bootstrap_callback

    async def dispatch(self, request: Request, call_next) -> JSONResponse:
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        token, error_response_obj = self._extract_bearer_token(request)
        if error_response_obj:
            return error_response_obj

        try:
            viewer = self._resolve(token, request)
        except ApiError as e:
            return error_json(e.code, e.message, e.status_code)
        except Exception as e:
            logger.exception("auth_resolution_failed", error_type=type(e).__name__)
            return error_json(ApiErrorCode.E_INTERNAL, "Internal server error", 500)

        if viewer is None:
            logger.warning("auth_failure", reason="unknown_credential", request_path=request.url.path)
            return error_json(ApiErrorCode.E_UNAUTHENTICATED, "Invalid credentials", 401)

        request.state.viewer = viewer
        set_user_context(viewer.user_id)
        return await call_next(request)

    def _resolve(self, token: str, request: Request) -> Viewer | None:
        if self._is_cron_secret(token):
            return Viewer(user_id=None, is_premium=False, kind=CallerKind.SYSTEM)

        if COMPOUND_SEPARATOR in token:
            return self._resolve_compound(token)

        if token.count(".") == 2:
            return self._resolve_session(token, request)

        return self._resolve_bare_key(token)

    def _is_cron_secret(self, token: str) -> bool:
        if not self.cron_secret:
            return False
        return hmac.compare_digest(token.encode(), self.cron_secret.encode())

    def _resolve_compound(self, token: str) -> Viewer | None:
        api_key, _, secret = token.partition(COMPOUND_SEPARATOR)
        if not api_key or not secret:
            return None

        user = self.directory.find_user_by_metadata(SECRET_KEY, secret)
        if user is None:
            return None

        with session_scope() as db:
            if not verify_api_key_for_user(db, api_key, user.user_id):
                return None

        return Viewer(user_id=user.user_id, is_premium=user.is_premium, kind=CallerKind.API_KEY)

    def _resolve_session(self, token: str, request: Request) -> Viewer:
        payload = self.verifier.verify(token)
        user_id = payload["sub"]

        if self.bootstrap_callback:
            self.bootstrap_callback(user_id, self._utc_offset(request))

        return Viewer(
            user_id=user_id,
            is_premium=self.directory.is_premium(user_id),
            kind=CallerKind.SESSION,
        )

    def _resolve_bare_key(self, token: str) -> Viewer | None:
        with session_scope() as db:
            user_id = find_user_by_bare_api_key(db, token)
        if user_id is None:
            return None
        return Viewer(
            user_id=user_id,
            is_premium=self.directory.is_premium(user_id),
            kind=CallerKind.BARE_API_KEY,
        )

    @staticmethod
    def _utc_offset(request: Request) -> int | None:
        raw = request.headers.get(UTC_OFFSET_HEADER)
        if raw is None:
            return None
        try:
            offset = int(raw)
        except ValueError:
            return None
        return offset if -12 <= offset <= 14 else None

    def _extract_bearer_token(self, request: Request) -> tuple[str, JSONResponse | None]:
        """Extract bearer token from Authorization header.

        Returns:
            Tuple of (token, error_response). Token is empty string if error.
        """
        auth_header = request.headers.get(AUTHORIZATION_HEADER)

        if not auth_header:
            logger.warning("auth_failure", reason="missing_header", request_path=request.url.path)
            return "", error_json(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required", 401)

        if not auth_header.lower().startswith("bearer "):
            logger.warning(
                "auth_failure", reason="invalid_header_format", request_path=request.url.path
            )
            return "", error_json(
                ApiErrorCode.E_UNAUTHENTICATED, "Invalid authorization header format", 401
            )

        token = auth_header[7:].strip()
        if not token:
            logger.warning(
                "auth_failure", reason="invalid_header_format", request_path=request.url.path
            )
            return "", error_json(
                ApiErrorCode.E_UNAUTHENTICATED, "Invalid authorization header format", 401
            )

        return token, None


def get_viewer(request: Request) -> Viewer:
    """FastAPI dependency to get the resolved caller.

    Raises:
        ApiError: If viewer is not set (middleware didn't run or path is public).
    """
    viewer = getattr(request.state, "viewer", None)
    if viewer is None:
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required")
    return viewer


# Type alias for dependency injection
ViewerDep = Depends(get_viewer)
