"""FastAPI application creation and configuration.

This module creates and configures the FastAPI application instance.
It registers exception handlers, auth middleware, request-id middleware, and routes.

Token Verification:
- Session tokens are verified against the Clerk JWKS endpoint
- API-key and cron bearers are resolved by the auth middleware itself

Middleware Ordering (Critical):
- Middleware runs in reverse order of registration
- RequestIDMiddleware is added LAST so it runs FIRST (outermost)
- This ensures all requests (including auth failures) get X-Request-ID

Actual execution order per request:
1. RequestIDMiddleware (sets request_id, starts timer)
2. AuthMiddleware (resolves the caller, sets viewer)
3. Route handler
4. AuthMiddleware (returns response)
5. RequestIDMiddleware (logs, sets response header)
"""

import json

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from unearthed.api.routes import create_api_router
from unearthed.auth.middleware import AuthMiddleware, BootstrapCallback
from unearthed.auth.verifier import ClerkJwksVerifier, TokenVerifier
from unearthed.config import get_settings
from unearthed.db.session import session_scope
from unearthed.errors import ApiError, ApiErrorCode
from unearthed.logging import configure_logging, get_logger
from unearthed.middleware.request_id import RequestIDMiddleware
from unearthed.responses import (
    api_error_handler,
    error_json,
    http_exception_handler,
    unhandled_exception_handler,
)
from unearthed.services.bootstrap import ensure_user_bootstrap
from unearthed.services.identity import IdentityDirectoryBase, get_identity_directory

# Configure structured logging at import time
configure_logging()

logger = get_logger(__name__)


def create_bootstrap_callback(directory: IdentityDirectoryBase) -> BootstrapCallback:
    """Create a bootstrap callback that opens its own database session.

    The callback runs for every session request: it creates the profile on
    first sight and provisions the encryption key and public secret.
    """

    def bootstrap(user_id: str, utc_offset: int | None) -> None:
        with session_scope() as db:
            ensure_user_bootstrap(db, directory, user_id, utc_offset)

    return bootstrap


def create_token_verifier() -> ClerkJwksVerifier:
    """Create the session token verifier from settings."""
    settings = get_settings()

    return ClerkJwksVerifier(
        jwks_url=settings.clerk_jwks_url,  # type: ignore
        issuer=settings.normalized_issuer,  # type: ignore
        audiences=settings.audience_list,
    )


def create_app(
    skip_auth_middleware: bool = False,
    token_verifier: TokenVerifier | None = None,
    directory: IdentityDirectoryBase | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        skip_auth_middleware: If True, skip adding auth middleware (for testing).
        token_verifier: Optional custom token verifier (for testing).
        directory: Optional identity directory (for testing).

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()
    directory = directory or get_identity_directory()

    app = FastAPI(
        title="Unearthed API",
        description="Backend API for Unearthed - resurfacing reading highlights",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.directory = directory

    # Register exception handlers
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Reject the whole request when any part of the body is invalid."""
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = "Invalid request body"
        if location:
            message = f"{message}: {location}: {first.get('msg', 'invalid')}"
        return error_json(ApiErrorCode.E_INVALID_REQUEST, message, 400)

    @app.middleware("http")
    async def catch_json_decode_errors(request: Request, call_next):
        """Catch JSON decode errors before they reach route handlers."""
        if request.method in ("POST", "PUT", "PATCH"):
            content_type = request.headers.get("content-type", "")
            if "application/json" in content_type:
                body = await request.body()
                if body:
                    try:
                        json.loads(body)
                    except json.JSONDecodeError:
                        return error_json(
                            ApiErrorCode.E_INVALID_REQUEST, "Malformed JSON body", 400
                        )
        return await call_next(request)

    app.include_router(create_api_router())

    # Add auth middleware (runs on all requests except public paths)
    if not skip_auth_middleware:
        app.add_middleware(
            AuthMiddleware,
            verifier=token_verifier or create_token_verifier(),
            directory=directory,
            cron_secret=settings.cron_secret,
            bootstrap_callback=create_bootstrap_callback(directory),
        )

        logger.info(
            "auth_middleware_enabled",
            env=settings.unearthed_env.value,
            cron_enabled=bool(settings.cron_secret),
        )

    return app


def add_request_id_middleware(app: FastAPI, log_requests: bool = True) -> None:
    """Add request-id middleware to the app.

    This should be called AFTER all other middleware is added, so it runs FIRST.
    This ensures every response includes X-Request-ID, including auth failures.
    """
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)
    logger.info("request_id_middleware_enabled")
