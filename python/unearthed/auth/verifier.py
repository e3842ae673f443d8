"""Session token verification.

Provides:
- TokenVerifier: Protocol for token verification
- ClerkJwksVerifier: Verifier using the identity provider's JWKS

Note: Test-only verifiers are in tests/support/test_verifier.py
"""

import threading
import time
from typing import Any, Protocol

import jwt
from jwt import PyJWKClient
from jwt.exceptions import (
    DecodeError,
    ExpiredSignatureError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidSignatureError,
    InvalidTokenError,
    PyJWKClientError,
)

from unearthed.errors import ApiError, ApiErrorCode
from unearthed.logging import get_logger

logger = get_logger(__name__)

# Clock skew allowance in seconds
CLOCK_SKEW_SECONDS = 60


class TokenVerifier(Protocol):
    """Protocol for token verification.

    Implementations must verify JWT tokens and return decoded claims.
    """

    def verify(self, token: str) -> dict[str, Any]:
        """Verify token and return decoded claims.

        Raises:
            ApiError(E_UNAUTHENTICATED): Token is invalid, expired, or malformed.
            ApiError(E_AUTH_UNAVAILABLE): Infrastructure failure (JWKS unreachable).
        """
        ...


def decode_claims(
    token: str,
    key: Any,
    *,
    algorithms: list[str],
    issuer: str,
    audiences: list[str],
) -> dict[str, Any]:
    """Decode and validate a session JWT, mapping failures to E_UNAUTHENTICATED.

    Audience is only checked when audiences are configured: session tokens
    carry `azp` rather than `aud` unless a custom template adds one.
    The `sub` claim is the identity provider's opaque user id.
    """
    try:
        payload = jwt.decode(
            token,
            key,
            algorithms=algorithms,
            audience=audiences or None,
            issuer=issuer,
            leeway=CLOCK_SKEW_SECONDS,
            options={
                "require": ["exp", "iss", "sub"],
                "verify_aud": bool(audiences),
            },
        )
    except ExpiredSignatureError as e:
        logger.warning("auth_failure", reason="expired_token")
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Token expired") from e
    except InvalidSignatureError as e:
        logger.warning("auth_failure", reason="invalid_signature")
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Invalid token signature") from e
    except InvalidIssuerError as e:
        logger.warning("auth_failure", reason="invalid_issuer")
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Invalid token issuer") from e
    except InvalidAudienceError as e:
        logger.warning("auth_failure", reason="invalid_audience")
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Invalid token audience") from e
    except DecodeError as e:
        logger.warning("auth_failure", reason="decode_error", error=str(e))
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Invalid token format") from e
    except InvalidTokenError as e:
        logger.warning("auth_failure", reason="invalid_token", error=str(e))
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Invalid token") from e

    sub = payload.get("sub")
    if not sub or not isinstance(sub, str):
        logger.warning("auth_failure", reason="missing_sub")
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Invalid token: missing sub")

    return payload


class ClerkJwksVerifier:
    """Production session token verifier using the Clerk JWKS endpoint.

    Validates:
    - Signature via JWKS (RS256)
    - exp with ±60s clock skew
    - iss matches configured issuer (after normalization)
    - aud, when audiences are configured
    - sub present
    """

    def __init__(
        self,
        jwks_url: str,
        issuer: str,
        audiences: list[str] | None = None,
        cache_ttl: int = 3600,
    ):
        self.jwks_url = jwks_url
        self.issuer = issuer.rstrip("/")
        self.audiences = audiences or []
        self.cache_ttl = cache_ttl

        self._jwks_client: PyJWKClient | None = None
        self._jwks_lock = threading.Lock()
        self._last_refresh: float = 0

    def _get_jwks_client(self) -> PyJWKClient:
        with self._jwks_lock:
            if self._jwks_client is None:
                self._jwks_client = PyJWKClient(
                    self.jwks_url,
                    cache_keys=True,
                    lifespan=self.cache_ttl,
                )
            return self._jwks_client

    def _refresh_jwks(self) -> None:
        """Force refresh of JWKS keys (called on kid miss)."""
        with self._jwks_lock:
            self._jwks_client = PyJWKClient(
                self.jwks_url,
                cache_keys=True,
                lifespan=self.cache_ttl,
            )
            self._last_refresh = time.time()

    def verify(self, token: str) -> dict[str, Any]:
        try:
            signing_key = self._get_signing_key(token)
        except PyJWKClientError as e:
            logger.warning("auth_failure", reason="jwks_unavailable", error=str(e))
            raise ApiError(
                ApiErrorCode.E_AUTH_UNAVAILABLE,
                "Authentication service unavailable",
            ) from e

        return decode_claims(
            token,
            signing_key.key,
            algorithms=["RS256"],
            issuer=self.issuer,
            audiences=self.audiences,
        )

    def _get_signing_key(self, token: str) -> Any:
        """Get the signing key for the token, refreshing JWKS once on a kid miss."""
        client = self._get_jwks_client()

        try:
            return client.get_signing_key_from_jwt(token)
        except PyJWKClientError as e:
            if "Unable to find" in str(e) or "kid" in str(e).lower():
                logger.info("jwks_refresh_on_kid_miss")
                self._refresh_jwks()
                client = self._get_jwks_client()

                try:
                    return client.get_signing_key_from_jwt(token)
                except PyJWKClientError as retry_e:
                    logger.warning("auth_failure", reason="kid_not_found")
                    raise ApiError(
                        ApiErrorCode.E_UNAUTHENTICATED,
                        "Invalid token: signing key not found",
                    ) from retry_e
            raise
