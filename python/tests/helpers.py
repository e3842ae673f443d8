"""Test helpers for authentication and common test operations.

Provides:
- Token minting for session callers
- Header generation for session, public-client and cron callers
- Identity-directory provisioning for test users
"""

import time
from uuid import uuid4

import jwt

from unearthed.services.crypto import generate_user_key
from unearthed.services.identity import (
    ENCRYPTION_KEY,
    PREMIUM_KEY,
    SECRET_KEY,
    DirectoryUser,
    InMemoryDirectory,
    generate_user_secret,
)
from tests.support.test_verifier import DEFAULT_AUDIENCE, DEFAULT_ISSUER, MockJwtVerifier

DEFAULT_EXPIRES_IN = 3600  # 1 hour

# Matches CRON_SECRET set in conftest.py
TEST_CRON_SECRET = "test-cron-secret"


def create_test_user_id() -> str:
    """A Clerk-style opaque user id."""
    return f"user_{uuid4().hex[:24]}"


def mint_test_token(
    user_id: str,
    expires_in: int = DEFAULT_EXPIRES_IN,
    issuer: str = DEFAULT_ISSUER,
    audience: str | None = DEFAULT_AUDIENCE,
    private_key: bytes | None = None,
    **extra_claims,
) -> str:
    """Mint a signed RS256 session token.

    Args:
        user_id: Value of the `sub` claim.
        expires_in: Token validity in seconds from now (negative for expired).
        issuer: The `iss` claim value.
        audience: The `aud` claim value; omitted when None.
        private_key: Signing key; defaults to the MockJwtVerifier key.
        **extra_claims: Additional claims to include in the token.
    """
    now = int(time.time())
    payload = {
        "sub": user_id,
        "iss": issuer,
        "iat": now,
        "exp": now + expires_in,
        **extra_claims,
    }
    if audience is not None:
        payload["aud"] = audience

    key = private_key or MockJwtVerifier.get_private_key()
    return jwt.encode(payload, key, algorithm="RS256")


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def auth_headers(user_id: str, utc_offset: int | None = None, **token_kwargs) -> dict[str, str]:
    """Headers for a session caller, optionally reporting a UTC offset."""
    headers = bearer(mint_test_token(user_id, **token_kwargs))
    if utc_offset is not None:
        headers["X-UTC-Offset"] = str(utc_offset)
    return headers


def compound_headers(api_key: str, secret: str) -> dict[str, str]:
    """Headers for a public client presenting "apiKey~~~secret"."""
    return bearer(f"{api_key}~~~{secret}")


def cron_headers() -> dict[str, str]:
    return bearer(TEST_CRON_SECRET)


def provision_user(
    directory: InMemoryDirectory,
    user_id: str | None = None,
    *,
    premium: bool = False,
    email: str | None = None,
) -> DirectoryUser:
    """Register a user with an encryption key and public secret."""
    return directory.add_user(
        user_id or create_test_user_id(),
        email=email,
        **{
            ENCRYPTION_KEY: generate_user_key(),
            SECRET_KEY: generate_user_secret(),
            PREMIUM_KEY: premium,
        },
    )
