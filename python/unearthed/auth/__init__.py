"""Authentication and authorization module.

This module provides:
- Token verification (Clerk JWKS verifier)
- Auth middleware resolving session, API-key and cron callers
- Request state with viewer identity

Note: Test-only verifiers are in tests/support/test_verifier.py
"""

from unearthed.auth.middleware import AuthMiddleware, CallerKind, Viewer, get_viewer
from unearthed.auth.verifier import ClerkJwksVerifier, TokenVerifier

__all__ = [
    "AuthMiddleware",
    "CallerKind",
    "Viewer",
    "get_viewer",
    "ClerkJwksVerifier",
    "TokenVerifier",
]
