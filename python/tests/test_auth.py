"""Tests for the auth gate.

Tests cover:
- Public paths skip authentication
- Session JWTs: verification, bootstrap, UTC offset capture
- "apiKey~~~secret" and bare-key public clients
- The cron secret resolving to the system caller
- Route-level caller shapes and the premium gate
"""

from sqlalchemy import select

from unearthed.db.models import Profile
from unearthed.services.api_keys import create_api_key
from tests.helpers import (
    auth_headers,
    bearer,
    compound_headers,
    create_test_user_id,
    cron_headers,
    mint_test_token,
    provision_user,
)


class TestPublicPaths:
    """Tests for routes that need no credentials."""

    def test_health_needs_no_token(self, client):
        """GET /health answers without a token."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"data": {"status": "ok"}}


class TestBearerExtraction:
    """Tests for Authorization header parsing."""

    def test_missing_header(self, client):
        """A missing Authorization header returns 401."""
        response = client.get("/me")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "E_UNAUTHENTICATED"

    def test_non_bearer_scheme(self, client):
        """A non-Bearer scheme returns 401."""
        response = client.get("/me", headers={"Authorization": "Basic abc"})

        assert response.status_code == 401

    def test_empty_bearer(self, client):
        """An empty bearer token returns 401."""
        response = client.get("/me", headers={"Authorization": "Bearer   "})

        assert response.status_code == 401


class TestSessionTokens:
    """Tests for signed-in session callers."""

    def test_valid_token_bootstraps_user(self, client, db_session, directory):
        """A valid token creates the profile and identity metadata."""
        user_id = create_test_user_id()

        response = client.get("/me", headers=auth_headers(user_id, utc_offset=-5))

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["userId"] == user_id
        assert data["isPremium"] is False
        assert data["profile"]["utcOffset"] == -5
        assert directory.get_user(user_id).encryption_key
        assert directory.get_user(user_id).secret

    def test_bootstrap_is_idempotent(self, client, db_session, directory):
        """Repeated requests do not create a second profile."""
        user_id = create_test_user_id()
        client.get("/me", headers=auth_headers(user_id))
        key = directory.get_user(user_id).encryption_key

        client.get("/me", headers=auth_headers(user_id))

        assert directory.get_user(user_id).encryption_key == key
        profiles = db_session.scalars(select(Profile).where(Profile.user_id == user_id)).all()
        assert len(profiles) == 1

    def test_out_of_range_offset_is_ignored(self, client):
        """An X-UTC-Offset outside the valid range is not stored."""
        user_id = create_test_user_id()

        response = client.get("/me", headers=auth_headers(user_id, utc_offset=20))

        assert response.json()["data"]["profile"]["utcOffset"] is None

    def test_expired_token(self, client):
        """An expired token returns 401."""
        response = client.get("/me", headers=auth_headers(create_test_user_id(), expires_in=-3600))

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Token expired"

    def test_wrong_issuer(self, client):
        """A token from another issuer returns 401."""
        headers = auth_headers(create_test_user_id(), issuer="https://evil.example")

        assert client.get("/me", headers=headers).status_code == 401

    def test_wrong_audience(self, client):
        """A token for another audience returns 401."""
        headers = auth_headers(create_test_user_id(), audience="someone-else")

        assert client.get("/me", headers=headers).status_code == 401

    def test_foreign_signing_key(self, client):
        """A token signed with an unknown key returns 401."""
        from cryptography.hazmat.primitives import serialization
        from cryptography.hazmat.primitives.asymmetric import rsa

        other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048).private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        token = mint_test_token(create_test_user_id(), private_key=other_key)

        response = client.get("/me", headers=bearer(token))

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid token signature"

    def test_premium_flag_read_from_directory(self, client, directory):
        """The premium flag comes from the identity directory."""
        user = provision_user(directory, premium=True)

        response = client.get("/me", headers=auth_headers(user.user_id))

        assert response.json()["data"]["isPremium"] is True


class TestPublicClients:
    """Tests for API-key callers."""

    def test_compound_bearer_resolves_user(self, client, db_session, directory):
        """apiKey~~~secret resolves to the key's owner."""
        user = provision_user(directory)
        api_key = create_api_key(db_session, user.user_id).api_key

        response = client.get("/public/export", headers=compound_headers(api_key, user.secret))

        assert response.status_code == 200
        assert response.json() == {"data": []}

    def test_compound_bearer_with_wrong_secret(self, client, db_session, directory):
        """A wrong secret half returns 401."""
        user = provision_user(directory)
        api_key = create_api_key(db_session, user.user_id).api_key

        response = client.get("/public/export", headers=compound_headers(api_key, "wrong"))

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid credentials"

    def test_compound_bearer_with_someone_elses_key(self, client, db_session, directory):
        """Another user's key with your secret returns 401."""
        user = provision_user(directory)
        other = provision_user(directory)
        other_key = create_api_key(db_session, other.user_id).api_key

        response = client.get("/public/export", headers=compound_headers(other_key, user.secret))

        assert response.status_code == 401

    def test_bare_key_connect_returns_secret(self, client, db_session, directory):
        """POST /public/connect trades a bare key for the secret."""
        user = provision_user(directory)
        api_key = create_api_key(db_session, user.user_id).api_key

        response = client.post("/public/connect", headers=bearer(api_key))

        assert response.status_code == 200
        assert response.json() == {"data": {"secret": user.secret}}

    def test_unknown_bare_key(self, client, db_session):
        """An unknown bare key returns 401."""
        create_api_key(db_session, create_test_user_id())

        assert client.post("/public/connect", headers=bearer("z" * 32)).status_code == 401

    def test_bare_key_cannot_use_compound_routes(self, client, db_session, directory):
        """A bare key is refused on routes needing the secret."""
        user = provision_user(directory)
        api_key = create_api_key(db_session, user.user_id).api_key

        response = client.get("/public/export", headers=bearer(api_key))

        assert response.status_code == 401

    def test_session_cannot_use_public_routes(self, client):
        """A session token is refused on public routes."""
        response = client.get("/public/export", headers=auth_headers(create_test_user_id()))

        assert response.status_code == 401

    def test_api_key_cannot_use_session_routes(self, client, db_session, directory):
        """An API key is refused on session routes."""
        user = provision_user(directory)
        api_key = create_api_key(db_session, user.user_id).api_key

        response = client.get("/me", headers=compound_headers(api_key, user.secret))

        assert response.status_code == 401


class TestSystemCaller:
    """Tests for the cron secret."""

    def test_cron_secret_reaches_cron_routes(self, client):
        """The cron secret is accepted on cron routes."""
        response = client.post("/cron/supernotes", headers=cron_headers())

        assert response.status_code == 200
        assert response.json()["data"]["channel"] == "supernotes"

    def test_session_rejected_on_cron_routes(self, client):
        """A session token is refused on cron routes."""
        response = client.post("/cron/email", headers=auth_headers(create_test_user_id()))

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "E_SYSTEM_ONLY"

    def test_system_rejected_on_user_routes(self, client):
        """The cron secret is refused on user routes."""
        response = client.get("/me", headers=cron_headers())

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "E_FORBIDDEN"

    def test_near_miss_secret_is_not_system(self, client):
        """A secret differing in one character is not the system caller."""
        response = client.post("/cron/email", headers=bearer("test-cron-secreT"))

        assert response.status_code == 401


class TestPremiumGate:
    """Tests for premium-only routes."""

    def test_free_user_gets_premium_required(self, client):
        """A free user gets E_PREMIUM_REQUIRED."""
        response = client.get("/tags", headers=auth_headers(create_test_user_id()))

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "E_PREMIUM_REQUIRED"

    def test_premium_user_allowed(self, client, directory):
        """A premium user passes the gate."""
        user = provision_user(directory, premium=True)

        response = client.get("/tags", headers=auth_headers(user.user_id))

        assert response.status_code == 200
        assert response.json() == {"data": []}
