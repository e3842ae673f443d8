"""Tests for X-Request-ID middleware.

Tests cover:
- Request ID generation when missing
- Request ID preservation when valid
- Request ID normalization (UUID lowercase)
- Request ID replacement when invalid or too long
- Request ID presence on auth failures and in error bodies
"""

from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from unearthed.app import add_request_id_middleware, create_app
from unearthed.middleware.request_id import resolve_request_id
from tests.helpers import auth_headers, create_test_user_id, cron_headers
from tests.support.test_verifier import MockJwtVerifier


@pytest.fixture
def rid_client(engine, directory):
    """A client with auth and request-id middleware, request-id outermost."""
    app = create_app(token_verifier=MockJwtVerifier(), directory=directory)
    add_request_id_middleware(app, log_requests=False)
    with TestClient(app) as client:
        yield client


class TestResolveRequestId:
    """Tests for request id validation."""

    @pytest.mark.parametrize(
        "incoming",
        ["abc_def-123", "request.id.with.dots", "a" * 128],
    )
    def test_valid_ids_kept(self, incoming):
        """Well-formed ids are kept as is."""
        assert resolve_request_id(incoming) == incoming

    def test_uuid_lowercased(self):
        """UUID ids are lowercased."""
        assert (
            resolve_request_id("550E8400-E29B-41D4-A716-446655440000")
            == "550e8400-e29b-41d4-a716-446655440000"
        )

    @pytest.mark.parametrize("incoming", [None, "", "bad id with spaces", "a" * 129, "ü" * 10])
    def test_invalid_ids_replaced(self, incoming):
        """Malformed ids are replaced with a new UUID4."""
        resolved = resolve_request_id(incoming)

        assert resolved != incoming
        assert UUID(resolved).version == 4


class TestRequestIdMiddleware:
    """Tests for the X-Request-ID header."""

    def test_generated_when_missing(self, rid_client):
        """An id is generated when none is sent."""
        response = rid_client.get("/me", headers=auth_headers(create_test_user_id()))

        assert response.status_code == 200
        UUID(response.headers["X-Request-ID"])

    def test_preserved_when_valid(self, rid_client):
        """A valid incoming id is echoed back."""
        response = rid_client.get(
            "/me", headers={**auth_headers(create_test_user_id()), "X-Request-ID": "ext-42"}
        )

        assert response.headers["X-Request-ID"] == "ext-42"

    def test_replaced_when_too_long(self, rid_client):
        """An overlong id is replaced."""
        long_id = "a" * 200

        response = rid_client.get(
            "/me", headers={**auth_headers(create_test_user_id()), "X-Request-ID": long_id}
        )

        assert response.headers["X-Request-ID"] != long_id

    def test_present_on_public_path(self, rid_client):
        """Public routes carry the header."""
        assert "X-Request-ID" in rid_client.get("/health").headers

    def test_present_on_auth_failure(self, rid_client):
        """401 responses carry the header."""
        response = rid_client.get("/me")

        assert response.status_code == 401
        assert "X-Request-ID" in response.headers

    def test_error_body_carries_the_same_id(self, rid_client):
        """The error body uses the header's id."""
        request_id = str(uuid4())

        response = rid_client.get(
            f"/sources/{uuid4()}",
            headers={**auth_headers(create_test_user_id()), "X-Request-ID": request_id},
        )

        assert response.status_code == 404
        assert response.json()["error"]["request_id"] == request_id
        assert response.headers["X-Request-ID"] == request_id

    def test_present_on_system_caller_rejection(self, rid_client):
        """Cron rejections carry the header."""
        response = rid_client.get("/me", headers=cron_headers())

        assert response.status_code == 403
        assert "X-Request-ID" in response.headers
