"""Tests for structured logging context and secret hygiene.

Covers:
- ContextVar injection (request_id, user_id, path, method, task fields)
- Context clearing between requests and tasks
- Credentials and notes never appear in log events
"""

import respx
from structlog.testing import capture_logs

from unearthed.logging import (
    add_request_context,
    clear_request_context,
    clear_task_context,
    configure_task_logging,
    get_request_id,
    set_request_context,
    set_user_context,
)
from unearthed.services.crypto import encrypt_text
from unearthed.services.delivery import SupernotesDelivery, run_channel_fanout
from unearthed.services.delivery.notes_apps import SupernotesClient
from tests.factories import create_profile, create_quote, create_source
from tests.helpers import provision_user


class TestContextVars:
    """Tests for log context injection."""

    def setup_method(self):
        clear_request_context()
        clear_task_context()

    def teardown_method(self):
        clear_request_context()
        clear_task_context()

    def test_request_fields_injected(self):
        """Request and user fields are added to events."""
        set_request_context("req-1", path="/sources", method="POST")
        set_user_context("user_abc")

        event_dict = add_request_context(None, "info", {})

        assert event_dict == {
            "request_id": "req-1",
            "user_id": "user_abc",
            "path": "/sources",
            "method": "POST",
        }

    def test_unset_fields_omitted(self):
        """Unset fields are not added."""
        assert add_request_context(None, "info", {"event": "x"}) == {"event": "x"}

    def test_explicit_fields_win(self):
        """Fields passed on the event are not overwritten."""
        set_request_context("req-1")

        event_dict = add_request_context(None, "info", {"request_id": "explicit"})

        assert event_dict["request_id"] == "explicit"

    def test_clear_removes_request_fields(self):
        """Clearing the context removes every request field."""
        set_request_context("req-1", user_id="user_abc", path="/me", method="GET")
        clear_request_context()

        assert add_request_context(None, "info", {}) == {}
        assert get_request_id() is None

    def test_task_context(self):
        """Task fields are added and cleared with the task context."""
        configure_task_logging(request_id="req-9", task_name="deliver", task_id="t-1")

        event_dict = add_request_context(None, "info", {})

        assert event_dict["task_name"] == "deliver"
        assert event_dict["task_id"] == "t-1"
        assert event_dict["request_id"] == "req-9"

        clear_task_context()
        assert add_request_context(None, "info", {}) == {}


class TestNoSecretsInLogs:
    """Tests for secret hygiene in logs."""

    @respx.mock
    def test_failed_delivery_logs_no_credentials_or_notes(self, db_session, directory):
        """A failed delivery logs no credential, note or key."""
        user = provision_user(directory)
        create_profile(
            db_session,
            user.user_id,
            supernotes_api_key=encrypt_text("sn-very-secret", user.encryption_key),
        )
        source = create_source(db_session, user.user_id)
        create_quote(
            db_session,
            user.user_id,
            source.id,
            note="private thought",
            encryption_key=user.encryption_key,
        )
        respx.put("https://api.supernotes.app/v1/cards/daily").respond(500, json={})

        with capture_logs() as logs:
            summary = run_channel_fanout(
                db_session, directory, SupernotesDelivery(SupernotesClient("https://api.supernotes.app"))
            )

        assert summary.failed == 1
        rendered = repr(logs)
        assert "sn-very-secret" not in rendered
        assert "private thought" not in rendered
        assert user.encryption_key not in rendered
