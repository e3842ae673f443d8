"""Tests for first-seen user bootstrap."""

from unearthed.db.models import Profile
from unearthed.services.bootstrap import (
    ensure_identity_metadata,
    ensure_profile,
    ensure_user_bootstrap,
)
from unearthed.services.identity import ENCRYPTION_KEY, SECRET_KEY, InMemoryDirectory
from tests.factories import count_rows
from tests.helpers import create_test_user_id, provision_user


class TestEnsureProfile:
    """Tests for profile creation on first sight."""

    def test_creates_active_profile(self, db_session):
        """A new user gets an active profile."""
        user_id = create_test_user_id()

        profile = ensure_profile(db_session, user_id, utc_offset=2)

        assert profile.user_id == user_id
        assert profile.utc_offset == 2
        assert profile.user_status == "ACTIVE"
        assert profile.daily_emails is True

    def test_idempotent(self, db_session):
        """A second call returns the same profile."""
        user_id = create_test_user_id()

        first = ensure_profile(db_session, user_id)
        second = ensure_profile(db_session, user_id)

        assert first.id == second.id
        assert count_rows(db_session, Profile, user_id=user_id) == 1

    def test_offset_filled_in_only_when_unset(self, db_session):
        """A stored UTC offset is never overwritten."""
        user_id = create_test_user_id()
        ensure_profile(db_session, user_id)

        assert ensure_profile(db_session, user_id, utc_offset=-5).utc_offset == -5
        assert ensure_profile(db_session, user_id, utc_offset=3).utc_offset == -5

    def test_separate_sessions_converge(self, session_factory):
        """Two sessions bootstrapping one user share one row."""
        user_id = create_test_user_id()
        a, b = session_factory(), session_factory()
        try:
            assert ensure_profile(a, user_id).id == ensure_profile(b, user_id).id
        finally:
            a.close()
            b.close()


class TestEnsureIdentityMetadata:
    """Tests for identity metadata provisioning."""

    def test_provisions_key_and_secret(self):
        """A new user gets an encryption key and a public secret."""
        directory = InMemoryDirectory()
        user_id = create_test_user_id()

        ensure_identity_metadata(directory, user_id)

        user = directory.get_user(user_id)
        assert user.encryption_key
        assert user.secret

    def test_existing_values_are_never_rotated(self):
        """Existing key and secret are left untouched."""
        directory = InMemoryDirectory()
        user = provision_user(directory)
        key, secret = user.encryption_key, user.secret

        ensure_identity_metadata(directory, user.user_id)

        assert directory.get_metadata(user.user_id, ENCRYPTION_KEY) == key
        assert directory.get_metadata(user.user_id, SECRET_KEY) == secret

    def test_full_bootstrap(self, db_session):
        """Bootstrap provisions both the profile and the metadata."""
        directory = InMemoryDirectory()
        user_id = create_test_user_id()

        profile = ensure_user_bootstrap(db_session, directory, user_id, utc_offset=1)

        assert profile.utc_offset == 1
        assert directory.require_encryption_key(user_id)
