"""Tests for daily reflection selection.

Tests cover:
- At most one selection per (user, logical day), stable across calls
- Day boundaries follow the user's UTC offset
- Ignored sources never feed a new selection
- A frozen pick whose source is later ignored yields an empty result
- Concurrent first callers converge on one row
"""

import random
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, date, datetime
from threading import Barrier

import pytest
from sqlalchemy import select

from unearthed.db.models import DailyQuote
from unearthed.services import reflection as reflection_service
from unearthed.services.crypto import generate_user_key
from unearthed.services.reflection import get_daily_reflection, get_or_create_daily_reflection
from tests.factories import count_rows, create_daily_quote, create_quote, create_source
from tests.helpers import create_test_user_id

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=UTC)


@pytest.fixture
def user_id() -> str:
    return create_test_user_id()


@pytest.fixture
def key() -> str:
    return generate_user_key()


@pytest.fixture
def library(db_session, user_id, key):
    """One source with three quotes, one of them carrying a note."""
    source = create_source(db_session, user_id)
    quotes = [
        create_quote(db_session, user_id, source.id, "First", location="12"),
        create_quote(
            db_session, user_id, source.id, "Second", note="Reread", encryption_key=key
        ),
        create_quote(db_session, user_id, source.id, "Third"),
    ]
    return source, quotes


class TestGetOrCreate:
    """Tests for picking and persisting the day's reflection."""

    def test_no_quotes_returns_none_without_a_row(self, db_session, user_id, key):
        """An empty library yields None and stores nothing."""
        result = get_or_create_daily_reflection(db_session, user_id, 0, key, now=NOW)

        assert result is None
        assert count_rows(db_session, DailyQuote) == 0

    def test_first_call_selects_and_persists(self, db_session, user_id, key, library):
        """The first call of a day picks a quote and stores it."""
        result = get_or_create_daily_reflection(db_session, user_id, 0, key, now=NOW)

        assert result is not None
        assert result.day == date(2024, 3, 10)
        assert result.source.id == library[0].id
        stored = db_session.scalars(select(DailyQuote)).one()
        assert stored.quote_id == result.quote.id

    def test_repeated_calls_return_the_same_quote(self, db_session, user_id, key, library):
        """Later calls on the same day return the stored pick."""
        first = get_or_create_daily_reflection(
            db_session, user_id, 0, key, now=NOW, rng=random.Random(1)
        )

        for seed in range(2, 10):
            again = get_or_create_daily_reflection(
                db_session, user_id, 0, key, now=NOW, rng=random.Random(seed)
            )
            assert again.quote.id == first.quote.id

        assert count_rows(db_session, DailyQuote, user_id=user_id) == 1

    def test_note_is_decrypted(self, db_session, user_id, key, library):
        """The chosen quote's note comes back decrypted."""
        noted = library[1][1]

        class PickNoted(random.Random):
            def randrange(self, n):
                return 1

        result = get_or_create_daily_reflection(
            db_session, user_id, 0, key, now=NOW, rng=PickNoted()
        )

        assert result.quote.id == noted.id
        assert result.note == "Reread"
        assert result.to_out().quote.note == "Reread"

    def test_candidates_follow_creation_order(self, db_session, user_id, key, library):
        """Candidates are indexed in the order the quotes were created."""
        class PickIndex(random.Random):
            def __init__(self, index):
                super().__init__()
                self.index = index

            def randrange(self, n):
                return self.index

        for index, quote in enumerate(library[1]):
            result = get_or_create_daily_reflection(
                db_session,
                user_id,
                0,
                key,
                now=datetime(2024, 3, index + 1, 12, tzinfo=UTC),
                rng=PickIndex(index),
            )
            assert result.quote.id == quote.id

    def test_wire_day_format(self, db_session, user_id, key, library):
        """The day is serialized as YYYY/MM/DD."""
        result = get_or_create_daily_reflection(db_session, user_id, 0, key, now=NOW)

        wire = result.to_out().to_wire()
        assert wire["day"] == "2024/03/10"
        assert set(wire) == {"day", "source", "quote"}


class TestDayBoundaries:
    """Tests for logical day boundaries."""

    def test_new_day_in_users_offset_gets_a_new_row(self, db_session, user_id, key, library):
        """Midnight in the user's offset starts a new pick."""
        before = datetime(2024, 3, 10, 4, 59, tzinfo=UTC)
        after = datetime(2024, 3, 10, 5, 0, tzinfo=UTC)

        first = get_or_create_daily_reflection(db_session, user_id, -5, key, now=before)
        second = get_or_create_daily_reflection(db_session, user_id, -5, key, now=after)

        assert first.day == date(2024, 3, 9)
        assert second.day == date(2024, 3, 10)
        assert count_rows(db_session, DailyQuote, user_id=user_id) == 2

    def test_same_instant_different_offsets_are_different_days(self, db_session, key):
        """One instant falls on different days for different offsets."""
        users = [create_test_user_id(), create_test_user_id()]
        for uid in users:
            source = create_source(db_session, uid)
            create_quote(db_session, uid, source.id, "Only")

        at = datetime(2024, 3, 10, 23, 30, tzinfo=UTC)
        west = get_or_create_daily_reflection(db_session, users[0], -2, key, now=at)
        east = get_or_create_daily_reflection(db_session, users[1], 2, key, now=at)

        assert west.day == date(2024, 3, 10)
        assert east.day == date(2024, 3, 11)


class TestIgnoredSources:
    """Tests for ignored sources."""

    def test_ignored_sources_are_never_selected(self, db_session, user_id, key):
        """Quotes from ignored sources are never picked."""
        kept = create_source(db_session, user_id, "Kept")
        dropped = create_source(db_session, user_id, "Dropped", ignored=True)
        create_quote(db_session, user_id, dropped.id, "Never")
        expected = create_quote(db_session, user_id, kept.id, "Always")

        for day in range(1, 8):
            result = get_or_create_daily_reflection(
                db_session, user_id, 0, key, now=datetime(2024, 3, day, 12, tzinfo=UTC)
            )
            assert result.quote.id == expected.id

    def test_only_ignored_sources_means_empty(self, db_session, user_id, key):
        """A library of only ignored sources yields None."""
        dropped = create_source(db_session, user_id, ignored=True)
        create_quote(db_session, user_id, dropped.id, "Never")

        assert get_or_create_daily_reflection(db_session, user_id, 0, key, now=NOW) is None
        assert count_rows(db_session, DailyQuote) == 0

    def test_pick_stays_frozen_when_source_is_ignored(self, db_session, user_id, key, library):
        """Ignoring the picked source empties the day without re-picking."""
        source = library[0]
        first = get_or_create_daily_reflection(db_session, user_id, 0, key, now=NOW)
        other = create_source(db_session, user_id, "Walden")
        create_quote(db_session, user_id, other.id, "Simplify")

        source.ignored = True
        db_session.commit()

        assert get_or_create_daily_reflection(db_session, user_id, 0, key, now=NOW) is None
        assert count_rows(db_session, DailyQuote, user_id=user_id) == 1

        source.ignored = False
        db_session.commit()

        again = get_or_create_daily_reflection(db_session, user_id, 0, key, now=NOW)
        assert again.quote.id == first.quote.id


class TestConcurrentFirstCallers:
    """Tests for racing first callers."""

    def test_losing_insert_returns_the_winners_pick(
        self, db_session, user_id, key, library, monkeypatch
    ):
        """A caller that saw no row, then lost the insert, reads the stored pick."""
        winner = library[1][2]
        create_daily_quote(db_session, user_id, winner.id, date(2024, 3, 10))
        monkeypatch.setattr(reflection_service, "find_daily_quote", lambda *args: None)

        class PickFirst(random.Random):
            def randrange(self, n):
                return 0

        result = get_or_create_daily_reflection(
            db_session, user_id, 0, key, now=NOW, rng=PickFirst()
        )

        assert result.quote.id == winner.id
        assert count_rows(db_session, DailyQuote, user_id=user_id) == 1

    @pytest.mark.slow
    def test_parallel_first_callers_share_one_row(self, session_factory, user_id, key):
        """Parallel first callers all see one stored pick."""
        setup = session_factory()
        source = create_source(setup, user_id)
        for i in range(20):
            create_quote(setup, user_id, source.id, f"Quote {i}")
        setup.close()

        workers = 6
        barrier = Barrier(workers)

        def first_call(seed: int):
            session = session_factory()
            try:
                barrier.wait()
                result = get_or_create_daily_reflection(
                    session, user_id, 0, key, now=NOW, rng=random.Random(seed)
                )
                return result.quote.id
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=workers) as pool:
            picked = list(pool.map(first_call, range(workers)))

        assert len(set(picked)) == 1
        check = session_factory()
        try:
            assert count_rows(check, DailyQuote, user_id=user_id) == 1
        finally:
            check.close()


class TestReadOnlyLookup:
    """Tests for the read-only lookup."""

    def test_missing_day_returns_none(self, db_session, user_id, key, library):
        """A day without a pick returns None."""
        assert get_daily_reflection(db_session, user_id, date(2024, 3, 10), key) is None

    def test_reads_existing_pick(self, db_session, user_id, key, library):
        """A stored pick is returned as is."""
        quote = library[1][0]
        create_daily_quote(db_session, user_id, quote.id, date(2024, 3, 10))

        result = get_daily_reflection(db_session, user_id, date(2024, 3, 10), key)

        assert result.quote.id == quote.id
