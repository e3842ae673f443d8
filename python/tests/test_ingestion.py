"""Tests for deduplicating source and quote ingestion.

Tests cover:
- Idempotency: re-submitting a batch inserts nothing and reports it as existing
- Kindle stamping versus public clients keeping their own origin
- Whole-batch validation before any write
- Quote batches written in chunks of 100 inside a single transaction
- Notes encrypted at rest and returned decrypted
- Ownership of referenced sources
"""

import pytest
from sqlalchemy import select

from unearthed.db.models import Media, Quote, Source, SourceOrigin, SourceType
from unearthed.errors import ApiErrorCode, InvalidRequestError, NotFoundError
from unearthed.services import ingestion
from unearthed.services.crypto import decrypt_note, generate_user_key
from unearthed.services.ingestion import ingest_quotes, ingest_sources
from tests.factories import count_rows, create_source
from tests.helpers import create_test_user_id


@pytest.fixture
def user_id() -> str:
    return create_test_user_id()


@pytest.fixture
def key() -> str:
    return generate_user_key()


class TestIngestSources:
    """Tests for source ingestion."""

    def test_first_submission_inserts_everything(self, db_session, user_id):
        """A new batch is reported entirely as inserted."""
        result = ingest_sources(
            db_session,
            user_id,
            [{"title": "Meditations", "author": "Marcus Aurelius"}, {"title": "Walden"}],
        )

        assert {s.title for s in result.inserted} == {"Meditations", "Walden"}
        assert result.existing == []
        assert count_rows(db_session, Source, user_id=user_id) == 2

    def test_resubmission_reports_existing(self, db_session, user_id):
        """Re-submitting a batch reports the stored rows as existing."""
        records = [{"title": "Meditations", "author": "Marcus Aurelius"}]
        first = ingest_sources(db_session, user_id, records)

        second = ingest_sources(db_session, user_id, records)

        assert second.inserted == []
        assert [s.id for s in second.existing] == [first.inserted[0].id]
        assert count_rows(db_session, Source, user_id=user_id) == 1

    def test_mixed_batch_partitions_input(self, db_session, user_id):
        """New and known titles are split between the partitions."""
        ingest_sources(db_session, user_id, [{"title": "Meditations"}])

        result = ingest_sources(db_session, user_id, [{"title": "Meditations"}, {"title": "Walden"}])

        assert [s.title for s in result.inserted] == ["Walden"]
        assert [s.title for s in result.existing] == ["Meditations"]

    def test_duplicate_titles_in_one_batch_collapse(self, db_session, user_id):
        """A title repeated in one batch is stored once and reported once as existing."""
        result = ingest_sources(db_session, user_id, [{"title": "Walden"}, {"title": "Walden"}])

        assert len(result.inserted) == 1
        assert [s.id for s in result.existing] == [result.inserted[0].id]
        assert count_rows(db_session, Source, user_id=user_id) == 1

    def test_kindle_stamp_overrides_record_fields(self, db_session, user_id):
        """Kindle imports are forced to BOOK and KINDLE."""
        result = ingest_sources(
            db_session,
            user_id,
            [{"title": "Essay", "type": "ARTICLE", "origin": "KOREADER"}],
        )

        source = result.inserted[0]
        assert source.type == SourceType.BOOK.value
        assert source.origin == SourceOrigin.KINDLE.value

    def test_unstamped_records_keep_their_origin(self, db_session, user_id):
        """Without stamps each record keeps its origin, defaulting to UNEARTHED."""
        result = ingest_sources(
            db_session,
            user_id,
            [
                {"title": "Walden", "origin": "KOREADER"},
                {"title": "Notes"},
            ],
            stamp_type=None,
            stamp_origin=None,
        )

        by_title = {s.title: s for s in result.inserted}
        assert by_title["Walden"].origin == "KOREADER"
        assert by_title["Notes"].origin == "UNEARTHED"

    def test_same_title_from_two_origins_is_two_sources(self, db_session, user_id):
        """One title from two origins gives two sources."""
        ingest_sources(db_session, user_id, [{"title": "Walden"}])

        result = ingest_sources(
            db_session,
            user_id,
            [{"title": "Walden", "origin": "KOREADER"}],
            stamp_type=None,
            stamp_origin=None,
        )

        assert len(result.inserted) == 1
        assert count_rows(db_session, Source, user_id=user_id) == 2

    def test_users_do_not_share_sources(self, db_session, user_id):
        """The same title for two users gives two sources."""
        other = create_test_user_id()
        ingest_sources(db_session, other, [{"title": "Walden"}])

        result = ingest_sources(db_session, user_id, [{"title": "Walden"}])

        assert len(result.inserted) == 1

    def test_image_url_becomes_media(self, db_session, user_id):
        """An image URL is stored once as media and linked."""
        url = "https://m.media-amazon.com/images/walden.jpg"

        result = ingest_sources(
            db_session,
            user_id,
            [{"title": "Walden", "imageUrl": url}, {"title": "Walden II", "imageUrl": url}],
        )

        media = db_session.scalars(select(Media).where(Media.user_id == user_id)).all()
        assert [m.url for m in media] == [url]
        assert {s.media_id for s in result.inserted} == {media[0].id}

    def test_invalid_record_rejects_whole_batch(self, db_session, user_id):
        """One invalid record rejects the batch."""
        with pytest.raises(InvalidRequestError, match="title"):
            ingest_sources(db_session, user_id, [{"title": "Walden"}, {"title": ""}])

        assert count_rows(db_session, Source, user_id=user_id) == 0

    def test_unknown_field_rejects_whole_batch(self, db_session, user_id):
        """An unknown field rejects the batch."""
        with pytest.raises(InvalidRequestError):
            ingest_sources(db_session, user_id, [{"title": "Walden", "userId": "someone-else"}])

    def test_empty_batch_rejected(self, db_session, user_id):
        """An empty batch is an invalid request."""
        with pytest.raises(InvalidRequestError):
            ingest_sources(db_session, user_id, [])

    def test_wire_shape_is_camel_case(self, db_session, user_id):
        """The wire partitions use camelCase keys."""
        wire = ingest_sources(db_session, user_id, [{"title": "Walden"}]).to_wire()

        assert set(wire) == {"existingRecords", "insertedRecords"}
        record = wire["insertedRecords"][0]
        assert record["userId"] == user_id
        assert "mediaId" in record


class TestIngestQuotes:
    """Tests for quote ingestion."""

    def test_notes_encrypted_at_rest_and_returned_plain(self, db_session, user_id, key):
        """Notes are stored encrypted and returned decrypted."""
        source = create_source(db_session, user_id)

        result = ingest_quotes(
            db_session,
            user_id,
            key,
            [{"content": "Be one.", "note": "My favourite", "sourceId": str(source.id)}],
        )

        assert result.inserted[0].note == "My favourite"
        stored = db_session.scalars(select(Quote).where(Quote.user_id == user_id)).one()
        assert stored.note != "My favourite"
        assert decrypt_note(stored.note, key) == "My favourite"

    def test_missing_note_stored_as_empty(self, db_session, user_id, key):
        """A quote without a note stores the empty string."""
        source = create_source(db_session, user_id)

        ingest_quotes(db_session, user_id, key, [{"content": "Be one.", "sourceId": str(source.id)}])

        stored = db_session.scalars(select(Quote).where(Quote.user_id == user_id)).one()
        assert stored.note == ""

    def test_resubmission_reports_existing(self, db_session, user_id, key):
        """Re-submitting quotes reports them as existing with their notes."""
        source = create_source(db_session, user_id)
        records = [
            {"content": "Be one.", "note": "n", "sourceId": str(source.id)},
            {"content": "Begin at once to live.", "sourceId": str(source.id)},
        ]
        first = ingest_quotes(db_session, user_id, key, records)

        second = ingest_quotes(db_session, user_id, key, records)

        assert second.inserted == []
        assert {q.id for q in second.existing} == {q.id for q in first.inserted}
        assert {q.note for q in second.existing} == {"n", ""}
        assert count_rows(db_session, Quote, user_id=user_id) == 2

    def test_repeat_within_batch_reported_as_existing(self, db_session, user_id, key):
        """A quote repeated in one batch is reported under existing."""
        source = create_source(db_session, user_id)
        records = [
            {"content": "Be one.", "sourceId": str(source.id)},
            {"content": "Begin at once to live.", "sourceId": str(source.id)},
            {"content": "Be one.", "sourceId": str(source.id)},
        ]

        result = ingest_quotes(db_session, user_id, key, records)

        assert len(result.inserted) + len(result.existing) == len(records)
        be_one = next(q for q in result.inserted if q.content == "Be one.")
        assert [q.id for q in result.existing] == [be_one.id]
        assert count_rows(db_session, Quote, user_id=user_id) == 2

    def test_same_content_under_two_sources_is_two_quotes(self, db_session, user_id, key):
        """Identical content under two sources gives two quotes."""
        first = create_source(db_session, user_id, "Meditations")
        second = create_source(db_session, user_id, "Letters")

        result = ingest_quotes(
            db_session,
            user_id,
            key,
            [
                {"content": "Be one.", "sourceId": str(first.id)},
                {"content": "Be one.", "sourceId": str(second.id)},
            ],
        )

        assert len(result.inserted) == 2

    def test_foreign_source_rejected_before_writing(self, db_session, user_id, key):
        """A quote for another user's source rejects the batch."""
        own = create_source(db_session, user_id)
        foreign = create_source(db_session, create_test_user_id(), "Walden")

        with pytest.raises(NotFoundError) as exc_info:
            ingest_quotes(
                db_session,
                user_id,
                key,
                [
                    {"content": "Mine", "sourceId": str(own.id)},
                    {"content": "Theirs", "sourceId": str(foreign.id)},
                ],
            )

        assert exc_info.value.code == ApiErrorCode.E_SOURCE_NOT_FOUND
        assert count_rows(db_session, Quote) == 0

    def test_invalid_record_in_large_batch_writes_nothing(self, db_session, user_id, key):
        """An invalid record deep in a large batch writes nothing."""
        source = create_source(db_session, user_id)
        records = [{"content": f"Quote {i}", "sourceId": str(source.id)} for i in range(250)]
        records[150] = {"content": "", "sourceId": str(source.id)}

        with pytest.raises(InvalidRequestError, match="150"):
            ingest_quotes(db_session, user_id, key, records)

        assert count_rows(db_session, Quote) == 0

    def test_large_batch_written_in_chunks(self, db_session, user_id, key, monkeypatch):
        """Large batches are inserted 100 rows at a time."""
        source = create_source(db_session, user_id)
        chunk_sizes = []
        original = ingestion.insert_ignoring_conflicts

        def recording_insert(db, model, rows):
            chunk_sizes.append(len(rows))
            return original(db, model, rows)

        monkeypatch.setattr(ingestion, "insert_ignoring_conflicts", recording_insert)
        records = [{"content": f"Quote {i}", "sourceId": str(source.id)} for i in range(250)]

        result = ingest_quotes(db_session, user_id, key, records)

        assert chunk_sizes == [100, 100, 50]
        assert len(result.inserted) == 250

    def test_failure_in_later_chunk_rolls_back_earlier_chunks(
        self, db_session, user_id, key, monkeypatch
    ):
        """A failing chunk rolls back the chunks before it."""
        source = create_source(db_session, user_id)
        calls = []
        original = ingestion.insert_ignoring_conflicts

        def failing_insert(db, model, rows):
            calls.append(len(rows))
            if len(calls) == 2:
                raise RuntimeError("connection dropped")
            return original(db, model, rows)

        monkeypatch.setattr(ingestion, "insert_ignoring_conflicts", failing_insert)
        records = [{"content": f"Quote {i}", "sourceId": str(source.id)} for i in range(250)]

        with pytest.raises(RuntimeError):
            ingest_quotes(db_session, user_id, key, records)

        assert count_rows(db_session, Quote) == 0

    def test_sanitized_duplicates_skipped_for_public_clients(self, db_session, user_id, key):
        """Public clients skip quotes differing only in typography."""
        source = create_source(db_session, user_id)
        ingest_quotes(
            db_session, user_id, key, [{"content": "It’s “fine”", "sourceId": str(source.id)}]
        )

        result = ingest_quotes(
            db_session,
            user_id,
            key,
            [{"content": 'It\'s "fine"', "sourceId": str(source.id)}],
            skip_sanitized_duplicates=True,
        )

        assert result.inserted == []
        assert [q.content for q in result.existing] == ["It’s “fine”"]
        assert count_rows(db_session, Quote, user_id=user_id) == 1

    def test_sanitized_duplicates_kept_by_default(self, db_session, user_id, key):
        """Typographic variants are new quotes by default."""
        source = create_source(db_session, user_id)
        ingest_quotes(db_session, user_id, key, [{"content": "It’s", "sourceId": str(source.id)}])

        result = ingest_quotes(db_session, user_id, key, [{"content": "It's", "sourceId": str(source.id)}])

        assert len(result.inserted) == 1
