"""Tests for database migrations.

These tests run against a SEPARATE PostgreSQL database named by
MIGRATIONS_DATABASE_URL, since they drop and recreate the whole schema.
They are skipped when that variable is not set.

Run with: MIGRATIONS_DATABASE_URL=postgresql+psycopg://... pytest -m migrations
"""

import os
from pathlib import Path
from uuid import uuid4

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from unearthed.config import clear_settings_cache
from unearthed.db.models import Base

MIGRATIONS_DATABASE_URL = os.environ.get("MIGRATIONS_DATABASE_URL")

pytestmark = [
    pytest.mark.migrations,
    pytest.mark.skipif(
        not MIGRATIONS_DATABASE_URL, reason="MIGRATIONS_DATABASE_URL is not set"
    ),
]


def get_alembic_config() -> Config:
    """Alembic config for the repo's migrations directory."""
    repo_root = Path(__file__).resolve().parents[2]
    return Config(str(repo_root / "migrations" / "alembic.ini"))


@pytest.fixture(scope="module")
def alembic_config():
    """Point the settings (read by env.py) at the migrations database."""
    previous = os.environ.get("DATABASE_URL")
    os.environ["DATABASE_URL"] = MIGRATIONS_DATABASE_URL
    clear_settings_cache()
    yield get_alembic_config()
    if previous is None:
        os.environ.pop("DATABASE_URL", None)
    else:
        os.environ["DATABASE_URL"] = previous
    clear_settings_cache()


@pytest.fixture(autouse=True)
def keep_settings(alembic_config):
    """Re-apply the migrations URL after the per-test settings reset."""
    os.environ["DATABASE_URL"] = MIGRATIONS_DATABASE_URL
    clear_settings_cache()


@pytest.fixture(scope="module")
def migrated_engine(alembic_config):
    """Run migrations once for the module and downgrade at the end."""
    command.downgrade(alembic_config, "base")
    command.upgrade(alembic_config, "head")
    engine = create_engine(MIGRATIONS_DATABASE_URL)

    yield engine

    engine.dispose()
    command.downgrade(alembic_config, "base")


class TestMigrationUpgradeDowngrade:
    """Tests for migration round trips."""

    def test_round_trip(self, alembic_config):
        """Migrations upgrade and downgrade cleanly twice."""
        command.downgrade(alembic_config, "base")
        command.upgrade(alembic_config, "head")
        command.downgrade(alembic_config, "base")
        command.upgrade(alembic_config, "head")

    def test_tables_match_models(self, migrated_engine):
        """Migrated tables match the ORM metadata."""
        tables = set(inspect(migrated_engine).get_table_names()) - {"alembic_version"}

        assert tables == set(Base.metadata.tables)


class TestSchemaConstraints:
    """Tests for constraints created by the migrations."""

    def _profile_and_source(self, session: Session) -> tuple:
        user_id = f"user_{uuid4().hex[:12]}"
        profile_id = session.execute(
            text("INSERT INTO profiles (user_id) VALUES (:user_id) RETURNING id"),
            {"user_id": user_id},
        ).scalar_one()
        source_id = session.execute(
            text("INSERT INTO sources (user_id, title) VALUES (:user_id, 'Walden') RETURNING id"),
            {"user_id": user_id},
        ).scalar_one()
        return user_id, profile_id, source_id

    def test_one_open_notion_job_per_source(self, migrated_engine):
        """The partial index allows one open job per source."""
        with Session(migrated_engine) as session:
            _, profile_id, source_id = self._profile_and_source(session)
            insert = text(
                "INSERT INTO notion_source_jobs (source_id, profile_id, status) "
                "VALUES (:source_id, :profile_id, :status)"
            )
            params = {"source_id": source_id, "profile_id": profile_id}
            session.execute(insert, {**params, "status": "COMPLETE"})
            session.execute(insert, {**params, "status": "COMPLETE"})
            session.execute(insert, {**params, "status": "READY"})

            with pytest.raises(IntegrityError) as exc_info:
                session.execute(insert, {**params, "status": "PENDING"})

            session.rollback()
            assert "uq_notion_source_jobs_open_source" in str(exc_info.value)

    def test_source_natural_key(self, migrated_engine):
        """A duplicate source title for one user is rejected."""
        with Session(migrated_engine) as session:
            user_id, _, _ = self._profile_and_source(session)

            with pytest.raises(IntegrityError):
                session.execute(
                    text("INSERT INTO sources (user_id, title) VALUES (:user_id, 'Walden')"),
                    {"user_id": user_id},
                )

            session.rollback()

    def test_deleting_a_source_cascades(self, migrated_engine):
        """Deleting a source deletes its quotes."""
        with Session(migrated_engine) as session:
            user_id, _, source_id = self._profile_and_source(session)
            session.execute(
                text(
                    "INSERT INTO quotes (user_id, source_id, content) "
                    "VALUES (:user_id, :source_id, 'Simplify')"
                ),
                {"user_id": user_id, "source_id": source_id},
            )

            session.execute(text("DELETE FROM sources WHERE id = :id"), {"id": source_id})
            remaining = session.execute(
                text("SELECT count(*) FROM quotes WHERE source_id = :id"), {"id": source_id}
            ).scalar_one()

            session.rollback()
            assert remaining == 0
