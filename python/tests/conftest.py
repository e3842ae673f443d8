"""Pytest configuration and fixtures for Unearthed tests.

Test isolation strategy:
- Every test gets its own SQLite database file created from the ORM metadata
- The process-wide session factory is pointed at that file, so middleware,
  routes and tasks opening their own sessions see the same data
- The identity provider is an InMemoryDirectory shared by app and test
- Auth tests use the client fixture with MockJwtVerifier tokens
"""

import os

# Settings are read at import time by unearthed.celery; set them first.
os.environ.setdefault("UNEARTHED_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("NOTION_SHARD_COUNT", "4")

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from unearthed.app import create_app
from unearthed.config import clear_settings_cache
from unearthed.db.engine import create_db_engine
from unearthed.db.models import Base
from unearthed.db.session import create_session_factory, set_session_factory
from unearthed.services.identity import InMemoryDirectory, get_identity_directory
from tests.support.test_verifier import MockJwtVerifier


@pytest.fixture(autouse=True)
def reset_cached_singletons() -> Generator[None, None, None]:
    """Settings and the directory are cached per process; start each test clean."""
    clear_settings_cache()
    get_identity_directory.cache_clear()
    yield
    clear_settings_cache()
    get_identity_directory.cache_clear()


@pytest.fixture
def engine(tmp_path) -> Generator[Engine, None, None]:
    """A fresh database for one test, with the full schema."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'unearthed.db'}")
    Base.metadata.create_all(engine)
    set_session_factory(create_session_factory(engine))
    yield engine
    set_session_factory(None)
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    """Factory for tests that need several independent sessions."""
    return create_session_factory(engine)


@pytest.fixture
def db_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def directory() -> InMemoryDirectory:
    return InMemoryDirectory()


@pytest.fixture
def app(engine: Engine, directory: InMemoryDirectory):
    """App with auth middleware, the test verifier and the in-memory directory."""
    return create_app(token_verifier=MockJwtVerifier(), directory=directory)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as client:
        yield client
