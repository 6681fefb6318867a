"""Pytest configuration and shared fixtures."""

import os

# Settings are read at import time by reimburse.db.session
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from reimburse.api.deps import get_db
from reimburse.api.main import app
from reimburse.core.security import create_access_token
from reimburse.db.base import Base


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite database, fresh for each test.

    A file rather than ``:memory:`` so that separate sessions see each
    other's commits, which the concurrency tests depend on.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'reimburse.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    """API client whose requests each get their own session on the test database."""

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Build bearer headers for a user."""

    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers
