import os

os.environ["ENV"] = "test"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import app.models  # noqa: F401
from app.config import get_settings
from app.db import Base, build_engine, get_db
from app.main import create_app
from app.routers.utils.dependencies import get_completion_provider, get_deduplicator
from app.services.event_deduplicator import InMemoryEventDeduplicator

pytest_plugins = [
    "tests.fixtures.user_fixtures",
    "tests.fixtures.conversation_fixtures",
    "tests.fixtures.platform_fixtures",
]


@pytest.fixture(scope="session")
def engine():
    engine = build_engine(get_settings().database_url)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db(engine):
    """Fresh schema per test."""
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture
def deduplicator():
    return InMemoryEventDeduplicator(ttl_seconds=600, max_entries=1000)


@pytest.fixture
def client(db, fake_completion, deduplicator):
    """Client with db, AI provider and deduplicator overridden."""
    app = create_app(testing=True)

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_completion_provider] = lambda: fake_completion
    app.dependency_overrides[get_deduplicator] = lambda: deduplicator
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
