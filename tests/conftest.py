"""
tests/conftest.py

Shared fixtures: every test gets its own in-memory SQLite store, either as
a bare session (for the db/stats helpers) or behind a FastAPI TestClient.
"""

from __future__ import annotations

from typing import Generator

import pytest
from fastapi.testclient import TestClient

from backlink_analyzer.api import create_app
from backlink_analyzer.config import Settings
from backlink_analyzer.db import init_db, make_engine, make_session_factory

IN_MEMORY_URL = "sqlite:///:memory:"


@pytest.fixture
def settings() -> Settings:
    return Settings(database_url=IN_MEMORY_URL)


@pytest.fixture
def engine():
    engine = make_engine(IN_MEMORY_URL)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = make_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(settings: Settings) -> Generator[TestClient, None, None]:
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client
