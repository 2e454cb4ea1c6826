"""
tests/conftest.py -- Shared test fixtures for Twinsight Auth.

This module provides:
  - make_settings(): Settings pointing at a fresh in-memory database
  - database / schema_db: Database handles without and with the auth tables
  - credentials / sessions / facade: the auth core wired onto schema_db
  - api_client: TestClient with a patched lifespan for integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process. A uuid in
the name keeps every fixture's database isolated.
"""

from __future__ import annotations

import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.credentials import CredentialManager
from auth.facade import AuthFacade, build_auth_facade
from auth.schema import SchemaGuard
from auth.sessions import SessionManager
from core.config import Settings
from core.database import Database

TEST_PEPPER = "pW3x9QkLmN2vR7tY5uZ8aB4cD6eF1gH0jK3lM9nP2qS5rT8uV1wX4yZ7aC0dE3fG"


def memory_url(prefix: str = "auth") -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def make_settings(**overrides) -> Settings:
    """Build Settings directly, bypassing env/file loading."""
    values = {
        "mysql_host": "localhost",
        "mysql_database": "twinsight",
        "mysql_username": "twinsight",
        "mysql_password": "secret",
        "password_pepper": TEST_PEPPER,
        "database_url": memory_url(),
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def database() -> Generator[Database, None, None]:
    """Empty in-memory database: no tables."""
    db = Database(memory_url())
    yield db
    db.close()


@pytest.fixture
def schema_db(database: Database) -> Database:
    """In-memory database with the auth tables created."""
    SchemaGuard(database).ensure_schema()
    return database


@pytest.fixture
def credentials(schema_db: Database) -> CredentialManager:
    return CredentialManager(schema_db, pepper=TEST_PEPPER)


@pytest.fixture
def sessions(schema_db: Database) -> SessionManager:
    return SessionManager(schema_db)


@pytest.fixture
def facade(schema_db: Database, credentials: CredentialManager, sessions: SessionManager) -> AuthFacade:
    return AuthFacade(schema_db, credentials, sessions)


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(settings: Settings, database: Database):
    """Return a lifespan that wires test resources into app.state.

    Skips config loading so tests never touch the environment or the platform
    config path.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        SchemaGuard(database).ensure_schema()
        app.state.settings = settings
        app.state.database = database
        app.state.auth = build_auth_facade(database, settings)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, Database], None, None]:
    """Yield (client, database) for API integration tests.

    The TestClient uses the real FastAPI app and route handlers with an
    isolated in-memory database. One client per test module for speed.
    """
    settings = make_settings()
    database = Database.from_settings(settings)

    app.router.lifespan_context = _patch_lifespan(settings, database)

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client, database

    database.close()
