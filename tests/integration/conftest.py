"""Integration test fixtures for the PostGIS object store."""

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from skiarea_clustering.repositories.postgis import PostGISObjectStore

TEST_DATABASE = "test_skiarea_clustering"


@pytest.fixture(scope="session")
def test_engine() -> Engine:
    """Create test database and return engine.

    This is a session-scoped fixture that:
    1. Creates the test database with the PostGIS extension
    2. Returns engine for test use
    3. Drops database after all tests complete
    """
    admin_engine = create_engine("postgresql://postgres@localhost:5432/postgres")

    with admin_engine.connect() as conn:
        conn.execution_options(isolation_level="AUTOCOMMIT")
        conn.execute(
            text(
                "SELECT pg_terminate_backend(pid) FROM pg_stat_activity "
                f"WHERE datname = '{TEST_DATABASE}' AND pid <> pg_backend_pid()"
            )
        )
        conn.execute(text(f"DROP DATABASE IF EXISTS {TEST_DATABASE}"))
        conn.execute(text(f"CREATE DATABASE {TEST_DATABASE}"))

    engine = create_engine(f"postgresql://postgres@localhost:5432/{TEST_DATABASE}", echo=False)

    with engine.connect() as conn:
        conn.execution_options(isolation_level="AUTOCOMMIT")
        conn.execute(text("CREATE EXTENSION IF NOT EXISTS postgis"))

    yield engine

    engine.dispose()

    with admin_engine.connect() as conn:
        conn.execution_options(isolation_level="AUTOCOMMIT")
        conn.execute(
            text(
                "SELECT pg_terminate_backend(pid) FROM pg_stat_activity "
                f"WHERE datname = '{TEST_DATABASE}' AND pid <> pg_backend_pid()"
            )
        )
        conn.execute(text(f"DROP DATABASE IF EXISTS {TEST_DATABASE}"))
    admin_engine.dispose()


@pytest.fixture(scope="function")
def pg_store(test_engine: Engine) -> PostGISObjectStore:
    """Object store over a freshly truncated working table for each test."""
    store = PostGISObjectStore(test_engine, batch_size=2)
    store.initialize(truncate=True)
    yield store
    store.close()
