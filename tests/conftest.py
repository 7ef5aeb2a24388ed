"""Shared test fixtures for env-geo-query tests.

Sets up an in-memory SQLite database with all tables (Geometry columns
replaced with String for SQLite compatibility). Provides a FastAPI
TestClient with the DB dependency overridden, plus a small sample of every
dataset both as an in-memory store and as seeded SQL rows.
"""

import copy
import os
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

# Ensure project root is on sys.path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
sys.path.insert(0, str(Path(__file__).resolve().parent))

# Override settings before any app imports
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT"] = "10000/minute"

from sqlalchemy import create_engine, String
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Create the test engine with StaticPool so the same in-memory DB is shared
# across threads (TestClient runs handlers in a separate thread).
_engine = create_engine(
    "sqlite://",
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSession = sessionmaker(bind=_engine, autocommit=False, autoflush=False)


def _patched_create_engine(url, **kwargs):
    """Return the test SQLite engine regardless of args."""
    return _engine


# Apply patch before importing app modules
_ce_patch = patch("sqlalchemy.create_engine", side_effect=_patched_create_engine)
_ce_patch.start()

# Force re-import of app.database with our patched create_engine
if "app.database" in sys.modules:
    del sys.modules["app.database"]

import app.database  # noqa: E402
app.database.engine = _engine
app.database.SessionLocal = _TestSession

# Patch register_spatial_sync to be a no-op (requires PostGIS at runtime)
with patch("app.spatial_sync.register_spatial_sync", lambda: None):
    from app.main import app  # noqa: E402

from app.database import get_db  # noqa: E402
from app.models import Base, Shape, ShapeObservation  # noqa: E402
from sample_data import build_collections  # noqa: E402
from core.store import MemoryStore  # noqa: E402

# Stop the create_engine patch
_ce_patch.stop()


def _fix_sqlite_compat():
    """Replace geoalchemy2 Geometry columns with String."""
    from geoalchemy2 import Geometry, Geography

    for table in Base.metadata.sorted_tables:
        for col in table.columns:
            if isinstance(col.type, (Geometry, Geography)):
                col.type = String()


_fix_sqlite_compat()
Base.metadata.create_all(bind=_engine)


@pytest.fixture()
def db_session():
    """Provide a DB session for tests. Uses the shared in-memory SQLite DB."""
    session = _TestSession()
    yield session
    session.rollback()
    session.close()


@pytest.fixture()
def client(db_session):
    """FastAPI TestClient with get_db overridden to use the test session."""

    def _override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = _override_get_db

    from fastapi.testclient import TestClient

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture()
def collections():
    return build_collections()


@pytest.fixture()
def memory_store(collections):
    return MemoryStore(copy.deepcopy(collections))


@pytest.fixture()
def seeded_db(db_session, collections):
    """Insert the sample collections as SQL rows; rolled back after the test."""
    observation_collections = {"shape_data", "drought_observatory"}
    for name, records in collections.items():
        for record in records:
            if name in observation_collections:
                db_session.add(ShapeObservation(collection=name, **record))
            else:
                db_session.add(Shape(collection=name, **record))
    db_session.flush()
    return db_session
