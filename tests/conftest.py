"""
Shared fixtures: an in-memory SQLite database per test, a session for service
level tests and a TestClient wired to the same database.
"""

import math
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from agrisync.db import enable_sqlite_savepoints, get_db
from agrisync.main import app
from agrisync.models.base import Base
from agrisync.services.tenant import TenantContext

EARTH_RADIUS_M = 6371000.0


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(eng)
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    # not used as a context manager: startup (init_db on the real engine) is skipped
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def tenant():
    return TenantContext(organization_id=1, user_id=7)


@pytest.fixture
def headers():
    return {"X-Organization-Id": "1", "X-User-Id": "7"}


def square_polygon(lat=-1.2921, lon=36.8219, side_m=100.0):
    """Axis-aligned square (open ring) of roughly side_m meters centred on lat/lon."""
    half_lat = math.degrees(side_m / 2 / EARTH_RADIUS_M)
    half_lon = half_lat / math.cos(math.radians(lat))
    return [
        {"latitude": lat - half_lat, "longitude": lon - half_lon},
        {"latitude": lat - half_lat, "longitude": lon + half_lon},
        {"latitude": lat + half_lat, "longitude": lon + half_lon},
        {"latitude": lat + half_lat, "longitude": lon - half_lon},
    ]


@pytest.fixture
def make_square():
    return square_polygon
