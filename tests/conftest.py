from datetime import datetime, timedelta, timezone

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from exam_portal.collaborator import HttpCollaborator
from exam_portal.config import PortalSettings
from exam_portal.controller import TestSessionController
from exam_portal.schemas import CandidateProfile
from store_service import app as store_app
from store_service.db import Base, get_db

from .fakes import FakeClock, FakeCollaborator

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FakeClock(NOW)


@pytest.fixture
def settings():
    """Window opened 10 minutes ago and lasts an hour."""
    return PortalSettings(
        test_start_time=NOW - timedelta(minutes=10),
        test_duration_minutes=60,
        max_tab_switches=2,
    )


@pytest.fixture
def fake():
    return FakeCollaborator()


@pytest.fixture
def profile():
    return CandidateProfile(
        id="cand-1",
        name="Asha Verma",
        email="asha@example.com",
        phone="9876543210",
        admission_number="123456",
        branch="Information Technology",
    )


@pytest.fixture
def controller(fake, profile, settings, clock):
    return TestSessionController(fake, profile, settings, clock=clock)


# --- Store service ---
@pytest.fixture
def store_engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(store_engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=store_engine)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    store_app.app.dependency_overrides[get_db] = override_get_db
    yield store_app.app
    store_app.app.dependency_overrides.clear()


@pytest.fixture
def client(store):
    return TestClient(store)


@pytest.fixture
def http_collaborator(store):
    return HttpCollaborator("http://store", store_app.API_KEY, transport=httpx.ASGITransport(app=store))
