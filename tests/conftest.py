"""
Shared fixtures: in-memory SQLite app, fake payment processor, fake scoring
engine, recording email sender and a fresh fallback store per test.
"""

import os
from itertools import count

# Settings are read at import time; configure before importing the app.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SESSION_SECRET"] = "test-session-secret"
os.environ["SESSION_COOKIE_SECURE"] = "false"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["ENVIRONMENT"] = "development"
os.environ.pop("STRIPE_SECRET_KEY", None)
os.environ.pop("SCORING_SERVICE_URL", None)

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session

from bizmodel.core.kv_store import TTLStore, get_fallback_store
from bizmodel.core.payment_processor import get_payment_processor
from bizmodel.core.scoring_client import get_scoring_engine
from bizmodel.database import engine
from bizmodel.main import app
from bizmodel.services.email_service import get_email_sender

from helpers import FakePaymentProcessor, FakeScoringEngine, RecordingEmailSender


@pytest.fixture(autouse=True)
def reset_db():
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    yield


@pytest.fixture
def db():
    with Session(engine) as session:
        yield session


@pytest.fixture
def fallback_store():
    return TTLStore()


@pytest.fixture
def processor():
    return FakePaymentProcessor()


@pytest.fixture
def scoring_engine():
    return FakeScoringEngine()


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture(autouse=True)
def overrides(fallback_store, processor, scoring_engine, email_sender):
    app.dependency_overrides[get_fallback_store] = lambda: fallback_store
    app.dependency_overrides[get_payment_processor] = lambda: processor
    app.dependency_overrides[get_scoring_engine] = lambda: scoring_engine
    app.dependency_overrides[get_email_sender] = lambda: email_sender
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def make_client():
    """
    Build clients with distinct User-Agents.

    Every TestClient reports the same client host, so clients sharing a
    User-Agent also share the IP+UA fallback entry. Pass the same agent
    explicitly when a test wants that.
    """
    ids = count(1)

    def _make(user_agent: str | None = None) -> TestClient:
        return TestClient(app, headers={"User-Agent": user_agent or f"pytest-agent-{next(ids)}"})

    return _make


@pytest.fixture
def client(make_client):
    return make_client()
