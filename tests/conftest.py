"""
Pytest configuration and shared fixtures for knowledge-service tests
"""

import os

# Settings are read at import time, so configure the environment first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "WARNING"

import time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from knowledge_service import models  # noqa: F401
from knowledge_service.core import database
from knowledge_service.core.config import scoring_config
from knowledge_service.core.database import Base, get_db
from knowledge_service.models import KnowledgeEntry, KnowledgeGap, GapStatus


@pytest.fixture
def engine():
    """Fresh in-memory database per test"""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine, monkeypatch):
    """Session factory bound to the test engine, also used by background work"""
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    monkeypatch.setattr(database, "SessionLocal", factory)
    return factory


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def restore_scoring_config():
    """Runtime configuration is process-wide; undo changes made by a test"""
    original = scoring_config.as_dict()
    yield
    for name, value in original.items():
        setattr(scoring_config, name, value)


@pytest.fixture
def make_entry(db_session):
    """Factory for persisted knowledge entries"""
    def _make(**overrides):
        fields = {
            "title": "Fever Management",
            "content": (
                "Fever is a temporary increase in body temperature. Rest, drink plenty "
                "of fluids and take acetaminophen or ibuprofen to reduce discomfort."
            ),
            "category": "symptoms",
            "keywords": ["fever", "temperature", "high fever", "acetaminophen", "ibuprofen", "demam"],
            "tags": ["fever"],
            "confidence_level": "HIGH",
            "medical_reviewed": True,
        }
        fields.update(overrides)
        entry = KnowledgeEntry(**fields)
        db_session.add(entry)
        db_session.commit()
        db_session.refresh(entry)
        return entry

    return _make


@pytest.fixture
def make_gap(db_session):
    """Factory for persisted knowledge gaps"""
    def _make(query, frequency=1, status=GapStatus.OPEN.value, **overrides):
        gap = KnowledgeGap(query=query, frequency=frequency, status=status, **overrides)
        db_session.add(gap)
        db_session.commit()
        db_session.refresh(gap)
        return gap

    return _make


@pytest.fixture
def client(db_session):
    """API client sharing the test session; lifespan (scheduler, init_db) is not run"""
    from knowledge_service.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def jakarta_timezone():
    """Run the test with a process timezone seven hours ahead of UTC"""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")

    previous = os.environ.get("TZ")
    os.environ["TZ"] = "Asia/Jakarta"
    time.tzset()
    yield
    if previous is None:
        os.environ.pop("TZ", None)
    else:
        os.environ["TZ"] = previous
    time.tzset()
