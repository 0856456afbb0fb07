"""Pytest configuration and shared fixtures."""
import os

# Keep the app module from creating a database file on import
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth import Identity
from app.database import Base, get_db
from app.models.domain import MeetingRequest, Attachment
from app.models.audit import AuditEntry
from app.services.attachments import AttachmentStore, get_attachment_store
from app.services.request_service import RequestService


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()


@pytest.fixture
def store(tmp_path):
    """Attachment store rooted in a temporary directory."""
    return AttachmentStore(str(tmp_path / "uploads"))


@pytest.fixture
def requestor():
    return Identity(user_id="john.doe@example.com", name="John Doe", email="john.doe@example.com")


@pytest.fixture
def reviewer():
    return Identity(
        user_id="reviewer@example.com",
        name="Reviewer",
        email="reviewer@example.com",
        roles=frozenset({"secadmin"})
    )


@pytest.fixture
def request_data():
    return {
        "title": "Board Meeting",
        "meeting_date": date(2026, 3, 15),
        "category": "Governance",
        "subcategory": "Quarterly",
        "description": "Quarterly board review",
        "classification": "Regular",
        "request_type": "Briefing",
        "country": "Ireland",
    }


@pytest.fixture
def pending_request(db_session, requestor, request_data):
    """Create a submitted request in Pending status."""
    meeting_request, _ = RequestService(db_session).create(request_data, requestor)
    return meeting_request


@pytest.fixture
def draft_request(db_session, requestor):
    """Create a draft with only a title."""
    return RequestService(db_session).save_draft({"title": "Planning session"}, requestor)


@pytest.fixture
def client(tmp_path):
    """HTTP client against the app with an isolated database and upload directory."""
    from app.main import app

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    upload_store = AttachmentStore(str(tmp_path / "uploads"))
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_attachment_store] = lambda: upload_store

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
