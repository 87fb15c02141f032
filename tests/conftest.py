"""Shared fixtures: an in-memory database, a signed-in test client and sample payloads."""

import base64
import io
from collections.abc import Iterator
from typing import Any

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from reportlab.pdfgen import canvas
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from reimburse.api.dependencies import get_optional_user, get_session
from reimburse.core.db import Base
from reimburse.core.models import CurrentUser
from reimburse.services.cache import page_cache

TEST_USER = CurrentUser(id="user_123", email="jane@church.org", first_name="Jane")


def png_data_url(size: tuple[int, int] = (40, 30)) -> str:
    """A small PNG image encoded as a data URL."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color=(200, 30, 30)).save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


def pdf_bytes(pages: int = 1) -> bytes:
    """A PDF document with the given number of pages."""
    buffer = io.BytesIO()
    doc = canvas.Canvas(buffer)
    for number in range(pages):
        doc.drawString(100, 700, f"Attached receipt page {number + 1}")
        doc.showPage()
    doc.save()
    return buffer.getvalue()


def pdf_data_url(pages: int = 1) -> str:
    """A PDF document encoded as a data URL."""
    return "data:application/pdf;base64," + base64.b64encode(pdf_bytes(pages)).decode("ascii")


def transaction_payload(**overrides: Any) -> dict[str, Any]:
    """A valid transaction in its wire (camelCase) form."""
    data = {
        "date": "2024-03-01T12:00:00.000Z",
        "accountLine": "General Fund",
        "department": "Worship",
        "placeVendor": "Costco",
        "description": "Snacks",
        "amount": 42.5,
        "newFiles": [],
    }
    data.update(overrides)
    return data


def form_payload(**overrides: Any) -> dict[str, Any]:
    """A valid form with one transaction in its wire (camelCase) form."""
    data = {
        "userId": TEST_USER.id,
        "formType": "REIMBURSEMENT",
        "submitterEmail": "jane@church.org",
        "submitterName": "Jane Doe",
        "reimbursedName": "Jane Doe",
        "reimbursedEmail": "jane@church.org",
        "transactions": [transaction_payload()],
    }
    data.update(overrides)
    return data


@pytest.fixture
def session() -> Iterator[Session]:
    """A session bound to a fresh in-memory SQLite database."""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    db = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    page_cache.clear()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def client(session: Session) -> Iterator[TestClient]:
    """A test client whose requests use the test session and are signed in as ``TEST_USER``."""

    def override_session() -> Iterator[Session]:
        yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_optional_user] = lambda: TEST_USER
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def anonymous_client(session: Session) -> Iterator[TestClient]:
    """A test client using the test session without any signed-in user override."""

    def override_session() -> Iterator[Session]:
        yield session

    app.dependency_overrides[get_session] = override_session
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
