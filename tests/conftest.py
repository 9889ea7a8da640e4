"""Pytest configuration and fixtures."""

import io
import os
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from propertyledger.database import Base, get_db
from propertyledger.main import app
from propertyledger.models.expense import ExpenseCategory
from propertyledger.models.property import Property
from propertyledger.services.storage import StorageError, get_storage_service


class AuthHeaders(dict):
    """Dict subclass that also stores user, account and email."""

    def __init__(
        self,
        *args,
        user_id: int | None = None,
        account_id: int | None = None,
        email: str | None = None,
        token: str | None = None,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.user_id = user_id
        self.account_id = account_id
        self.email = email
        self.token = token


class FakeStorageService:
    """In-memory stand-in for the S3 storage service."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.deleted: list[str] = []
        self.fail = False

    def _check(self):
        if self.fail:
            raise StorageError("storage offline")

    def generate_presigned_upload_url(self, storage_key, content_type):
        self._check()
        expires_at = datetime.now(UTC) + timedelta(minutes=15)
        return f"https://storage.test/{storage_key}?X-Amz-Signature=put", expires_at

    def generate_presigned_download_url(self, storage_key):
        self._check()
        return f"https://storage.test/{storage_key}?X-Amz-Signature=get"

    def object_exists(self, storage_key):
        self._check()
        return storage_key in self.objects

    def get_object_bytes(self, storage_key):
        self._check()
        if storage_key not in self.objects:
            raise StorageError(f"missing {storage_key}")
        return self.objects[storage_key]

    def put_object_bytes(self, storage_key, data, content_type):
        self._check()
        self.objects[storage_key] = data
        self.content_types[storage_key] = content_type

    def delete_object(self, storage_key):
        self._check()
        self.objects.pop(storage_key, None)
        self.deleted.append(storage_key)


def make_image_bytes(width: int = 800, height: int = 600, fmt: str = "PNG") -> bytes:
    """Render a small solid-colour image."""
    output = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 120, 40)).save(output, format=fmt)
    return output.getvalue()


# Use test database - PostgreSQL in Docker, SQLite locally
if os.getenv("DATABASE_URL"):
    # Running in Docker - use PostgreSQL test database
    SQLALCHEMY_DATABASE_URL = os.getenv("DATABASE_URL").replace(
        "/property_ledger", "/property_ledger_test"
    )
else:
    # Running locally - use SQLite
    SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

connect_args = {"check_same_thread": False} if "sqlite" in SQLALCHEMY_DATABASE_URL else {}
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=connect_args)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create test database schema once at the start of the test session."""
    if "postgresql" in SQLALCHEMY_DATABASE_URL:
        # For PostgreSQL, create the test database
        from sqlalchemy_utils import create_database, database_exists

        # Create test database if it doesn't exist
        if not database_exists(SQLALCHEMY_DATABASE_URL):
            create_database(SQLALCHEMY_DATABASE_URL)

    Base.metadata.create_all(bind=engine)
    yield
    # Don't drop database - just leave it for next run (each test cleans up after itself)


@pytest.fixture(scope="function", autouse=True)
def db():
    """Create a fresh database session for each test with cleanup."""
    session = TestingSessionLocal()

    yield session

    # Clean up all data after test
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.close()


@pytest.fixture
def image_bytes():
    """Factory for small in-memory test images."""
    return make_image_bytes


@pytest.fixture
def fake_storage():
    """In-memory object storage shared by the app and the test."""
    return FakeStorageService()


@pytest.fixture(autouse=True)
def published_events():
    """Capture real-time events instead of publishing them to Redis."""
    with patch("propertyledger.api.receipts.publish_account_event") as mock_publish:
        yield mock_publish


@pytest.fixture(autouse=True)
def thumbnail_task():
    """Keep Celery out of API tests."""
    with patch("propertyledger.api.receipts.generate_receipt_thumbnail") as mock_task:
        yield mock_task


@pytest.fixture(scope="function")
def client(db, fake_storage):
    """Create a test client with database and storage overrides."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage_service] = lambda: fake_storage
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def register(client, email: str, name: str = "Test User") -> AuthHeaders:
    """Register a user and return auth headers with user info."""
    response = client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": "testpass123", "name": name},
    )
    assert response.status_code == 201
    data = response.json()
    token = data["access_token"]

    return AuthHeaders(
        {"Authorization": f"Bearer {token}"},
        user_id=data["user"]["id"],
        account_id=data["user"]["account_id"],
        email=email,
        token=token,
    )


@pytest.fixture
def auth_headers(client):
    """Create a user (and account) and return auth headers with user info."""
    return register(client, "test@example.com")


@pytest.fixture
def other_auth_headers(client):
    """A second user in a different account."""
    return register(client, "other@example.com", name="Other User")


@pytest.fixture
def rental_property(db, auth_headers):
    """A property owned by the auth_headers account."""
    prop = Property(account_id=auth_headers.account_id, name="Maple Street Duplex")
    db.add(prop)
    db.commit()
    db.refresh(prop)
    return prop


@pytest.fixture
def category(db):
    """A global expense category."""
    cat = ExpenseCategory(name="Repairs")
    db.add(cat)
    db.commit()
    db.refresh(cat)
    return cat


@pytest.fixture
def upload_receipt(client, fake_storage):
    """Put an object into storage and confirm it as a receipt; returns the id."""

    def _upload(headers: AuthHeaders, property_id: int | None = None) -> str:
        grant = client.post(
            "/api/v1/receipts/upload-url",
            json={"content_type": "image/jpeg", "file_size_bytes": 2048},
            headers=headers,
        ).json()
        fake_storage.objects[grant["storage_key"]] = make_image_bytes(fmt="JPEG")

        response = client.post(
            "/api/v1/receipts",
            json={
                "storage_key": grant["storage_key"],
                "thumbnail_storage_key": grant["thumbnail_storage_key"],
                "original_file_name": "receipt.jpg",
                "content_type": "image/jpeg",
                "file_size_bytes": 2048,
                "property_id": property_id,
            },
            headers=headers,
        )
        assert response.status_code == 201
        return response.json()["id"]

    return _upload


@pytest.fixture
def websocket_db(monkeypatch):
    """Let the WebSocket endpoint's own session see the test database."""
    monkeypatch.setattr("propertyledger.api.websocket.SessionLocal", TestingSessionLocal)


@pytest.fixture
def session_factory():
    """Session factory bound to the test database, for code that opens its own sessions."""
    return TestingSessionLocal
