"""Pytest fixtures for the order communications backend.

Provides reusable test fixtures for:
- Database session on a fresh in-memory SQLite database
- A test order and its original outbound message
- In-memory and failing attachment storage
- A FastAPI test client wired to the test session and storage

Usage:
    def test_thread(client, test_order):
        response = client.get(f"/admin/orders/{test_order.id}/communications")
        assert response.status_code == 200
"""

import sys
import os
from pathlib import Path
from datetime import datetime, timedelta, timezone
from typing import Dict, Generator

# Set environment variables BEFORE any imports to ensure they take effect
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_JSON", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

from config import Settings
from models.base import Base
from models.order import Order
from models.order_communication import OrderCommunication, CommunicationDirection
from communications.ports import AttachmentStoragePort, StoredAttachment, StorageError


TEST_ORDER_ID = "a1b2c3d4-e5f6-7890-abcd-ef1234567890"
TEST_TOKEN = "ord-a1b2c3d4"
TEST_REPLY_ADDRESS = "order-a1b2c3d4@parse.example.com"

# Single shared connection so every session sees the same in-memory database
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(test_engine, "connect")
def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class InMemoryAttachmentStorage(AttachmentStoragePort):
    """Attachment storage kept in a dict, keyed by generated filename."""

    def __init__(self):
        self.files: Dict[str, bytes] = {}

    async def store_attachment(self, filename: str, content: bytes, mime_type: str) -> StoredAttachment:
        self.files[filename] = content
        return StoredAttachment(
            storage_path=f"/uploads/attachments/{filename}",
            size_bytes=len(content),
            mime_type=mime_type,
        )

    async def retrieve_attachment(self, filename: str) -> bytes:
        if filename not in self.files:
            raise FileNotFoundError(filename)
        return self.files[filename]

    async def check_health(self) -> None:
        return None


class FlakyAttachmentStorage(InMemoryAttachmentStorage):
    """Fails every write whose generated filename ends with one of `fail_on`."""

    def __init__(self, fail_on=()):
        super().__init__()
        self.fail_on = tuple(fail_on)

    async def store_attachment(self, filename: str, content: bytes, mime_type: str) -> StoredAttachment:
        if self.fail_on and filename.endswith(self.fail_on):
            raise StorageError(f"Disk full while writing {filename}")
        return await super().store_attachment(filename, content, mime_type)

    async def check_health(self) -> None:
        raise StorageError("Storage unavailable")


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test.

    Creates all tables before the test and drops them after.
    Each test gets a clean database state.
    """
    Base.metadata.create_all(bind=test_engine)

    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite://",
        INBOUND_DOMAIN="parse.example.com",
        FROM_EMAIL="orders@example.com",
        LOG_JSON=False,
    )


@pytest.fixture
def storage() -> InMemoryAttachmentStorage:
    return InMemoryAttachmentStorage()


@pytest.fixture
def flaky_storage_factory():
    """Build storage that fails writes for names ending with the given suffixes."""
    return FlakyAttachmentStorage


@pytest.fixture(scope="function")
def test_order(db_session: Session) -> Order:
    """Create a school order with a contact block and two items."""
    order = Order(
        id=TEST_ORDER_ID,
        order_number="ORD-1001",
        status="proof_sent",
        items=[
            {
                "name": "Banner 3x6",
                "selectedOptions": {
                    "size": "3x6",
                    "material": "Vinyl",
                    "artworkOption": "use_existing",
                },
            },
            {
                "name": "Yard Sign",
                "options": {
                    "quantity": 25,
                    "customText": {"headline": "Welcome Back!", "bodyText": "Go Eagles"},
                },
            },
        ],
        shipping_info={
            "contactName": "Pat Parent",
            "email": "parent@example.com",
            "schoolName": "Lincoln Elementary",
            "phone": "555-0100",
        },
        total=249.0,
    )
    db_session.add(order)
    db_session.commit()
    db_session.refresh(order)
    return order


@pytest.fixture(scope="function")
def outbound_communication(db_session: Session, test_order: Order) -> OrderCommunication:
    """The staff message the customer replies to."""
    communication = OrderCommunication(
        order_id=test_order.id,
        direction=CommunicationDirection.OUTBOUND,
        admin_id="staff-1",
        sender_email="orders@example.com",
        recipient_email="parent@example.com",
        subject="Your proof is ready",
        body="Please review the attached proof.",
        reply_to_token=TEST_TOKEN,
        message_id="<proof-1@example.com>",
        created_at=datetime.now(timezone.utc) - timedelta(hours=1),
    )
    db_session.add(communication)
    db_session.commit()
    db_session.refresh(communication)
    return communication


@pytest.fixture(scope="function")
def client(db_session: Session, settings: Settings, storage: InMemoryAttachmentStorage):
    """Create a test client bound to the test session and in-memory storage.

    The lifespan handler is not run, so no tables are created on the
    application's own engine.
    """
    from main import create_app
    from database import get_db as database_get_db
    from dependencies import get_attachment_storage

    app = create_app(settings)

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[database_get_db] = override_get_db
    app.dependency_overrides[get_attachment_storage] = lambda: storage

    return TestClient(app)
