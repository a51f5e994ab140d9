"""Integration tests for the application factory

The app must read and write the database named by the Settings it was
built with, whatever DATABASE_URL the environment holds.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select, func

from config import Settings
from main import create_app
from models.order import Order
from models.order_communication import OrderCommunication


pytestmark = pytest.mark.integration


@pytest.fixture
def file_settings(tmp_path, monkeypatch) -> Settings:
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'other.db'}")
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite:///{tmp_path / 'mine.db'}",
        UPLOADS_PATH=str(tmp_path / "uploads"),
        INBOUND_DOMAIN="parse.example.com",
        LOG_JSON=False,
    )


def test_engine_built_from_injected_settings(file_settings, tmp_path):
    app = create_app(file_settings)

    assert app.state.engine.url.database == str(tmp_path / "mine.db")


def test_requests_use_injected_database(file_settings, tmp_path):
    app = create_app(file_settings)

    with TestClient(app) as client:
        session = app.state.session_factory()
        try:
            session.add(Order(id="c3d4e5f6-0000-0000-0000-000000000000", order_number="ORD-3003"))
            session.add(OrderCommunication(
                order_id="c3d4e5f6-0000-0000-0000-000000000000",
                direction="outbound",
                subject="Proof",
                body="See attached",
                reply_to_token="ord-c3d4e5f6",
            ))
            session.commit()
        finally:
            session.close()

        response = client.post("/webhooks/inbound-email", data={
            "to": "order-c3d4e5f6@parse.example.com",
            "text": "Approved",
        })

        assert response.json()["message"] == "Email received"
        assert client.get("/health").json()["components"]["database"]["status"] == "healthy"

    session = app.state.session_factory()
    try:
        count = session.execute(select(func.count(OrderCommunication.id))).scalar_one()
    finally:
        session.close()

    assert count == 2
    assert (tmp_path / "mine.db").exists()
    assert not (tmp_path / "other.db").exists()
