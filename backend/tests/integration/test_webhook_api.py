"""Integration tests for the inbound email webhook

The mail provider must always get a 200, whatever happens to the message.
"""

from email.message import EmailMessage

import pytest
from sqlalchemy import select, func

from models.order_communication import OrderCommunication


pytestmark = pytest.mark.integration

WEBHOOK_URL = "/webhooks/inbound-email"


def count_communications(db_session) -> int:
    return db_session.execute(select(func.count(OrderCommunication.id))).scalar_one()


class TestInboundWebhook:

    def test_reply_recorded(self, client, db_session, outbound_communication):
        response = client.post(WEBHOOK_URL, data={
            "to": "order-a1b2c3d4@parse.example.com",
            "from": "parent@example.com",
            "subject": "Re: Order",
            "text": "Thanks!\n\nOn Tue, Jan 2, 2024 Orders wrote:\n> original",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Email received"
        assert "communicationId" in body

        inbound = db_session.get(OrderCommunication, body["communicationId"])
        assert inbound.body == "Thanks!"
        assert count_communications(db_session) == 2

    def test_sendgrid_path_alias(self, client, outbound_communication):
        response = client.post("/webhooks/sendgrid/inbound", data={
            "to": "order-a1b2c3d4@parse.example.com",
            "text": "Yes",
        })

        assert response.status_code == 200
        assert response.json()["message"] == "Email received"

    def test_missing_to_still_200(self, client, db_session, outbound_communication):
        response = client.post(WEBHOOK_URL, data={"from": "parent@example.com", "text": "Hi"})

        assert response.status_code == 200
        assert response.json() == {"message": "Missing to address"}
        assert count_communications(db_session) == 1

    def test_invalid_reply_address_still_200(self, client, outbound_communication):
        response = client.post(WEBHOOK_URL, data={"to": "info@example.com", "text": "Hi"})

        assert response.status_code == 200
        assert response.json() == {"message": "Invalid reply address"}

    def test_unknown_token_still_200(self, client, db_session, outbound_communication):
        response = client.post(WEBHOOK_URL, data={"to": "order-ffffffff@parse.example.com", "text": "Hi"})

        assert response.status_code == 200
        assert response.json() == {"message": "Communication not found"}
        assert count_communications(db_session) == 1

    def test_empty_body_still_200(self, client):
        response = client.post(WEBHOOK_URL)

        assert response.status_code == 200
        assert response.json() == {"message": "Missing to address"}

    def test_raw_email_as_file_part(self, client, db_session, storage, outbound_communication):
        msg = EmailMessage()
        msg["From"] = "parent@example.com"
        msg["To"] = "order-a1b2c3d4@parse.example.com"
        msg["Subject"] = "Re: Your proof is ready"
        msg.set_content("Logo attached.\n--\nPat")
        msg.add_attachment(b"\x89PNG", maintype="image", subtype="png", filename="logo.png")

        response = client.post(
            WEBHOOK_URL,
            data={"envelope": '{"to": ["order-a1b2c3d4@parse.example.com"]}'},
            files={"email": ("message.eml", msg.as_bytes(), "message/rfc822")},
        )

        assert response.status_code == 200
        inbound = db_session.get(OrderCommunication, response.json()["communicationId"])
        assert inbound.body == "Logo attached."
        assert inbound.attachments[0]["filename"] == "logo.png"
        assert list(storage.files.values()) == [b"\x89PNG"]

    def test_request_id_echoed(self, client, outbound_communication):
        response = client.post(
            WEBHOOK_URL,
            data={"to": "order-a1b2c3d4@parse.example.com", "text": "ok"},
            headers={"X-Request-ID": "req-123"},
        )

        assert response.headers["X-Request-ID"] == "req-123"
