"""Integration tests for the communication recorder

Runs the inbound pipeline against a real (in-memory SQLite) database:
normalize, decode token, look up the thread, strip the body and record.
"""

import asyncio
import os
import time
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage

import pytest
from sqlalchemy import delete, select, func

from models.audit_log import AuditLog
from models.order import Order
from models.order_communication import OrderCommunication
from communications.inbound_email import InboundEmailPayload
from infrastructure.storage.local_storage_adapter import LocalAttachmentStorage
from communications.recorder import (
    CommunicationRecorder,
    InboundOutcome,
    InboundResult,
)


def count_communications(db_session) -> int:
    return db_session.execute(select(func.count(OrderCommunication.id))).scalar_one()


def reply_payload(**overrides) -> InboundEmailPayload:
    fields = dict(
        to="order-a1b2c3d4@parse.example.com",
        from_email="parent@example.com",
        subject="Re: Order",
        text="Thanks!\n\nOn Tue, Jan 2, 2024 at 9:00 AM Orders <orders@example.com> wrote:\n> original",
    )
    fields.update(overrides)
    return InboundEmailPayload(**fields)


@pytest.fixture
def recorder(db_session, storage, settings):
    return CommunicationRecorder(db=db_session, storage=storage, settings=settings)


class TestInboundOutcomes:

    @pytest.mark.asyncio
    async def test_reply_recorded_end_to_end(self, recorder, db_session, outbound_communication):
        result = await recorder.handle_inbound(reply_payload())

        assert result.outcome == InboundOutcome.RECORDED
        assert result.communication_id is not None
        assert count_communications(db_session) == 2

        inbound = db_session.get(OrderCommunication, result.communication_id)
        assert inbound.body == "Thanks!"
        assert inbound.direction == "inbound"
        assert inbound.admin_id is None
        assert inbound.order_id == outbound_communication.order_id
        assert inbound.reply_to_token == "ord-a1b2c3d4"
        assert inbound.sender_email == "parent@example.com"
        assert inbound.subject == "Re: Order"
        assert inbound.attachments is None
        assert inbound.read_by_admin is False

    @pytest.mark.asyncio
    async def test_missing_to_address(self, recorder, db_session, outbound_communication):
        result = await recorder.handle_inbound(reply_payload(to=None))

        assert result.outcome == InboundOutcome.MISSING_TO_ADDRESS
        assert result.to_response() == {"message": "Missing to address"}
        assert count_communications(db_session) == 1

    @pytest.mark.asyncio
    async def test_unrecognized_token(self, recorder, db_session, outbound_communication):
        result = await recorder.handle_inbound(reply_payload(to="support@example.com"))

        assert result.outcome == InboundOutcome.UNRECOGNIZED_TOKEN
        assert result.to_response() == {"message": "Invalid reply address"}
        assert count_communications(db_session) == 1

    @pytest.mark.asyncio
    async def test_unknown_token_records_nothing(self, recorder, db_session, outbound_communication):
        result = await recorder.handle_inbound(reply_payload(to="order-deadbeef@parse.example.com"))

        assert result.outcome == InboundOutcome.COMMUNICATION_NOT_FOUND
        assert result.communication_id is None
        assert count_communications(db_session) == 1

    @pytest.mark.asyncio
    async def test_order_missing(self, recorder, db_session, test_order, monkeypatch):
        """A thread whose order lookup misses is acknowledged without a write"""
        db_session.add(OrderCommunication(
            order_id=test_order.id,
            direction="outbound",
            subject="Proof",
            body="See attached",
            reply_to_token="ord-a1b2c3d4",
        ))
        db_session.commit()
        monkeypatch.setattr(recorder.repository, "find_order", lambda order_id: None)

        result = await recorder.handle_inbound(reply_payload())

        assert result.outcome == InboundOutcome.ORDER_NOT_FOUND
        assert count_communications(db_session) == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_is_acknowledged(self, recorder, db_session, outbound_communication, monkeypatch):
        def explode(**fields):
            raise RuntimeError("database went away")

        monkeypatch.setattr(recorder.repository, "create_communication", explode)

        result = await recorder.handle_inbound(reply_payload())

        assert result.outcome == InboundOutcome.PROCESSING_FAILED
        assert result.to_response() == {"message": "Failed to process email"}
        assert count_communications(db_session) == 1


class TestInboundDetails:

    @pytest.mark.asyncio
    async def test_empty_subject_defaults_to_re_original(self, recorder, db_session, outbound_communication):
        result = await recorder.handle_inbound(reply_payload(subject=""))

        inbound = db_session.get(OrderCommunication, result.communication_id)
        assert inbound.subject == "Re: Your proof is ready"

    @pytest.mark.asyncio
    async def test_token_match_is_case_insensitive(self, recorder, db_session, outbound_communication):
        result = await recorder.handle_inbound(reply_payload(to="ORDER-A1B2C3D4@PARSE.EXAMPLE.COM"))

        assert result.outcome == InboundOutcome.RECORDED
        inbound = db_session.get(OrderCommunication, result.communication_id)
        assert inbound.reply_to_token == "ord-a1b2c3d4"

    @pytest.mark.asyncio
    async def test_latest_thread_message_wins(self, recorder, db_session, outbound_communication):
        newer = OrderCommunication(
            order_id=outbound_communication.order_id,
            direction="outbound",
            subject="Second proof",
            body="Updated proof",
            reply_to_token="ord-a1b2c3d4",
            created_at=datetime.now(timezone.utc) - timedelta(minutes=5),
        )
        db_session.add(newer)
        db_session.commit()

        result = await recorder.handle_inbound(reply_payload(subject=None))

        inbound = db_session.get(OrderCommunication, result.communication_id)
        assert inbound.subject == "Re: Second proof"

    @pytest.mark.asyncio
    async def test_html_only_reply(self, recorder, db_session, outbound_communication):
        payload = reply_payload(
            text=None,
            html='<div dir="ltr">Approved, thank you!</div><div class="gmail_quote">On Mon ... wrote:</div>',
        )

        result = await recorder.handle_inbound(payload)

        inbound = db_session.get(OrderCommunication, result.communication_id)
        assert inbound.body == "Approved, thank you!"

    @pytest.mark.asyncio
    async def test_raw_reply_with_attachments(self, db_session, settings, outbound_communication, flaky_storage_factory):
        """One failed attachment write still records the message with the other attachment"""
        msg = EmailMessage()
        msg["From"] = "parent@example.com"
        msg["To"] = "order-a1b2c3d4@parse.example.com"
        msg["Subject"] = "Re: Your proof is ready"
        msg["Message-ID"] = "<reply-7@mail.example.com>"
        msg.set_content("Here is our logo.\n\nSent from my iPhone")
        msg.add_attachment(b"%PDF-1.4", maintype="application", subtype="pdf", filename="order form.pdf")
        msg.add_attachment(b"\x89PNG", maintype="image", subtype="png", filename="logo.png")

        storage = flaky_storage_factory(fail_on=("-orderform.pdf",))
        recorder = CommunicationRecorder(db=db_session, storage=storage, settings=settings)

        result = await recorder.handle_inbound(InboundEmailPayload(raw_email=msg.as_bytes()))

        assert result.outcome == InboundOutcome.RECORDED
        inbound = db_session.get(OrderCommunication, result.communication_id)
        assert inbound.body == "Here is our logo."
        assert inbound.message_id == "<reply-7@mail.example.com>"
        assert len(inbound.attachments) == 1
        assert inbound.attachments[0]["filename"] == "logo.png"
        assert inbound.attachments[0]["mime_type"] == "image/png"
        assert inbound.attachments[0]["storage_path"].endswith("-logo.png")

    @pytest.mark.asyncio
    async def test_audit_entry_written(self, recorder, db_session, outbound_communication):
        await recorder.handle_inbound(reply_payload())

        entry = db_session.execute(
            select(AuditLog).where(AuditLog.action == "communication.inbound_received")
        ).scalars().one()
        assert entry.entity_id == outbound_communication.order_id
        assert entry.metadata_json["orderNumber"] == "ORD-1001"
        assert entry.metadata_json["contactName"] == "Pat Parent"
        assert entry.metadata_json["hasAttachments"] is False


class TestInboundResult:

    def test_recorded_response_carries_id(self):
        result = InboundResult(InboundOutcome.RECORDED, communication_id="c-1")
        assert result.to_response() == {"message": "Email received", "communicationId": "c-1"}
        assert result.recorded is True


class TestOutbound:

    def test_record_outbound_derives_token(self, recorder, db_session, test_order):
        communication = recorder.record_outbound(
            order=test_order,
            subject="Proof ready",
            body="Please review.",
            sender_email="orders@example.com",
            recipient_email="parent@example.com",
            admin_id="staff-1",
        )

        assert communication.direction == "outbound"
        assert communication.reply_to_token == "ord-a1b2c3d4"
        assert communication.admin_id == "staff-1"
        assert communication.attachments is None

    def test_compose_outbound_threads_previous_messages(self, recorder, db_session, outbound_communication, test_order):
        db_session.add(OrderCommunication(
            order_id=test_order.id,
            direction="inbound",
            body="Looks good",
            reply_to_token="ord-a1b2c3d4",
            message_id="<reply-1@mail.example.com>",
        ))
        db_session.commit()

        draft = recorder.compose_outbound(test_order, "Final proof", "Attached is the final proof.")

        assert draft.reply_to == "order-a1b2c3d4@parse.example.com"
        assert draft.subject == "[Order ORD-1001] Final proof"
        assert draft.headers == {
            "In-Reply-To": "<reply-1@mail.example.com>",
            "References": "<proof-1@example.com> <reply-1@mail.example.com>",
        }
        assert draft.text.startswith("Attached is the final proof.\n\n")
        assert "Order #:     ORD-1001" in draft.text

    def test_compose_outbound_first_message_has_no_threading_headers(self, recorder, test_order):
        draft = recorder.compose_outbound(test_order, "Hello", "Welcome")
        assert draft.headers == {}


class TestOrderDeletion:

    @pytest.mark.asyncio
    async def test_deleting_order_removes_its_thread(self, recorder, db_session, outbound_communication, test_order):
        await recorder.handle_inbound(reply_payload())
        assert count_communications(db_session) == 2

        db_session.delete(test_order)
        db_session.commit()
        db_session.expire_all()

        assert count_communications(db_session) == 0

    def test_bulk_order_delete_cascades_in_database(self, db_session, outbound_communication):
        order_id = outbound_communication.order_id

        db_session.execute(delete(Order).where(Order.id == order_id))
        db_session.commit()
        db_session.expire_all()

        assert count_communications(db_session) == 0
        assert db_session.get(Order, order_id) is None


class TestLargeRawEmail:

    @pytest.mark.asyncio
    async def test_event_loop_keeps_running_during_ingest(self, db_session, settings, outbound_communication, tmp_path):
        msg = EmailMessage()
        msg["From"] = "parent@example.com"
        msg["To"] = "order-a1b2c3d4@parse.example.com"
        msg["Subject"] = "Re: Your proof is ready"
        msg.set_content("Scans attached.")
        for index in range(4):
            msg.add_attachment(
                os.urandom(6 * 1024 * 1024),
                maintype="application",
                subtype="pdf",
                filename=f"scan-{index}.pdf",
            )
        raw = msg.as_bytes()

        recorder = CommunicationRecorder(
            db=db_session,
            storage=LocalAttachmentStorage(base_dir=tmp_path),
            settings=settings,
        )
        stop = asyncio.Event()

        async def ticker():
            gaps = [0.0]
            last = time.perf_counter()
            while not stop.is_set():
                await asyncio.sleep(0.01)
                now = time.perf_counter()
                gaps.append(now - last)
                last = now
            return max(gaps)

        ticks = asyncio.create_task(ticker())
        await asyncio.sleep(0)
        result = await recorder.handle_inbound(InboundEmailPayload(raw_email=raw))
        stop.set()
        max_gap = await ticks

        assert result.outcome == InboundOutcome.RECORDED
        assert len(db_session.get(OrderCommunication, result.communication_id).attachments) == 4
        assert max_gap < 0.25
