"""Communication recorder - threads inbound replies and outbound messages onto orders.

Inbound flow (mail provider webhook):
    normalize payload -> decode reply token from To -> find the original
    communication -> find its order -> extract reply body -> insert inbound row
    -> commit -> audit

Every inbound failure is mapped to an InboundOutcome and acknowledged. The
webhook caller always answers 200 so the provider never retries a delivery.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from audit.service import record_audit_event, CATEGORY_COMMUNICATIONS
from config import Settings
from models.order import Order
from models.order_communication import OrderCommunication, CommunicationDirection
from observability.metrics import (
    inbound_emails_total,
    inbound_processing_seconds,
    outbound_messages_total,
)
from .body_cleaner import extract_reply_body
from .inbound_email import InboundEmailPayload, normalize_inbound_email
from .order_summary import compose_plain_text
from .ports import AttachmentStoragePort
from .reply_token import encode_reply_token, decode_reply_token, build_reply_address
from .repository import CommunicationRepository
from .schemas import AttachmentDescriptor

logger = logging.getLogger(__name__)

AUDIT_INBOUND_RECEIVED = "communication.inbound_received"
AUDIT_OUTBOUND_RECORDED = "communication.outbound_recorded"


class InboundOutcome(str, Enum):
    """Result of processing one inbound webhook call."""
    MISSING_TO_ADDRESS = "missing_to_address"
    UNRECOGNIZED_TOKEN = "unrecognized_token"
    COMMUNICATION_NOT_FOUND = "communication_not_found"
    ORDER_NOT_FOUND = "order_not_found"
    RECORDED = "recorded"
    PROCESSING_FAILED = "processing_failed"


OUTCOME_MESSAGES = {
    InboundOutcome.MISSING_TO_ADDRESS: "Missing to address",
    InboundOutcome.UNRECOGNIZED_TOKEN: "Invalid reply address",
    InboundOutcome.COMMUNICATION_NOT_FOUND: "Communication not found",
    InboundOutcome.ORDER_NOT_FOUND: "Order not found",
    InboundOutcome.RECORDED: "Email received",
    InboundOutcome.PROCESSING_FAILED: "Failed to process email",
}


@dataclass
class InboundResult:
    outcome: InboundOutcome
    communication_id: Optional[str] = None

    @property
    def message(self) -> str:
        return OUTCOME_MESSAGES[self.outcome]

    @property
    def recorded(self) -> bool:
        return self.outcome == InboundOutcome.RECORDED

    def to_response(self) -> Dict[str, str]:
        """JSON body acknowledged to the mail provider."""
        response = {"message": self.message}
        if self.communication_id:
            response["communicationId"] = self.communication_id
        return response


@dataclass
class OutboundDraft:
    """Everything the mail provider needs to send a staff message."""
    reply_to: str
    subject: str
    text: str
    headers: Dict[str, str] = field(default_factory=dict)


class CommunicationRecorder:
    """Persists order communications.

    Built per request with the request's database session; settings and
    attachment storage are the instances created at application startup.
    """

    def __init__(self, db: Session, storage: AttachmentStoragePort, settings: Settings):
        self.db = db
        self.storage = storage
        self.settings = settings
        self.repository = CommunicationRepository(db)

    async def handle_inbound(self, payload: InboundEmailPayload) -> InboundResult:
        """Record a customer reply posted by the mail provider.

        Never raises. Unexpected errors roll back the session and are
        reported as PROCESSING_FAILED.
        """
        with inbound_processing_seconds.time():
            try:
                result = await self._process_inbound(payload)
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to process inbound email: {e}", exc_info=True)
                result = InboundResult(InboundOutcome.PROCESSING_FAILED)

        inbound_emails_total.labels(outcome=result.outcome.value).inc()
        return result

    async def _process_inbound(self, payload: InboundEmailPayload) -> InboundResult:
        logger.info(
            f"Received inbound email: to={payload.to!r}, from={payload.from_email!r}, "
            f"subject={payload.subject!r}, raw_length={len(payload.raw_email or '')}"
        )

        email = await normalize_inbound_email(payload, self.storage)

        if not email.to:
            logger.warning("Inbound email has no to address")
            return InboundResult(InboundOutcome.MISSING_TO_ADDRESS)

        token = decode_reply_token(email.to)
        if not token:
            logger.warning(f"Could not parse reply token from {email.to!r}")
            return InboundResult(InboundOutcome.UNRECOGNIZED_TOKEN)

        original = self.repository.find_by_reply_token(token)
        if original is None:
            logger.warning(f"No communication found for token {token}", extra={"reply_token": token})
            return InboundResult(InboundOutcome.COMMUNICATION_NOT_FOUND)

        order = self.repository.find_order(original.order_id)
        if order is None:
            logger.warning(
                f"Order not found for token {token}",
                extra={"reply_token": token, "order_id": original.order_id}
            )
            return InboundResult(InboundOutcome.ORDER_NOT_FOUND)

        body = extract_reply_body(email.text, email.html)
        subject = email.subject or f"Re: {original.subject or ''}"

        communication = self.repository.create_communication(
            order_id=order.id,
            direction=CommunicationDirection.INBOUND,
            admin_id=None,
            sender_email=email.from_email,
            recipient_email=email.to,
            subject=subject,
            body=body,
            reply_to_token=original.reply_to_token,
            attachments=[a.model_dump() for a in email.attachments] or None,
            message_id=email.message_id,
        )
        self.db.commit()

        logger.info(
            f"Recorded inbound reply for order {order.order_number} "
            f"with {len(email.attachments)} attachment(s)",
            extra={"order_id": order.id, "communication_id": communication.id}
        )

        record_audit_event(
            self.db,
            action=AUDIT_INBOUND_RECEIVED,
            category=CATEGORY_COMMUNICATIONS,
            entity_type="order",
            entity_id=order.id,
            metadata={
                "from": email.from_email,
                "subject": subject,
                "orderNumber": order.order_number,
                "contactName": order.contact_name,
                "hasAttachments": bool(email.attachments),
            },
        )

        return InboundResult(InboundOutcome.RECORDED, communication_id=communication.id)

    def compose_outbound(self, order: Order, subject: str, body: str) -> OutboundDraft:
        """Build the reply-to address, subject, threading headers and body for a staff message.

        In-Reply-To points at the latest Message-ID of the thread and
        References lists all of them, so mail clients keep the conversation
        together.
        """
        token = encode_reply_token(order.id)
        headers: Dict[str, str] = {}

        message_ids = self.repository.get_message_ids_for_order(order.id)
        if message_ids:
            headers["In-Reply-To"] = message_ids[-1]
            headers["References"] = " ".join(message_ids)

        return OutboundDraft(
            reply_to=build_reply_address(token, self.settings.INBOUND_DOMAIN),
            subject=f"[Order {order.order_number}] {subject}",
            text=compose_plain_text(body, order),
            headers=headers,
        )

    def record_outbound(
        self,
        order: Order,
        subject: str,
        body: str,
        sender_email: Optional[str],
        recipient_email: Optional[str],
        admin_id: Optional[str] = None,
        attachments: Optional[List[AttachmentDescriptor]] = None,
        message_id: Optional[str] = None,
    ) -> OrderCommunication:
        """Insert and commit an outbound message carrying the order's reply token."""
        stored_attachments: Optional[List[Dict[str, Any]]] = None
        if attachments:
            stored_attachments = [a.model_dump() for a in attachments]

        communication = self.repository.create_communication(
            order_id=order.id,
            direction=CommunicationDirection.OUTBOUND,
            admin_id=admin_id,
            sender_email=sender_email,
            recipient_email=recipient_email,
            subject=subject,
            body=body,
            reply_to_token=encode_reply_token(order.id),
            attachments=stored_attachments,
            message_id=message_id,
        )
        self.db.commit()
        self.db.refresh(communication)
        outbound_messages_total.inc()

        logger.info(
            f"Recorded outbound message for order {order.order_number}",
            extra={"order_id": order.id, "communication_id": communication.id}
        )

        record_audit_event(
            self.db,
            action=AUDIT_OUTBOUND_RECORDED,
            category=CATEGORY_COMMUNICATIONS,
            actor_id=admin_id,
            entity_type="order",
            entity_id=order.id,
            metadata={"to": recipient_email, "subject": subject},
        )

        return communication
