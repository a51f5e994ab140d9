"""OrderCommunication model - one message in an order's email thread.

Outbound rows are written when staff send a message; inbound rows are written
when the inbound-email webhook matches a customer reply to its order through
the reply-to token.
"""

from enum import Enum

from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship, validates

from .base import Base, PortableJSONB, generate_uuid, utcnow


class CommunicationDirection(str, Enum):
    """Direction of a message relative to the store.

    INBOUND: Customer reply received through the webhook
    OUTBOUND: Message sent by staff from the admin UI
    """
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class OrderCommunication(Base):
    """
    A single message in an order thread.

    Invariants:
    - reply_to_token is "ord-" + the first 8 characters of order_id
    - inbound rows never carry an admin_id
    - attachments is NULL or a non-empty list of
      {filename, storage_path, mime_type, size_bytes}
    - rows are only ever updated to flip read_by_admin
    """
    __tablename__ = "order_communications"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    direction = Column(
        Text,
        CheckConstraint("direction IN ('inbound', 'outbound')"),
        nullable=False
    )
    admin_id = Column(String(36), nullable=True)
    sender_email = Column(Text, nullable=True)
    recipient_email = Column(Text, nullable=True)
    subject = Column(Text, nullable=True)
    body = Column(Text, nullable=False, default="")
    reply_to_token = Column(Text, nullable=True)
    attachments = Column(PortableJSONB, nullable=True)
    message_id = Column(Text, nullable=True)
    read_by_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_order_comm_reply_token", "reply_to_token"),
        Index("idx_order_comm_order_created", "order_id", "created_at"),
        Index("idx_order_comm_unread", "direction", "read_by_admin"),
    )

    order = relationship("Order", back_populates="communications")

    @validates("direction")
    def validate_direction(self, key, value):
        """Ensure direction is a valid enum value."""
        if isinstance(value, CommunicationDirection):
            return value.value
        try:
            return CommunicationDirection(value).value
        except ValueError:
            raise ValueError(f"Invalid direction: {value}. Must be inbound or outbound")

    @validates("attachments")
    def validate_attachments(self, key, value):
        """Store an empty attachment list as NULL."""
        if not value:
            return None
        return list(value)

    def __repr__(self):
        return (
            f"<OrderCommunication(id={self.id}, order_id={self.order_id}, "
            f"direction={self.direction}, token={self.reply_to_token})>"
        )
