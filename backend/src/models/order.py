"""Order model - the owner of every communication thread.

Only the columns the communication subsystem reads are mapped here; the
catalog, cart and checkout flows that create orders live elsewhere.
"""

from sqlalchemy import Column, String, Text, Float, DateTime, Index
from sqlalchemy.orm import relationship

from .base import Base, PortableJSONB, generate_uuid, utcnow


class Order(Base):
    """
    Order placed by a school or internal department.

    `items` holds the ordered products as a JSON list of
    {name, selectedOptions | options}; `shipping_info` holds the contact
    block (contactName, email, schoolName, phone, ...).
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    order_number = Column(Text, nullable=False, unique=True)
    user_id = Column(String(36), nullable=True)
    status = Column(Text, nullable=False, default="new")
    items = Column(PortableJSONB, nullable=False, default=list)
    shipping_info = Column(PortableJSONB, nullable=False, default=dict)
    total = Column(Float, nullable=False, default=0.0)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_orders_created_at", "created_at"),
    )

    communications = relationship(
        "OrderCommunication",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OrderCommunication.created_at",
    )

    @property
    def customer_email(self):
        return (self.shipping_info or {}).get("email")

    @property
    def contact_name(self):
        return (self.shipping_info or {}).get("contactName")

    def __repr__(self):
        return f"<Order(id={self.id}, order_number={self.order_number}, status={self.status})>"
