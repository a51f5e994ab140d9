"""AuditLog SQLAlchemy model"""

from sqlalchemy import Column, String, Text, DateTime, Index

from .base import Base, PortableJSONB, generate_uuid, utcnow


class AuditLog(Base):
    """AuditLog model for immutable event logging.

    Records communication events (inbound replies, staff messages, read
    markers) for the admin audit trail. Entries are append-only.
    """
    __tablename__ = "audit_log"
    __table_args__ = (
        Index("ix_audit_log_category_created_at", "category", "created_at"),
        Index("ix_audit_log_entity", "entity_type", "entity_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    action = Column(Text, nullable=False)
    category = Column(Text, nullable=True)
    actor_id = Column(String(36), nullable=True)
    entity_type = Column(Text, nullable=True)
    entity_id = Column(String(36), nullable=True)
    metadata_json = Column(PortableJSONB, nullable=True)
    ip_address = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
