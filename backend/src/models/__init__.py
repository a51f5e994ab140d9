"""SQLAlchemy Models for the order communications backend"""

from .base import Base, PortableJSONB
from .order import Order
from .order_communication import OrderCommunication, CommunicationDirection
from .audit_log import AuditLog

__all__ = [
    "Base",
    "PortableJSONB",
    "Order",
    "OrderCommunication",
    "CommunicationDirection",
    "AuditLog",
]
