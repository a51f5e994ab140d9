"""Communication repository for database operations"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update, func, and_, desc
from sqlalchemy.orm import Session

from models.order import Order
from models.order_communication import OrderCommunication, CommunicationDirection

MOST_ACTIVE_ORDERS_LIMIT = 10


class CommunicationRepository:
    """Repository for order_communications database operations.

    Handles thread lookups by reply token, message inserts, read-state
    updates and the aggregates behind the admin notification and report
    views. Methods flush but never commit; the caller owns the transaction.
    """

    def __init__(self, db: Session):
        """Initialize repository with database session.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    def find_order(self, order_id: str) -> Optional[Order]:
        return self.db.get(Order, order_id)

    def find_by_reply_token(self, token: str) -> Optional[OrderCommunication]:
        """Return the most recent communication carrying a reply token.

        Tokens are compared case-insensitively since mail clients may change
        the case of the local part.
        """
        query = (
            select(OrderCommunication)
            .where(func.lower(OrderCommunication.reply_to_token) == token.lower())
            .order_by(desc(OrderCommunication.created_at))
            .limit(1)
        )
        return self.db.execute(query).scalars().first()

    def create_communication(self, **fields: Any) -> OrderCommunication:
        """Insert a communication row.

        Args:
            **fields: Column values for OrderCommunication

        Returns:
            Persisted OrderCommunication (flushed, not committed)
        """
        communication = OrderCommunication(**fields)
        self.db.add(communication)
        self.db.flush()
        return communication

    def list_for_order(self, order_id: str) -> List[OrderCommunication]:
        """All messages of an order thread, oldest first."""
        query = (
            select(OrderCommunication)
            .where(OrderCommunication.order_id == order_id)
            .order_by(OrderCommunication.created_at)
        )
        return list(self.db.execute(query).scalars().all())

    def get_message_ids_for_order(self, order_id: str) -> List[str]:
        """Message-IDs of an order thread in send order, for threading headers."""
        query = (
            select(OrderCommunication.message_id)
            .where(
                and_(
                    OrderCommunication.order_id == order_id,
                    OrderCommunication.message_id.is_not(None)
                )
            )
            .order_by(OrderCommunication.created_at)
        )
        return [message_id for message_id in self.db.execute(query).scalars().all() if message_id]

    def mark_order_read(self, order_id: str) -> int:
        """Flag every unread inbound message of an order as read.

        Returns:
            Number of rows updated
        """
        result = self.db.execute(
            update(OrderCommunication)
            .where(
                and_(
                    OrderCommunication.order_id == order_id,
                    OrderCommunication.direction == CommunicationDirection.INBOUND.value,
                    OrderCommunication.read_by_admin.is_(False)
                )
            )
            .values(read_by_admin=True)
            .execution_options(synchronize_session="fetch")
        )
        self.db.flush()
        return result.rowcount or 0

    def _unread_inbound_filter(self):
        return and_(
            OrderCommunication.direction == CommunicationDirection.INBOUND.value,
            OrderCommunication.read_by_admin.is_(False)
        )

    def unread_counts_by_order(self) -> Dict[str, int]:
        query = (
            select(OrderCommunication.order_id, func.count(OrderCommunication.id))
            .where(self._unread_inbound_filter())
            .group_by(OrderCommunication.order_id)
        )
        return {order_id: count for order_id, count in self.db.execute(query).all()}

    def count_unread(self) -> int:
        query = select(func.count(OrderCommunication.id)).where(self._unread_inbound_filter())
        return self.db.execute(query).scalar_one()

    def recent_unread(self, limit: int) -> List[tuple[OrderCommunication, str]]:
        """Newest unread inbound messages paired with their order number."""
        query = (
            select(OrderCommunication, Order.order_number)
            .join(Order, Order.id == OrderCommunication.order_id)
            .where(self._unread_inbound_filter())
            .order_by(desc(OrderCommunication.created_at))
            .limit(limit)
        )
        return [(communication, order_number) for communication, order_number in self.db.execute(query).all()]

    def communications_overview(self, start: datetime, end: datetime) -> Dict[str, Any]:
        """Message counts by direction and the most active orders in a date range.

        Args:
            start: Inclusive lower bound on created_at
            end: Inclusive upper bound on created_at

        Returns:
            Dict with `message_counts` [{direction, count}] and
            `most_active_orders` [{order_id, order_number, message_count}]
        """
        in_range = and_(
            OrderCommunication.created_at >= start,
            OrderCommunication.created_at <= end
        )

        counts_query = (
            select(OrderCommunication.direction, func.count(OrderCommunication.id))
            .where(in_range)
            .group_by(OrderCommunication.direction)
            .order_by(OrderCommunication.direction)
        )
        message_counts = [
            {"direction": direction, "count": count}
            for direction, count in self.db.execute(counts_query).all()
        ]

        message_count = func.count(OrderCommunication.id).label("message_count")
        active_query = (
            select(Order.id, Order.order_number, message_count)
            .join(OrderCommunication, OrderCommunication.order_id == Order.id)
            .where(in_range)
            .group_by(Order.id, Order.order_number)
            .order_by(desc(message_count), Order.order_number)
            .limit(MOST_ACTIVE_ORDERS_LIMIT)
        )
        most_active_orders = [
            {"order_id": order_id, "order_number": order_number, "message_count": count}
            for order_id, order_number, count in self.db.execute(active_query).all()
        ]

        return {
            "message_counts": message_counts,
            "most_active_orders": most_active_orders,
        }
