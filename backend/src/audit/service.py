"""Audit logging service for communication events.

Provides a centralized interface for creating immutable audit log entries.

Audit Events:
- communication.inbound_received: Customer reply recorded from the webhook
- communication.outbound_recorded: Staff message recorded for an order
- communication.marked_read: Staff marked an order's replies as read
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from models.audit_log import AuditLog

logger = logging.getLogger(__name__)

CATEGORY_COMMUNICATIONS = "communications"


def log_audit_event(
    db: Session,
    action: str,
    category: Optional[str] = None,
    actor_id: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> AuditLog:
    """Create an audit log entry.

    All parameters are stored as-is. This function does not validate action
    names or entity types.

    Args:
        db: Database session
        action: Event action (e.g., "communication.inbound_received")
        category: Event category used by the admin audit view
        actor_id: Staff user who performed the action (None for customer/system events)
        entity_type: Type of entity affected (e.g., "order")
        entity_id: ID of affected entity
        metadata: Additional context as JSON
        ip_address: Client IP address

    Returns:
        AuditLog: The created audit log entry (flushed, not committed)
    """
    audit_entry = AuditLog(
        action=action,
        category=category,
        actor_id=actor_id,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata_json=metadata,
        ip_address=ip_address,
    )

    db.add(audit_entry)
    db.flush()  # Get ID without committing transaction

    return audit_entry


def record_audit_event(db: Session, **fields) -> Optional[AuditLog]:
    """Write and commit an audit entry without ever raising.

    Audit logging must never break the operation it describes, so failures are
    logged and rolled back. Callers commit their own work first.
    """
    try:
        entry = log_audit_event(db, **fields)
        db.commit()
        return entry
    except Exception as e:
        db.rollback()
        logger.error(f"Audit log error for {fields.get('action')}: {e}", exc_info=True)
        return None
