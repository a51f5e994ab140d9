"""Admin API endpoints for order communications

Provides the order thread view, outbound message recording, unread
notifications, the communications report and attachment downloads.
"""

import mimetypes
from datetime import datetime, timedelta, timezone
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, status, Query, Response
from sqlalchemy.orm import Session

from audit.service import record_audit_event, CATEGORY_COMMUNICATIONS
from config import Settings
from database import get_db
from dependencies import get_app_settings, get_attachment_storage, get_recorder
from observability.logging_config import get_logger
from .ports import AttachmentStoragePort
from .recorder import CommunicationRecorder
from .repository import CommunicationRepository
from .schemas import (
    CommunicationResponse,
    CommunicationListResponse,
    OutboundMessageRequest,
    OutboundMessageResponse,
    OutboundDraftResponse,
    UnreadCount,
    UnreadCountsResponse,
    NotificationItem,
    RecentNotificationsResponse,
    MarkReadResponse,
    CommunicationsOverviewResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["Communications"])

NOTIFICATION_PREVIEW_LENGTH = 100
DEFAULT_REPORT_DAYS = 30


def _preview(body: Optional[str]) -> str:
    body = body or ""
    if len(body) > NOTIFICATION_PREVIEW_LENGTH:
        return body[:NOTIFICATION_PREVIEW_LENGTH] + "..."
    return body


def _parse_report_date(value: Optional[str], name: str, end_of_day: bool = False) -> Optional[datetime]:
    """Parse an ISO date or datetime query parameter.

    A bare date used as an upper bound covers the whole day. Values with an
    offset are converted to UTC, the zone timestamps are stored in.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {name} format. Use ISO format (YYYY-MM-DD)"
        )
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    else:
        parsed = parsed.astimezone(timezone.utc)
    if end_of_day and len(value) == 10:
        parsed = parsed + timedelta(days=1) - timedelta(microseconds=1)
    return parsed


@router.get("/orders/{order_id}/communications", response_model=CommunicationListResponse)
async def list_order_communications(
    order_id: str,
    db: Annotated[Session, Depends(get_db)],
):
    """List the full message thread of an order, oldest first."""
    repository = CommunicationRepository(db)
    if repository.find_order(order_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

    return CommunicationListResponse(
        communications=[
            CommunicationResponse.model_validate(c) for c in repository.list_for_order(order_id)
        ]
    )


@router.post(
    "/orders/{order_id}/communications",
    response_model=OutboundMessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_outbound_message(
    order_id: str,
    request: OutboundMessageRequest,
    recorder: Annotated[CommunicationRecorder, Depends(get_recorder)],
    settings: Annotated[Settings, Depends(get_app_settings)],
):
    """Record a staff message for an order and return the composed email.

    The draft carries the reply-to address, the `[Order N]` subject, the
    threading headers and the plain-text body with the order summary, ready
    to hand to the mail provider.
    """
    order = recorder.repository.find_order(order_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

    recipient = request.recipient_email or order.customer_email
    if not recipient:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Order has no contact email and no recipient was given"
        )

    # Threading headers reference the messages sent before this one
    draft = recorder.compose_outbound(order, request.subject, request.body)

    communication = recorder.record_outbound(
        order=order,
        subject=request.subject,
        body=request.body,
        sender_email=settings.FROM_EMAIL,
        recipient_email=recipient,
        admin_id=request.admin_id,
        attachments=request.attachments,
        message_id=request.message_id,
    )

    return OutboundMessageResponse(
        message="Message recorded",
        communication=CommunicationResponse.model_validate(communication),
        draft=OutboundDraftResponse(
            reply_to=draft.reply_to,
            subject=draft.subject,
            text=draft.text,
            headers=draft.headers,
        ),
    )


@router.get("/notifications/unread-counts", response_model=UnreadCountsResponse)
async def get_unread_counts(db: Annotated[Session, Depends(get_db)]):
    """Unread customer replies per order."""
    counts = CommunicationRepository(db).unread_counts_by_order()
    return UnreadCountsResponse(
        counts={order_id: UnreadCount(messages=count) for order_id, count in counts.items()}
    )


@router.get("/notifications/recent", response_model=RecentNotificationsResponse)
async def get_recent_notifications(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_app_settings)],
    limit: Optional[int] = Query(None, ge=1, le=100, description="Number of notifications (default from settings)"),
):
    """Newest unread customer replies across all orders."""
    repository = CommunicationRepository(db)
    rows = repository.recent_unread(limit or settings.RECENT_UNREAD_LIMIT)

    notifications = [
        NotificationItem(
            id=communication.id,
            order_id=communication.order_id,
            order_number=order_number,
            subject=communication.subject,
            body=_preview(communication.body),
            sender_email=communication.sender_email,
            created_at=communication.created_at,
        )
        for communication, order_number in rows
    ]

    return RecentNotificationsResponse(
        notifications=notifications,
        total_unread=repository.count_unread(),
    )


@router.post("/notifications/mark-read/{order_id}", response_model=MarkReadResponse)
async def mark_order_read(
    order_id: str,
    db: Annotated[Session, Depends(get_db)],
    admin_id: Optional[str] = Query(None, description="Staff user marking the replies as read"),
):
    """Mark every unread customer reply of an order as read."""
    repository = CommunicationRepository(db)
    if repository.find_order(order_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

    updated = repository.mark_order_read(order_id)
    db.commit()

    if updated:
        record_audit_event(
            db,
            action="communication.marked_read",
            category=CATEGORY_COMMUNICATIONS,
            actor_id=admin_id,
            entity_type="order",
            entity_id=order_id,
            metadata={"updated": updated},
        )

    logger.info(f"Marked {updated} message(s) read", extra={"order_id": order_id})
    return MarkReadResponse(message="Messages marked as read", updated=updated)


@router.get("/reports/communications/overview", response_model=CommunicationsOverviewResponse)
async def communications_overview(
    db: Annotated[Session, Depends(get_db)],
    start_date: Optional[str] = Query(None, description="Range start (ISO format YYYY-MM-DD)"),
    end_date: Optional[str] = Query(None, description="Range end (ISO format YYYY-MM-DD)"),
):
    """Message volume by direction and the ten most active orders.

    Defaults to the last 30 days.
    """
    end = _parse_report_date(end_date, "end_date", end_of_day=True) or datetime.now(timezone.utc)
    start = _parse_report_date(start_date, "start_date") or end - timedelta(days=DEFAULT_REPORT_DAYS)

    if start > end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start_date must not be after end_date"
        )

    overview = CommunicationRepository(db).communications_overview(start, end)
    return CommunicationsOverviewResponse(start_date=start, end_date=end, **overview)


@router.get("/attachments/{filename}")
async def download_attachment(
    filename: str,
    storage: Annotated[AttachmentStoragePort, Depends(get_attachment_storage)],
):
    """Stream a saved email attachment."""
    try:
        content = await storage.retrieve_attachment(filename)
    except (FileNotFoundError, ValueError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attachment not found")

    media_type, _ = mimetypes.guess_type(filename)
    return Response(
        content=content,
        media_type=media_type or "application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
