"""Pydantic schemas for order communications

Defines the attachment descriptor stored with each message and the
request/response models of the admin communications API.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ConfigDict


class AttachmentDescriptor(BaseModel):
    """A saved attachment as recorded on a communication row"""

    filename: str = Field(..., description="Original filename from the email")
    storage_path: str = Field(..., description="Path or key the file is stored under")
    mime_type: str = Field("application/octet-stream", description="MIME type")
    size_bytes: int = Field(..., ge=0, description="File size in bytes")


class CommunicationResponse(BaseModel):
    """One message of an order thread"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    order_id: str
    direction: str = Field(..., description="inbound or outbound")
    admin_id: Optional[str] = None
    sender_email: Optional[str] = None
    recipient_email: Optional[str] = None
    subject: Optional[str] = None
    body: str
    reply_to_token: Optional[str] = None
    attachments: Optional[List[AttachmentDescriptor]] = None
    message_id: Optional[str] = None
    read_by_admin: bool
    created_at: datetime


class CommunicationListResponse(BaseModel):
    communications: List[CommunicationResponse]


class OutboundMessageRequest(BaseModel):
    """Staff message to record against an order"""

    subject: str = Field(..., min_length=1, max_length=500)
    body: str = Field(..., min_length=1)
    recipient_email: Optional[str] = Field(
        None, description="Defaults to the order's contact email"
    )
    admin_id: Optional[str] = None
    message_id: Optional[str] = Field(
        None, description="Message-ID assigned by the mail provider, if already sent"
    )
    attachments: Optional[List[AttachmentDescriptor]] = None


class OutboundDraftResponse(BaseModel):
    """Headers and body to hand to the mail provider"""

    reply_to: str
    subject: str
    text: str
    headers: Dict[str, str] = Field(default_factory=dict)


class OutboundMessageResponse(BaseModel):
    message: str
    communication: CommunicationResponse
    draft: OutboundDraftResponse


class UnreadCount(BaseModel):
    messages: int


class UnreadCountsResponse(BaseModel):
    counts: Dict[str, UnreadCount]


class NotificationItem(BaseModel):
    id: str
    type: str = "message"
    order_id: str
    order_number: Optional[str] = None
    subject: Optional[str] = None
    body: str = Field(..., description="First 100 characters of the reply")
    sender_email: Optional[str] = None
    created_at: datetime


class RecentNotificationsResponse(BaseModel):
    notifications: List[NotificationItem]
    total_unread: int


class MarkReadResponse(BaseModel):
    message: str
    updated: int


class DirectionCount(BaseModel):
    direction: str
    count: int


class ActiveOrder(BaseModel):
    order_id: str
    order_number: str
    message_count: int


class CommunicationsOverviewResponse(BaseModel):
    start_date: datetime
    end_date: datetime
    message_counts: List[DirectionCount]
    most_active_orders: List[ActiveOrder]
