"""
Notification data models.

Notifications are addressed to one principal (`recipient_id` + `recipient_type`),
carry a category and priority, and are soft-deleted via `deleted_at`.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from brandlink.models.security_models import UserType


class NotificationCategory(str, Enum):
    SYSTEM = "system"
    BILLING = "billing"
    CERTIFICATE = "certificate"
    VOTE = "vote"
    INVITE = "invite"
    ORDER = "order"
    SECURITY = "security"
    AUTH = "auth"
    WALLET = "wallet"
    MESSAGING = "messaging"
    USAGE = "usage"
    SETTINGS = "settings"
    BULK = "bulk"
    CONNECTION = "connection"
    ACCOUNT = "account"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"


class CreateNotificationRequest(BaseModel):
    """
    Attributes:
        recipient_id: Account the notification is addressed to.
        recipient_type: Principal kind of the recipient.
        type: Fine-grained type, e.g. `certificate_transfer_failed`.
        title / message: Display text.
        data: Structured payload for the client.
        action_url: Deep link for the notification.
        expires_at: Hidden from listings after this moment.
    """

    recipient_id: str = Field(..., description="Recipient account ID")
    recipient_type: UserType = Field(..., description="Recipient principal kind")
    type: str = Field(..., min_length=1, max_length=100, description="Notification type")
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=2000)
    category: NotificationCategory = Field(NotificationCategory.SYSTEM)
    priority: NotificationPriority = Field(NotificationPriority.MEDIUM)
    data: Dict[str, Any] = Field(default_factory=dict)
    action_url: Optional[str] = Field(None, max_length=500)
    expires_at: Optional[datetime] = None
    delivery_channels: List[str] = Field(default_factory=lambda: ["in_app"])


class NotificationRecipient(BaseModel):
    id: str
    type: UserType


class BulkNotificationRequest(BaseModel):
    recipients: List[NotificationRecipient] = Field(..., min_length=1, max_length=1000)
    type: str = Field(..., min_length=1, max_length=100)
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=2000)
    data: Dict[str, Any] = Field(default_factory=dict)
    priority: NotificationPriority = Field(NotificationPriority.MEDIUM)


class NotificationListResponse(BaseModel):
    notifications: List[Dict[str, Any]]
    total: int
    unread: int
    page: int
    limit: int
