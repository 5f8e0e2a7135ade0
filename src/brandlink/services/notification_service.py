"""
In-app notification service.

CRUD over the `notifications` collection plus typed helpers used by other services
(certificate transfers, security alerts, connection requests, welcome messages).
The helpers are best effort: a failure is logged and never propagates to the
operation that triggered the notification.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from brandlink.database import db_manager
from brandlink.managers.logging_manager import get_logger
from brandlink.models.notification_models import (
    CreateNotificationRequest,
    DeliveryStatus,
    NotificationCategory,
    NotificationPriority,
)
from brandlink.models.security_models import SecuritySeverity, UserType
from brandlink.utils.errors import NotFoundError

logger = get_logger(prefix="[NotificationService]")


class NotificationService:
    def __init__(self):
        self.notifications_collection = "notifications"

    def _visible_query(self, recipient_id: str) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        return {
            "recipient_id": recipient_id,
            "deleted_at": None,
            "$or": [{"expires_at": None}, {"expires_at": {"$gt": now}}],
        }

    async def create_notification(self, request: CreateNotificationRequest) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        document = request.model_dump()
        document.update(
            notification_id=f"ntf_{uuid.uuid4().hex[:16]}",
            recipient_type=request.recipient_type.value,
            category=request.category.value,
            priority=request.priority.value,
            read=False,
            read_at=None,
            archived=False,
            delivery_status=DeliveryStatus.DELIVERED.value,
            delivery_attempts=1,
            deleted_at=None,
            created_at=now,
            updated_at=now,
        )

        collection = db_manager.get_collection(self.notifications_collection)
        await collection.insert_one(document)
        document.pop("_id", None)
        logger.debug("Created %s notification %s for %s", document["type"], document["notification_id"], request.recipient_id)
        return document

    async def bulk_create(
        self,
        recipients: List[Dict[str, str]],
        type: str,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
    ) -> int:
        """Send the same notification to many recipients (`{"id", "type"}` dicts)."""
        if not recipients:
            return 0
        now = datetime.now(timezone.utc)
        documents = [
            {
                "notification_id": f"ntf_{uuid.uuid4().hex[:16]}",
                "recipient_id": r["id"],
                "recipient_type": UserType(r["type"]).value,
                "type": type,
                "title": title,
                "message": message,
                "category": NotificationCategory.BULK.value,
                "priority": NotificationPriority(priority).value,
                "data": data or {},
                "action_url": None,
                "expires_at": None,
                "read": False,
                "read_at": None,
                "archived": False,
                "delivery_status": DeliveryStatus.DELIVERED.value,
                "delivery_channels": ["in_app"],
                "delivery_attempts": 1,
                "deleted_at": None,
                "created_at": now,
                "updated_at": now,
            }
            for r in recipients
        ]
        collection = db_manager.get_collection(self.notifications_collection)
        result = await collection.insert_many(documents)
        logger.info("Bulk created %d notifications of type %s", len(result.inserted_ids), type)
        return len(result.inserted_ids)

    async def list_notifications(
        self,
        recipient_id: str,
        unread_only: bool = False,
        category: Optional[NotificationCategory] = None,
        include_archived: bool = False,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        query = self._visible_query(recipient_id)
        if unread_only:
            query["read"] = False
        if category:
            query["category"] = NotificationCategory(category).value
        if not include_archived:
            query["archived"] = {"$ne": True}

        collection = db_manager.get_collection(self.notifications_collection)
        skip = (page - 1) * limit
        cursor = collection.find(query, {"_id": 0}).sort("created_at", DESCENDING).skip(skip).limit(limit)
        notifications = await cursor.to_list(length=limit)
        total = await collection.count_documents(query)
        unread = await self.get_unread_count(recipient_id)
        return {"notifications": notifications, "total": total, "unread": unread, "page": page, "limit": limit}

    async def get_unread_count(self, recipient_id: str) -> int:
        query = self._visible_query(recipient_id)
        query["read"] = False
        query["archived"] = {"$ne": True}
        collection = db_manager.get_collection(self.notifications_collection)
        return await collection.count_documents(query)

    async def _update_owned(self, recipient_id: str, notification_id: str, fields: Dict[str, Any]) -> None:
        collection = db_manager.get_collection(self.notifications_collection)
        fields["updated_at"] = datetime.now(timezone.utc)
        result = await collection.update_one(
            {"notification_id": notification_id, "recipient_id": recipient_id, "deleted_at": None},
            {"$set": fields},
        )
        if result.matched_count == 0:
            raise NotFoundError("Notification not found", details={"notification_id": notification_id})

    async def mark_as_read(self, recipient_id: str, notification_id: str) -> None:
        await self._update_owned(recipient_id, notification_id, {"read": True, "read_at": datetime.now(timezone.utc)})

    async def mark_all_as_read(self, recipient_id: str) -> int:
        now = datetime.now(timezone.utc)
        collection = db_manager.get_collection(self.notifications_collection)
        result = await collection.update_many(
            {"recipient_id": recipient_id, "read": False, "deleted_at": None},
            {"$set": {"read": True, "read_at": now, "updated_at": now}},
        )
        return result.modified_count

    async def archive(self, recipient_id: str, notification_id: str) -> None:
        await self._update_owned(recipient_id, notification_id, {"archived": True})

    async def delete(self, recipient_id: str, notification_id: str) -> None:
        """Soft delete."""
        await self._update_owned(recipient_id, notification_id, {"deleted_at": datetime.now(timezone.utc)})

    async def cleanup_expired(self) -> int:
        now = datetime.now(timezone.utc)
        collection = db_manager.get_collection(self.notifications_collection)
        result = await collection.update_many(
            {"expires_at": {"$lt": now}, "deleted_at": None}, {"$set": {"deleted_at": now}}
        )
        logger.info("Soft-deleted %d expired notifications", result.modified_count)
        return result.modified_count

    # ------------------------------------------------------------------
    # Best-effort helpers
    # ------------------------------------------------------------------

    async def _safe_create(self, request: CreateNotificationRequest) -> Optional[Dict[str, Any]]:
        try:
            return await self.create_notification(request)
        except (PyMongoError, ConnectionError) as e:
            logger.warning("Failed to send %s notification to %s: %s", request.type, request.recipient_id, e)
            return None

    async def notify_welcome(self, recipient_id: str, recipient_type: UserType):
        return await self._safe_create(
            CreateNotificationRequest(
                recipient_id=recipient_id,
                recipient_type=recipient_type,
                type="welcome",
                title="Welcome to BrandLink",
                message="Your account is ready. Complete your profile to get the most out of the platform.",
                category=NotificationCategory.ACCOUNT,
                priority=NotificationPriority.LOW,
            )
        )

    async def notify_certificate_transferred(self, business_id: str, certificate: Dict[str, Any]):
        return await self._safe_create(
            CreateNotificationRequest(
                recipient_id=business_id,
                recipient_type=UserType.BUSINESS,
                type="certificate_transferred",
                title="Certificate transferred",
                message=f"Certificate #{certificate.get('token_id')} was transferred to your wallet.",
                category=NotificationCategory.CERTIFICATE,
                priority=NotificationPriority.MEDIUM,
                data={
                    "certificate_id": certificate.get("certificate_id"),
                    "token_id": certificate.get("token_id"),
                    "transaction_hash": certificate.get("transfer_tx_hash"),
                },
            )
        )

    async def notify_certificate_transfer_failed(self, business_id: str, certificate: Dict[str, Any], error: str):
        will_retry = certificate.get("next_transfer_attempt") is not None
        return await self._safe_create(
            CreateNotificationRequest(
                recipient_id=business_id,
                recipient_type=UserType.BUSINESS,
                type="certificate_transfer_retry" if will_retry else "certificate_transfer_failed",
                title="Certificate transfer failed",
                message=(
                    f"Transfer of certificate #{certificate.get('token_id')} failed"
                    + (" and will be retried automatically." if will_retry else ". Retry limit reached.")
                ),
                category=NotificationCategory.CERTIFICATE,
                priority=NotificationPriority.MEDIUM if will_retry else NotificationPriority.HIGH,
                data={
                    "certificate_id": certificate.get("certificate_id"),
                    "error": error,
                    "transfer_attempts": certificate.get("transfer_attempts"),
                    "next_transfer_attempt": certificate.get("next_transfer_attempt"),
                },
            )
        )

    async def notify_security_alert(
        self,
        recipient_id: str,
        recipient_type: UserType,
        alert_type: str,
        message: str,
        severity: SecuritySeverity = SecuritySeverity.HIGH,
        data: Optional[Dict[str, Any]] = None,
    ):
        priority = NotificationPriority.URGENT if severity == SecuritySeverity.CRITICAL else NotificationPriority.HIGH
        return await self._safe_create(
            CreateNotificationRequest(
                recipient_id=recipient_id,
                recipient_type=recipient_type,
                type=f"security_{alert_type}",
                title="Security alert",
                message=message,
                category=NotificationCategory.SECURITY,
                priority=priority,
                data={"severity": SecuritySeverity(severity).value, **(data or {})},
            )
        )

    async def notify_connection_request(
        self, recipient_id: str, recipient_type: UserType, requester_name: str, connection_id: str
    ):
        return await self._safe_create(
            CreateNotificationRequest(
                recipient_id=recipient_id,
                recipient_type=recipient_type,
                type="connection_request",
                title="New connection request",
                message=f"{requester_name} wants to connect with you.",
                category=NotificationCategory.CONNECTION,
                priority=NotificationPriority.MEDIUM,
                data={"connection_id": connection_id},
            )
        )

    async def notify_connection_accepted(
        self, recipient_id: str, recipient_type: UserType, partner_name: str, connection_id: str
    ):
        return await self._safe_create(
            CreateNotificationRequest(
                recipient_id=recipient_id,
                recipient_type=recipient_type,
                type="connection_accepted",
                title="Connection accepted",
                message=f"{partner_name} accepted your connection request.",
                category=NotificationCategory.CONNECTION,
                priority=NotificationPriority.MEDIUM,
                data={"connection_id": connection_id},
            )
        )


notification_service = NotificationService()
