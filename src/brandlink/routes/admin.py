"""
Operator endpoints.

Access requires the `X-Admin-Token` header to match `ADMIN_API_TOKEN`. While no
token is configured every request is refused.
"""

import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from brandlink.config import settings
from brandlink.managers.logging_manager import get_logger
from brandlink.models.notification_models import BulkNotificationRequest
from brandlink.services.certificate_service import CertificateService
from brandlink.services.notification_service import NotificationService
from brandlink.services.security_service import SecurityService

logger = get_logger(prefix="[Admin]")


async def verify_admin_token(x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token")) -> str:
    if settings.ADMIN_API_TOKEN is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin API is disabled")

    if not x_admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing admin token")

    if not secrets.compare_digest(x_admin_token, settings.ADMIN_API_TOKEN.get_secret_value()):
        logger.warning("Rejected admin request with an invalid token")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid admin token")

    return x_admin_token


router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(verify_admin_token)])


async def get_security_service():
    return SecurityService()


async def get_notification_service():
    return NotificationService()


async def get_certificate_service():
    return CertificateService()


@router.get("/security/metrics")
async def security_metrics(
    days: int = Query(7, ge=1, le=90),
    service: SecurityService = Depends(get_security_service),
):
    """System-wide security event totals for the last `days` days."""
    return await service.get_system_security_metrics(days=days)


@router.post("/maintenance/cleanup")
async def cleanup_expired_records(
    security: SecurityService = Depends(get_security_service),
    notifications: NotificationService = Depends(get_notification_service),
):
    counts = await security.cleanup_expired_data()
    counts["expired_notifications"] = await notifications.cleanup_expired()
    logger.info("Manual cleanup finished: %s", counts)
    return counts


@router.post("/notifications/broadcast", status_code=201)
async def broadcast_notification(
    request: BulkNotificationRequest,
    service: NotificationService = Depends(get_notification_service),
):
    created = await service.bulk_create(
        [{"id": r.id, "type": r.type.value} for r in request.recipients],
        request.type,
        request.title,
        request.message,
        data=request.data,
        priority=request.priority,
    )
    return {"created": created}


@router.post("/certificates/process-transfers")
async def process_transfers(service: CertificateService = Depends(get_certificate_service)):
    """Run the pending-transfer and retry passes now instead of waiting for the schedule."""
    return {
        "pending": await service.process_pending_transfers(),
        "retried": await service.retry_failed_transfers(),
    }
