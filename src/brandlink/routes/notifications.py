from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from brandlink.models.notification_models import NotificationCategory, NotificationListResponse
from brandlink.routes.auth import get_current_principal
from brandlink.services.notification_service import NotificationService
from brandlink.utils.rate_limit import api_rate_limit

router = APIRouter(prefix="/notifications", tags=["Notifications"], dependencies=[Depends(api_rate_limit)])


async def get_notification_service():
    return NotificationService()


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = False,
    category: Optional[NotificationCategory] = None,
    include_archived: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: NotificationService = Depends(get_notification_service),
):
    return await service.list_notifications(
        principal["id"],
        unread_only=unread_only,
        category=category,
        include_archived=include_archived,
        page=page,
        limit=limit,
    )


@router.get("/unread-count")
async def unread_count(
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: NotificationService = Depends(get_notification_service),
):
    return {"unread": await service.get_unread_count(principal["id"])}


@router.post("/read-all")
async def mark_all_read(
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: NotificationService = Depends(get_notification_service),
):
    return {"success": True, "updated": await service.mark_all_as_read(principal["id"])}


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: NotificationService = Depends(get_notification_service),
):
    await service.mark_as_read(principal["id"], notification_id)
    return {"success": True}


@router.post("/{notification_id}/archive")
async def archive(
    notification_id: str,
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: NotificationService = Depends(get_notification_service),
):
    await service.archive(principal["id"], notification_id)
    return {"success": True}


@router.delete("/{notification_id}")
async def delete(
    notification_id: str,
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: NotificationService = Depends(get_notification_service),
):
    await service.delete(principal["id"], notification_id)
    return {"success": True}
