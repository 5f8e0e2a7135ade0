"""
Media library endpoints.

Every principal kind owns its own library. Files are validated against the
rules of their category before anything is written to disk.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import FileResponse

from brandlink.managers.logging_manager import get_logger
from brandlink.models.media_models import BulkDeleteRequest, MediaCategory, MediaType, MediaUpdate
from brandlink.models.security_models import UserType
from brandlink.routes.auth import get_current_principal
from brandlink.services.media_service import MediaService
from brandlink.utils.rate_limit import api_rate_limit

logger = get_logger(prefix="[MediaRoutes]")

router = APIRouter(prefix="/media", tags=["Media"], dependencies=[Depends(api_rate_limit)])


async def get_media_service():
    return MediaService()


@router.post("/upload", status_code=201)
async def upload_media(
    file: UploadFile = File(...),
    category: MediaCategory = Form(...),
    description: Optional[str] = Form(None, max_length=1000),
    tags: Optional[str] = Form(None, description="Comma separated tags"),
    is_public: bool = Form(False),
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: MediaService = Depends(get_media_service),
):
    content = await file.read()
    tag_list = [t for t in (tags or "").split(",") if t.strip()]
    return await service.upload(
        owner_id=principal["id"],
        owner_type=UserType(principal["principal_type"]),
        filename=file.filename or "",
        content_type=file.content_type or "application/octet-stream",
        content=content,
        category=category,
        description=description,
        tags=tag_list,
        is_public=is_public,
    )


@router.get("")
async def list_media(
    category: Optional[MediaCategory] = None,
    media_type: Optional[MediaType] = None,
    tags: Optional[List[str]] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: MediaService = Depends(get_media_service),
):
    return await service.list_media(
        principal["id"], category=category, media_type=media_type, tags=tags, search=search, page=page, limit=limit
    )


@router.get("/search")
async def search_media(
    q: str = Query(..., min_length=1, max_length=100),
    limit: int = Query(20, ge=1, le=100),
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: MediaService = Depends(get_media_service),
):
    results = await service.search(principal["id"], q, limit=limit)
    return {"media": results, "count": len(results)}


@router.get("/recent")
async def recent_media(
    limit: int = Query(10, ge=1, le=50),
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: MediaService = Depends(get_media_service),
):
    return {"media": await service.get_recent(principal["id"], limit=limit)}


@router.get("/stats")
async def storage_stats(
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: MediaService = Depends(get_media_service),
):
    return await service.get_storage_stats(principal["id"])


@router.post("/bulk-delete")
async def bulk_delete(
    request: BulkDeleteRequest,
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: MediaService = Depends(get_media_service),
):
    return await service.bulk_delete(principal["id"], request.media_ids)


@router.get("/{media_id}")
async def get_media(
    media_id: str,
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: MediaService = Depends(get_media_service),
):
    return await service.get_media(principal["id"], media_id)


@router.get("/{media_id}/download")
async def download_media(
    media_id: str,
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: MediaService = Depends(get_media_service),
):
    download = await service.get_download(principal["id"], media_id)
    media = download["media"]
    logger.info("Serving media %s to %s", media_id, principal["id"])
    return FileResponse(path=str(download["path"]), filename=media["filename"], media_type=media["mime_type"])


@router.put("/{media_id}")
async def update_media(
    media_id: str,
    update: MediaUpdate,
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: MediaService = Depends(get_media_service),
):
    return await service.update_media(principal["id"], media_id, update)


@router.delete("/{media_id}")
async def delete_media(
    media_id: str,
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: MediaService = Depends(get_media_service),
):
    await service.delete_media(principal["id"], media_id)
    return {"success": True, "media_id": media_id}
