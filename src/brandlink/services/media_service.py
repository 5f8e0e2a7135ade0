"""
# Media Service

Upload validation, local file storage and media metadata.

Files are stored under `UPLOAD_DIR/{owner_id}/` with a random name that keeps the
original extension, and served from `UPLOAD_URL_PREFIX`. Metadata lives in the
`media` collection and is always scoped to its owner.

Validation failures raise `MediaError` with one of these codes:

| Code | Cause |
|------|-------|
| `empty_file` | Zero-byte upload |
| `file_too_large` | Larger than `MEDIA_MAX_FILE_SIZE` |
| `missing_filename` | No filename supplied |
| `invalid_filename` | Path separators or traversal in the filename |
| `filename_too_long` | More than 255 characters |
| `unsupported_type` | MIME type not allowed for the category |
"""

import asyncio
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from brandlink.config import settings
from brandlink.database import db_manager
from brandlink.managers.logging_manager import get_logger
from brandlink.models.media_models import (
    ALLOWED_MIME_TYPES,
    DOCUMENT_TYPES,
    MAX_FILENAME_LENGTH,
    MAX_TAGS,
    MediaCategory,
    MediaType,
    MediaUpdate,
)
from brandlink.models.security_models import UserType
from brandlink.utils.documents import ensure_aware, to_public
from brandlink.utils.errors import MediaError, NotFoundError, ValidationError

logger = get_logger(prefix="[MediaService]")

SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


def format_file_size(size: int) -> str:
    if size is None or size < 0:
        return "Invalid size"
    if size == 0:
        return "0 Bytes"
    index = 0
    value = float(size)
    while value >= 1024 and index < len(SIZE_UNITS) - 1:
        value /= 1024
        index += 1
    formatted = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{formatted} {SIZE_UNITS[index]}"


def media_type_for(mime_type: str) -> MediaType:
    if mime_type.startswith("image/"):
        return MediaType.IMAGE
    if mime_type.startswith("video/"):
        return MediaType.VIDEO
    if mime_type in DOCUMENT_TYPES:
        return MediaType.DOCUMENT
    return MediaType.OTHER


def file_extension(filename: str) -> str:
    return Path(filename).suffix.lower().lstrip(".")


def normalize_tags(tags: List[str]) -> List[str]:
    normalized = []
    for tag in tags:
        tag = tag.strip().lower()
        if tag and tag not in normalized:
            normalized.append(tag)
    if len(normalized) > MAX_TAGS:
        raise ValidationError(f"At most {MAX_TAGS} tags are allowed", details={"count": len(normalized)})
    return normalized


def validate_upload(
    filename: Optional[str],
    content_type: Optional[str],
    size: int,
    category: MediaCategory,
    max_size: Optional[int] = None,
) -> None:
    max_size = max_size or settings.MEDIA_MAX_FILE_SIZE
    if size <= 0:
        raise MediaError("File is empty", code="empty_file")
    if size > max_size:
        raise MediaError(
            f"File exceeds the maximum size of {format_file_size(max_size)}",
            code="file_too_large",
            details={"size": size, "max_size": max_size},
        )
    if not filename or not filename.strip():
        raise MediaError("Filename is required", code="missing_filename")
    if "/" in filename or "\\" in filename or filename in (".", ".."):
        raise MediaError("Filename must not contain path separators", code="invalid_filename")
    if len(filename) > MAX_FILENAME_LENGTH:
        raise MediaError(
            f"Filename must be at most {MAX_FILENAME_LENGTH} characters", code="filename_too_long"
        )
    allowed = ALLOWED_MIME_TYPES[MediaCategory(category)]
    if content_type not in allowed:
        raise MediaError(
            f"File type {content_type} is not allowed for {MediaCategory(category).value} uploads",
            code="unsupported_type",
            details={"allowed": sorted(allowed)},
        )


def with_derived_fields(media: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    public = to_public(media)
    public["size_formatted"] = format_file_size(media.get("size", 0))
    public["extension"] = file_extension(media.get("filename", ""))
    created_at = ensure_aware(media.get("created_at"))
    public["age_in_days"] = max((now - created_at).days, 0) if created_at else 0
    public.pop("storage_path", None)
    return public


class MediaService:
    def __init__(self, upload_dir: Optional[str] = None):
        self.upload_dir = Path(upload_dir or settings.UPLOAD_DIR)
        self.media_collection = "media"

    def _owner_query(self, owner_id: str) -> Dict[str, Any]:
        return {"owner_id": owner_id}

    async def upload(
        self,
        owner_id: str,
        owner_type: UserType,
        filename: str,
        content_type: str,
        content: bytes,
        category: MediaCategory,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
        is_public: bool = False,
    ) -> Dict[str, Any]:
        validate_upload(filename, content_type, len(content), category)
        tags = normalize_tags(tags or [])

        media_id = f"med_{uuid.uuid4().hex}"
        extension = file_extension(filename)
        stored_name = f"{uuid.uuid4().hex}.{extension}" if extension else uuid.uuid4().hex
        owner_dir = self.upload_dir / owner_id
        path = owner_dir / stored_name

        await asyncio.to_thread(owner_dir.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_bytes, content)

        now = datetime.now(timezone.utc)
        document = {
            "media_id": media_id,
            "owner_id": owner_id,
            "owner_type": UserType(owner_type).value,
            "filename": filename,
            "stored_name": stored_name,
            "storage_path": str(path),
            "url": f"{settings.UPLOAD_URL_PREFIX.rstrip('/')}/{owner_id}/{stored_name}",
            "mime_type": content_type,
            "media_type": media_type_for(content_type).value,
            "category": MediaCategory(category).value,
            "size": len(content),
            "description": description,
            "tags": tags,
            "is_public": is_public,
            "download_count": 0,
            "created_at": now,
            "updated_at": now,
        }
        collection = db_manager.get_collection(self.media_collection)
        try:
            result = await collection.insert_one(document)
        except PyMongoError:
            await asyncio.to_thread(path.unlink, missing_ok=True)
            raise
        document["_id"] = result.inserted_id
        logger.info("Stored %s (%s) for %s as %s", filename, format_file_size(len(content)), owner_id, media_id)
        return with_derived_fields(document)

    async def _get_document(self, owner_id: str, media_id: str) -> Dict[str, Any]:
        collection = db_manager.get_collection(self.media_collection)
        media = await collection.find_one({"media_id": media_id, **self._owner_query(owner_id)})
        if not media:
            raise NotFoundError("Media not found", details={"media_id": media_id})
        return media

    async def get_media(self, owner_id: str, media_id: str) -> Dict[str, Any]:
        return with_derived_fields(await self._get_document(owner_id, media_id))

    async def get_download(self, owner_id: str, media_id: str) -> Dict[str, Any]:
        """Media record plus `path` of the stored file; counts the download."""
        media = await self._get_document(owner_id, media_id)
        path = Path(media["storage_path"])
        if not path.exists():
            logger.error("Stored file missing for media %s at %s", media_id, path)
            raise NotFoundError("Media file not found", details={"media_id": media_id})

        collection = db_manager.get_collection(self.media_collection)
        await collection.update_one(
            {"_id": media["_id"]},
            {"$inc": {"download_count": 1}, "$set": {"last_downloaded_at": datetime.now(timezone.utc)}},
        )
        return {"media": with_derived_fields(media), "path": path}

    async def list_media(
        self,
        owner_id: str,
        category: Optional[MediaCategory] = None,
        media_type: Optional[MediaType] = None,
        tags: Optional[List[str]] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        query = self._owner_query(owner_id)
        if category:
            query["category"] = MediaCategory(category).value
        if media_type:
            query["media_type"] = MediaType(media_type).value
        if tags:
            query["tags"] = {"$all": [t.strip().lower() for t in tags]}
        if search:
            query.update(self._search_clause(search))

        collection = db_manager.get_collection(self.media_collection)
        cursor = collection.find(query).sort("created_at", DESCENDING).skip((page - 1) * limit).limit(limit)
        items = [with_derived_fields(m) for m in await cursor.to_list(length=limit)]
        total = await collection.count_documents(query)
        return {"media": items, "total": total, "page": page, "limit": limit}

    @staticmethod
    def _search_clause(search: str) -> Dict[str, Any]:
        pattern = re.escape(search.strip())
        return {
            "$or": [
                {"filename": {"$regex": pattern, "$options": "i"}},
                {"description": {"$regex": pattern, "$options": "i"}},
                {"tags": {"$regex": pattern, "$options": "i"}},
            ]
        }

    async def search(self, owner_id: str, search: str, limit: int = 20) -> List[Dict[str, Any]]:
        query = {**self._owner_query(owner_id), **self._search_clause(search)}
        collection = db_manager.get_collection(self.media_collection)
        cursor = collection.find(query).sort("created_at", DESCENDING).limit(limit)
        return [with_derived_fields(m) for m in await cursor.to_list(length=limit)]

    async def get_recent(self, owner_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        collection = db_manager.get_collection(self.media_collection)
        cursor = collection.find(self._owner_query(owner_id)).sort("created_at", DESCENDING).limit(limit)
        return [with_derived_fields(m) for m in await cursor.to_list(length=limit)]

    async def update_media(self, owner_id: str, media_id: str, update: MediaUpdate) -> Dict[str, Any]:
        media = await self._get_document(owner_id, media_id)
        changes = update.model_dump(exclude_unset=True)
        if "tags" in changes:
            changes["tags"] = normalize_tags(changes["tags"] or [])
        if not changes:
            return with_derived_fields(media)
        changes["updated_at"] = datetime.now(timezone.utc)

        collection = db_manager.get_collection(self.media_collection)
        await collection.update_one({"_id": media["_id"]}, {"$set": changes})
        return with_derived_fields({**media, **changes})

    async def delete_media(self, owner_id: str, media_id: str) -> None:
        media = await self._get_document(owner_id, media_id)
        await asyncio.to_thread(Path(media["storage_path"]).unlink, missing_ok=True)
        collection = db_manager.get_collection(self.media_collection)
        await collection.delete_one({"_id": media["_id"]})
        logger.info("Deleted media %s for %s", media_id, owner_id)

    async def bulk_delete(self, owner_id: str, media_ids: List[str]) -> Dict[str, Any]:
        deleted = []
        errors = []
        for media_id in media_ids:
            try:
                await self.delete_media(owner_id, media_id)
                deleted.append(media_id)
            except NotFoundError as e:
                errors.append({"media_id": media_id, "error": e.message})
            except OSError as e:
                logger.error("Failed to delete media file %s: %s", media_id, e)
                errors.append({"media_id": media_id, "error": "Could not delete stored file"})
        return {"deleted": deleted, "deleted_count": len(deleted), "errors": errors}

    async def get_storage_stats(self, owner_id: str) -> Dict[str, Any]:
        collection = db_manager.get_collection(self.media_collection)
        match = {"$match": self._owner_query(owner_id)}
        totals = [
            row
            async for row in collection.aggregate(
                [match, {"$group": {"_id": None, "files": {"$sum": 1}, "size": {"$sum": "$size"}}}]
            )
        ]
        by_type = {
            row["_id"]: row["count"]
            async for row in collection.aggregate([match, {"$group": {"_id": "$media_type", "count": {"$sum": 1}}}])
        }
        by_category = {
            row["_id"]: row["count"]
            async for row in collection.aggregate([match, {"$group": {"_id": "$category", "count": {"$sum": 1}}}])
        }
        total_files = totals[0]["files"] if totals else 0
        total_size = totals[0]["size"] if totals else 0
        return {
            "total_files": total_files,
            "total_size": total_size,
            "total_size_formatted": format_file_size(total_size),
            "by_type": by_type,
            "by_category": by_category,
        }


media_service = MediaService()
