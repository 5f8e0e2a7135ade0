"""Helpers for turning MongoDB documents into API payloads."""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from bson import ObjectId

from brandlink.utils.errors import NotFoundError

PRIVATE_FIELDS = ("password", "login_attempts", "lock_until")


def to_object_id(value: str, entity: str = "Resource") -> ObjectId:
    """Parse an ID path parameter, treating malformed IDs as not found."""
    if isinstance(value, ObjectId):
        return value
    if not ObjectId.is_valid(value):
        raise NotFoundError(f"{entity} not found", details={"id": value})
    return ObjectId(value)


def to_public(document: Optional[Dict[str, Any]], exclude: Iterable[str] = PRIVATE_FIELDS) -> Optional[Dict[str, Any]]:
    """Copy of `document` with `_id` exposed as a string `id` and private fields dropped."""
    if document is None:
        return None
    public = {k: v for k, v in document.items() if k not in exclude and k != "_id"}
    if "_id" in document:
        public["id"] = str(document["_id"])
    for key, value in public.items():
        if isinstance(value, ObjectId):
            public[key] = str(value)
    return public


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes read back from MongoDB as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def get_path(document: Dict[str, Any], path: str) -> Any:
    """Resolve a dot-separated path, returning `None` on any missing segment."""
    value: Any = document
    for key in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(key)
        if value is None:
            return None
    return value
