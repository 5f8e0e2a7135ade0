"""
Media upload models and per-category file rules.
"""

from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field

IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp", "image/svg+xml"})
VIDEO_TYPES = frozenset({"video/mp4", "video/quicktime", "video/webm"})
DOCUMENT_TYPES = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "text/plain",
        "application/rtf",
    }
)

MAX_FILENAME_LENGTH = 255
MAX_TAGS = 20


class MediaCategory(str, Enum):
    PROFILE = "profile"
    PRODUCT = "product"
    BANNER = "banner"
    CERTIFICATE = "certificate"
    DOCUMENT = "document"


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"
    OTHER = "other"


ALLOWED_MIME_TYPES: Dict[MediaCategory, FrozenSet[str]] = {
    MediaCategory.PROFILE: frozenset({"image/jpeg", "image/png", "image/webp"}),
    MediaCategory.PRODUCT: IMAGE_TYPES | VIDEO_TYPES,
    MediaCategory.BANNER: frozenset({"image/jpeg", "image/png", "image/webp", "image/gif"}),
    MediaCategory.CERTIFICATE: frozenset({"application/pdf", "image/jpeg", "image/png"}),
    MediaCategory.DOCUMENT: DOCUMENT_TYPES,
}


class MediaUpdate(BaseModel):
    description: Optional[str] = Field(None, max_length=1000)
    tags: Optional[List[str]] = None
    is_public: Optional[bool] = None


class BulkDeleteRequest(BaseModel):
    media_ids: List[str] = Field(..., min_length=1, max_length=100)
