from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from pymongo.errors import PyMongoError

from brandlink.models.media_models import MediaCategory, MediaUpdate
from brandlink.models.security_models import UserType
from brandlink.services.media_service import (
    MediaService,
    format_file_size,
    media_type_for,
    normalize_tags,
    validate_upload,
    with_derived_fields,
)
from brandlink.utils.errors import MediaError, NotFoundError, ValidationError


@pytest.fixture
def media_collection(collection_factory):
    with patch("brandlink.services.media_service.db_manager") as mock:
        collection = collection_factory()
        mock.get_collection.return_value = collection
        yield collection


@pytest.fixture
def service(tmp_path):
    return MediaService(upload_dir=str(tmp_path))


async def _rows(rows):
    for row in rows:
        yield row


@pytest.mark.parametrize(
    "size,expected",
    [
        (0, "0 Bytes"),
        (-1, "Invalid size"),
        (500, "500 Bytes"),
        (1024, "1 KB"),
        (1536, "1.5 KB"),
        (1048576, "1 MB"),
        (3 * 1024 ** 3, "3 GB"),
    ],
)
def test_format_file_size(size, expected):
    assert format_file_size(size) == expected


def test_media_type_for():
    assert media_type_for("image/png").value == "image"
    assert media_type_for("video/mp4").value == "video"
    assert media_type_for("application/pdf").value == "document"
    assert media_type_for("application/zip").value == "other"


def test_normalize_tags():
    assert normalize_tags([" Summer ", "summer", "", "Sale"]) == ["summer", "sale"]
    with pytest.raises(ValidationError):
        normalize_tags([f"tag{i}" for i in range(21)])


@pytest.mark.parametrize(
    "filename,content_type,size,code",
    [
        ("a.png", "image/png", 0, "empty_file"),
        ("a.png", "image/png", 11, "file_too_large"),
        ("  ", "image/png", 5, "missing_filename"),
        ("../a.png", "image/png", 5, "invalid_filename"),
        ("x" * 252 + ".png", "image/png", 5, "filename_too_long"),
        ("a.gif", "image/gif", 5, "unsupported_type"),
    ],
)
def test_validate_upload_failures(filename, content_type, size, code):
    with pytest.raises(MediaError) as exc_info:
        validate_upload(filename, content_type, size, MediaCategory.PROFILE, max_size=10)
    assert exc_info.value.code == code
    assert exc_info.value.status_code == 400


def test_validate_upload_accepts_category_types():
    validate_upload("doc.pdf", "application/pdf", 5, MediaCategory.CERTIFICATE)
    validate_upload("clip.mp4", "video/mp4", 5, MediaCategory.PRODUCT)


def test_derived_fields_hide_storage_path():
    now = datetime.now(timezone.utc)
    media = with_derived_fields(
        {"_id": "x", "filename": "Logo.PNG", "size": 2048, "storage_path": "/srv/x", "created_at": now - timedelta(days=3)},
        now,
    )
    assert media["size_formatted"] == "2 KB"
    assert media["extension"] == "png"
    assert media["age_in_days"] == 3
    assert "storage_path" not in media


@pytest.mark.asyncio
async def test_upload_writes_file_and_metadata(service, media_collection, tmp_path):
    media = await service.upload(
        owner_id="b1",
        owner_type=UserType.BUSINESS,
        filename="label.png",
        content_type="image/png",
        content=b"\x89PNG fake",
        category=MediaCategory.PRODUCT,
        tags=["Label", "label"],
    )

    stored = list((tmp_path / "b1").iterdir())
    assert len(stored) == 1
    assert stored[0].suffix == ".png"
    assert stored[0].read_bytes() == b"\x89PNG fake"

    assert media["media_id"].startswith("med_")
    assert media["url"] == f"/uploads/b1/{stored[0].name}"
    assert media["media_type"] == "image"
    assert media["owner_type"] == "business"
    assert media["tags"] == ["label"]
    assert "storage_path" not in media


@pytest.mark.asyncio
async def test_upload_removes_file_when_metadata_fails(service, media_collection, tmp_path):
    media_collection.insert_one.side_effect = PyMongoError("down")

    with pytest.raises(PyMongoError):
        await service.upload("b1", UserType.BUSINESS, "label.png", "image/png", b"data", MediaCategory.PRODUCT)
    assert list((tmp_path / "b1").iterdir()) == []


@pytest.mark.asyncio
async def test_get_media_is_owner_scoped(service, media_collection):
    media_collection.find_one.return_value = None

    with pytest.raises(NotFoundError):
        await service.get_media("b1", "med_other")
    assert media_collection.find_one.call_args[0][0] == {"media_id": "med_other", "owner_id": "b1"}


@pytest.mark.asyncio
async def test_download_counts(service, media_collection, tmp_path):
    path = tmp_path / "file.pdf"
    path.write_bytes(b"%PDF")
    media_collection.find_one.return_value = {
        "_id": "oid",
        "media_id": "med_1",
        "filename": "file.pdf",
        "size": 4,
        "storage_path": str(path),
    }

    result = await service.get_download("b1", "med_1")

    assert result["path"] == path
    _, update = media_collection.update_one.call_args[0]
    assert update["$inc"] == {"download_count": 1}


@pytest.mark.asyncio
async def test_update_media_normalizes_tags(service, media_collection):
    media_collection.find_one.return_value = {"_id": "oid", "media_id": "med_1", "filename": "a.png", "size": 1}

    media = await service.update_media("b1", "med_1", MediaUpdate(tags=["New", " new "], is_public=True))

    assert media["tags"] == ["new"]
    assert media["is_public"] is True


@pytest.mark.asyncio
async def test_bulk_delete_reports_missing(service, media_collection, tmp_path):
    path = tmp_path / "a.png"
    path.write_bytes(b"x")
    media_collection.find_one.side_effect = [
        {"_id": "oid", "media_id": "med_1", "storage_path": str(path)},
        None,
    ]

    result = await service.bulk_delete("b1", ["med_1", "med_2"])

    assert result["deleted"] == ["med_1"]
    assert result["deleted_count"] == 1
    assert result["errors"] == [{"media_id": "med_2", "error": "Media not found"}]
    assert not path.exists()


@pytest.mark.asyncio
async def test_storage_stats(service, media_collection):
    media_collection.aggregate = MagicMock(
        side_effect=[
            _rows([{"_id": None, "files": 3, "size": 3072}]),
            _rows([{"_id": "image", "count": 2}, {"_id": "document", "count": 1}]),
            _rows([{"_id": "product", "count": 3}]),
        ]
    )

    stats = await service.get_storage_stats("b1")

    assert stats["total_files"] == 3
    assert stats["total_size_formatted"] == "3 KB"
    assert stats["by_type"] == {"image": 2, "document": 1}
    assert stats["by_category"] == {"product": 3}
