from unittest.mock import AsyncMock, MagicMock, patch

from bson import ObjectId
import pytest

from brandlink.models.brand_models import BrandSettingsUpdate
from brandlink.services.brand_service import BrandService
from brandlink.utils.errors import ConflictError, NotFoundError

BUSINESS_ID = str(ObjectId())


@pytest.fixture
def mock_db_manager(collection_factory):
    with patch("brandlink.services.brand_service.db_manager") as mock:
        mock.get_collection.return_value = collection_factory()
        yield mock


@pytest.fixture
def mock_redis():
    with patch("brandlink.services.brand_service.redis_manager") as mock:
        mock.get_json = AsyncMock(return_value=None)
        mock.set_json = AsyncMock(return_value=True)
        mock.delete = AsyncMock(return_value=1)
        mock.delete_pattern = AsyncMock(return_value=0)
        yield mock


@pytest.fixture
def mock_security_service():
    with patch("brandlink.services.brand_service.security_service") as mock:
        mock.log_security_settings_change = AsyncMock()
        mock.revoke_all_user_sessions = AsyncMock(return_value=0)
        yield mock


@pytest.mark.asyncio
async def test_public_profile_is_cached(mock_db_manager, mock_redis):
    mock_redis.get_json.return_value = {"id": BUSINESS_ID, "business_name": "Acme"}

    profile = await BrandService().get_public_profile(BUSINESS_ID)

    assert profile["business_name"] == "Acme"
    mock_db_manager.get_collection.return_value.find_one.assert_not_called()


@pytest.mark.asyncio
async def test_public_profile_hides_private_fields(mock_db_manager, mock_redis):
    mock_db_manager.get_collection.return_value.find_one.return_value = {
        "_id": ObjectId(BUSINESS_ID),
        "business_name": "Acme",
        "password": "hash",
        "plan": "premium",
    }

    profile = await BrandService().get_public_profile(BUSINESS_ID)

    assert profile["id"] == BUSINESS_ID
    assert "password" not in profile
    assert "plan" not in profile
    mock_redis.set_json.assert_awaited_once()


@pytest.mark.asyncio
async def test_inactive_brand_is_not_public(mock_db_manager, mock_redis):
    mock_db_manager.get_collection.return_value.find_one.return_value = {
        "_id": ObjectId(BUSINESS_ID),
        "is_active": False,
    }

    with pytest.raises(NotFoundError):
        await BrandService().get_public_profile(BUSINESS_ID)


@pytest.mark.asyncio
async def test_settings_created_with_defaults(mock_db_manager):
    collection = mock_db_manager.get_collection.return_value
    collection.find_one.side_effect = [None, {"_id": ObjectId(BUSINESS_ID)}]

    brand_settings = await BrandService().get_settings(BUSINESS_ID)

    assert brand_settings["theme_color"] == "#3B82F6"
    assert brand_settings["transfer_settings"]["max_transfer_attempts"] == 3
    assert brand_settings["business_id"] == BUSINESS_ID


@pytest.mark.asyncio
async def test_taken_subdomain_conflicts(mock_db_manager, mock_security_service):
    collection = mock_db_manager.get_collection.return_value
    collection.find_one.side_effect = [
        {"_id": ObjectId(), "business_id": BUSINESS_ID},
        {"_id": ObjectId(), "business_id": "someone-else", "subdomain": "acme"},
    ]

    with pytest.raises(ConflictError):
        await BrandService().update_settings(BUSINESS_ID, BrandSettingsUpdate(subdomain="Acme"))
    collection.update_one.assert_not_called()


def test_reserved_subdomain_rejected():
    with pytest.raises(ValueError):
        BrandSettingsUpdate(subdomain="admin")


@pytest.mark.asyncio
async def test_wallet_change_is_audited(mock_db_manager, mock_security_service):
    collection = mock_db_manager.get_collection.return_value
    collection.find_one.return_value = {"_id": ObjectId(), "business_id": BUSINESS_ID}
    wallet = "0x" + "d" * 40

    await BrandService().update_settings(
        BUSINESS_ID, BrandSettingsUpdate(certificate_wallet=wallet, custom_css=None), ip_address="10.0.0.1"
    )

    _, operation = collection.update_one.call_args[0]
    assert operation["$set"]["certificate_wallet"] == wallet
    assert operation["$unset"] == {"custom_css": ""}
    args = mock_security_service.log_security_settings_change.call_args
    assert args[0][2] == {"certificate_wallet": wallet}


@pytest.mark.asyncio
async def test_deactivate_revokes_sessions(mock_db_manager, mock_redis, mock_security_service):
    await BrandService().deactivate(BUSINESS_ID, reason="closing")

    _, update = mock_db_manager.get_collection.return_value.update_one.call_args[0]
    assert update["$set"]["is_active"] is False
    mock_security_service.revoke_all_user_sessions.assert_awaited_once()
    mock_redis.delete_pattern.assert_awaited_once_with("brand:list:*")


@pytest.mark.asyncio
async def test_update_unknown_brand(mock_db_manager, mock_redis):
    from brandlink.models.brand_models import BrandProfileUpdate

    mock_db_manager.get_collection.return_value.update_one.return_value = MagicMock(matched_count=0)

    with pytest.raises(NotFoundError):
        await BrandService().update_profile(BUSINESS_ID, BrandProfileUpdate(industry="Apparel"))
