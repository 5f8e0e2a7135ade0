from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from bson import ObjectId
import pytest

from brandlink.models.security_models import UserType
from brandlink.models.user_models import UserProfileUpdate
from brandlink.services.user_service import UserService, account_age_days, calculate_age, full_name
from brandlink.utils.errors import NotFoundError

USER_ID = str(ObjectId())


@pytest.fixture
def users(collection_factory):
    with patch("brandlink.services.user_service.db_manager") as mock:
        collection = collection_factory()
        mock.get_collection.return_value = collection
        yield collection


@pytest.fixture
def mock_security_service():
    with patch("brandlink.services.user_service.security_service") as mock:
        mock.revoke_all_user_sessions = AsyncMock(return_value=1)
        yield mock


def test_calculate_age_before_and_after_birthday():
    today = date(2024, 6, 15)
    assert calculate_age(date(1990, 6, 15), today) == 34
    assert calculate_age(date(1990, 6, 16), today) == 33
    assert calculate_age("1990-01-01T00:00:00", today) == 34
    assert calculate_age(datetime(2000, 12, 31), today) == 23


def test_calculate_age_without_usable_date():
    assert calculate_age(None) is None
    assert calculate_age("") is None
    assert calculate_age("not-a-date") is None


def test_full_name():
    assert full_name({"first_name": " Ada ", "last_name": "Lovelace"}) == "Ada Lovelace"
    assert full_name({"first_name": "Ada"}) == "Ada"
    assert full_name({"last_name": "Lovelace"}) == "Lovelace"
    assert full_name({"first_name": "  "}) == "Anonymous User"


def test_account_age_days():
    now = datetime(2024, 6, 15, tzinfo=timezone.utc)
    assert account_age_days({"created_at": now - timedelta(days=10, hours=5)}, now) == 10
    assert account_age_days({"created_at": datetime(2024, 6, 1)}, now) == 14
    assert account_age_days({}, now) == 0


@pytest.mark.asyncio
async def test_get_profile_adds_derived_fields(users):
    users.find_one.return_value = {
        "_id": ObjectId(USER_ID),
        "email": "ada@example.com",
        "password": "hash",
        "first_name": "Ada",
        "date_of_birth": "1990-01-01",
        "created_at": datetime.now(timezone.utc) - timedelta(days=2),
    }

    profile = await UserService().get_profile(USER_ID)

    assert profile["id"] == USER_ID
    assert profile["full_name"] == "Ada"
    assert profile["age"] >= 34
    assert profile["account_age_days"] == 2
    assert "password" not in profile


@pytest.mark.asyncio
async def test_update_profile_unknown_user(users):
    users.update_one.return_value = MagicMock(matched_count=0)

    with pytest.raises(NotFoundError):
        await UserService().update_profile(USER_ID, UserProfileUpdate(first_name="Ada"))


@pytest.mark.asyncio
async def test_delete_account_anonymizes_and_revokes(users, mock_security_service):
    await UserService().delete_account(USER_ID)

    _, update = users.update_one.call_args[0]
    assert update["$set"]["email"] == f"deleted_{USER_ID}@deleted.local"
    assert update["$set"]["is_active"] is False
    mock_security_service.revoke_all_user_sessions.assert_awaited_once_with(
        USER_ID, reason="account_deleted", user_type=UserType.USER
    )
