"""
End-user profiles.

Derived fields (`age`, `full_name`, `account_age_days`) are computed on read and
never stored.
"""

from datetime import date, datetime, timezone
from typing import Any, Dict, Optional, Union

from brandlink.database import db_manager
from brandlink.managers.logging_manager import get_logger
from brandlink.models.security_models import UserType
from brandlink.models.user_models import UserProfileUpdate
from brandlink.services.security_service import security_service
from brandlink.utils.documents import ensure_aware, to_object_id, to_public
from brandlink.utils.errors import NotFoundError

logger = get_logger(prefix="[UserService]")


def calculate_age(date_of_birth: Optional[Union[str, date, datetime]], today: Optional[date] = None) -> Optional[int]:
    if not date_of_birth:
        return None
    if isinstance(date_of_birth, str):
        try:
            date_of_birth = date.fromisoformat(date_of_birth[:10])
        except ValueError:
            return None
    if isinstance(date_of_birth, datetime):
        date_of_birth = date_of_birth.date()
    today = today or datetime.now(timezone.utc).date()
    age = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def full_name(user: Dict[str, Any]) -> str:
    first = (user.get("first_name") or "").strip()
    last = (user.get("last_name") or "").strip()
    if first and last:
        return f"{first} {last}"
    return first or last or "Anonymous User"


def account_age_days(user: Dict[str, Any], now: Optional[datetime] = None) -> int:
    created_at = ensure_aware(user.get("created_at"))
    if not created_at:
        return 0
    now = now or datetime.now(timezone.utc)
    return max((now - created_at).days, 0)


def with_derived_fields(user: Dict[str, Any]) -> Dict[str, Any]:
    user["age"] = calculate_age(user.get("date_of_birth"))
    user["full_name"] = full_name(user)
    user["account_age_days"] = account_age_days(user)
    return user


class UserService:
    def __init__(self):
        self.users_collection = "users"

    async def get_profile(self, user_id: str) -> Dict[str, Any]:
        collection = db_manager.get_collection(self.users_collection)
        user = await collection.find_one({"_id": to_object_id(user_id, "User"), "deleted_at": None})
        if not user:
            raise NotFoundError("User not found", details={"user_id": user_id})
        return with_derived_fields(to_public(user))

    async def update_profile(self, user_id: str, update: UserProfileUpdate) -> Dict[str, Any]:
        changes = update.model_dump(exclude_unset=True, mode="json")
        if not changes:
            return await self.get_profile(user_id)
        changes["updated_at"] = datetime.now(timezone.utc)

        collection = db_manager.get_collection(self.users_collection)
        result = await collection.update_one(
            {"_id": to_object_id(user_id, "User"), "deleted_at": None}, {"$set": changes}
        )
        if result.matched_count == 0:
            raise NotFoundError("User not found", details={"user_id": user_id})
        logger.info("Updated user %s fields: %s", user_id, sorted(changes))
        return await self.get_profile(user_id)

    async def delete_account(self, user_id: str) -> None:
        """Soft delete: anonymize the email so it can be registered again, and revoke sessions."""
        now = datetime.now(timezone.utc)
        collection = db_manager.get_collection(self.users_collection)
        oid = to_object_id(user_id, "User")
        result = await collection.update_one(
            {"_id": oid, "deleted_at": None},
            {
                "$set": {
                    "deleted_at": now,
                    "is_active": False,
                    "email": f"deleted_{user_id}@deleted.local",
                    "updated_at": now,
                }
            },
        )
        if result.matched_count == 0:
            raise NotFoundError("User not found", details={"user_id": user_id})

        await security_service.revoke_all_user_sessions(user_id, reason="account_deleted", user_type=UserType.USER)
        logger.info("Soft-deleted user %s", user_id)


user_service = UserService()
