from typing import Any, Dict

from fastapi import APIRouter, Depends

from brandlink.models.user_models import UserProfileUpdate
from brandlink.routes.auth import require_user
from brandlink.services.user_service import UserService
from brandlink.utils.rate_limit import api_rate_limit

router = APIRouter(prefix="/users", tags=["Users"], dependencies=[Depends(api_rate_limit)])


async def get_user_service():
    return UserService()


@router.get("/profile")
async def get_profile(principal: Dict[str, Any] = Depends(require_user), service: UserService = Depends(get_user_service)):
    return await service.get_profile(principal["id"])


@router.put("/profile")
async def update_profile(
    update: UserProfileUpdate,
    principal: Dict[str, Any] = Depends(require_user),
    service: UserService = Depends(get_user_service),
):
    return await service.update_profile(principal["id"], update)


@router.delete("/profile")
async def delete_account(
    principal: Dict[str, Any] = Depends(require_user), service: UserService = Depends(get_user_service)
):
    """Delete the account. The email is released and every session is revoked."""
    await service.delete_account(principal["id"])
    return {"success": True, "message": "Account deleted"}
