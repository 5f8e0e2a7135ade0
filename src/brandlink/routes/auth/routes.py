from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status

from brandlink.models.auth_models import (
    ChangePasswordRequest,
    LoginRequest,
    RegisterBusinessRequest,
    RegisterManufacturerRequest,
    RegisterUserRequest,
    TokenResponse,
)
from brandlink.models.security_models import UserType
from brandlink.routes.auth.dependencies import get_current_principal, oauth2_scheme
from brandlink.services.auth_service import AuthService
from brandlink.services.notification_service import notification_service
from brandlink.utils.logging_utils import get_client_ip
from brandlink.utils.rate_limit import login_rate_limit

router = APIRouter(prefix="/auth", tags=["Authentication"])


async def get_auth_service():
    return AuthService()


async def _register(kind: UserType, request, service: AuthService) -> Dict[str, Any]:
    account = await service.register(kind, request)
    await notification_service.notify_welcome(account["id"], kind)
    return {"success": True, "account": account}


@router.post("/business/register", status_code=status.HTTP_201_CREATED)
async def register_business(request: RegisterBusinessRequest, service: AuthService = Depends(get_auth_service)):
    """Register a brand (business) account."""
    return await _register(UserType.BUSINESS, request, service)


@router.post("/manufacturer/register", status_code=status.HTTP_201_CREATED)
async def register_manufacturer(
    request: RegisterManufacturerRequest, service: AuthService = Depends(get_auth_service)
):
    """Register a manufacturer account."""
    return await _register(UserType.MANUFACTURER, request, service)


@router.post("/user/register", status_code=status.HTTP_201_CREATED)
async def register_user(request: RegisterUserRequest, service: AuthService = Depends(get_auth_service)):
    """Register an end-user account."""
    return await _register(UserType.USER, request, service)


@router.post("/{principal_type}/login", response_model=TokenResponse, dependencies=[Depends(login_rate_limit)])
async def login(
    principal_type: UserType,
    body: LoginRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
):
    """
    Exchange credentials for an access token and a new session.
    """
    return await service.login(
        principal_type,
        body.email,
        body.password,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        device_fingerprint=body.device_fingerprint,
    )


@router.post("/logout")
async def logout(
    token: str = Depends(oauth2_scheme),
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
):
    """Revoke the current token and session."""
    await service.logout(token, principal)
    return {"success": True, "message": "Logged out successfully"}


@router.post("/logout-all")
async def logout_all(
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
):
    """Revoke every session except the current one."""
    revoked = await service.logout_all(principal)
    return {"success": True, "revoked_count": revoked}


@router.post("/change-password")
async def change_password(
    body: ChangePasswordRequest,
    request: Request,
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
):
    """
    Change the password. All sessions, including this one, are revoked.
    """
    await service.change_password(
        principal,
        body.current_password,
        body.new_password,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return {"success": True, "message": "Password changed. Please log in again."}


@router.get("/me")
async def me(principal: Dict[str, Any] = Depends(get_current_principal)):
    return principal
