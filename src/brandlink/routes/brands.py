"""
Brand endpoints.

Authenticated routes act on the calling brand; `/brands/public` is open.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request

from brandlink.models.brand_models import BrandProfileUpdate, BrandSettingsUpdate, IntegrationsUpdate
from brandlink.routes.auth import require_business
from brandlink.services.brand_service import BrandService
from brandlink.utils.logging_utils import get_client_ip
from brandlink.utils.rate_limit import api_rate_limit

router = APIRouter(prefix="/brands", tags=["Brands"], dependencies=[Depends(api_rate_limit)])


async def get_brand_service():
    return BrandService()


@router.get("/public")
async def list_public_brands(
    industry: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: BrandService = Depends(get_brand_service),
):
    return await service.list_public_brands(industry=industry, search=search, page=page, limit=limit)


@router.get("/public/{business_id}")
async def get_public_brand(business_id: str, service: BrandService = Depends(get_brand_service)):
    return await service.get_public_profile(business_id)


@router.get("/profile")
async def get_profile(
    principal: Dict[str, Any] = Depends(require_business), service: BrandService = Depends(get_brand_service)
):
    return await service.get_profile(principal["id"])


@router.put("/profile")
async def update_profile(
    update: BrandProfileUpdate,
    principal: Dict[str, Any] = Depends(require_business),
    service: BrandService = Depends(get_brand_service),
):
    return await service.update_profile(principal["id"], update)


@router.delete("/profile")
async def deactivate(
    reason: Optional[str] = Query(None, max_length=500),
    principal: Dict[str, Any] = Depends(require_business),
    service: BrandService = Depends(get_brand_service),
):
    """Deactivate the brand account. All sessions are revoked."""
    await service.deactivate(principal["id"], reason)
    return {"success": True, "message": "Brand account deactivated"}


@router.get("/settings")
async def get_settings(
    principal: Dict[str, Any] = Depends(require_business), service: BrandService = Depends(get_brand_service)
):
    return await service.get_settings(principal["id"])


@router.put("/settings")
async def update_settings(
    update: BrandSettingsUpdate,
    request: Request,
    principal: Dict[str, Any] = Depends(require_business),
    service: BrandService = Depends(get_brand_service),
):
    return await service.update_settings(principal["id"], update, ip_address=get_client_ip(request))


@router.put("/settings/integrations")
async def update_integrations(
    update: IntegrationsUpdate,
    principal: Dict[str, Any] = Depends(require_business),
    service: BrandService = Depends(get_brand_service),
):
    return await service.update_integrations(principal["id"], update)


@router.get("/completeness")
async def get_completeness(
    principal: Dict[str, Any] = Depends(require_business), service: BrandService = Depends(get_brand_service)
):
    return await service.get_completeness(principal["id"])


@router.get("/recommendations")
async def get_recommendations(
    principal: Dict[str, Any] = Depends(require_business), service: BrandService = Depends(get_brand_service)
):
    return await service.get_recommendations(principal["id"])
