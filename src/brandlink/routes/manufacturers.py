"""
Manufacturer profile, discovery and connection endpoints.

Connections are shared by brands and manufacturers: both sides use
`/manufacturers/connections/...` with their own token.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import ValidationError as PydanticValidationError

from brandlink.models.manufacturer_models import (
    ConnectionRequest,
    ConnectionResponse,
    ConnectionStatus,
    ManufacturerProfileUpdate,
    ManufacturerSearchFilters,
)
from brandlink.models.security_models import UserType
from brandlink.routes.auth import get_current_principal, require_manufacturer, require_principal_type
from brandlink.services.manufacturer_service import ManufacturerService
from brandlink.utils.errors import ValidationError
from brandlink.utils.rate_limit import api_rate_limit

router = APIRouter(prefix="/manufacturers", tags=["Manufacturers"], dependencies=[Depends(api_rate_limit)])

require_partner = require_principal_type(UserType.BUSINESS, UserType.MANUFACTURER)


async def get_manufacturer_service():
    return ManufacturerService()


@router.get("/search")
async def search(
    query: Optional[str] = Query(None, max_length=200),
    industry: Optional[str] = None,
    services: Optional[List[str]] = Query(None),
    min_moq: Optional[int] = Query(None, ge=0),
    max_moq: Optional[int] = Query(None, ge=0),
    country: Optional[str] = None,
    certifications: Optional[List[str]] = Query(None),
    verified_only: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: ManufacturerService = Depends(get_manufacturer_service),
):
    try:
        filters = ManufacturerSearchFilters(
            query=query,
            industry=industry,
            services=services,
            min_moq=min_moq,
            max_moq=max_moq,
            country=country,
            certifications=certifications,
            verified_only=verified_only,
            page=page,
            limit=limit,
        )
    except PydanticValidationError as e:
        raise ValidationError("Invalid search filters", details={"errors": e.errors(include_url=False)}) from e
    return await service.search(filters)


@router.get("/profile")
async def get_own_profile(
    principal: Dict[str, Any] = Depends(require_manufacturer),
    service: ManufacturerService = Depends(get_manufacturer_service),
):
    return await service.get_profile(principal["id"])


@router.put("/profile")
async def update_profile(
    update: ManufacturerProfileUpdate,
    principal: Dict[str, Any] = Depends(require_manufacturer),
    service: ManufacturerService = Depends(get_manufacturer_service),
):
    return await service.update_profile(principal["id"], update)


@router.get("/analytics")
async def get_analytics(
    principal: Dict[str, Any] = Depends(require_manufacturer),
    service: ManufacturerService = Depends(get_manufacturer_service),
):
    return await service.get_analytics(principal["id"])


@router.get("/connections")
async def list_connections(
    status: Optional[ConnectionStatus] = None,
    principal: Dict[str, Any] = Depends(require_partner),
    service: ManufacturerService = Depends(get_manufacturer_service),
):
    connections = await service.list_connections(UserType(principal["principal_type"]), principal["id"], status)
    return {"connections": connections, "count": len(connections)}


@router.post("/connections", status_code=201)
async def request_connection(
    body: ConnectionRequest,
    principal: Dict[str, Any] = Depends(require_partner),
    service: ManufacturerService = Depends(get_manufacturer_service),
):
    return await service.request_connection(
        UserType(principal["principal_type"]), principal["id"], body.target_id, body.message
    )


@router.post("/connections/{connection_id}/respond")
async def respond_to_connection(
    connection_id: str,
    body: ConnectionResponse,
    principal: Dict[str, Any] = Depends(require_partner),
    service: ManufacturerService = Depends(get_manufacturer_service),
):
    return await service.respond_to_connection(
        UserType(principal["principal_type"]), principal["id"], connection_id, body.accept
    )


@router.delete("/connections/{connection_id}")
async def disconnect(
    connection_id: str,
    principal: Dict[str, Any] = Depends(require_partner),
    service: ManufacturerService = Depends(get_manufacturer_service),
):
    await service.disconnect(UserType(principal["principal_type"]), principal["id"], connection_id)
    return {"success": True, "connection_id": connection_id}


@router.get("/{manufacturer_id}")
async def get_profile(
    manufacturer_id: str,
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: ManufacturerService = Depends(get_manufacturer_service),
):
    return await service.get_profile(manufacturer_id)


@router.get("/{manufacturer_id}/similar")
async def get_similar(
    manufacturer_id: str,
    threshold: int = Query(50, ge=0, le=100),
    limit: int = Query(10, ge=1, le=50),
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: ManufacturerService = Depends(get_manufacturer_service),
):
    return {"manufacturers": await service.find_similar(manufacturer_id, threshold=threshold, limit=limit)}
