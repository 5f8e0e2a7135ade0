"""
NFT certificate endpoints.

Everything under `/certificates` acts for the calling brand except
`/certificates/verify/{contract_address}/{token_id}`, which is public so that
anyone scanning a certificate QR code can check it.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from brandlink.models.certificate_models import (
    BatchTransferRequest,
    CertificateStatus,
    DeployContractRequest,
    MintCertificateRequest,
    RevokeCertificateRequest,
    SupplyChainEventRequest,
)
from brandlink.routes.auth import require_business
from brandlink.services.certificate_service import CertificateService
from brandlink.services.media_service import media_service
from brandlink.services.qr_service import generate_certificate_qr, generate_supply_chain_qr, store_certificate_qr
from brandlink.utils.rate_limit import api_rate_limit

router = APIRouter(prefix="/certificates", tags=["Certificates"], dependencies=[Depends(api_rate_limit)])


async def get_certificate_service():
    return CertificateService()


@router.post("/contract", status_code=201)
async def deploy_contract(
    request: DeployContractRequest,
    principal: Dict[str, Any] = Depends(require_business),
    service: CertificateService = Depends(get_certificate_service),
):
    return await service.deploy_contract(principal["id"], request)


@router.post("", status_code=201)
async def mint_certificate(
    request: MintCertificateRequest,
    principal: Dict[str, Any] = Depends(require_business),
    service: CertificateService = Depends(get_certificate_service),
):
    return await service.mint_certificate(principal["id"], request)


@router.get("")
async def list_certificates(
    ownership: str = Query("all", pattern="^(all|relayer|brand)$"),
    status: Optional[CertificateStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    principal: Dict[str, Any] = Depends(require_business),
    service: CertificateService = Depends(get_certificate_service),
):
    return await service.get_certificates(principal["id"], ownership=ownership, status=status, page=page, limit=limit)


@router.get("/analytics")
async def transfer_analytics(
    principal: Dict[str, Any] = Depends(require_business),
    service: CertificateService = Depends(get_certificate_service),
):
    return await service.get_transfer_analytics(principal["id"])


@router.post("/batch-transfer")
async def batch_transfer(
    request: BatchTransferRequest,
    principal: Dict[str, Any] = Depends(require_business),
    service: CertificateService = Depends(get_certificate_service),
):
    return await service.batch_transfer(principal["id"], request.certificate_ids)


@router.get("/verify/{contract_address}/{token_id}")
async def verify_certificate(
    contract_address: str, token_id: str, service: CertificateService = Depends(get_certificate_service)
):
    return await service.verify_certificate(contract_address, token_id)


@router.post("/supply-chain/events", status_code=201)
async def log_supply_chain_event(
    request: SupplyChainEventRequest,
    include_qr: bool = False,
    principal: Dict[str, Any] = Depends(require_business),
    service: CertificateService = Depends(get_certificate_service),
):
    event = await service.log_supply_chain_event(principal["id"], request)
    if include_qr:
        qr = generate_supply_chain_qr(request.product_id, principal["id"], event)
        event["qr_code"] = {"data_url": qr["data_url"], "payload": qr["payload"]}
    return event


@router.get("/supply-chain/{product_id}/events")
async def get_product_events(
    product_id: str,
    principal: Dict[str, Any] = Depends(require_business),
    service: CertificateService = Depends(get_certificate_service),
):
    events = await service.get_product_events(principal["id"], product_id)
    return {"product_id": product_id, "events": events, "count": len(events)}


@router.get("/{certificate_id}")
async def get_certificate(
    certificate_id: str,
    principal: Dict[str, Any] = Depends(require_business),
    service: CertificateService = Depends(get_certificate_service),
):
    return await service.get_certificate(principal["id"], certificate_id)


@router.post("/{certificate_id}/transfer")
async def transfer_certificate(
    certificate_id: str,
    principal: Dict[str, Any] = Depends(require_business),
    service: CertificateService = Depends(get_certificate_service),
):
    return await service.transfer_certificate(principal["id"], certificate_id)


@router.post("/{certificate_id}/revoke")
async def revoke_certificate(
    certificate_id: str,
    request: RevokeCertificateRequest,
    principal: Dict[str, Any] = Depends(require_business),
    service: CertificateService = Depends(get_certificate_service),
):
    return await service.revoke_certificate(principal["id"], certificate_id, request.reason)


@router.get("/{certificate_id}/qr")
async def certificate_qr(
    certificate_id: str,
    format: str = Query("json", pattern="^(json|png)$"),
    store: bool = False,
    principal: Dict[str, Any] = Depends(require_business),
    service: CertificateService = Depends(get_certificate_service),
):
    """
    Verification QR code for a certificate.

    `format=png` returns the raw image. With `store=true` the image is also
    saved to the brand's media library under the `certificate` category.
    """
    certificate = await service.get_certificate(principal["id"], certificate_id)
    if store:
        media = await store_certificate_qr(principal["id"], certificate, media_service)
    else:
        media = None

    qr = generate_certificate_qr(certificate)
    if format == "png":
        return Response(content=qr["png"], media_type="image/png")
    return {
        "certificate_id": certificate_id,
        "data_url": qr["data_url"],
        "payload": qr["payload"],
        "size": qr["size"],
        "error_correction": qr["error_correction"],
        "media": media,
    }
