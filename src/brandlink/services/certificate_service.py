"""
# Certificate Service

NFT certificate lifecycle on top of the external blockchain service.

## Lifecycle

1.  **Deploy**: each brand gets one NFT contract, stored in
    `brand_settings.web3_settings.nft_contract`.
2.  **Mint**: certificates are always minted to the relayer wallet
    (`minted_to_relayer`). Transfer settings are copied from the brand settings.
3.  **Transfer**: the relayer hands the token to the brand's
    `certificate_wallet`, immediately or after `transfer_delay_minutes` when
    auto-transfer is on.
4.  **Retry**: a failed transfer is retried with a linear backoff of
    `attempts * 30` minutes, capped at 4 hours, until `max_transfer_attempts`.

| Status | Meaning |
|--------|---------|
| `minted` | Held by the relayer, no transfer scheduled |
| `pending_transfer` | Transfer scheduled at `next_transfer_attempt` |
| `transfer_failed` | Last transfer failed, maybe retryable |
| `transferred` | Owned by the brand wallet |
| `revoked` | Burned or invalidated |

Ownership is derived, never stored: `revoked`, `brand`, `relayer` or `external`.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING

from brandlink.config import settings
from brandlink.database import db_manager
from brandlink.managers.logging_manager import get_logger
from brandlink.models.certificate_models import (
    CertificateStatus,
    DeployContractRequest,
    MintCertificateRequest,
    OwnershipStatus,
    SupplyChainEventRequest,
)
from brandlink.services.blockchain_client import blockchain_client
from brandlink.services.brand_service import brand_service
from brandlink.services.notification_service import notification_service
from brandlink.utils.documents import ensure_aware, to_public
from brandlink.utils.errors import (
    AppError,
    AuthorizationError,
    BlockchainError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from brandlink.utils.logging_utils import log_performance

logger = get_logger(prefix="[CertificateService]")

DEFAULT_TRANSFER_DELAY_MINUTES = 5
DEFAULT_MAX_TRANSFER_ATTEMPTS = 3
RETRY_STEP_MINUTES = 30
MAX_RETRY_DELAY_MINUTES = 240

TRANSFERABLE_STATUSES = {
    CertificateStatus.MINTED.value,
    CertificateStatus.PENDING_TRANSFER.value,
    CertificateStatus.TRANSFER_FAILED.value,
}


def verification_url(contract_address: str, token_id: Any) -> str:
    return f"{settings.FRONTEND_BASE_URL.rstrip('/')}/verify/{contract_address}/{token_id}"


def ownership_status(certificate: Dict[str, Any]) -> str:
    if certificate.get("revoked") or certificate.get("status") == CertificateStatus.REVOKED.value:
        return OwnershipStatus.REVOKED.value
    if certificate.get("transferred_to_brand"):
        return OwnershipStatus.BRAND.value
    if certificate.get("minted_to_relayer"):
        return OwnershipStatus.RELAYER.value
    return OwnershipStatus.EXTERNAL.value


def transfer_failure_update(certificate: Dict[str, Any], error: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Fields to `$set` when a transfer attempt fails."""
    now = now or datetime.now(timezone.utc)
    attempts = (certificate.get("transfer_attempts") or 0) + 1
    max_attempts = certificate.get("max_transfer_attempts") or DEFAULT_MAX_TRANSFER_ATTEMPTS
    next_attempt = None
    if attempts < max_attempts:
        delay = min(attempts * RETRY_STEP_MINUTES, MAX_RETRY_DELAY_MINUTES)
        next_attempt = now + timedelta(minutes=delay)
    return {
        "status": CertificateStatus.TRANSFER_FAILED.value,
        "transfer_failed": True,
        "transfer_error": error,
        "transfer_attempts": attempts,
        "next_transfer_attempt": next_attempt,
        "updated_at": now,
    }


def can_retry_transfer(certificate: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    if certificate.get("status") != CertificateStatus.TRANSFER_FAILED.value:
        return False
    max_attempts = certificate.get("max_transfer_attempts") or DEFAULT_MAX_TRANSFER_ATTEMPTS
    if (certificate.get("transfer_attempts") or 0) >= max_attempts:
        return False
    next_attempt = ensure_aware(certificate.get("next_transfer_attempt"))
    return next_attempt is None or next_attempt <= now


def _parse_valid_until(value: Any) -> Optional[datetime]:
    """`valid_until` is stored as an ISO string."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return ensure_aware(value)


def with_ownership(certificate: Dict[str, Any]) -> Dict[str, Any]:
    public = to_public(certificate)
    public["ownership_status"] = ownership_status(certificate)
    return public


class CertificateService:
    def __init__(self, client=None):
        self.client = client or blockchain_client
        self.certificates_collection = "certificates"
        self.supply_chain_collection = "supply_chain_events"

    async def _brand_contract(self, business_id: str) -> Dict[str, Any]:
        brand_settings = await brand_service.get_settings(business_id)
        contract = (brand_settings.get("web3_settings") or {}).get("nft_contract")
        if not contract:
            raise ValidationError("Deploy an NFT contract before issuing certificates")
        return {"contract_address": contract, "settings": brand_settings}

    async def _get_certificate(self, business_id: str, certificate_id: str) -> Dict[str, Any]:
        collection = db_manager.get_collection(self.certificates_collection)
        certificate = await collection.find_one({"certificate_id": certificate_id, "business_id": business_id})
        if not certificate:
            raise NotFoundError("Certificate not found", details={"certificate_id": certificate_id})
        return certificate

    async def get_certificate(self, business_id: str, certificate_id: str) -> Dict[str, Any]:
        return with_ownership(await self._get_certificate(business_id, certificate_id))

    # ------------------------------------------------------------------
    # Contract and minting
    # ------------------------------------------------------------------

    async def deploy_contract(self, business_id: str, request: DeployContractRequest) -> Dict[str, Any]:
        brand_settings = await brand_service.get_settings(business_id)
        web3 = brand_settings.get("web3_settings") or {}
        if web3.get("nft_contract"):
            raise ConflictError(
                "An NFT contract is already deployed for this brand",
                details={"contract_address": web3["nft_contract"]},
            )

        base_uri = request.base_uri or f"{settings.BASE_URL.rstrip('/')}/certificates/metadata/"
        result = await self.client.deploy_contract(request.name, request.symbol, base_uri, settings.RELAYER_WALLET_ADDRESS)
        contract_address = result["contract_address"]

        now = datetime.now(timezone.utc)
        collection = db_manager.get_collection("brand_settings")
        await collection.update_one(
            {"business_id": business_id},
            {
                "$set": {
                    "web3_settings.nft_contract": contract_address,
                    "web3_settings.contract_name": request.name,
                    "web3_settings.contract_symbol": request.symbol,
                    "web3_settings.base_uri": base_uri,
                    "web3_settings.deployment_tx_hash": result.get("transaction_hash"),
                    "web3_settings.network": settings.BLOCKCHAIN_NETWORK,
                    "web3_settings.deployed_at": now,
                    "updated_at": now,
                }
            },
        )
        logger.info("Deployed NFT contract %s for brand %s", contract_address, business_id)
        return {
            "contract_address": contract_address,
            "transaction_hash": result.get("transaction_hash"),
            "name": request.name,
            "symbol": request.symbol,
            "base_uri": base_uri,
            "network": settings.BLOCKCHAIN_NETWORK,
        }

    @log_performance("mint_certificate")
    async def mint_certificate(self, business_id: str, request: MintCertificateRequest) -> Dict[str, Any]:
        brand = await self._brand_contract(business_id)
        contract_address = brand["contract_address"]
        brand_settings = brand["settings"]
        transfer_settings = brand_settings.get("transfer_settings") or {}

        certificate_id = f"cert_{uuid.uuid4().hex}"
        now = datetime.now(timezone.utc)
        document: Dict[str, Any] = {
            "certificate_id": certificate_id,
            "business_id": business_id,
            "product_id": request.product_id,
            "recipient": request.recipient,
            "recipient_type": request.recipient_type,
            "contract_address": contract_address,
            "certificate_data": request.certificate_data.model_dump(mode="json"),
            "metadata": request.metadata,
            "auto_transfer_enabled": bool(transfer_settings.get("auto_transfer_enabled", False)),
            "transfer_delay_minutes": transfer_settings.get("transfer_delay_minutes", DEFAULT_TRANSFER_DELAY_MINUTES),
            "max_transfer_attempts": transfer_settings.get("max_transfer_attempts", DEFAULT_MAX_TRANSFER_ATTEMPTS),
            "transfer_attempts": 0,
            "transferred_to_brand": False,
            "revoked": False,
            "view_count": 0,
            "transfer_history": [],
            "created_at": now,
            "updated_at": now,
        }
        collection = db_manager.get_collection(self.certificates_collection)

        try:
            result = await self.client.mint(
                contract_address, settings.RELAYER_WALLET_ADDRESS, f"{settings.BASE_URL.rstrip('/')}/certificates/metadata/{certificate_id}"
            )
        except BlockchainError as e:
            document.update(status=CertificateStatus.FAILED.value, minted_to_relayer=False, mint_error=e.message)
            await collection.insert_one(document)
            logger.error("Mint failed for brand %s certificate %s: %s", business_id, certificate_id, e.message)
            raise

        token_id = str(result["token_id"])
        url = verification_url(contract_address, token_id)
        document.update(
            status=CertificateStatus.MINTED.value,
            minted_to_relayer=True,
            token_id=token_id,
            mint_tx_hash=result.get("transaction_hash"),
            block_number=result.get("block_number"),
            gas_used=result.get("gas_used"),
            gas_price=result.get("gas_price"),
            metadata_url=url,
            verification_url=url,
        )

        if document["auto_transfer_enabled"] and brand_settings.get("certificate_wallet"):
            document["status"] = CertificateStatus.PENDING_TRANSFER.value
            document["next_transfer_attempt"] = now + timedelta(minutes=document["transfer_delay_minutes"])

        insert = await collection.insert_one(document)
        document["_id"] = insert.inserted_id
        logger.info(
            "Minted certificate %s (token %s) for brand %s, status %s",
            certificate_id,
            token_id,
            business_id,
            document["status"],
        )
        return with_ownership(document)

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    async def mark_transfer_failed(self, certificate: Dict[str, Any], error: str) -> Dict[str, Any]:
        update = transfer_failure_update(certificate, error)
        collection = db_manager.get_collection(self.certificates_collection)
        await collection.update_one({"_id": certificate["_id"]}, {"$set": update})
        failed = {**certificate, **update}
        logger.warning(
            "Transfer of certificate %s failed (attempt %d): %s",
            certificate["certificate_id"],
            update["transfer_attempts"],
            error,
        )
        await notification_service.notify_certificate_transfer_failed(certificate["business_id"], failed, error)
        return failed

    async def transfer_certificate(
        self, business_id: str, certificate_id: str, record_failures: bool = False
    ) -> Dict[str, Any]:
        """
        Move a relayer-held certificate to the brand wallet.

        With `record_failures`, a missing brand wallet or lost relayer ownership
        also counts as a failed attempt, so scheduled runs do not pick the
        certificate up again on every pass.

        Raises:
            ValidationError: The certificate is not transferable or no brand wallet is set.
            AuthorizationError: The relayer no longer owns the token on-chain.
            BlockchainError: The transfer failed; the certificate is marked `transfer_failed`.
        """
        certificate = await self._get_certificate(business_id, certificate_id)
        if certificate.get("status") not in TRANSFERABLE_STATUSES or certificate.get("transferred_to_brand"):
            raise ValidationError(
                "Certificate cannot be transferred in its current state",
                details={"status": certificate.get("status")},
            )

        brand_settings = await brand_service.get_settings(business_id)
        brand_wallet = brand_settings.get("certificate_wallet")
        if not brand_wallet:
            error = ValidationError("Set a certificate wallet in brand settings before transferring")
            if record_failures:
                await self.mark_transfer_failed(certificate, error.message)
            raise error

        relayer = settings.RELAYER_WALLET_ADDRESS
        contract_address = certificate["contract_address"]
        token_id = certificate["token_id"]

        try:
            current_owner = await self.client.owner_of(contract_address, token_id)
        except BlockchainError as e:
            await self.mark_transfer_failed(certificate, e.message)
            raise
        if current_owner.lower() != relayer.lower():
            error = AuthorizationError(
                "Relayer wallet no longer owns this certificate",
                details={"certificate_id": certificate_id, "owner": current_owner},
            )
            if record_failures:
                await self.mark_transfer_failed(certificate, error.message)
            raise error

        try:
            result = await self.client.transfer(contract_address, token_id, relayer, brand_wallet)
            new_owner = await self.client.owner_of(contract_address, token_id)
            if new_owner.lower() != brand_wallet.lower():
                raise BlockchainError(
                    "Transfer was not reflected on-chain", details={"expected": brand_wallet, "owner": new_owner}
                )
        except BlockchainError as e:
            await self.mark_transfer_failed(certificate, e.message)
            raise

        now = datetime.now(timezone.utc)
        update = {
            "status": CertificateStatus.TRANSFERRED.value,
            "transferred_to_brand": True,
            "transferred_at": now,
            "transfer_tx_hash": result.get("transaction_hash"),
            "transfer_gas_used": result.get("gas_used"),
            "transfer_failed": False,
            "transfer_error": None,
            "next_transfer_attempt": None,
            "updated_at": now,
        }
        history_entry = {
            "from": relayer,
            "to": brand_wallet,
            "tx_hash": result.get("transaction_hash"),
            "gas_used": result.get("gas_used"),
            "timestamp": now,
        }
        collection = db_manager.get_collection(self.certificates_collection)
        await collection.update_one(
            {"_id": certificate["_id"]}, {"$set": update, "$push": {"transfer_history": history_entry}}
        )
        transferred = {**certificate, **update}
        await notification_service.notify_certificate_transferred(business_id, transferred)
        logger.info("Transferred certificate %s to brand wallet %s", certificate_id, brand_wallet)
        return with_ownership(transferred)

    async def batch_transfer(self, business_id: str, certificate_ids: List[str]) -> Dict[str, Any]:
        transferred = []
        failures = []
        for certificate_id in certificate_ids:
            try:
                certificate = await self.transfer_certificate(business_id, certificate_id)
                transferred.append(
                    {"certificate_id": certificate_id, "transaction_hash": certificate.get("transfer_tx_hash")}
                )
            except AppError as e:
                failures.append({"certificate_id": certificate_id, "error": e.message, "code": e.code})
        logger.info(
            "Batch transfer for %s: %d transferred, %d failed", business_id, len(transferred), len(failures)
        )
        return {
            "total": len(certificate_ids),
            "transferred": transferred,
            "failed": failures,
        }

    async def _run_transfers(self, certificates: List[Dict[str, Any]]) -> Dict[str, int]:
        succeeded = failed = 0
        for certificate in certificates:
            try:
                await self.transfer_certificate(
                    certificate["business_id"], certificate["certificate_id"], record_failures=True
                )
                succeeded += 1
            except AppError as e:
                failed += 1
                logger.warning("Scheduled transfer of %s failed: %s", certificate["certificate_id"], e.message)
        return {"processed": len(certificates), "succeeded": succeeded, "failed": failed}

    async def retry_failed_transfers(self, limit: int = 10) -> Dict[str, int]:
        now = datetime.now(timezone.utc)
        collection = db_manager.get_collection(self.certificates_collection)
        # Exhausted certificates must be filtered in the query, before the limit.
        cursor = (
            collection.find(
                {
                    "status": CertificateStatus.TRANSFER_FAILED.value,
                    "$or": [{"next_transfer_attempt": None}, {"next_transfer_attempt": {"$lte": now}}],
                    "$expr": {
                        "$lt": [
                            {"$ifNull": ["$transfer_attempts", 0]},
                            {"$ifNull": ["$max_transfer_attempts", DEFAULT_MAX_TRANSFER_ATTEMPTS]},
                        ]
                    },
                }
            )
            .sort("next_transfer_attempt", ASCENDING)
            .limit(limit)
        )
        candidates = [c for c in await cursor.to_list(length=limit) if can_retry_transfer(c, now)]
        return await self._run_transfers(candidates)

    async def process_pending_transfers(self, limit: int = 50) -> Dict[str, int]:
        now = datetime.now(timezone.utc)
        collection = db_manager.get_collection(self.certificates_collection)
        cursor = (
            collection.find(
                {"status": CertificateStatus.PENDING_TRANSFER.value, "next_transfer_attempt": {"$lte": now}}
            )
            .sort("next_transfer_attempt", ASCENDING)
            .limit(limit)
        )
        return await self._run_transfers(await cursor.to_list(length=limit))

    # ------------------------------------------------------------------
    # Revocation and verification
    # ------------------------------------------------------------------

    async def revoke_certificate(self, business_id: str, certificate_id: str, reason: str) -> Dict[str, Any]:
        certificate = await self._get_certificate(business_id, certificate_id)
        if certificate.get("revoked"):
            raise ConflictError("Certificate is already revoked", details={"certificate_id": certificate_id})

        revocation_tx = None
        if ownership_status(certificate) == OwnershipStatus.RELAYER.value and certificate.get("token_id"):
            result = await self.client.burn(certificate["contract_address"], certificate["token_id"])
            revocation_tx = result.get("transaction_hash")

        now = datetime.now(timezone.utc)
        update = {
            "status": CertificateStatus.REVOKED.value,
            "revoked": True,
            "revoked_at": now,
            "revoked_reason": reason,
            "revocation_tx_hash": revocation_tx,
            "next_transfer_attempt": None,
            "updated_at": now,
        }
        collection = db_manager.get_collection(self.certificates_collection)
        await collection.update_one({"_id": certificate["_id"]}, {"$set": update})
        logger.info("Revoked certificate %s for brand %s: %s", certificate_id, business_id, reason)
        return with_ownership({**certificate, **update})

    async def verify_certificate(self, contract_address: str, token_id: str) -> Dict[str, Any]:
        """Public verification of a certificate by contract and token."""
        collection = db_manager.get_collection(self.certificates_collection)
        certificate = await collection.find_one({"contract_address": contract_address, "token_id": str(token_id)})
        if not certificate:
            raise NotFoundError(
                "Certificate not found", details={"contract_address": contract_address, "token_id": token_id}
            )

        ownership = ownership_status(certificate)
        on_chain_owner = None
        on_chain_verified = False
        if ownership != OwnershipStatus.REVOKED.value:
            try:
                on_chain_owner = await self.client.owner_of(contract_address, token_id)
            except BlockchainError as e:
                logger.warning("On-chain verification unavailable for %s/%s: %s", contract_address, token_id, e.message)

        if on_chain_owner:
            if ownership == OwnershipStatus.BRAND.value:
                brand_settings = await brand_service.get_settings(certificate["business_id"])
                expected = brand_settings.get("certificate_wallet") or ""
            else:
                expected = settings.RELAYER_WALLET_ADDRESS
            on_chain_verified = on_chain_owner.lower() == expected.lower()

        now = datetime.now(timezone.utc)
        set_fields: Dict[str, Any] = {"last_viewed_at": now}
        if on_chain_verified:
            set_fields.update(on_chain_verified=True, last_verified_at=now)
        await collection.update_one({"_id": certificate["_id"]}, {"$set": set_fields, "$inc": {"view_count": 1}})

        valid_until = _parse_valid_until(certificate.get("certificate_data", {}).get("valid_until"))
        result = with_ownership(certificate)
        result.update(
            on_chain_owner=on_chain_owner,
            on_chain_verified=on_chain_verified,
            is_valid=(
                ownership != OwnershipStatus.REVOKED.value
                and certificate.get("status") != CertificateStatus.FAILED.value
                and (valid_until is None or valid_until > now)
            ),
        )
        return result

    # ------------------------------------------------------------------
    # Listing and analytics
    # ------------------------------------------------------------------

    async def get_certificates(
        self,
        business_id: str,
        ownership: str = "all",
        status: Optional[CertificateStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        query: Dict[str, Any] = {"business_id": business_id}
        if ownership == OwnershipStatus.RELAYER.value:
            query.update(minted_to_relayer=True, transferred_to_brand={"$ne": True}, revoked={"$ne": True})
        elif ownership == OwnershipStatus.BRAND.value:
            query.update(transferred_to_brand=True, revoked={"$ne": True})
        if status:
            query["status"] = CertificateStatus(status).value

        collection = db_manager.get_collection(self.certificates_collection)
        cursor = collection.find(query).sort("created_at", DESCENDING).skip((page - 1) * limit).limit(limit)
        certificates = [with_ownership(c) for c in await cursor.to_list(length=limit)]
        total = await collection.count_documents(query)
        return {"certificates": certificates, "total": total, "page": page, "limit": limit}

    async def get_transfer_analytics(self, business_id: str) -> Dict[str, Any]:
        collection = db_manager.get_collection(self.certificates_collection)
        pipeline = [
            {"$match": {"business_id": business_id}},
            {"$group": {"_id": "$status", "count": {"$sum": 1}}},
        ]
        by_status = {row["_id"]: row["count"] async for row in collection.aggregate(pipeline)}

        total = sum(by_status.values())
        transferred = by_status.get(CertificateStatus.TRANSFERRED.value, 0)
        failed = by_status.get(CertificateStatus.TRANSFER_FAILED.value, 0)
        relayer_held = sum(by_status.get(s, 0) for s in TRANSFERABLE_STATUSES)
        attempted = transferred + failed
        return {
            "total": total,
            "minted": total - by_status.get(CertificateStatus.FAILED.value, 0) - by_status.get(CertificateStatus.PENDING.value, 0),
            "transferred": transferred,
            "failed": failed,
            "relayer_held": relayer_held,
            "brand_owned": transferred,
            "revoked": by_status.get(CertificateStatus.REVOKED.value, 0),
            "success_rate": round(transferred / attempted * 100, 1) if attempted else 0.0,
            "by_status": by_status,
        }

    # ------------------------------------------------------------------
    # Supply chain
    # ------------------------------------------------------------------

    async def log_supply_chain_event(self, business_id: str, request: SupplyChainEventRequest) -> Dict[str, Any]:
        brand = await self._brand_contract(business_id)
        result = await self.client.log_supply_chain_event(
            brand["contract_address"], request.product_id, request.event_type, request.location, request.details
        )
        document = {
            "event_id": f"sce_{uuid.uuid4().hex[:16]}",
            "business_id": business_id,
            "contract_address": brand["contract_address"],
            "product_id": request.product_id,
            "event_type": request.event_type,
            "location": request.location,
            "details": request.details,
            "transaction_hash": result.get("transaction_hash"),
            "block_number": result.get("block_number"),
            "created_at": datetime.now(timezone.utc),
        }
        collection = db_manager.get_collection(self.supply_chain_collection)
        await collection.insert_one(document)
        logger.info("Logged supply chain event %s for product %s", request.event_type, request.product_id)
        return to_public(document)

    async def get_product_events(self, business_id: str, product_id: str) -> List[Dict[str, Any]]:
        collection = db_manager.get_collection(self.supply_chain_collection)
        cursor = collection.find({"business_id": business_id, "product_id": product_id}).sort("created_at", DESCENDING)
        return [to_public(e) for e in await cursor.to_list(length=500)]


certificate_service = CertificateService()
