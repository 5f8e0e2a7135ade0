from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from brandlink.config import settings
from brandlink.models.certificate_models import DeployContractRequest, MintCertificateRequest
from brandlink.services.certificate_service import (
    CertificateService,
    can_retry_transfer,
    ownership_status,
    transfer_failure_update,
)
from brandlink.utils.errors import (
    AuthorizationError,
    BlockchainError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

CONTRACT = "0x" + "c" * 40
BRAND_WALLET = "0x" + "d" * 40
RELAYER = settings.RELAYER_WALLET_ADDRESS


@pytest.fixture
def certificates(collection_factory):
    with patch("brandlink.services.certificate_service.db_manager") as mock:
        collection = collection_factory()
        mock.get_collection.return_value = collection
        yield collection


@pytest.fixture
def mock_brand_service():
    with patch("brandlink.services.certificate_service.brand_service") as mock:
        mock.get_settings = AsyncMock(
            return_value={
                "business_id": "b1",
                "certificate_wallet": BRAND_WALLET,
                "web3_settings": {"nft_contract": CONTRACT},
                "transfer_settings": {"auto_transfer_enabled": False},
            }
        )
        yield mock


@pytest.fixture
def mock_notifications():
    with patch("brandlink.services.certificate_service.notification_service") as mock:
        mock.notify_certificate_transferred = AsyncMock()
        mock.notify_certificate_transfer_failed = AsyncMock()
        yield mock


@pytest.fixture
def client():
    client = MagicMock()
    client.deploy_contract = AsyncMock(return_value={"contract_address": CONTRACT, "transaction_hash": "0xdeploy"})
    client.mint = AsyncMock(return_value={"token_id": 7, "transaction_hash": "0xmint", "block_number": 10})
    client.transfer = AsyncMock(return_value={"transaction_hash": "0xtransfer", "gas_used": 21000})
    client.owner_of = AsyncMock(side_effect=[RELAYER, BRAND_WALLET])
    client.burn = AsyncMock(return_value={"transaction_hash": "0xburn"})
    client.log_supply_chain_event = AsyncMock(return_value={"transaction_hash": "0xevent", "block_number": 11})
    return client


def _relayer_certificate(**overrides):
    certificate = {
        "_id": "oid",
        "certificate_id": "cert_1",
        "business_id": "b1",
        "contract_address": CONTRACT,
        "token_id": "7",
        "status": "minted",
        "minted_to_relayer": True,
        "transferred_to_brand": False,
        "transfer_attempts": 0,
        "max_transfer_attempts": 3,
    }
    certificate.update(overrides)
    return certificate


def test_ownership_status_precedence():
    assert ownership_status({"minted_to_relayer": True, "transferred_to_brand": True, "revoked": True}) == "revoked"
    assert ownership_status({"status": "revoked"}) == "revoked"
    assert ownership_status({"minted_to_relayer": True, "transferred_to_brand": True}) == "brand"
    assert ownership_status({"minted_to_relayer": True}) == "relayer"
    assert ownership_status({}) == "external"


def test_transfer_failure_backoff():
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    first = transfer_failure_update({"transfer_attempts": 0}, "boom", now)
    second = transfer_failure_update({"transfer_attempts": 1}, "boom", now)
    last = transfer_failure_update({"transfer_attempts": 2}, "boom", now)

    assert first["transfer_attempts"] == 1
    assert first["next_transfer_attempt"] == now + timedelta(minutes=30)
    assert second["next_transfer_attempt"] == now + timedelta(minutes=60)
    assert last["transfer_attempts"] == 3
    assert last["next_transfer_attempt"] is None
    assert last["status"] == "transfer_failed"


def test_transfer_failure_backoff_is_capped():
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    update = transfer_failure_update({"transfer_attempts": 9, "max_transfer_attempts": 20}, "boom", now)
    assert update["next_transfer_attempt"] == now + timedelta(minutes=240)


def test_can_retry_transfer():
    now = datetime.now(timezone.utc)
    failed = {"status": "transfer_failed", "transfer_attempts": 1, "max_transfer_attempts": 3}

    assert can_retry_transfer(failed, now)
    assert can_retry_transfer({**failed, "next_transfer_attempt": now - timedelta(minutes=1)}, now)
    assert not can_retry_transfer({**failed, "next_transfer_attempt": now + timedelta(minutes=1)}, now)
    assert not can_retry_transfer({**failed, "transfer_attempts": 3}, now)
    assert not can_retry_transfer({**failed, "status": "minted"}, now)


@pytest.mark.asyncio
async def test_deploy_contract_once(certificates, mock_brand_service, client):
    mock_brand_service.get_settings.return_value = {"web3_settings": {}}

    result = await CertificateService(client).deploy_contract("b1", DeployContractRequest(name="Acme", symbol="acm"))

    assert result["contract_address"] == CONTRACT
    assert result["symbol"] == "ACM"
    _, update = certificates.update_one.call_args[0]
    assert update["$set"]["web3_settings.nft_contract"] == CONTRACT


@pytest.mark.asyncio
async def test_deploy_contract_conflict(certificates, mock_brand_service, client):
    with pytest.raises(ConflictError):
        await CertificateService(client).deploy_contract("b1", DeployContractRequest(name="Acme", symbol="ACM"))
    client.deploy_contract.assert_not_called()


@pytest.mark.asyncio
async def test_mint_goes_to_relayer(certificates, mock_brand_service, client):
    certificate = await CertificateService(client).mint_certificate(
        "b1", MintCertificateRequest(recipient="buyer@example.com", product_id="sku-1")
    )

    assert client.mint.call_args[0][1] == RELAYER
    assert certificate["status"] == "minted"
    assert certificate["token_id"] == "7"
    assert certificate["ownership_status"] == "relayer"
    assert certificate["recipient_type"] == "email"
    assert certificate["verification_url"].endswith(f"/verify/{CONTRACT}/7")


@pytest.mark.asyncio
async def test_mint_schedules_auto_transfer(certificates, mock_brand_service, client):
    mock_brand_service.get_settings.return_value["transfer_settings"] = {
        "auto_transfer_enabled": True,
        "transfer_delay_minutes": 10,
    }

    certificate = await CertificateService(client).mint_certificate(
        "b1", MintCertificateRequest(recipient=BRAND_WALLET, product_id="sku-1")
    )

    assert certificate["status"] == "pending_transfer"
    assert certificate["next_transfer_attempt"] > datetime.now(timezone.utc) + timedelta(minutes=9)
    assert certificate["recipient_type"] == "wallet"


@pytest.mark.asyncio
async def test_mint_without_contract(certificates, mock_brand_service, client):
    mock_brand_service.get_settings.return_value = {"web3_settings": {}}

    with pytest.raises(ValidationError):
        await CertificateService(client).mint_certificate(
            "b1", MintCertificateRequest(recipient="buyer@example.com", product_id="sku-1")
        )


@pytest.mark.asyncio
async def test_failed_mint_is_recorded(certificates, mock_brand_service, client):
    client.mint.side_effect = BlockchainError("node unavailable")

    with pytest.raises(BlockchainError):
        await CertificateService(client).mint_certificate(
            "b1", MintCertificateRequest(recipient="buyer@example.com", product_id="sku-1")
        )

    stored = certificates.insert_one.call_args[0][0]
    assert stored["status"] == "failed"
    assert stored["minted_to_relayer"] is False
    assert stored["mint_error"] == "node unavailable"


@pytest.mark.asyncio
async def test_transfer_to_brand_wallet(certificates, mock_brand_service, mock_notifications, client):
    certificates.find_one.return_value = _relayer_certificate()

    certificate = await CertificateService(client).transfer_certificate("b1", "cert_1")

    client.transfer.assert_awaited_once_with(CONTRACT, "7", RELAYER, BRAND_WALLET)
    assert certificate["status"] == "transferred"
    assert certificate["ownership_status"] == "brand"
    _, update = certificates.update_one.call_args[0]
    assert update["$push"]["transfer_history"]["tx_hash"] == "0xtransfer"
    mock_notifications.notify_certificate_transferred.assert_awaited_once()


@pytest.mark.asyncio
async def test_transfer_requires_relayer_ownership(certificates, mock_brand_service, mock_notifications, client):
    certificates.find_one.return_value = _relayer_certificate()
    client.owner_of.side_effect = ["0x" + "e" * 40]

    with pytest.raises(AuthorizationError):
        await CertificateService(client).transfer_certificate("b1", "cert_1")
    client.transfer.assert_not_called()


@pytest.mark.asyncio
async def test_transfer_requires_brand_wallet(certificates, mock_brand_service, mock_notifications, client):
    certificates.find_one.return_value = _relayer_certificate()
    mock_brand_service.get_settings.return_value = {"certificate_wallet": None}

    with pytest.raises(ValidationError):
        await CertificateService(client).transfer_certificate("b1", "cert_1")


@pytest.mark.asyncio
async def test_transferred_certificate_cannot_move_again(certificates, mock_brand_service, client):
    certificates.find_one.return_value = _relayer_certificate(status="transferred", transferred_to_brand=True)

    with pytest.raises(ValidationError):
        await CertificateService(client).transfer_certificate("b1", "cert_1")


@pytest.mark.asyncio
async def test_failed_transfer_schedules_retry(certificates, mock_brand_service, mock_notifications, client):
    certificates.find_one.return_value = _relayer_certificate()
    client.transfer.side_effect = BlockchainError("reverted")

    with pytest.raises(BlockchainError):
        await CertificateService(client).transfer_certificate("b1", "cert_1")

    _, update = certificates.update_one.call_args[0]
    assert update["$set"]["status"] == "transfer_failed"
    assert update["$set"]["transfer_attempts"] == 1
    assert update["$set"]["next_transfer_attempt"] is not None
    failed = mock_notifications.notify_certificate_transfer_failed.call_args[0][1]
    assert failed["transfer_error"] == "reverted"


@pytest.mark.asyncio
async def test_batch_transfer_collects_failures(certificates, mock_brand_service, mock_notifications, client):
    certificates.find_one.side_effect = [_relayer_certificate(), None]

    result = await CertificateService(client).batch_transfer("b1", ["cert_1", "cert_missing"])

    assert result["total"] == 2
    assert result["transferred"] == [{"certificate_id": "cert_1", "transaction_hash": "0xtransfer"}]
    assert result["failed"][0]["certificate_id"] == "cert_missing"
    assert result["failed"][0]["code"] == "not_found"


@pytest.mark.asyncio
async def test_retry_skips_exhausted_certificates(certificates, mock_brand_service, mock_notifications, client, fake_cursor):
    certificates.find.return_value = fake_cursor(
        [
            _relayer_certificate(status="transfer_failed", transfer_attempts=1),
            _relayer_certificate(certificate_id="cert_2", status="transfer_failed", transfer_attempts=3),
        ]
    )
    certificates.find_one.return_value = _relayer_certificate(status="transfer_failed", transfer_attempts=1)

    result = await CertificateService(client).retry_failed_transfers()

    assert result == {"processed": 1, "succeeded": 1, "failed": 0}


@pytest.mark.asyncio
async def test_exhausted_certificates_do_not_fill_the_retry_batch(
    certificates, mock_brand_service, mock_notifications, client, fake_cursor
):
    exhausted = [
        _relayer_certificate(certificate_id=f"cert_x{i}", status="transfer_failed", transfer_attempts=3)
        for i in range(10)
    ]
    retryable = _relayer_certificate(certificate_id="cert_r", status="transfer_failed", transfer_attempts=1)

    def find(query, *args, **kwargs):
        documents = exhausted + [retryable]
        if "$expr" in query:
            documents = [d for d in documents if d["transfer_attempts"] < d["max_transfer_attempts"]]
        return fake_cursor(documents)

    certificates.find.side_effect = find
    certificates.find_one.return_value = retryable

    result = await CertificateService(client).retry_failed_transfers(limit=10)

    assert result == {"processed": 1, "succeeded": 1, "failed": 0}
    query = certificates.find.call_args[0][0]
    assert query["$expr"] == {
        "$lt": [{"$ifNull": ["$transfer_attempts", 0]}, {"$ifNull": ["$max_transfer_attempts", 3]}]
    }
    client.transfer.assert_awaited_once_with(CONTRACT, "7", RELAYER, BRAND_WALLET)


@pytest.mark.asyncio
async def test_process_pending_transfers(certificates, mock_brand_service, mock_notifications, client, fake_cursor):
    pending = _relayer_certificate(status="pending_transfer")
    certificates.find.return_value = fake_cursor([pending])
    certificates.find_one.return_value = pending

    result = await CertificateService(client).process_pending_transfers()

    assert result == {"processed": 1, "succeeded": 1, "failed": 0}
    query = certificates.find.call_args[0][0]
    assert query["status"] == "pending_transfer"
    assert "$lte" in query["next_transfer_attempt"]
    _, update = certificates.update_one.call_args[0]
    assert update["$set"]["status"] == "transferred"


@pytest.mark.asyncio
async def test_scheduled_transfer_without_wallet_is_recorded(
    certificates, mock_brand_service, mock_notifications, client, fake_cursor
):
    pending = _relayer_certificate(status="pending_transfer")
    certificates.find.return_value = fake_cursor([pending])
    certificates.find_one.return_value = pending
    mock_brand_service.get_settings.return_value = {"certificate_wallet": None}

    result = await CertificateService(client).process_pending_transfers()

    assert result == {"processed": 1, "succeeded": 0, "failed": 1}
    _, update = certificates.update_one.call_args[0]
    assert update["$set"]["status"] == "transfer_failed"
    assert update["$set"]["transfer_attempts"] == 1
    assert "certificate wallet" in update["$set"]["transfer_error"]
    client.transfer.assert_not_called()


@pytest.mark.asyncio
async def test_scheduled_transfer_after_relayer_lost_token_is_recorded(
    certificates, mock_brand_service, mock_notifications, client, fake_cursor
):
    failed = _relayer_certificate(status="transfer_failed", transfer_attempts=2)
    certificates.find.return_value = fake_cursor([failed])
    certificates.find_one.return_value = failed
    client.owner_of.side_effect = ["0x" + "e" * 40]

    result = await CertificateService(client).retry_failed_transfers()

    assert result["failed"] == 1
    _, update = certificates.update_one.call_args[0]
    assert update["$set"]["transfer_attempts"] == 3
    # Last allowed attempt: nothing further is scheduled
    assert update["$set"]["next_transfer_attempt"] is None


@pytest.mark.asyncio
async def test_manual_transfer_without_wallet_leaves_certificate_untouched(
    certificates, mock_brand_service, mock_notifications, client
):
    certificates.find_one.return_value = _relayer_certificate()
    mock_brand_service.get_settings.return_value = {"certificate_wallet": None}

    with pytest.raises(ValidationError):
        await CertificateService(client).transfer_certificate("b1", "cert_1")
    certificates.update_one.assert_not_called()


@pytest.mark.asyncio
async def test_revoke_burns_relayer_token(certificates, client):
    certificates.find_one.return_value = _relayer_certificate()

    certificate = await CertificateService(client).revoke_certificate("b1", "cert_1", "counterfeit batch")

    client.burn.assert_awaited_once_with(CONTRACT, "7")
    assert certificate["ownership_status"] == "revoked"
    assert certificate["revocation_tx_hash"] == "0xburn"


@pytest.mark.asyncio
async def test_revoke_brand_owned_without_burn(certificates, client):
    certificates.find_one.return_value = _relayer_certificate(status="transferred", transferred_to_brand=True)

    certificate = await CertificateService(client).revoke_certificate("b1", "cert_1", "recalled")

    client.burn.assert_not_called()
    assert certificate["revoked"] is True


@pytest.mark.asyncio
async def test_revoke_twice(certificates, client):
    certificates.find_one.return_value = _relayer_certificate(revoked=True, status="revoked")

    with pytest.raises(ConflictError):
        await CertificateService(client).revoke_certificate("b1", "cert_1", "again")


@pytest.mark.asyncio
async def test_verify_relayer_held_certificate(certificates, mock_brand_service, client):
    certificates.find_one.return_value = _relayer_certificate(
        certificate_data={"valid_until": (datetime.now(timezone.utc) + timedelta(days=30)).isoformat()}
    )
    client.owner_of.side_effect = [RELAYER.upper().replace("0X", "0x")]

    result = await CertificateService(client).verify_certificate(CONTRACT, "7")

    assert result["on_chain_verified"] is True
    assert result["is_valid"] is True
    _, update = certificates.update_one.call_args[0]
    assert update["$inc"] == {"view_count": 1}


@pytest.mark.asyncio
async def test_verify_expired_certificate_survives_chain_outage(certificates, mock_brand_service, client):
    certificates.find_one.return_value = _relayer_certificate(certificate_data={"valid_until": "2020-01-01T00:00:00Z"})
    client.owner_of.side_effect = BlockchainError("timeout")

    result = await CertificateService(client).verify_certificate(CONTRACT, "7")

    assert result["on_chain_owner"] is None
    assert result["on_chain_verified"] is False
    assert result["is_valid"] is False


@pytest.mark.asyncio
async def test_verify_unknown_certificate(certificates, client):
    certificates.find_one.return_value = None

    with pytest.raises(NotFoundError):
        await CertificateService(client).verify_certificate(CONTRACT, "999")


@pytest.mark.asyncio
async def test_certificate_listing_by_ownership(certificates, client, fake_cursor):
    certificates.find.return_value = fake_cursor([_relayer_certificate()])
    certificates.count_documents.return_value = 1

    result = await CertificateService(client).get_certificates("b1", ownership="relayer")

    query = certificates.find.call_args[0][0]
    assert query["minted_to_relayer"] is True
    assert query["transferred_to_brand"] == {"$ne": True}
    assert result["certificates"][0]["ownership_status"] == "relayer"


@pytest.mark.asyncio
async def test_transfer_analytics(certificates, client):
    async def rows():
        for row in (
            {"_id": "transferred", "count": 6},
            {"_id": "transfer_failed", "count": 2},
            {"_id": "minted", "count": 1},
            {"_id": "failed", "count": 1},
        ):
            yield row

    certificates.aggregate = MagicMock(return_value=rows())

    analytics = await CertificateService(client).get_transfer_analytics("b1")

    assert analytics["total"] == 10
    assert analytics["minted"] == 9
    assert analytics["relayer_held"] == 3
    assert analytics["success_rate"] == 75.0


@pytest.mark.asyncio
async def test_supply_chain_event(certificates, mock_brand_service, client):
    from brandlink.models.certificate_models import SupplyChainEventRequest

    event = await CertificateService(client).log_supply_chain_event(
        "b1", SupplyChainEventRequest(product_id="sku-1", event_type="shipped", location="Porto")
    )

    client.log_supply_chain_event.assert_awaited_once_with(CONTRACT, "sku-1", "shipped", "Porto", {})
    assert event["event_id"].startswith("sce_")
    assert event["transaction_hash"] == "0xevent"
