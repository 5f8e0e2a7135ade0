"""
HTTP client for the external blockchain service.

The blockchain service owns the relayer wallet and signs transactions; this
process only orchestrates. Every call goes through one pooled `httpx.AsyncClient`.

Errors:
    - Transport failures and 5xx responses raise `BlockchainError` (502).
    - 4xx responses raise `BlockchainError` carrying the service's status code.
"""

import asyncio
from typing import Any, Dict, List, Optional

import httpx

from brandlink.config import settings
from brandlink.managers.logging_manager import get_logger
from brandlink.utils.errors import BlockchainError

logger = get_logger(prefix="[Blockchain]")


class BlockchainClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        api_key: Optional[str] = None,
        pool_size: int = 10,
    ):
        self.base_url = (base_url or settings.BLOCKCHAIN_SERVICE_URL).rstrip("/")
        self.timeout = timeout or settings.BLOCKCHAIN_TIMEOUT_SECONDS
        if api_key is None and settings.BLOCKCHAIN_API_KEY is not None:
            api_key = settings.BLOCKCHAIN_API_KEY.get_secret_value()
        self.api_key = api_key
        self.pool_size = pool_size
        self._client: Optional[httpx.AsyncClient] = None
        self._lock = asyncio.Lock()

    async def get_client(self) -> httpx.AsyncClient:
        async with self._lock:
            if self._client is None or self._client.is_closed:
                headers = {"Accept": "application/json"}
                if self.api_key:
                    headers["Authorization"] = f"Bearer {self.api_key}"
                self._client = httpx.AsyncClient(
                    base_url=self.base_url,
                    timeout=self.timeout,
                    headers=headers,
                    limits=httpx.Limits(max_keepalive_connections=self.pool_size, max_connections=self.pool_size),
                )
                logger.debug("Created blockchain client for %s", self.base_url)
            return self._client

    async def close(self) -> None:
        async with self._lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        client = await self.get_client()
        try:
            response = await client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.error("Blockchain service %s %s failed: %s", method, path, e)
            raise BlockchainError("Blockchain service is unavailable", details={"path": path}) from e

        if response.is_success:
            return response.json() if response.content else {}

        try:
            body = response.json()
        except ValueError:
            body = None
        message = response.text
        if isinstance(body, dict):
            message = body.get("error") or body.get("message") or response.text
        status_code = response.status_code if 400 <= response.status_code < 500 else 502
        logger.warning("Blockchain service %s %s returned %d: %s", method, path, response.status_code, message)
        raise BlockchainError(
            f"Blockchain service error: {message}",
            status_code=status_code,
            details={"path": path, "upstream_status": response.status_code},
        )

    # ------------------------------------------------------------------
    # NFT contracts
    # ------------------------------------------------------------------

    async def deploy_contract(self, name: str, symbol: str, base_uri: str, owner: str) -> Dict[str, Any]:
        """Returns `contract_address`, `transaction_hash`, `block_number`, `gas_used`."""
        return await self._request(
            "POST",
            "/nft/contracts",
            json={"name": name, "symbol": symbol, "base_uri": base_uri, "owner": owner, "network": settings.BLOCKCHAIN_NETWORK},
        )

    async def mint(self, contract_address: str, to: str, token_uri: str) -> Dict[str, Any]:
        """Returns `token_id`, `transaction_hash`, `block_number`, `gas_used`, `gas_price`."""
        return await self._request(
            "POST", "/nft/mint", json={"contract_address": contract_address, "to": to, "token_uri": token_uri}
        )

    async def transfer(self, contract_address: str, token_id: str, from_address: str, to_address: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/nft/transfer",
            json={
                "contract_address": contract_address,
                "token_id": str(token_id),
                "from": from_address,
                "to": to_address,
            },
        )

    async def burn(self, contract_address: str, token_id: str) -> Dict[str, Any]:
        return await self._request(
            "POST", "/nft/burn", json={"contract_address": contract_address, "token_id": str(token_id)}
        )

    async def owner_of(self, contract_address: str, token_id: str) -> str:
        result = await self._request("GET", f"/nft/{contract_address}/{token_id}/owner")
        return result.get("owner", "")

    async def token_uri(self, contract_address: str, token_id: str) -> str:
        result = await self._request("GET", f"/nft/{contract_address}/{token_id}/uri")
        return result.get("token_uri", "")

    # ------------------------------------------------------------------
    # Supply chain
    # ------------------------------------------------------------------

    async def log_supply_chain_event(
        self, contract_address: str, product_id: str, event_type: str, location: str, details: Dict[str, Any]
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/supply-chain/events",
            json={
                "contract_address": contract_address,
                "product_id": product_id,
                "event_type": event_type,
                "location": location,
                "details": details,
            },
        )

    async def get_product_events(self, contract_address: str, product_id: str) -> List[Dict[str, Any]]:
        result = await self._request("GET", f"/supply-chain/{contract_address}/products/{product_id}/events")
        return result.get("events", [])

    async def health(self) -> bool:
        try:
            await self._request("GET", "/health")
            return True
        except BlockchainError:
            return False


blockchain_client = BlockchainClient()
