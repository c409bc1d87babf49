"""DeFindex REST API client.

API docs: https://docs.defindex.io
"""

import logging
from typing import Optional

import httpx

from stellarflow.ledger.base import GatewayUnavailable, SubmissionRejected
from stellarflow.ledger.horizon import response_payload
from stellarflow.vault.base import VaultGateway
from stellarflow.vault.contracts import (
    UnsignedEnvelope,
    VaultConfig,
    VaultDepositRequest,
    VaultTransactionResult,
)

logger = logging.getLogger(__name__)

DEFINDEX_API_URL = "https://api.defindex.io"


class DefindexClient(VaultGateway):
    """Vault gateway backed by the DeFindex API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFINDEX_API_URL,
        network: str = "testnet",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.network = network
        self.timeout = timeout
        self._client = client

    @property
    def name(self) -> str:
        return f"DeFindex ({self.network})"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _post(self, path: str, body: dict) -> dict:
        client = await self._get_client()
        url = f"{self.base_url}{path}"

        try:
            response = await client.post(
                url,
                params={"network": self.network},
                json=body,
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            raise GatewayUnavailable(f"DeFindex unreachable ({path}): {e}", {"url": url}) from e

        payload = response_payload(response)
        if response.status_code in (200, 201):
            return payload

        if 400 <= response.status_code < 500 and response.status_code != 429:
            logger.warning(f"DeFindex rejected {path}: {payload.get('message', payload)}")
            raise SubmissionRejected(
                f"DeFindex rejected {path}: {payload.get('message', response.status_code)}",
                payload,
            )
        raise GatewayUnavailable(f"DeFindex returned {response.status_code} for {path}", payload)

    def _envelope(self, data: dict, path: str) -> UnsignedEnvelope:
        xdr = data.get("xdr")
        if not xdr:
            raise SubmissionRejected(f"DeFindex returned no transaction for {path}", data)
        return UnsignedEnvelope(xdr=xdr, raw=data)

    async def create_vault_with_deposit(self, config: VaultConfig) -> UnsignedEnvelope:
        path = "/factory/create-vault-deposit"
        logger.info(f"Building vault creation transaction for {config.name_symbol.name}...")
        data = await self._post(path, config.to_payload())
        return self._envelope(data, path)

    async def deposit_to_vault(
        self, vault_address: str, request: VaultDepositRequest
    ) -> UnsignedEnvelope:
        path = f"/vault/{vault_address}/deposit"
        logger.info(f"Building deposit transaction into {vault_address}...")
        data = await self._post(path, request.to_payload())
        return self._envelope(data, path)

    async def send_transaction(self, signed_xdr: str) -> VaultTransactionResult:
        data = await self._post("/send", {"xdr": signed_xdr, "launchtube": False})
        result = VaultTransactionResult.from_api(data)
        logger.info(f"DeFindex accepted tx {result.tx_hash} (status {result.status})")
        return result

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
