"""Testnet funding: Friendbot and the Soroban RPC airdrop.

Both end at Friendbot; the airdrop variant discovers the Friendbot URL
through the RPC server's getNetwork method first.
"""

import logging
from typing import Optional

import httpx

from stellarflow.ledger.base import Faucet, GatewayUnavailable, SubmissionRejected
from stellarflow.ledger.horizon import response_payload

logger = logging.getLogger(__name__)

ALREADY_FUNDED_MARKERS = ("op_already_exists", "createAccountAlreadyExist")


def is_already_funded(payload: dict) -> bool:
    """Check a Friendbot rejection for the "account already exists" case."""
    text = str(payload)
    return any(marker in text for marker in ALREADY_FUNDED_MARKERS)


async def request_friendbot(client: httpx.AsyncClient, friendbot_url: str, public_key: str) -> None:
    """Ask Friendbot to create and fund ``public_key``."""
    try:
        response = await client.get(friendbot_url, params={"addr": public_key})
    except httpx.HTTPError as e:
        raise GatewayUnavailable(
            f"Friendbot unreachable for {public_key}: {e}", {"url": friendbot_url}
        ) from e

    if response.status_code == 200:
        return

    payload = response_payload(response)
    if response.status_code == 400 and is_already_funded(payload):
        logger.info(f"{public_key} already funded")
        return
    if 400 <= response.status_code < 500 and response.status_code != 429:
        raise SubmissionRejected(f"Friendbot refused to fund {public_key}", payload)
    raise GatewayUnavailable(f"Friendbot returned {response.status_code}", payload)


class FriendbotFaucet(Faucet):
    """Horizon-side Friendbot funding."""

    def __init__(
        self,
        friendbot_url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.friendbot_url = friendbot_url
        self.timeout = timeout
        self._client = client

    @property
    def name(self) -> str:
        return "friendbot"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def fund(self, public_key: str) -> None:
        client = await self._get_client()
        logger.info(f"Funding {public_key} with Friendbot...")
        await request_friendbot(client, self.friendbot_url, public_key)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class SorobanAirdropFaucet(Faucet):
    """Airdrop through the Soroban RPC server's advertised Friendbot."""

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._client = client
        self._friendbot_url: Optional[str] = None

    @property
    def name(self) -> str:
        return "soroban-airdrop"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def get_friendbot_url(self) -> str:
        """Resolve the Friendbot URL from getNetwork (cached per instance)."""
        if self._friendbot_url:
            return self._friendbot_url

        client = await self._get_client()
        try:
            response = await client.post(
                self.rpc_url,
                json={"jsonrpc": "2.0", "id": 1, "method": "getNetwork"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise GatewayUnavailable(f"Soroban RPC getNetwork failed: {e}", {"url": self.rpc_url}) from e

        data = response_payload(response)
        if "error" in data:
            raise SubmissionRejected("Soroban RPC getNetwork returned an error", data)

        friendbot_url = (data.get("result") or {}).get("friendbotUrl")
        if not friendbot_url:
            raise SubmissionRejected("Network has no friendbot; airdrop unavailable", data)
        self._friendbot_url = friendbot_url
        return friendbot_url

    async def fund(self, public_key: str) -> None:
        friendbot_url = await self.get_friendbot_url()
        client = await self._get_client()
        logger.info(f"Requesting airdrop for {public_key}...")
        await request_friendbot(client, friendbot_url, public_key)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
