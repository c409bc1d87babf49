"""Horizon REST API gateway.

API docs: https://developers.stellar.org/docs/data/apis/horizon
"""

import logging
from typing import Optional

import httpx

from stellarflow.ledger.base import (
    AccountNotFound,
    AccountState,
    GatewayUnavailable,
    LedgerGateway,
    SubmissionReceipt,
    SubmissionRejected,
)

logger = logging.getLogger(__name__)

EFFECTS_PAGE_LIMIT = 200


def response_payload(response: httpx.Response) -> dict:
    """Decode a JSON body, falling back to the raw text."""
    try:
        data = response.json()
    except ValueError:
        return {"status": response.status_code, "body": response.text}
    if isinstance(data, dict):
        return data
    return {"status": response.status_code, "body": data}


class HorizonGateway(LedgerGateway):
    """Ledger gateway backed by a Horizon server."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def get_account(self, public_key: str) -> AccountState:
        client = await self._get_client()
        url = f"{self.base_url}/accounts/{public_key}"

        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            raise GatewayUnavailable(
                f"Horizon unreachable loading {public_key}: {e}", {"url": url}
            ) from e

        if response.status_code == 404:
            raise AccountNotFound(public_key, response_payload(response))
        if response.status_code != 200:
            raise GatewayUnavailable(
                f"Horizon returned {response.status_code} for {public_key}",
                response_payload(response),
            )
        return AccountState.from_horizon(response.json())

    async def submit_transaction(self, envelope_xdr: str) -> SubmissionReceipt:
        client = await self._get_client()
        url = f"{self.base_url}/transactions"

        try:
            response = await client.post(url, data={"tx": envelope_xdr})
        except httpx.HTTPError as e:
            raise GatewayUnavailable(f"Horizon unreachable on submit: {e}", {"url": url}) from e

        if response.status_code == 200:
            receipt = SubmissionReceipt.from_horizon(response.json())
            try:
                receipt.effects = await self.get_effects(receipt.tx_hash)
            except GatewayUnavailable as e:
                # The transaction is applied; report it without effects
                logger.warning(f"Could not load effects for {receipt.tx_hash}: {e}")
            return receipt

        payload = response_payload(response)
        if 400 <= response.status_code < 500 and response.status_code != 429:
            codes = (payload.get("extras") or {}).get("result_codes")
            logger.warning(f"Horizon rejected transaction: {codes or payload.get('title')}")
            raise SubmissionRejected(
                f"Transaction rejected: {payload.get('title', response.status_code)}", payload
            )
        # 429, 5xx and 504 (submission timeout): outcome unknown, not a rejection
        raise GatewayUnavailable(
            f"Horizon returned {response.status_code} on submit", payload
        )

    async def get_effects(self, tx_hash: str) -> list[dict]:
        """Effects of an applied transaction, oldest first."""
        client = await self._get_client()
        url = f"{self.base_url}/transactions/{tx_hash}/effects"

        try:
            response = await client.get(url, params={"limit": EFFECTS_PAGE_LIMIT, "order": "asc"})
        except httpx.HTTPError as e:
            raise GatewayUnavailable(f"Horizon unreachable loading effects: {e}", {"url": url}) from e

        if response.status_code != 200:
            raise GatewayUnavailable(
                f"Horizon returned {response.status_code} for effects of {tx_hash}",
                response_payload(response),
            )
        return response.json().get("_embedded", {}).get("records", [])

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
