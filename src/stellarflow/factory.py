"""Gateway factory.

One explicit set of gateway clients is built per process and handed to
the workflows. Mode is selected by the DRY_RUN setting:
- dry run (default): in-memory ledger and vault gateway, no network
- live: Horizon, Friendbot, Soroban RPC airdrop and the DeFindex API
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from stellarflow.config import Settings, get_settings
from stellarflow.events import EventLog
from stellarflow.ledger.base import Faucet, LedgerGateway
from stellarflow.ledger.faucet import FriendbotFaucet, SorobanAirdropFaucet
from stellarflow.ledger.horizon import HorizonGateway
from stellarflow.ledger.loader import AccountLoader
from stellarflow.ledger.simulated import SimulatedLedger
from stellarflow.ledger.step import TransactionStep
from stellarflow.vault.base import VaultGateway
from stellarflow.vault.defindex import DefindexClient
from stellarflow.vault.simulated import SimulatedVaultGateway
from stellarflow.workflows import (
    AssetIssuanceWorkflow,
    IssuanceParams,
    VaultParams,
    VaultWorkflow,
)

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class Gateways:
    """Gateway clients shared by every workflow in one process."""

    ledger: LedgerGateway
    issuance_faucet: Faucet
    airdrop_faucet: Faucet
    vault: VaultGateway
    loader: AccountLoader
    step: TransactionStep
    dry_run: bool

    async def aclose(self) -> None:
        """Close every distinct client exactly once."""
        closed: list[object] = []
        for gateway in (self.ledger, self.issuance_faucet, self.airdrop_faucet, self.vault):
            if any(gateway is c for c in closed):
                continue
            closed.append(gateway)
            await gateway.aclose()


def create_gateways(
    settings: Optional[Settings] = None,
    dry_run: Optional[bool] = None,
    sleep: Sleep = asyncio.sleep,
) -> Gateways:
    """Build the gateway set for the configured mode.

    Args:
        settings: Defaults to the cached application settings
        dry_run: Overrides ``settings.dry_run`` when given
        sleep: Used by the account loader between retries
    """
    settings = settings or get_settings()
    dry_run = settings.dry_run if dry_run is None else dry_run

    if dry_run:
        simulated = SimulatedLedger(settings.network_passphrase)
        ledger: LedgerGateway = simulated
        issuance_faucet: Faucet = simulated
        airdrop_faucet: Faucet = simulated
        vault: VaultGateway = SimulatedVaultGateway(simulated, settings.network_passphrase)
        logger.info("Using simulated ledger and vault gateway (dry run)")
    else:
        timeout = settings.http_timeout_seconds
        ledger = HorizonGateway(settings.horizon_url, timeout=timeout)
        issuance_faucet = FriendbotFaucet(settings.friendbot_url, timeout=timeout)
        airdrop_faucet = SorobanAirdropFaucet(settings.soroban_rpc_url, timeout=timeout)
        vault = DefindexClient(
            api_key=settings.defindex_api_key,
            base_url=settings.defindex_api_url,
            network=settings.defindex_network,
            timeout=timeout,
        )
        if not settings.defindex_api_key:
            logger.warning("DEFINDEX_API_KEY not set - vault requests may be refused")
        logger.info(f"Using Horizon at {settings.horizon_url}")

    loader = AccountLoader(
        ledger,
        max_retries=settings.load_max_retries,
        base_delay_ms=settings.load_retry_delay_ms,
        sleep=sleep,
    )
    step = TransactionStep(ledger, settings.network_passphrase, base_fee=settings.base_fee)
    return Gateways(
        ledger=ledger,
        issuance_faucet=issuance_faucet,
        airdrop_faucet=airdrop_faucet,
        vault=vault,
        loader=loader,
        step=step,
        dry_run=dry_run,
    )


def build_issuance_workflow(
    gateways: Gateways,
    settings: Optional[Settings] = None,
    params: Optional[IssuanceParams] = None,
    events: Optional[EventLog] = None,
) -> AssetIssuanceWorkflow:
    settings = settings or get_settings()
    params = params or IssuanceParams(timeout_seconds=settings.tx_timeout_seconds)
    return AssetIssuanceWorkflow(
        gateways.ledger,
        gateways.issuance_faucet,
        gateways.loader,
        gateways.step,
        params=params,
        events=events,
        explorer_url=settings.explorer_url,
        stablecoin_code=settings.stablecoin_code,
    )


def build_vault_workflow(
    gateways: Gateways,
    settings: Optional[Settings] = None,
    params: Optional[VaultParams] = None,
    events: Optional[EventLog] = None,
    sleep: Sleep = asyncio.sleep,
) -> VaultWorkflow:
    settings = settings or get_settings()
    params = params or VaultParams(settle_delay_seconds=settings.vault_settle_delay_seconds)
    return VaultWorkflow(
        gateways.vault,
        gateways.airdrop_faucet,
        gateways.loader,
        settings.network_passphrase,
        params=params,
        sleep=sleep,
        events=events,
    )
