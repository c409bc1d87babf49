"""Vault creation and deposit workflow.

The vault gateway builds every transaction; this side only creates and
funds identities, signs the returned envelopes and sends them back.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from stellarflow.events import EventLog
from stellarflow.identity import Identity
from stellarflow.ledger.base import Faucet, SubmissionRejected
from stellarflow.ledger.loader import AccountLoader
from stellarflow.vault.base import VaultGateway
from stellarflow.vault.contracts import (
    NameSymbol,
    VaultAsset,
    VaultConfig,
    VaultDepositRequest,
    VaultRoles,
    VaultStrategy,
    VaultTransactionResult,
)
from stellarflow.workflows.base import Workflow, fund_and_load

logger = logging.getLogger(__name__)

# Testnet contracts
XLM_CONTRACT = "CDLZFC3SYJYDZT7K67VZ75HPJVIEUVNIXF47ZG2FB2RMQQVU2HHGCYSC"
XLM_STRATEGY_CONTRACT = "CCSPRGGUP32M23CTU7RUAGXDNOHSA6O2BS2IK4NVUP5X2JQXKTSIQJKE"
SOROSWAP_ROUTER_CONTRACT = "CCMAPXWVZD4USEKDWRYS7DA4Y3D7E2SDMGBFJUCEXTC7VN6CUBGWPFUS"


@dataclass
class VaultParams:
    asset_address: str = XLM_CONTRACT
    strategy_address: str = XLM_STRATEGY_CONTRACT
    strategy_name: str = "XLM Strategy"
    router_address: str = SOROSWAP_ROUTER_CONTRACT
    vault_name: str = "TestVault"
    vault_symbol: str = "TV"
    vault_fee_bps: int = 2000
    upgradable: bool = True
    initial_deposit: int = 100_000_000  # base units (10 XLM)
    deposit_amount: int = 10_000_000_000  # base units (1000 XLM)
    slippage_bps: int = 500
    invest: bool = False
    settle_delay_seconds: float = 1.0


class VaultWorkflow(Workflow):
    """Create a vault with an initial deposit, then deposit from a second account."""

    name = "vault"

    def __init__(
        self,
        vault: VaultGateway,
        faucet: Faucet,
        loader: AccountLoader,
        network_passphrase: str,
        params: Optional[VaultParams] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        events: Optional[EventLog] = None,
    ):
        super().__init__(events)
        self.vault = vault
        self.faucet = faucet
        self.loader = loader
        self.network_passphrase = network_passphrase
        self.params = params or VaultParams()
        self._sleep = sleep

        self.manager: Optional[Identity] = None
        self.depositor: Optional[Identity] = None
        self.config: Optional[VaultConfig] = None
        self.vault_address: Optional[str] = None

    async def execute(self) -> dict:
        logger.info(f"Running vault workflow against {self.vault.name}")
        await self.run_step("create_manager", self._create_manager)
        await self.run_step("fund_manager", self._fund_manager)
        await self.run_step("configure_vault", self._configure_vault)
        created = await self.run_step("create_vault", self._create_vault)
        await self.run_step("create_depositor", self._create_depositor)
        await self.run_step("fund_depositor", self._fund_depositor)
        deposit = await self.run_step("deposit", self._deposit)
        return {
            "vault_address": self.vault_address,
            "manager": self.manager.public_key,
            "depositor": self.depositor.public_key,
            "create_tx_hash": created["tx_hash"],
            "deposit_tx_hash": deposit["tx_hash"],
            "deposit_result": deposit["return_value"],
        }

    async def _sign_and_send(self, identity: Identity, envelope_xdr: str) -> VaultTransactionResult:
        signed = identity.sign_xdr(envelope_xdr, self.network_passphrase)
        return await self.vault.send_transaction(signed)

    # ======================
    # Steps
    # ======================

    async def _create_manager(self) -> dict:
        self.manager = Identity.generate("manager")
        return {"public_key": self.manager.public_key}

    async def _fund_manager(self) -> dict:
        state = await fund_and_load(self.faucet, self.loader, self.manager)
        return {"faucet": self.faucet.name, "native_balance": str(state.native_balance)}

    async def _configure_vault(self) -> dict:
        p = self.params
        self.config = VaultConfig(
            roles=VaultRoles.single(self.manager.public_key),
            vault_fee_bps=p.vault_fee_bps,
            assets=[
                VaultAsset(
                    address=p.asset_address,
                    strategies=[VaultStrategy(address=p.strategy_address, name=p.strategy_name)],
                )
            ],
            soroswap_router=p.router_address,
            name_symbol=NameSymbol(name=p.vault_name, symbol=p.vault_symbol),
            upgradable=p.upgradable,
            caller=self.manager.public_key,
            deposit_amounts=[p.initial_deposit],
        )
        return self.config.to_payload()

    async def _create_vault(self) -> dict:
        envelope = await self.vault.create_vault_with_deposit(self.config)
        result = await self._sign_and_send(self.manager, envelope.xdr)

        address = result.return_value
        if not isinstance(address, str) or not address:
            raise SubmissionRejected(
                f"Vault creation {result.tx_hash} returned no vault address", result.raw
            )
        self.vault_address = address
        logger.info(f"Vault created at {address}")
        return {"tx_hash": result.tx_hash, "status": result.status, "vault_address": address}

    async def _create_depositor(self) -> dict:
        self.depositor = Identity.generate("depositor")
        return {"public_key": self.depositor.public_key}

    async def _fund_depositor(self) -> dict:
        state = await fund_and_load(self.faucet, self.loader, self.depositor)
        return {"faucet": self.faucet.name, "native_balance": str(state.native_balance)}

    async def _deposit(self) -> dict:
        request = VaultDepositRequest(
            caller=self.depositor.public_key,
            amounts=[self.params.deposit_amount],
            slippage_bps=self.params.slippage_bps,
            invest=self.params.invest,
        )
        envelope = await self.vault.deposit_to_vault(self.vault_address, request)
        signed = self.depositor.sign_xdr(envelope.xdr, self.network_passphrase)

        await self._sleep(self.params.settle_delay_seconds)
        result = await self.vault.send_transaction(signed)
        return {
            "tx_hash": result.tx_hash,
            "status": result.status,
            "return_value": result.return_value,
        }
