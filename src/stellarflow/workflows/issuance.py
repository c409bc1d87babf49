"""Asset issuance workflow.

Issues a new asset, locks its issuer, seeds a constant-product pool
against the native asset and swaps into it:

    issuer --payment--> holder --deposit--> pool <--path payment-- trader

Every transaction step reloads its source account first.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from stellar_sdk import (
    ChangeTrust,
    LiquidityPoolDeposit,
    PathPaymentStrictSend,
    Payment,
    SetOptions,
)
from stellar_sdk.operation.operation import Operation

from stellarflow.assets import NATIVE, AssetDescriptor, LiquidityPoolDescriptor
from stellarflow.balances import summarize_balances
from stellarflow.config import TESTNET_EXPLORER_URL
from stellarflow.events import EventLog
from stellarflow.identity import Identity
from stellarflow.ledger.base import Faucet, LedgerGateway, SubmissionReceipt
from stellarflow.ledger.loader import AccountLoader
from stellarflow.ledger.step import TransactionStep
from stellarflow.workflows.base import Workflow

logger = logging.getLogger(__name__)


@dataclass
class IssuanceParams:
    asset_code: str = "PLTA"
    supply: Decimal = Decimal("1000000")
    pool_fee_bps: int = 30
    deposit_native: Decimal = Decimal("1000")
    deposit_asset: Decimal = Decimal("500000")
    min_price: Decimal = Decimal("0.0001")
    max_price: Decimal = Decimal("10000")
    trader_trust_limit: Decimal = Decimal("1000000000")
    swap_amount: Decimal = Decimal("100")
    swap_dest_min: Decimal = Decimal("1")
    timeout_seconds: int = 30


class AssetIssuanceWorkflow(Workflow):
    """Issue an asset, lock the issuer, seed a pool and swap through it."""

    name = "asset_issuance"

    def __init__(
        self,
        ledger: LedgerGateway,
        faucet: Faucet,
        loader: AccountLoader,
        step: TransactionStep,
        params: Optional[IssuanceParams] = None,
        events: Optional[EventLog] = None,
        explorer_url: str = TESTNET_EXPLORER_URL,
        stablecoin_code: str = "USDC",
    ):
        super().__init__(events)
        self.ledger = ledger
        self.faucet = faucet
        self.loader = loader
        self.step = step
        self.params = params or IssuanceParams()
        self.explorer_url = explorer_url.rstrip("/")
        self.stablecoin_code = stablecoin_code

        self.issuer: Optional[Identity] = None
        self.holder: Optional[Identity] = None
        self.trader: Optional[Identity] = None
        self.asset: Optional[AssetDescriptor] = None
        self.pool: Optional[LiquidityPoolDescriptor] = None

    async def execute(self) -> dict:
        logger.info(
            f"Issuing {self.params.asset_code} on {type(self.ledger).__name__} "
            f"(faucet: {self.faucet.name})"
        )
        await self.run_step("create_identities", self._create_identities)
        await self.run_step("fund_accounts", self._fund_accounts)
        await self.run_step("define_asset", self._define_asset)
        await self.run_step("holder_trustline", self._holder_trustline)
        await self.run_step("issue_supply", self._issue_supply)
        await self.run_step("lock_issuer", self._lock_issuer)
        await self.run_step("pool_trustline", self._pool_trustline)
        await self.run_step("pool_deposit", self._pool_deposit)
        await self.run_step("trader_trustline", self._trader_trustline)
        swap = await self.run_step("swap", self._swap)
        return self._summary(swap)

    async def _submit(self, identity: Identity, operations: list[Operation]) -> SubmissionReceipt:
        state = await self.loader.load_account(identity.public_key)
        return await self.step.build_and_submit(
            state, identity, operations, timeout_seconds=self.params.timeout_seconds
        )

    # ======================
    # Steps
    # ======================

    async def _create_identities(self) -> dict:
        self.issuer = Identity.generate("issuer")
        self.holder = Identity.generate("holder")
        self.trader = Identity.generate("trader")
        return {i.label: i.public_key for i in (self.issuer, self.holder, self.trader)}

    async def _fund_accounts(self) -> dict:
        identities = (self.issuer, self.holder, self.trader)
        for identity in identities:
            logger.info(f"Funding {identity} via {self.faucet.name}")
            await self.faucet.fund(identity.public_key)

        balances = {}
        for identity in identities:
            state = await self.loader.load_account(identity.public_key)
            balances[identity.label] = str(state.native_balance)
        return {"faucet": self.faucet.name, "native_balances": balances}

    async def _define_asset(self) -> dict:
        self.asset = AssetDescriptor(self.params.asset_code, self.issuer.public_key)
        return {"asset": str(self.asset), "asset_type": self.asset.asset_type}

    async def _holder_trustline(self) -> dict:
        receipt = await self._submit(self.holder, [ChangeTrust(self.asset.to_sdk())])
        return {"tx_hash": receipt.tx_hash, "asset": str(self.asset)}

    async def _issue_supply(self) -> dict:
        payment = Payment(
            destination=self.holder.public_key,
            asset=self.asset.to_sdk(),
            amount=str(self.params.supply),
        )
        receipt = await self._submit(self.issuer, [payment])
        return {"tx_hash": receipt.tx_hash, "amount": str(self.params.supply)}

    async def _lock_issuer(self) -> dict:
        # Master weight 0 with all thresholds at 1: the issuer can never sign again
        lock = SetOptions(master_weight=0, low_threshold=1, med_threshold=1, high_threshold=1)
        receipt = await self._submit(self.issuer, [lock])

        holder_state = await self.loader.load_account(self.holder.public_key)
        return {
            "tx_hash": receipt.tx_hash,
            "holder_balance": str(holder_state.balance_of(self.asset)),
            "holder_native": str(holder_state.native_balance),
        }

    async def _pool_trustline(self) -> dict:
        self.pool = LiquidityPoolDescriptor.for_pair(NATIVE, self.asset, self.params.pool_fee_bps)
        receipt = await self._submit(self.holder, [ChangeTrust(self.pool.to_sdk())])
        return {"tx_hash": receipt.tx_hash, "pool_id": self.pool.pool_id}

    async def _pool_deposit(self) -> dict:
        amounts = {NATIVE: self.params.deposit_native, self.asset: self.params.deposit_asset}
        deposit = LiquidityPoolDeposit(
            liquidity_pool_id=self.pool.pool_id,
            max_amount_a=str(amounts[self.pool.asset_a]),
            max_amount_b=str(amounts[self.pool.asset_b]),
            min_price=str(self.params.min_price),
            max_price=str(self.params.max_price),
        )
        receipt = await self._submit(self.holder, [deposit])

        holder_state = await self.loader.load_account(self.holder.public_key)
        return {
            "tx_hash": receipt.tx_hash,
            "pool_id": self.pool.pool_id,
            "pool_shares": str(holder_state.pool_shares(self.pool.pool_id)),
        }

    async def _trader_trustline(self) -> dict:
        trust = ChangeTrust(self.asset.to_sdk(), limit=str(self.params.trader_trust_limit))
        receipt = await self._submit(self.trader, [trust])
        return {"tx_hash": receipt.tx_hash, "limit": str(self.params.trader_trust_limit)}

    async def _swap(self) -> dict:
        swap = PathPaymentStrictSend(
            destination=self.trader.public_key,
            send_asset=NATIVE.to_sdk(),
            send_amount=str(self.params.swap_amount),
            dest_asset=self.asset.to_sdk(),
            dest_min=str(self.params.swap_dest_min),
            path=[],
        )
        receipt = await self._submit(self.trader, [swap])

        trader_state = await self.loader.load_account(self.trader.public_key)
        balances = summarize_balances(trader_state, self.stablecoin_code)
        return {
            "tx_hash": receipt.tx_hash,
            "sent": str(self.params.swap_amount),
            "received": str(trader_state.balance_of(self.asset)),
            "trader_balances": balances.to_dict(),
        }

    def _summary(self, swap: dict) -> dict:
        pool_deposit = self._result.step("pool_deposit").detail
        return {
            "asset": str(self.asset),
            "pool_id": self.pool.pool_id,
            "accounts": {
                "issuer": self.issuer.public_key,
                "holder": self.holder.public_key,
                "trader": self.trader.public_key,
            },
            "holder_pool_shares": pool_deposit["pool_shares"],
            "trader_balances": swap["trader_balances"],
            "explorer": f"{self.explorer_url}/asset/{self.asset.code}-{self.asset.issuer}",
        }
