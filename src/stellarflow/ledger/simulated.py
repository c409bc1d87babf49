"""Simulated in-memory ledger for dry-run mode and tests.

Models just enough ledger behaviour to exercise the orchestrator the way
the testnet would: sequence numbers, master-key signatures and
thresholds, trust lines and limits, issuance, constant-product pool
deposits and strict-send path payments. Rejections use the same payload
shape Horizon returns, so callers cannot tell the two apart.

NOT a ledger implementation: no reserves, no order book, no multi-signer
accounts.
"""

import copy
import logging
import time
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal
from typing import Callable, Optional

from stellar_sdk import (
    ChangeTrust,
    Keypair,
    LiquidityPoolAsset,
    LiquidityPoolDeposit,
    ManageData,
    PathPaymentStrictSend,
    Payment,
    SetOptions,
    StrKey,
    TransactionEnvelope,
)
from stellar_sdk.exceptions import BadSignatureError

from stellarflow.assets import AssetDescriptor, LiquidityPoolDescriptor
from stellarflow.ledger.base import (
    AccountNotFound,
    AccountState,
    Balance,
    Faucet,
    LedgerGateway,
    SubmissionReceipt,
    SubmissionRejected,
)

logger = logging.getLogger(__name__)

STROOP = Decimal("0.0000001")
MAX_TRUST_LIMIT = Decimal("922337203685.4775807")
STARTING_BALANCE = Decimal("10000")
MIN_BASE_FEE = 100

LOW, MEDIUM, HIGH = 0, 1, 2


def quantize(amount: Decimal) -> Decimal:
    """Round down to the ledger's 7 decimal places."""
    return amount.quantize(STROOP, rounding=ROUND_DOWN)


class OperationFailed(Exception):
    """An operation failed with a ledger result code."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


@dataclass
class SimulatedTrustline:
    balance: Decimal
    limit: Decimal
    asset: Optional[AssetDescriptor] = None
    pool_id: Optional[str] = None


@dataclass
class SimulatedAccount:
    account_id: str
    sequence: int
    native: Decimal
    trustlines: dict[str, SimulatedTrustline] = field(default_factory=dict)
    master_weight: int = 1
    thresholds: list[int] = field(default_factory=lambda: [0, 0, 0])
    data: dict[str, bytes] = field(default_factory=dict)

    def to_state(self) -> AccountState:
        balances = []
        for line in self.trustlines.values():
            if line.pool_id:
                balances.append(
                    Balance(
                        asset_type="liquidity_pool_shares",
                        balance=line.balance,
                        liquidity_pool_id=line.pool_id,
                        limit=line.limit,
                    )
                )
            else:
                balances.append(
                    Balance(
                        asset_type=line.asset.asset_type,
                        balance=line.balance,
                        asset_code=line.asset.code,
                        asset_issuer=line.asset.issuer,
                        limit=line.limit,
                    )
                )
        # Horizon lists the native balance last
        balances.append(Balance(asset_type="native", balance=self.native))
        return AccountState(
            account_id=self.account_id,
            sequence=self.sequence,
            balances=tuple(balances),
            master_weight=self.master_weight,
            thresholds=tuple(self.thresholds),
        )


@dataclass
class SimulatedPool:
    descriptor: LiquidityPoolDescriptor
    reserve_a: Decimal = Decimal("0")
    reserve_b: Decimal = Decimal("0")
    total_shares: Decimal = Decimal("0")

    def reserves(self, asset: AssetDescriptor) -> tuple[Decimal, Decimal]:
        """(reserve of ``asset``, reserve of the counter asset)."""
        if asset == self.descriptor.asset_a:
            return self.reserve_a, self.reserve_b
        return self.reserve_b, self.reserve_a

    def apply_swap(self, asset_in: AssetDescriptor, amount_in: Decimal, amount_out: Decimal) -> None:
        if asset_in == self.descriptor.asset_a:
            self.reserve_a += amount_in
            self.reserve_b -= amount_out
        else:
            self.reserve_b += amount_in
            self.reserve_a -= amount_out


def trustline_key(asset: AssetDescriptor) -> str:
    return str(asset)


def pool_key(pool_id: str) -> str:
    return f"pool:{pool_id}"


def operation_threshold(op) -> int:
    if isinstance(op, SetOptions):
        return HIGH
    return MEDIUM


class _Apply:
    """Applies operations to working copies of ledger state."""

    def __init__(self, accounts: dict, pools: dict, source_id: str):
        self.accounts: dict[str, SimulatedAccount] = accounts
        self.pools: dict[str, SimulatedPool] = pools
        self.source_id = source_id
        self.effects: list[dict] = []

    @property
    def source(self) -> SimulatedAccount:
        return self.accounts[self.source_id]

    def debit(self, account: SimulatedAccount, asset: AssetDescriptor, amount: Decimal) -> None:
        if asset.is_native:
            if account.native < amount:
                raise OperationFailed("op_underfunded")
            account.native -= amount
        elif asset.issuer != account.account_id:
            line = account.trustlines.get(trustline_key(asset))
            if line is None:
                raise OperationFailed("op_src_no_trust")
            if line.balance < amount:
                raise OperationFailed("op_underfunded")
            line.balance -= amount
        self.effects.append(
            {"type": "account_debited", "account": account.account_id,
             "asset": str(asset), "amount": str(amount)}
        )

    def credit(self, account: SimulatedAccount, asset: AssetDescriptor, amount: Decimal) -> None:
        if asset.is_native:
            account.native += amount
        elif asset.issuer != account.account_id:
            line = account.trustlines.get(trustline_key(asset))
            if line is None:
                raise OperationFailed("op_no_trust")
            if line.balance + amount > line.limit:
                raise OperationFailed("op_line_full")
            line.balance += amount
        self.effects.append(
            {"type": "account_credited", "account": account.account_id,
             "asset": str(asset), "amount": str(amount)}
        )

    def apply(self, op) -> None:
        if op.source is not None and op.source.account_id != self.source_id:
            raise OperationFailed("op_bad_auth")

        if isinstance(op, ChangeTrust):
            self.change_trust(op)
        elif isinstance(op, Payment):
            self.payment(op)
        elif isinstance(op, SetOptions):
            self.set_options(op)
        elif isinstance(op, LiquidityPoolDeposit):
            self.pool_deposit(op)
        elif isinstance(op, PathPaymentStrictSend):
            self.path_payment_strict_send(op)
        elif isinstance(op, ManageData):
            self.manage_data(op)
        else:
            raise OperationFailed("op_not_supported")

    # ----------------------------------------------------------------------

    def change_trust(self, op: ChangeTrust) -> None:
        limit = MAX_TRUST_LIMIT if op.limit is None else Decimal(op.limit)
        account = self.source

        if isinstance(op.asset, LiquidityPoolAsset):
            descriptor = LiquidityPoolDescriptor.from_sdk(op.asset)
            for asset in (descriptor.asset_a, descriptor.asset_b):
                if not asset.is_native and trustline_key(asset) not in account.trustlines:
                    raise OperationFailed("op_trust_line_missing")
            pool_id = descriptor.pool_id
            key = pool_key(pool_id)
            self.pools.setdefault(pool_id, SimulatedPool(descriptor))
            new_line = SimulatedTrustline(Decimal("0"), limit, pool_id=pool_id)
        else:
            asset = AssetDescriptor.from_sdk(op.asset)
            if asset.is_native:
                raise OperationFailed("op_malformed")
            if asset.issuer == account.account_id:
                raise OperationFailed("op_self_not_allowed")
            if asset.issuer not in self.accounts:
                raise OperationFailed("op_no_issuer")
            key = trustline_key(asset)
            new_line = SimulatedTrustline(Decimal("0"), limit, asset=asset)

        existing = account.trustlines.get(key)
        if existing is None:
            if limit == 0:
                raise OperationFailed("op_invalid_limit")
            account.trustlines[key] = new_line
            self.effects.append({"type": "trustline_created", "account": account.account_id,
                                 "trustline": key, "limit": str(limit)})
        elif limit == 0:
            if existing.balance != 0:
                raise OperationFailed("op_invalid_limit")
            del account.trustlines[key]
            self.effects.append({"type": "trustline_removed", "account": account.account_id,
                                 "trustline": key})
        else:
            if limit < existing.balance:
                raise OperationFailed("op_invalid_limit")
            existing.limit = limit
            self.effects.append({"type": "trustline_updated", "account": account.account_id,
                                 "trustline": key, "limit": str(limit)})

    def payment(self, op: Payment) -> None:
        destination = self.accounts.get(op.destination.account_id)
        if destination is None:
            raise OperationFailed("op_no_destination")
        asset = AssetDescriptor.from_sdk(op.asset)
        amount = Decimal(op.amount)
        if amount <= 0:
            raise OperationFailed("op_malformed")
        self.debit(self.source, asset, amount)
        self.credit(destination, asset, amount)

    def set_options(self, op: SetOptions) -> None:
        account = self.source
        if op.master_weight is not None:
            account.master_weight = op.master_weight
        for index, value in enumerate((op.low_threshold, op.med_threshold, op.high_threshold)):
            if value is not None:
                account.thresholds[index] = value
        self.effects.append({"type": "account_thresholds_updated", "account": account.account_id,
                             "master_weight": account.master_weight,
                             "thresholds": list(account.thresholds)})

    def pool_deposit(self, op: LiquidityPoolDeposit) -> None:
        account = self.source
        pool = self.pools.get(op.liquidity_pool_id)
        share_line = account.trustlines.get(pool_key(op.liquidity_pool_id))
        if pool is None or share_line is None:
            raise OperationFailed("op_no_trust")

        max_a = Decimal(op.max_amount_a)
        max_b = Decimal(op.max_amount_b)
        min_price = Decimal(op.min_price.n) / Decimal(op.min_price.d)
        max_price = Decimal(op.max_price.n) / Decimal(op.max_price.d)
        if max_a <= 0 or max_b <= 0:
            raise OperationFailed("op_malformed")

        if pool.total_shares == 0:
            amount_a, amount_b = max_a, max_b
            shares = quantize((amount_a * amount_b).sqrt())
        else:
            amount_b = quantize(max_a * pool.reserve_b / pool.reserve_a)
            if amount_b <= max_b:
                amount_a = max_a
            else:
                amount_b = max_b
                amount_a = quantize(max_b * pool.reserve_a / pool.reserve_b)
            shares = quantize(min(
                amount_a * pool.total_shares / pool.reserve_a,
                amount_b * pool.total_shares / pool.reserve_b,
            ))

        price = amount_a / amount_b
        if price < min_price or price > max_price:
            raise OperationFailed("op_bad_price")
        if shares <= 0:
            raise OperationFailed("op_underfunded")

        self.debit(account, pool.descriptor.asset_a, amount_a)
        self.debit(account, pool.descriptor.asset_b, amount_b)
        if share_line.balance + shares > share_line.limit:
            raise OperationFailed("op_line_full")
        share_line.balance += shares
        pool.reserve_a += amount_a
        pool.reserve_b += amount_b
        pool.total_shares += shares
        self.effects.append({
            "type": "liquidity_pool_deposited",
            "account": account.account_id,
            "liquidity_pool_id": op.liquidity_pool_id,
            "reserves_deposited": [str(amount_a), str(amount_b)],
            "shares_received": str(shares),
        })

    def swap(self, asset_in: AssetDescriptor, asset_out: AssetDescriptor, amount_in: Decimal) -> Decimal:
        """Constant-product swap through the pool for (asset_in, asset_out)."""
        descriptor = LiquidityPoolDescriptor.for_pair(asset_in, asset_out)
        pool = self.pools.get(descriptor.pool_id)
        if pool is None or pool.total_shares == 0:
            raise OperationFailed("op_too_few_offers")

        reserve_in, reserve_out = pool.reserves(asset_in)
        fee_factor = Decimal(10000 - descriptor.fee_bps)
        amount_out = quantize(
            reserve_out * amount_in * fee_factor
            / (reserve_in * Decimal(10000) + amount_in * fee_factor)
        )
        if amount_out <= 0 or amount_out >= reserve_out:
            raise OperationFailed("op_too_few_offers")
        pool.apply_swap(asset_in, amount_in, amount_out)
        self.effects.append({
            "type": "liquidity_pool_trade",
            "liquidity_pool_id": descriptor.pool_id,
            "sold": {"asset": str(asset_in), "amount": str(amount_in)},
            "bought": {"asset": str(asset_out), "amount": str(amount_out)},
        })
        return amount_out

    def path_payment_strict_send(self, op: PathPaymentStrictSend) -> None:
        destination = self.accounts.get(op.destination.account_id)
        if destination is None:
            raise OperationFailed("op_no_destination")

        send_asset = AssetDescriptor.from_sdk(op.send_asset)
        dest_asset = AssetDescriptor.from_sdk(op.dest_asset)
        send_amount = Decimal(op.send_amount)
        dest_min = Decimal(op.dest_min)
        if send_amount <= 0 or dest_min <= 0:
            raise OperationFailed("op_malformed")

        self.debit(self.source, send_asset, send_amount)

        hops = [send_asset] + [AssetDescriptor.from_sdk(a) for a in op.path] + [dest_asset]
        amount = send_amount
        for asset_in, asset_out in zip(hops, hops[1:]):
            if asset_in != asset_out:
                amount = self.swap(asset_in, asset_out, amount)

        if amount < dest_min:
            raise OperationFailed("op_under_destmin")
        self.credit(destination, dest_asset, amount)

    def manage_data(self, op: ManageData) -> None:
        account = self.source
        if op.data_value is None:
            account.data.pop(op.data_name, None)
        else:
            account.data[op.data_name] = op.data_value
        self.effects.append({"type": "data_updated", "account": account.account_id,
                             "name": op.data_name})


class SimulatedLedger(LedgerGateway, Faucet):
    """In-memory ledger and faucet.

    Args:
        network_passphrase: Passphrase envelopes must be signed for
        visibility_lag: Number of reads that fail with AccountNotFound right
            after an account is funded (models Horizon ingestion lag)
        clock: Time source for transaction time bounds
    """

    def __init__(
        self,
        network_passphrase: str,
        visibility_lag: int = 0,
        starting_balance: Decimal = STARTING_BALANCE,
        clock: Callable[[], float] = time.time,
    ):
        self.network_passphrase = network_passphrase
        self.visibility_lag = visibility_lag
        self.starting_balance = starting_balance
        self._clock = clock
        self._accounts: dict[str, SimulatedAccount] = {}
        self._pools: dict[str, SimulatedPool] = {}
        self._hidden_reads: dict[str, int] = {}
        self._ledger = 1000
        self.submitted: list[str] = []

    @property
    def name(self) -> str:
        return "simulated-friendbot"

    @property
    def ledger_sequence(self) -> int:
        return self._ledger

    def account_exists(self, public_key: str) -> bool:
        return public_key in self._accounts

    def pool(self, pool_id: str) -> Optional[SimulatedPool]:
        return self._pools.get(pool_id)

    def sequence_of(self, public_key: str) -> int:
        """Current sequence number, bypassing the simulated read lag."""
        return self._accounts[public_key].sequence

    def native_balance_of(self, public_key: str) -> Decimal:
        return self._accounts[public_key].native

    def withdraw_native(self, public_key: str, amount: Decimal) -> None:
        """Move native funds out of an account (into a simulated contract)."""
        account = self._accounts.get(public_key)
        if account is None or account.native < amount:
            raise SubmissionRejected(
                f"Insufficient native balance in {public_key} for {amount}",
                {"status": 400, "message": "insufficient balance", "account": public_key},
            )
        account.native -= amount

    # ----------------------------------------------------------------------
    # Faucet
    # ----------------------------------------------------------------------

    async def fund(self, public_key: str) -> None:
        if not StrKey.is_valid_ed25519_public_key(public_key):
            raise SubmissionRejected(
                f"Invalid account address {public_key}",
                {"title": "Bad Request", "status": 400, "detail": "invalid address"},
            )
        if public_key in self._accounts:
            logger.info(f"[SIMULATED] {public_key} already funded")
            return

        self._ledger += 1
        self._accounts[public_key] = SimulatedAccount(
            account_id=public_key,
            sequence=self._ledger << 32,
            native=self.starting_balance,
        )
        self._hidden_reads[public_key] = self.visibility_lag
        logger.info(f"[SIMULATED] Funded {public_key} with {self.starting_balance} XLM")

    # ----------------------------------------------------------------------
    # Ledger gateway
    # ----------------------------------------------------------------------

    async def get_account(self, public_key: str) -> AccountState:
        account = self._accounts.get(public_key)
        if account is None:
            raise AccountNotFound(public_key, {"title": "Resource Missing", "status": 404})
        if self._hidden_reads.get(public_key, 0) > 0:
            self._hidden_reads[public_key] -= 1
            raise AccountNotFound(public_key, {"title": "Resource Missing", "status": 404})
        return account.to_state()

    def _rejection(
        self, tx_code: str, envelope_xdr: str, op_codes: Optional[list[str]] = None
    ) -> SubmissionRejected:
        result_codes: dict = {"transaction": tx_code}
        if op_codes is not None:
            result_codes["operations"] = op_codes
        payload = {
            "type": "https://stellar.org/horizon-errors/transaction_failed",
            "title": "Transaction Failed",
            "status": 400,
            "detail": "The transaction failed when submitted to the stellar network.",
            "extras": {"envelope_xdr": envelope_xdr, "result_codes": result_codes},
        }
        detail = f"{tx_code} {op_codes}" if op_codes else tx_code
        logger.info(f"[SIMULATED] Rejected transaction: {detail}")
        return SubmissionRejected(f"Transaction rejected: {detail}", payload)

    def _signed_by(self, envelope: TransactionEnvelope, public_key: str) -> bool:
        keypair = Keypair.from_public_key(public_key)
        tx_hash = envelope.hash()
        for decorated in envelope.signatures:
            if decorated.signature_hint != keypair.signature_hint():
                continue
            try:
                keypair.verify(tx_hash, decorated.signature)
                return True
            except BadSignatureError:
                continue
        return False

    async def submit_transaction(self, envelope_xdr: str) -> SubmissionReceipt:
        try:
            envelope = TransactionEnvelope.from_xdr(envelope_xdr, self.network_passphrase)
        except Exception as e:
            raise self._rejection("tx_malformed", envelope_xdr) from e

        tx = envelope.transaction
        source_id = tx.source.account_id
        account = self._accounts.get(source_id)
        if account is None:
            raise self._rejection("tx_no_source_account", envelope_xdr)
        if not tx.operations:
            raise self._rejection("tx_missing_operation", envelope_xdr)
        if tx.sequence != account.sequence + 1:
            raise self._rejection("tx_bad_seq", envelope_xdr)

        time_bounds = tx.preconditions.time_bounds if tx.preconditions else None
        if time_bounds is not None and time_bounds.max_time and self._clock() > time_bounds.max_time:
            raise self._rejection("tx_too_late", envelope_xdr)
        if tx.fee < MIN_BASE_FEE * len(tx.operations):
            raise self._rejection("tx_insufficient_fee", envelope_xdr)

        required = max(account.thresholds[operation_threshold(op)] for op in tx.operations)
        weight = account.master_weight if self._signed_by(envelope, source_id) else 0
        if weight == 0 or weight < required:
            raise self._rejection("tx_bad_auth", envelope_xdr)

        fee = Decimal(tx.fee) * STROOP
        if account.native < fee:
            raise self._rejection("tx_insufficient_balance", envelope_xdr)

        # Fee and sequence are consumed even when an operation fails
        self._ledger += 1
        account.native -= fee
        account.sequence = tx.sequence
        self.submitted.append(envelope.hash_hex())

        applier = _Apply(copy.deepcopy(self._accounts), copy.deepcopy(self._pools), source_id)
        for index, op in enumerate(tx.operations):
            try:
                applier.apply(op)
            except OperationFailed as e:
                op_codes = ["op_success"] * index + [e.code]
                raise self._rejection("tx_failed", envelope_xdr, op_codes) from e

        self._accounts = applier.accounts
        self._pools = applier.pools
        logger.info(f"[SIMULATED] Applied tx {envelope.hash_hex()} in ledger {self._ledger}")
        return SubmissionReceipt(
            tx_hash=envelope.hash_hex(),
            ledger=self._ledger,
            envelope_xdr=envelope_xdr,
            effects=applier.effects,
        )
