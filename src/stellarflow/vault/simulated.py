"""Simulated vault gateway on top of the simulated ledger.

Builds real envelopes (a data-entry operation stands in for the contract
invocation) so signing, sequence numbers and master-key checks go through
the simulated ledger exactly like ledger transactions do.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from decimal import Decimal

from stellar_sdk import Account, ManageData, StrKey, TransactionBuilder, TransactionEnvelope

from stellarflow.ledger.base import SubmissionRejected
from stellarflow.ledger.simulated import STROOP, SimulatedLedger
from stellarflow.vault.base import VaultGateway
from stellarflow.vault.contracts import (
    UnsignedEnvelope,
    VaultConfig,
    VaultDepositRequest,
    VaultTransactionResult,
)

logger = logging.getLogger(__name__)

ENVELOPE_TIMEOUT_SECONDS = 300


@dataclass
class SimulatedVault:
    address: str
    config: VaultConfig
    total_assets: int = 0
    total_shares: int = 0
    idle: int = 0
    invested: int = 0
    shares: dict[str, int] = field(default_factory=dict)

    def deposit(self, caller: str, amount: int, invest: bool) -> int:
        if self.total_shares == 0:
            minted = amount
        else:
            minted = amount * self.total_shares // self.total_assets
        self.total_assets += amount
        self.total_shares += minted
        if invest:
            self.invested += amount
        else:
            self.idle += amount
        self.shares[caller] = self.shares.get(caller, 0) + minted
        return minted


class SimulatedVaultGateway(VaultGateway):
    """In-memory vault factory sharing accounts with a SimulatedLedger."""

    def __init__(self, ledger: SimulatedLedger, network_passphrase: str):
        self.ledger = ledger
        self.network_passphrase = network_passphrase
        self.vaults: dict[str, SimulatedVault] = {}
        self._pending: dict[str, tuple] = {}

    @property
    def name(self) -> str:
        return "Simulated vaults"

    def _reject(self, message: str, status: int = 400) -> SubmissionRejected:
        return SubmissionRejected(message, {"statusCode": status, "message": message})

    def _require_account(self, public_key: str) -> None:
        if not self.ledger.account_exists(public_key):
            raise self._reject(f"Account not found: {public_key}")

    def _build(self, caller: str, data_name: str, data_value: str) -> str:
        source = Account(caller, self.ledger.sequence_of(caller))
        envelope = (
            TransactionBuilder(source, self.network_passphrase, base_fee=100)
            .append_operation(ManageData(data_name, data_value))
            .set_timeout(ENVELOPE_TIMEOUT_SECONDS)
            .build()
        )
        return envelope.to_xdr()

    def _register(self, xdr: str, action: tuple) -> UnsignedEnvelope:
        envelope = TransactionEnvelope.from_xdr(xdr, self.network_passphrase)
        self._pending[envelope.hash_hex()] = action
        return UnsignedEnvelope(xdr=xdr, raw={"xdr": xdr, "simulated": True})

    async def create_vault_with_deposit(self, config: VaultConfig) -> UnsignedEnvelope:
        self._require_account(config.caller)
        xdr = self._build(config.caller, "vault:create", config.name_symbol.symbol)
        logger.info(f"[SIMULATED] Built vault creation tx for {config.name_symbol.name}")
        return self._register(xdr, ("create", config))

    async def deposit_to_vault(
        self, vault_address: str, request: VaultDepositRequest
    ) -> UnsignedEnvelope:
        vault = self.vaults.get(vault_address)
        if vault is None:
            raise self._reject(f"Vault not found: {vault_address}", status=404)
        if len(request.amounts) != len(vault.config.assets):
            raise self._reject("One amount is required per vault asset")
        self._require_account(request.caller)
        xdr = self._build(request.caller, "vault:deposit", vault_address)
        logger.info(f"[SIMULATED] Built deposit tx into {vault_address}")
        return self._register(xdr, ("deposit", vault_address, request))

    async def send_transaction(self, signed_xdr: str) -> VaultTransactionResult:
        try:
            envelope = TransactionEnvelope.from_xdr(signed_xdr, self.network_passphrase)
        except Exception as e:
            raise self._reject(f"Malformed transaction: {e}") from e

        tx_hash = envelope.hash_hex()
        action = self._pending.get(tx_hash)
        if action is None:
            raise self._reject(f"Unknown transaction {tx_hash}")

        caller = envelope.transaction.source.account_id
        total = sum(action[1].deposit_amounts if action[0] == "create" else action[2].amounts)
        # Deposit plus fee must be covered before the ledger accepts the envelope
        required = Decimal(total + envelope.transaction.fee) * STROOP
        if self.ledger.native_balance_of(caller) < required:
            raise self._reject(f"Insufficient balance in {caller} for deposit of {total}")

        receipt = await self.ledger.submit_transaction(signed_xdr)
        del self._pending[tx_hash]
        self.ledger.withdraw_native(caller, Decimal(total) * STROOP)

        if action[0] == "create":
            config: VaultConfig = action[1]
            address = StrKey.encode_contract(hashlib.sha256(bytes.fromhex(tx_hash)).digest())
            vault = SimulatedVault(address=address, config=config)
            # The creation deposit is always held idle
            vault.deposit(caller, total, invest=False)
            self.vaults[address] = vault
            logger.info(f"[SIMULATED] Created vault {address}")
            return_value = address
        else:
            _, vault_address, request = action
            vault = self.vaults[vault_address]
            minted = vault.deposit(caller, total, invest=request.invest)
            logger.info(f"[SIMULATED] Deposited {total} into {vault_address} ({minted} shares)")
            return_value = [list(request.amounts), minted]

        return VaultTransactionResult(
            tx_hash=receipt.tx_hash,
            status="SUCCESS",
            return_value=return_value,
            raw={"txHash": receipt.tx_hash, "ledger": receipt.ledger},
        )
