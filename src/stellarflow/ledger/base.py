"""Base interfaces for ledger access.

Ledger flow for every transaction step:
1. Load the source account (fresh sequence number)
2. Build a transaction bound to sequence + 1
3. Sign locally with the source identity
4. Submit to the ledger gateway
5. Reload before any dependent step
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

from stellarflow.assets import AssetDescriptor

logger = logging.getLogger(__name__)


# ======================
# Errors
# ======================


class WorkflowError(Exception):
    """Base class for every failure a workflow run can surface.

    Attributes:
        payload: Structured detail (gateway response body, result codes, ...)
    """

    def __init__(self, message: str, payload: Optional[dict] = None):
        super().__init__(message)
        self.payload = payload or {}

    @property
    def kind(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": str(self), "payload": self.payload}


class AccountNotFound(WorkflowError):
    """The account is not (yet) visible on the ledger."""

    def __init__(self, public_key: str, payload: Optional[dict] = None):
        super().__init__(f"Account {public_key} not found", payload)
        self.public_key = public_key


class GatewayUnavailable(WorkflowError):
    """Network or transport failure, distinct from a rejection."""


class SubmissionRejected(WorkflowError):
    """The ledger or vault gateway returned a structured rejection."""

    @property
    def result_codes(self) -> dict:
        """Horizon-style result codes: {"transaction": ..., "operations": [...]}."""
        extras = self.payload.get("extras") or {}
        return extras.get("result_codes") or {}

    @property
    def transaction_code(self) -> Optional[str]:
        return self.result_codes.get("transaction")

    @property
    def operation_codes(self) -> list[str]:
        return list(self.result_codes.get("operations") or [])


class RetryExhausted(WorkflowError):
    """Account state stayed unobservable after bounded retries."""

    def __init__(self, public_key: str, attempts: int, last_error: Exception):
        payload = {"public_key": public_key, "attempts": attempts}
        if isinstance(last_error, WorkflowError):
            payload["last_error"] = last_error.to_dict()
        else:
            payload["last_error"] = {"error": type(last_error).__name__, "message": str(last_error)}
        super().__init__(
            f"Could not load account {public_key} after {attempts} attempts: {last_error}",
            payload,
        )
        self.public_key = public_key
        self.attempts = attempts
        self.last_error = last_error


class StaleAccountState(WorkflowError):
    """A transaction was built from a state that does not advance the sequence."""


# ======================
# Ledger data
# ======================


@dataclass(frozen=True)
class Balance:
    """One balance line of an account."""

    asset_type: str  # native, credit_alphanum4, credit_alphanum12, liquidity_pool_shares
    balance: Decimal
    asset_code: Optional[str] = None
    asset_issuer: Optional[str] = None
    liquidity_pool_id: Optional[str] = None
    limit: Optional[Decimal] = None

    @property
    def is_native(self) -> bool:
        return self.asset_type == "native"

    @property
    def is_pool_shares(self) -> bool:
        return self.asset_type == "liquidity_pool_shares"

    @property
    def asset(self) -> Optional[AssetDescriptor]:
        """Asset descriptor for native/credit lines, None for pool shares."""
        if self.is_native:
            return AssetDescriptor.native()
        if self.is_pool_shares:
            return None
        return AssetDescriptor(self.asset_code, self.asset_issuer)

    @classmethod
    def from_horizon(cls, data: dict) -> "Balance":
        limit = data.get("limit")
        return cls(
            asset_type=data["asset_type"],
            balance=Decimal(data["balance"]),
            asset_code=data.get("asset_code"),
            asset_issuer=data.get("asset_issuer"),
            liquidity_pool_id=data.get("liquidity_pool_id"),
            limit=Decimal(limit) if limit is not None else None,
        )


@dataclass(frozen=True)
class AccountState:
    """Snapshot of a ledger account as of the last successful load.

    Never updated in place: anything that needs newer state must reload.
    """

    account_id: str
    sequence: int
    balances: tuple[Balance, ...] = ()
    master_weight: int = 1
    thresholds: tuple[int, int, int] = (0, 0, 0)  # low, med, high

    @classmethod
    def from_horizon(cls, data: dict) -> "AccountState":
        """Parse a Horizon /accounts/{id} response body."""
        account_id = data.get("account_id") or data["id"]
        master_weight = 1
        for signer in data.get("signers", []):
            if signer.get("key") == account_id:
                master_weight = int(signer.get("weight", 0))
        thresholds = data.get("thresholds") or {}
        return cls(
            account_id=account_id,
            sequence=int(data["sequence"]),
            balances=tuple(Balance.from_horizon(b) for b in data.get("balances", [])),
            master_weight=master_weight,
            thresholds=(
                int(thresholds.get("low_threshold", 0)),
                int(thresholds.get("med_threshold", 0)),
                int(thresholds.get("high_threshold", 0)),
            ),
        )

    @property
    def next_sequence(self) -> int:
        return self.sequence + 1

    @property
    def native_balance(self) -> Decimal:
        for line in self.balances:
            if line.is_native:
                return line.balance
        return Decimal("0")

    def _find(self, asset: AssetDescriptor) -> Optional[Balance]:
        for line in self.balances:
            if line.is_pool_shares:
                continue
            if line.asset == asset:
                return line
        return None

    def has_trustline(self, asset: AssetDescriptor) -> bool:
        if asset.is_native:
            return True
        return self._find(asset) is not None

    def balance_of(self, asset: AssetDescriptor) -> Decimal:
        line = self._find(asset)
        return line.balance if line else Decimal("0")

    def pool_shares(self, pool_id: str) -> Decimal:
        for line in self.balances:
            if line.is_pool_shares and line.liquidity_pool_id == pool_id:
                return line.balance
        return Decimal("0")


@dataclass
class SubmissionReceipt:
    """Result of an accepted transaction submission."""

    tx_hash: str
    ledger: Optional[int] = None
    successful: bool = True
    envelope_xdr: Optional[str] = None
    result_xdr: Optional[str] = None
    effects: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_horizon(cls, data: dict) -> "SubmissionReceipt":
        return cls(
            tx_hash=data["hash"],
            ledger=data.get("ledger"),
            successful=data.get("successful", True),
            envelope_xdr=data.get("envelope_xdr"),
            result_xdr=data.get("result_xdr"),
        )

    def to_dict(self) -> dict:
        return {
            "tx_hash": self.tx_hash,
            "ledger": self.ledger,
            "effects": self.effects,
        }


# ======================
# Gateways
# ======================


class LedgerGateway(ABC):
    """Read/submit access to the ledger."""

    @abstractmethod
    async def get_account(self, public_key: str) -> AccountState:
        """Fetch current account state.

        Raises:
            AccountNotFound: Account not visible (yet)
            GatewayUnavailable: Transport failure
        """
        pass

    @abstractmethod
    async def submit_transaction(self, envelope_xdr: str) -> SubmissionReceipt:
        """Submit a signed transaction envelope (base64 XDR).

        Raises:
            SubmissionRejected: Ledger rejected the transaction
            GatewayUnavailable: Transport failure or submission timeout
        """
        pass

    async def aclose(self) -> None:
        """Release any held network resources."""
        return None


class Faucet(ABC):
    """Testnet funding facility."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    async def fund(self, public_key: str) -> None:
        """Fund an account. Funding an already funded account is not an error.

        Raises:
            SubmissionRejected: Faucet refused the request
            GatewayUnavailable: Transport failure
        """
        pass

    async def aclose(self) -> None:
        return None
