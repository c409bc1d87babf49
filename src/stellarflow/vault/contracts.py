"""Request/response contracts for the vault-management API.

The gateway builds the transactions; the client only signs and submits.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class VaultStrategy(BaseModel):
    """A yield strategy contract attached to a vault asset."""

    address: str = Field(..., description="Strategy contract address")
    name: str = Field(..., description="Human-readable strategy name")
    paused: bool = Field(default=False, description="Whether the strategy starts paused")


class VaultAsset(BaseModel):
    """An asset managed by the vault and its strategies."""

    address: str = Field(..., description="Asset contract address")
    strategies: list[VaultStrategy] = Field(..., min_length=1)


class VaultRoles(BaseModel):
    """Role assignments. Wire keys are the numeric role ids 0..3."""

    emergency_manager: str = Field(..., description="Role 0: can pause the vault")
    fee_receiver: str = Field(..., description="Role 1: receives vault fees")
    manager: str = Field(..., description="Role 2: general vault management")
    rebalance_manager: str = Field(..., description="Role 3: rebalances across strategies")

    @classmethod
    def single(cls, address: str) -> "VaultRoles":
        """Assign every role to one address."""
        return cls(
            emergency_manager=address,
            fee_receiver=address,
            manager=address,
            rebalance_manager=address,
        )

    def to_payload(self) -> dict[str, str]:
        return {
            "0": self.emergency_manager,
            "1": self.fee_receiver,
            "2": self.manager,
            "3": self.rebalance_manager,
        }


class NameSymbol(BaseModel):
    name: str = Field(..., min_length=1)
    symbol: str = Field(..., min_length=1)


class VaultConfig(BaseModel):
    """Vault descriptor for "create vault with initial deposit".

    The vault contract address is assigned by the remote system once the
    creation transaction is accepted; it is not part of the descriptor.
    """

    roles: VaultRoles
    vault_fee_bps: int = Field(..., ge=0, le=10000, description="Fee in basis points")
    assets: list[VaultAsset] = Field(..., min_length=1)
    soroswap_router: str = Field(..., description="Router contract used for swaps")
    name_symbol: NameSymbol
    upgradable: bool = True
    caller: str = Field(..., description="Account that signs the creation transaction")
    deposit_amounts: list[int] = Field(..., description="Initial deposit per asset (base units)")

    @field_validator("deposit_amounts")
    @classmethod
    def validate_amounts(cls, v: list[int]) -> list[int]:
        if any(amount <= 0 for amount in v):
            raise ValueError("Deposit amounts must be positive")
        return v

    @model_validator(mode="after")
    def validate_amounts_per_asset(self) -> "VaultConfig":
        if len(self.deposit_amounts) != len(self.assets):
            raise ValueError("One deposit amount is required per vault asset")
        return self

    def to_payload(self) -> dict:
        """Serialize to the API request body."""
        return {
            "roles": self.roles.to_payload(),
            "vault_fee_bps": self.vault_fee_bps,
            "assets": [asset.model_dump() for asset in self.assets],
            "soroswap_router": self.soroswap_router,
            "name_symbol": self.name_symbol.model_dump(),
            "upgradable": self.upgradable,
            "caller": self.caller,
            "amounts": list(self.deposit_amounts),
            "deposit_amounts": list(self.deposit_amounts),
        }


class VaultDepositRequest(BaseModel):
    """Deposit into an existing vault."""

    caller: str = Field(..., description="Depositor account")
    amounts: list[int] = Field(..., min_length=1, description="Amount per asset (base units)")
    slippage_bps: int = Field(default=500, ge=0, le=10000, description="Slippage tolerance")
    invest: bool = Field(
        default=False, description="Put funds to work in strategies instead of holding idle"
    )

    @field_validator("amounts")
    @classmethod
    def validate_amounts(cls, v: list[int]) -> list[int]:
        if any(amount <= 0 for amount in v):
            raise ValueError("Deposit amounts must be positive")
        return v

    def to_payload(self) -> dict:
        return {
            "caller": self.caller,
            "amounts": list(self.amounts),
            "slippageBps": self.slippage_bps,
            "invest": self.invest,
        }


class UnsignedEnvelope(BaseModel):
    """Transaction envelope built by the gateway, awaiting a signature."""

    xdr: str = Field(..., min_length=1, description="Base64 transaction envelope")
    raw: dict[str, Any] = Field(default_factory=dict, description="Full gateway response")


class VaultTransactionResult(BaseModel):
    """Outcome of a submitted vault transaction."""

    tx_hash: Optional[str] = None
    status: Optional[str] = None
    return_value: Any = None
    raw: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_api(cls, data: dict) -> "VaultTransactionResult":
        return cls(
            tx_hash=data.get("txHash") or data.get("hash"),
            status=data.get("status"),
            return_value=data.get("returnValue"),
            raw=data,
        )
