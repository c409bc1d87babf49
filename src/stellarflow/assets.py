"""Asset and liquidity pool descriptors.

Both are plain value types: equality is structural and converting to the
stellar_sdk objects is a pure local computation (no network calls).
"""

from dataclasses import dataclass
from typing import Optional

from stellar_sdk import Asset, LiquidityPoolAsset
from stellar_sdk.liquidity_pool_asset import LIQUIDITY_POOL_FEE_V18

NATIVE_CODE = "XLM"


@dataclass(frozen=True)
class AssetDescriptor:
    """A (code, issuer) pair identifying an asset on the ledger.

    The native asset has no issuer. Any other descriptor must carry a
    valid issuer public key.
    """

    code: str
    issuer: Optional[str] = None

    def __post_init__(self):
        if self.issuer is None:
            if self.code != NATIVE_CODE:
                raise ValueError(f"Asset {self.code} requires an issuer")
            return
        # Raises ValueError subclasses for bad codes or issuer keys
        Asset(self.code, self.issuer)

    @classmethod
    def native(cls) -> "AssetDescriptor":
        return NATIVE

    @classmethod
    def from_sdk(cls, asset: Asset) -> "AssetDescriptor":
        if asset.is_native():
            return NATIVE
        return cls(asset.code, asset.issuer)

    @classmethod
    def parse(cls, value: str) -> "AssetDescriptor":
        """Parse "native", "XLM" or "CODE:ISSUER"."""
        if value.lower() == "native" or value == NATIVE_CODE:
            return NATIVE
        code, sep, issuer = value.partition(":")
        if not sep or not issuer:
            raise ValueError(f"Expected CODE:ISSUER, got {value!r}")
        return cls(code, issuer)

    @property
    def is_native(self) -> bool:
        return self.issuer is None

    @property
    def asset_type(self) -> str:
        if self.is_native:
            return "native"
        return "credit_alphanum4" if len(self.code) <= 4 else "credit_alphanum12"

    def to_sdk(self) -> Asset:
        if self.is_native:
            return Asset.native()
        return Asset(self.code, self.issuer)

    def __str__(self) -> str:
        return "native" if self.is_native else f"{self.code}:{self.issuer}"


NATIVE = AssetDescriptor(NATIVE_CODE)


@dataclass(frozen=True)
class LiquidityPoolDescriptor:
    """A constant-product pool over two assets in canonical order."""

    asset_a: AssetDescriptor
    asset_b: AssetDescriptor
    fee_bps: int = LIQUIDITY_POOL_FEE_V18

    def __post_init__(self):
        if self.asset_a == self.asset_b:
            raise ValueError("A liquidity pool needs two distinct assets")
        if not LiquidityPoolAsset.is_valid_lexicographic_order(
            self.asset_a.to_sdk(), self.asset_b.to_sdk()
        ):
            raise ValueError(
                f"Assets out of canonical order: {self.asset_a} / {self.asset_b} "
                "(use LiquidityPoolDescriptor.for_pair)"
            )

    @classmethod
    def for_pair(
        cls,
        first: AssetDescriptor,
        second: AssetDescriptor,
        fee_bps: int = LIQUIDITY_POOL_FEE_V18,
    ) -> "LiquidityPoolDescriptor":
        """Build a descriptor, sorting the two assets canonically."""
        if first != second and not LiquidityPoolAsset.is_valid_lexicographic_order(
            first.to_sdk(), second.to_sdk()
        ):
            first, second = second, first
        return cls(first, second, fee_bps)

    @classmethod
    def from_sdk(cls, pool_asset: LiquidityPoolAsset) -> "LiquidityPoolDescriptor":
        return cls(
            AssetDescriptor.from_sdk(pool_asset.asset_a),
            AssetDescriptor.from_sdk(pool_asset.asset_b),
            pool_asset.fee,
        )

    def to_sdk(self) -> LiquidityPoolAsset:
        return LiquidityPoolAsset(self.asset_a.to_sdk(), self.asset_b.to_sdk(), self.fee_bps)

    @property
    def pool_id(self) -> str:
        """Hex pool identifier derived from the assets and fee."""
        return self.to_sdk().liquidity_pool_id

    def contains(self, asset: AssetDescriptor) -> bool:
        return asset in (self.asset_a, self.asset_b)

    def other(self, asset: AssetDescriptor) -> AssetDescriptor:
        """Return the counter asset of ``asset`` in this pool."""
        if asset == self.asset_a:
            return self.asset_b
        if asset == self.asset_b:
            return self.asset_a
        raise ValueError(f"{asset} is not in pool {self.pool_id}")

    def __str__(self) -> str:
        return f"{self.asset_a.code}/{self.asset_b.code} ({self.fee_bps} bps)"
