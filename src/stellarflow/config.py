"""Application configuration using pydantic-settings.

Defaults target the Stellar testnet and the DeFindex testnet API.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

TESTNET_PASSPHRASE = "Test SDF Network ; September 2015"
TESTNET_EXPLORER_URL = "https://stellar.expert/explorer/testnet"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug logging")
    dry_run: bool = Field(
        default=True, description="Run workflows against the in-memory ledger (no network)"
    )

    # ======================
    # Stellar network
    # ======================
    horizon_url: str = Field(
        default="https://horizon-testnet.stellar.org", description="Horizon REST API URL"
    )
    friendbot_url: str = Field(
        default="https://friendbot.stellar.org", description="Friendbot faucet URL"
    )
    soroban_rpc_url: str = Field(
        default="https://soroban-testnet.stellar.org", description="Soroban RPC URL"
    )
    network_passphrase: str = Field(
        default=TESTNET_PASSPHRASE, description="Network passphrase transactions are bound to"
    )
    explorer_url: str = Field(
        default=TESTNET_EXPLORER_URL, description="Block explorer base URL"
    )

    # ======================
    # DeFindex
    # ======================
    defindex_api_url: str = Field(
        default="https://api.defindex.io", description="DeFindex REST API URL"
    )
    defindex_api_key: Optional[str] = Field(default=None, description="DeFindex API key")
    defindex_network: str = Field(default="testnet", description="DeFindex network name")

    # ======================
    # Transactions
    # ======================
    base_fee: int = Field(default=100, description="Base fee per operation in stroops")
    tx_timeout_seconds: int = Field(
        default=30, description="Seconds until a built transaction expires"
    )
    http_timeout_seconds: float = Field(default=30.0, description="HTTP request timeout")

    # ======================
    # Account loading
    # ======================
    load_max_retries: int = Field(
        default=5, description="Retries after the first failed account load"
    )
    load_retry_delay_ms: int = Field(
        default=2000, description="Delay unit between account load attempts (ms)"
    )

    # ======================
    # Vault workflow
    # ======================
    vault_settle_delay_seconds: float = Field(
        default=1.0, description="Wait before submitting a signed vault deposit"
    )

    # ======================
    # Reporting
    # ======================
    stablecoin_code: str = Field(default="USDC", description="Asset code reported as stablecoin")

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "dry_run": self.dry_run,
            "network": {
                "horizon": self.horizon_url,
                "friendbot": self.friendbot_url,
                "soroban_rpc": self.soroban_rpc_url,
                "passphrase": self.network_passphrase,
            },
            "defindex": {
                "api": self.defindex_api_url,
                "network": self.defindex_network,
                "api_key": "***" if self.defindex_api_key else "(not set)",
            },
            "transactions": {
                "base_fee": self.base_fee,
                "timeout_seconds": self.tx_timeout_seconds,
            },
            "loader": {
                "max_retries": self.load_max_retries,
                "retry_delay_ms": self.load_retry_delay_ms,
            },
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
