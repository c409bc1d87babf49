"""Base interface for vault-management gateways.

Vault flow:
1. Ask the gateway to build a transaction (create or deposit)
2. Sign the returned envelope locally
3. Send the signed envelope back through the gateway
4. Read the contract's return value from the result
"""

from abc import ABC, abstractmethod

from stellarflow.vault.contracts import (
    UnsignedEnvelope,
    VaultConfig,
    VaultDepositRequest,
    VaultTransactionResult,
)


class VaultGateway(ABC):
    """Abstract vault-management API."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    async def create_vault_with_deposit(self, config: VaultConfig) -> UnsignedEnvelope:
        """Build an unsigned "create vault + initial deposit" transaction.

        Raises:
            SubmissionRejected: Gateway refused to build the transaction
            GatewayUnavailable: Transport failure
        """
        pass

    @abstractmethod
    async def deposit_to_vault(
        self, vault_address: str, request: VaultDepositRequest
    ) -> UnsignedEnvelope:
        """Build an unsigned deposit transaction scoped to ``vault_address``."""
        pass

    @abstractmethod
    async def send_transaction(self, signed_xdr: str) -> VaultTransactionResult:
        """Submit a signed envelope and return the contract result."""
        pass

    async def aclose(self) -> None:
        return None
