"""Vault-management gateways and request contracts."""

from stellarflow.vault.base import VaultGateway
from stellarflow.vault.defindex import DefindexClient

__all__ = ["VaultGateway", "DefindexClient"]
