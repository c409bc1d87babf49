"""Tests for vault contracts and the simulated vault gateway."""

from decimal import Decimal

import pytest
from pydantic import ValidationError
from stellar_sdk import Keypair, StrKey

from stellarflow.identity import Identity
from stellarflow.ledger.base import SubmissionRejected
from stellarflow.ledger.simulated import STROOP
from stellarflow.vault.contracts import (
    NameSymbol,
    VaultAsset,
    VaultConfig,
    VaultDepositRequest,
    VaultRoles,
    VaultStrategy,
    VaultTransactionResult,
)
from stellarflow.workflows.vault import (
    SOROSWAP_ROUTER_CONTRACT,
    XLM_CONTRACT,
    XLM_STRATEGY_CONTRACT,
)


def make_config(caller: str, amount: int = 100_000_000) -> VaultConfig:
    return VaultConfig(
        roles=VaultRoles.single(caller),
        vault_fee_bps=2000,
        assets=[
            VaultAsset(
                address=XLM_CONTRACT,
                strategies=[VaultStrategy(address=XLM_STRATEGY_CONTRACT, name="XLM Strategy")],
            )
        ],
        soroswap_router=SOROSWAP_ROUTER_CONTRACT,
        name_symbol=NameSymbol(name="TestVault", symbol="TV"),
        caller=caller,
        deposit_amounts=[amount],
    )


class TestContracts:
    """Tests for the vault request models."""

    def test_config_payload(self):
        """Test the vault creation payload."""
        caller = Keypair.random().public_key
        payload = make_config(caller).to_payload()

        assert payload["roles"] == {"0": caller, "1": caller, "2": caller, "3": caller}
        assert payload["vault_fee_bps"] == 2000
        assert payload["assets"][0]["address"] == XLM_CONTRACT
        assert payload["assets"][0]["strategies"][0] == {
            "address": XLM_STRATEGY_CONTRACT,
            "name": "XLM Strategy",
            "paused": False,
        }
        assert payload["name_symbol"] == {"name": "TestVault", "symbol": "TV"}
        assert payload["deposit_amounts"] == [100_000_000]
        assert payload["upgradable"] is True

    def test_fee_out_of_range(self):
        """Test that the vault fee is bounded."""
        caller = Keypair.random().public_key
        with pytest.raises(ValidationError):
            VaultConfig(**{**make_config(caller).model_dump(), "vault_fee_bps": 10001})

    def test_amount_per_asset_required(self):
        """Test that there is one deposit amount per asset."""
        caller = Keypair.random().public_key
        with pytest.raises(ValidationError):
            VaultConfig(**{**make_config(caller).model_dump(), "deposit_amounts": [1, 2]})

    def test_positive_amounts_required(self):
        """Test that deposit amounts must be positive."""
        with pytest.raises(ValidationError):
            make_config(Keypair.random().public_key, amount=0)

    def test_deposit_request_payload(self):
        """Test the deposit request payload."""
        request = VaultDepositRequest(caller="GA", amounts=[10], slippage_bps=500)
        assert request.to_payload() == {
            "caller": "GA",
            "amounts": [10],
            "slippageBps": 500,
            "invest": False,
        }

    def test_transaction_result_from_api(self):
        """Test parsing a send response."""
        result = VaultTransactionResult.from_api(
            {"txHash": "abc", "status": "SUCCESS", "returnValue": "CVAULT"}
        )
        assert result.tx_hash == "abc"
        assert result.return_value == "CVAULT"


class TestSimulatedVaultGateway:
    """Vault creation and deposit against the simulated ledger."""

    async def create_vault(self, ledger, vault_gateway, passphrase) -> tuple[Identity, str]:
        manager = Identity.generate("manager")
        await ledger.fund(manager.public_key)

        envelope = await vault_gateway.create_vault_with_deposit(make_config(manager.public_key))
        result = await vault_gateway.send_transaction(
            manager.sign_xdr(envelope.xdr, passphrase)
        )
        return manager, result.return_value

    @pytest.mark.asyncio
    async def test_create_returns_contract_address(self, ledger, vault_gateway, passphrase):
        """Test that creation returns a contract address."""
        manager, address = await self.create_vault(ledger, vault_gateway, passphrase)

        assert address
        assert address.startswith("C") and len(address) == 56
        vault = vault_gateway.vaults[address]
        assert vault.total_assets == 100_000_000
        assert vault.shares[manager.public_key] == 100_000_000

    @pytest.mark.asyncio
    async def test_creation_withdraws_deposit(self, ledger, vault_gateway, passphrase):
        """Test that creation withdraws the initial deposit and fee."""
        manager, _ = await self.create_vault(ledger, vault_gateway, passphrase)

        # 10 XLM deposit plus the 100 stroop fee
        expected = ledger.starting_balance - Decimal("10") - Decimal("0.00001")
        assert ledger.native_balance_of(manager.public_key) == expected

    @pytest.mark.asyncio
    async def test_deposit_from_funded_depositor(self, ledger, vault_gateway, passphrase):
        """Test a deposit from a funded depositor."""
        _, address = await self.create_vault(ledger, vault_gateway, passphrase)
        depositor = Identity.generate("depositor")
        await ledger.fund(depositor.public_key)

        request = VaultDepositRequest(caller=depositor.public_key, amounts=[10_000_000_000])
        envelope = await vault_gateway.deposit_to_vault(address, request)
        result = await vault_gateway.send_transaction(depositor.sign_xdr(envelope.xdr, passphrase))

        assert result.status == "SUCCESS"
        assert result.return_value == [[10_000_000_000], 10_000_000_000]
        assert vault_gateway.vaults[address].idle == 10_100_000_000

    @pytest.mark.asyncio
    async def test_deposit_from_unfunded_depositor(self, ledger, vault_gateway, passphrase):
        """Test that an unfunded depositor is rejected."""
        _, address = await self.create_vault(ledger, vault_gateway, passphrase)
        depositor = Identity.generate("depositor")

        request = VaultDepositRequest(caller=depositor.public_key, amounts=[10_000_000_000])
        with pytest.raises(SubmissionRejected):
            await vault_gateway.deposit_to_vault(address, request)

    @pytest.mark.asyncio
    async def test_deposit_exceeding_balance(self, ledger, vault_gateway, passphrase):
        """Test that a deposit above the balance is rejected."""
        _, address = await self.create_vault(ledger, vault_gateway, passphrase)
        depositor = Identity.generate("depositor")
        await ledger.fund(depositor.public_key)

        # 20,000 XLM against a 10,000 XLM balance
        request = VaultDepositRequest(caller=depositor.public_key, amounts=[200_000_000_000])
        envelope = await vault_gateway.deposit_to_vault(address, request)
        with pytest.raises(SubmissionRejected):
            await vault_gateway.send_transaction(depositor.sign_xdr(envelope.xdr, passphrase))

    @pytest.mark.asyncio
    async def test_deposit_of_whole_balance_leaves_no_fee(self, ledger, vault_gateway, passphrase):
        """Test that a deposit of the full balance is rejected before the ledger accepts it."""
        _, address = await self.create_vault(ledger, vault_gateway, passphrase)
        depositor = Identity.generate("depositor")
        await ledger.fund(depositor.public_key)
        sequence = ledger.sequence_of(depositor.public_key)
        submitted = list(ledger.submitted)

        amount = int(ledger.starting_balance / STROOP)
        request = VaultDepositRequest(caller=depositor.public_key, amounts=[amount])
        envelope = await vault_gateway.deposit_to_vault(address, request)
        with pytest.raises(SubmissionRejected):
            await vault_gateway.send_transaction(depositor.sign_xdr(envelope.xdr, passphrase))

        assert ledger.sequence_of(depositor.public_key) == sequence
        assert ledger.submitted == submitted
        assert ledger.native_balance_of(depositor.public_key) == ledger.starting_balance
        assert depositor.public_key not in vault_gateway.vaults[address].shares

    @pytest.mark.asyncio
    async def test_deposit_of_balance_minus_fee(self, ledger, vault_gateway, passphrase):
        """Test that the balance net of the fee can be deposited in full."""
        _, address = await self.create_vault(ledger, vault_gateway, passphrase)
        depositor = Identity.generate("depositor")
        await ledger.fund(depositor.public_key)

        amount = int(ledger.starting_balance / STROOP) - 100
        request = VaultDepositRequest(caller=depositor.public_key, amounts=[amount])
        envelope = await vault_gateway.deposit_to_vault(address, request)
        result = await vault_gateway.send_transaction(depositor.sign_xdr(envelope.xdr, passphrase))

        assert result.status == "SUCCESS"
        assert ledger.native_balance_of(depositor.public_key) == 0
        assert vault_gateway.vaults[address].shares[depositor.public_key] == amount

    @pytest.mark.asyncio
    async def test_deposit_to_unknown_vault(self, ledger, vault_gateway):
        """Test that an unknown vault is rejected."""
        depositor = Identity.generate("depositor")
        await ledger.fund(depositor.public_key)

        request = VaultDepositRequest(caller=depositor.public_key, amounts=[1])
        with pytest.raises(SubmissionRejected) as exc_info:
            await vault_gateway.deposit_to_vault(StrKey.encode_contract(bytes(32)), request)

        assert exc_info.value.payload["statusCode"] == 404

    @pytest.mark.asyncio
    async def test_unsigned_envelope_rejected(self, ledger, vault_gateway):
        """Test that an unsigned envelope is rejected."""
        manager = Identity.generate("manager")
        await ledger.fund(manager.public_key)

        envelope = await vault_gateway.create_vault_with_deposit(make_config(manager.public_key))
        with pytest.raises(SubmissionRejected) as exc_info:
            await vault_gateway.send_transaction(envelope.xdr)

        assert exc_info.value.transaction_code == "tx_bad_auth"
        assert vault_gateway.vaults == {}
