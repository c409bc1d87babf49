"""End-to-end workflow tests against the simulated gateways."""

import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, call

import pytest

from stellarflow.events import EventLog, StepStatus
from stellarflow.ledger.base import RetryExhausted, SubmissionRejected
from stellarflow.ledger.loader import AccountLoader
from stellarflow.ledger.simulated import SimulatedLedger
from stellarflow.vault.simulated import SimulatedVaultGateway
from stellarflow.workflows import (
    AssetIssuanceWorkflow,
    IssuanceParams,
    VaultParams,
    VaultWorkflow,
)

ISSUANCE_STEPS = [
    "create_identities",
    "fund_accounts",
    "define_asset",
    "holder_trustline",
    "issue_supply",
    "lock_issuer",
    "pool_trustline",
    "pool_deposit",
    "trader_trustline",
    "swap",
]

VAULT_STEPS = [
    "create_manager",
    "fund_manager",
    "configure_vault",
    "create_vault",
    "create_depositor",
    "fund_depositor",
    "deposit",
]


def failing_faucet(error: Exception) -> MagicMock:
    faucet = MagicMock()
    faucet.name = "broken-faucet"
    faucet.fund = AsyncMock(side_effect=error)
    return faucet


class TestAssetIssuanceWorkflow:
    """Tests for the issue / lock / pool / swap pipeline."""

    @pytest.mark.asyncio
    async def test_full_run(self, ledger, loader, step):
        """Test a complete issuance run."""
        workflow = AssetIssuanceWorkflow(ledger, ledger, loader, step)

        result = await workflow.run()

        assert result.success, result.to_dict()
        assert result.error is None
        assert [s.name for s in result.steps] == ISSUANCE_STEPS

        summary = result.summary
        assert summary["asset"] == f"PLTA:{workflow.issuer.public_key}"
        assert summary["pool_id"] == workflow.pool.pool_id
        assert Decimal(summary["holder_pool_shares"]) > 0
        assert summary["explorer"].endswith(f"/asset/PLTA-{workflow.issuer.public_key}")

        tokens = summary["trader_balances"]["tokens"]
        assert tokens[0]["code"] == "PLTA"
        assert Decimal(tokens[0]["amount"]) > 0

    @pytest.mark.asyncio
    async def test_holder_receives_supply_before_lock(self, ledger, loader, step):
        """Test that the holder holds the supply when the issuer is locked."""
        result = await AssetIssuanceWorkflow(ledger, ledger, loader, step).run()

        lock = result.step("lock_issuer")
        assert Decimal(lock.detail["holder_balance"]) == Decimal("1000000")

    @pytest.mark.asyncio
    async def test_issuer_is_locked(self, ledger, loader, step):
        """Test that the issuer ends with master weight zero."""
        workflow = AssetIssuanceWorkflow(ledger, ledger, loader, step)
        await workflow.run()

        state = await ledger.get_account(workflow.issuer.public_key)
        assert state.master_weight == 0
        assert state.thresholds == (1, 1, 1)

    @pytest.mark.asyncio
    async def test_emits_events_in_order(self, ledger, loader, step):
        """Test that step events are emitted in order."""
        events = EventLog()
        await AssetIssuanceWorkflow(ledger, ledger, loader, step, events=events).run()

        statuses = [(e.step, e.status) for e in events.events]
        expected = []
        for name in ISSUANCE_STEPS:
            expected += [(name, StepStatus.STARTED), (name, StepStatus.COMPLETED)]
        assert statuses == expected

    @pytest.mark.asyncio
    async def test_faucet_failure_short_circuits(self, ledger, loader, step):
        """Test that a faucet failure stops the workflow."""
        rejection = SubmissionRejected("Friendbot refused", {"status": 400, "detail": "nope"})
        workflow = AssetIssuanceWorkflow(ledger, failing_faucet(rejection), loader, step)

        result = await workflow.run()

        assert not result.success
        assert result.failed_step == "fund_accounts"
        assert result.completed_steps == ["create_identities"]
        assert result.error is rejection
        assert result.step("fund_accounts").error["payload"] == {"status": 400, "detail": "nope"}
        assert ledger.submitted == []

    @pytest.mark.asyncio
    async def test_swap_failure_keeps_earlier_steps(self, ledger, loader, step):
        """Test that a failed swap keeps the completed steps."""
        params = IssuanceParams(swap_dest_min=Decimal("1000000"))
        workflow = AssetIssuanceWorkflow(ledger, ledger, loader, step, params=params)

        result = await workflow.run()

        assert not result.success
        assert result.failed_step == "swap"
        assert result.completed_steps == ISSUANCE_STEPS[:-1]
        assert isinstance(result.error, SubmissionRejected)
        assert result.error.operation_codes == ["op_under_destmin"]

    @pytest.mark.asyncio
    async def test_bad_price_bounds_stop_before_trader(self, ledger, loader, step):
        """Test that a failed pool deposit stops before the trader steps."""
        params = IssuanceParams(min_price=Decimal("1"), max_price=Decimal("10"))
        events = EventLog()
        workflow = AssetIssuanceWorkflow(ledger, ledger, loader, step, params=params, events=events)

        result = await workflow.run()

        assert result.failed_step == "pool_deposit"
        assert result.step("trader_trustline") is None
        assert events.for_step("trader_trustline") == []
        assert events.for_step("pool_deposit")[-1].status == StepStatus.FAILED

    @pytest.mark.asyncio
    async def test_unexpected_error_propagates(self, ledger, loader, step):
        """Test that non-workflow errors propagate."""
        workflow = AssetIssuanceWorkflow(ledger, failing_faucet(RuntimeError("boom")), loader, step)

        with pytest.raises(RuntimeError):
            await workflow.run()

    @pytest.mark.asyncio
    async def test_result_is_json_serializable(self, ledger, loader, step):
        """Test that the result serializes to JSON."""
        result = await AssetIssuanceWorkflow(ledger, ledger, loader, step).run()

        data = json.loads(json.dumps(result.to_dict()))
        assert data["success"] is True
        assert data["failed_step"] is None
        assert len(data["steps"]) == len(ISSUANCE_STEPS)


class TestVaultWorkflow:
    """Tests for the vault create / deposit pipeline."""

    @pytest.mark.asyncio
    async def test_full_run(self, ledger, loader, vault_gateway, passphrase, sleep):
        """Test a complete vault run."""
        workflow = VaultWorkflow(vault_gateway, ledger, loader, passphrase, sleep=sleep)

        result = await workflow.run()

        assert result.success, result.to_dict()
        assert [s.name for s in result.steps] == VAULT_STEPS
        address = result.summary["vault_address"]
        assert address and address in vault_gateway.vaults
        assert result.summary["deposit_result"] == [[10_000_000_000], 10_000_000_000]
        assert result.summary["manager"] != result.summary["depositor"]

    @pytest.mark.asyncio
    async def test_waits_before_deposit_submission(self, ledger, loader, vault_gateway, passphrase, sleep):
        """Test the settle delay before the deposit is sent."""
        params = VaultParams(settle_delay_seconds=2.5)
        workflow = VaultWorkflow(vault_gateway, ledger, loader, passphrase, params=params, sleep=sleep)

        await workflow.run()

        sleep.assert_has_awaits([call(2.5)])

    @pytest.mark.asyncio
    async def test_configuration_detail(self, ledger, loader, vault_gateway, passphrase, sleep):
        """Test the recorded vault configuration."""
        workflow = VaultWorkflow(vault_gateway, ledger, loader, passphrase, sleep=sleep)

        result = await workflow.run()

        config = result.step("configure_vault").detail
        manager = workflow.manager.public_key
        assert config["roles"] == {"0": manager, "1": manager, "2": manager, "3": manager}
        assert config["vault_fee_bps"] == 2000
        assert config["deposit_amounts"] == [100_000_000]

    @pytest.mark.asyncio
    async def test_empty_vault_address_is_rejection(self, ledger, loader, passphrase, sleep):
        """Test that an empty vault address is a rejection."""
        class NoAddressGateway(SimulatedVaultGateway):
            async def send_transaction(self, signed_xdr):
                result = await super().send_transaction(signed_xdr)
                return result.model_copy(update={"return_value": ""})

        gateway = NoAddressGateway(ledger, passphrase)
        workflow = VaultWorkflow(gateway, ledger, loader, passphrase, sleep=sleep)

        result = await workflow.run()

        assert not result.success
        assert result.failed_step == "create_vault"
        assert isinstance(result.error, SubmissionRejected)
        assert result.step("create_depositor") is None

    @pytest.mark.asyncio
    async def test_unobservable_account_fails_funding(self, passphrase, sleep):
        """Test that an account never visible fails funding."""
        ledger = SimulatedLedger(passphrase, visibility_lag=10)
        loader = AccountLoader(ledger, max_retries=2, sleep=sleep)
        gateway = SimulatedVaultGateway(ledger, passphrase)
        workflow = VaultWorkflow(gateway, ledger, loader, passphrase, sleep=sleep)

        result = await workflow.run()

        assert result.failed_step == "fund_manager"
        assert isinstance(result.error, RetryExhausted)
        assert result.error.attempts == 3
        assert gateway.vaults == {}

    @pytest.mark.asyncio
    async def test_deposit_larger_than_balance(self, ledger, loader, vault_gateway, passphrase, sleep):
        """Test that an oversized deposit fails the deposit step."""
        params = VaultParams(deposit_amount=200_000_000_000)
        workflow = VaultWorkflow(vault_gateway, ledger, loader, passphrase, params=params, sleep=sleep)

        result = await workflow.run()

        assert result.failed_step == "deposit"
        assert result.completed_steps == VAULT_STEPS[:-1]
        assert len(vault_gateway.vaults) == 1

    @pytest.mark.asyncio
    async def test_deposit_of_whole_balance_is_not_submitted(
        self, ledger, loader, vault_gateway, passphrase, sleep
    ):
        """Test that a deposit leaving nothing for the fee fails without a ledger submission."""
        params = VaultParams(deposit_amount=100_000_000_000)
        workflow = VaultWorkflow(vault_gateway, ledger, loader, passphrase, params=params, sleep=sleep)

        result = await workflow.run()

        assert result.failed_step == "deposit"
        assert isinstance(result.error, SubmissionRejected)
        # only the vault creation reached the ledger
        assert len(ledger.submitted) == 1
        depositor = result.step("create_depositor").detail["public_key"]
        assert ledger.native_balance_of(depositor) == ledger.starting_balance
