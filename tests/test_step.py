"""Tests for TransactionStep: building, ordering and submission."""

import pytest
from stellar_sdk import ManageData, Payment

from stellarflow.assets import NATIVE, AssetDescriptor
from stellarflow.ledger.base import StaleAccountState, SubmissionRejected
from stellarflow.ledger.step import TransactionStep


def note(value: str = "1") -> ManageData:
    return ManageData("note", value)


class TestBuild:
    """Tests for TransactionStep.build."""

    @pytest.mark.asyncio
    async def test_binds_next_sequence(self, ledger, step, issuer):
        """Test that the built transaction uses the next sequence."""
        state = await ledger.get_account(issuer.public_key)

        envelope = step.build(state, issuer, [note()])

        assert envelope.transaction.sequence == state.sequence + 1
        assert envelope.transaction.fee == 100
        assert len(envelope.signatures) == 1

    @pytest.mark.asyncio
    async def test_does_not_mutate_snapshot(self, ledger, step, issuer):
        """Test that building leaves the account snapshot untouched."""
        state = await ledger.get_account(issuer.public_key)
        before = state.sequence

        step.build(state, issuer, [note()])
        step.build(state, issuer, [note()])

        assert state.sequence == before

    @pytest.mark.asyncio
    async def test_signer_must_own_source(self, ledger, step, issuer, holder):
        """Test that the signer must be the source account."""
        state = await ledger.get_account(issuer.public_key)

        with pytest.raises(ValueError):
            step.build(state, holder, [note()])

    @pytest.mark.asyncio
    async def test_requires_operations(self, ledger, step, issuer):
        """Test that a step needs at least one operation."""
        state = await ledger.get_account(issuer.public_key)

        with pytest.raises(ValueError):
            step.build(state, issuer, [])

    @pytest.mark.asyncio
    async def test_fee_scales_with_operations(self, ledger, passphrase, issuer):
        """Test that the fee is charged per operation."""
        step = TransactionStep(ledger, passphrase, base_fee=200)
        state = await ledger.get_account(issuer.public_key)

        envelope = step.build(state, issuer, [note("1"), note("2")])

        assert envelope.transaction.fee == 400


class TestOrdering:
    """Sequence ordering across accepted transactions."""

    @pytest.mark.asyncio
    async def test_sequences_strictly_increase(self, ledger, loader, step, issuer):
        """Test that fresh loads give strictly increasing sequences."""
        sequences = []
        for i in range(3):
            state = await loader.load_account(issuer.public_key)
            await step.build_and_submit(state, issuer, [note(str(i))])
            sequences.append(step.last_accepted_sequence(issuer.public_key))

        assert sequences == sorted(sequences)
        assert len(set(sequences)) == 3
        assert ledger.sequence_of(issuer.public_key) == sequences[-1]

    @pytest.mark.asyncio
    async def test_reused_state_detected_locally(self, ledger, loader, step, issuer):
        """Test that a reused account state fails before submission."""
        state = await loader.load_account(issuer.public_key)
        await step.build_and_submit(state, issuer, [note("first")])
        submitted = len(ledger.submitted)

        with pytest.raises(StaleAccountState) as exc_info:
            await step.build_and_submit(state, issuer, [note("second")])

        assert len(ledger.submitted) == submitted
        assert exc_info.value.payload["account_id"] == issuer.public_key

    @pytest.mark.asyncio
    async def test_ledger_rejects_stale_sequence(self, ledger, passphrase, issuer):
        """Test that the ledger rejects a stale sequence."""
        first = TransactionStep(ledger, passphrase)
        second = TransactionStep(ledger, passphrase)
        state = await ledger.get_account(issuer.public_key)

        await first.build_and_submit(state, issuer, [note("first")])
        with pytest.raises(SubmissionRejected) as exc_info:
            await second.build_and_submit(state, issuer, [note("second")])

        assert exc_info.value.transaction_code == "tx_bad_seq"

    @pytest.mark.asyncio
    async def test_rejection_does_not_advance_guard(self, ledger, loader, step, issuer, holder):
        """Test that a rejected submission leaves the ordering guard unchanged."""
        asset = AssetDescriptor("PLTA", issuer.public_key)
        state = await loader.load_account(issuer.public_key)

        # Holder has no trust line, so the payment fails
        payment = Payment(holder.public_key, asset.to_sdk(), "10")
        with pytest.raises(SubmissionRejected) as exc_info:
            await step.build_and_submit(state, issuer, [payment])

        assert exc_info.value.transaction_code == "tx_failed"
        assert exc_info.value.operation_codes == ["op_no_trust"]
        assert step.last_accepted_sequence(issuer.public_key) is None


class TestSubmit:
    """Tests for build_and_submit against the simulated ledger."""

    @pytest.mark.asyncio
    async def test_native_payment(self, ledger, loader, step, issuer, holder):
        """Test a native payment between funded accounts."""
        state = await loader.load_account(issuer.public_key)
        payment = Payment(holder.public_key, NATIVE.to_sdk(), "25")

        receipt = await step.build_and_submit(state, issuer, [payment])

        assert receipt.successful
        assert receipt.tx_hash
        holder_state = await loader.load_account(holder.public_key)
        assert holder_state.native_balance == ledger.starting_balance + 25
