"""Transaction step: build, sign and submit one transaction.

A step always starts from an account state loaded immediately before it.
Accepted transactions are irreversible; there is no local rollback.
"""

import logging
from typing import Optional, Sequence

from stellar_sdk import Account, TransactionBuilder, TransactionEnvelope
from stellar_sdk.operation.operation import Operation

from stellarflow.identity import Identity
from stellarflow.ledger.base import (
    AccountState,
    LedgerGateway,
    StaleAccountState,
    SubmissionReceipt,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30


class TransactionStep:
    """Builds transactions from fresh account state and submits them.

    Tracks the sequence of the last accepted transaction per account so
    that building twice from the same loaded state is caught locally.
    """

    def __init__(
        self,
        ledger: LedgerGateway,
        network_passphrase: str,
        base_fee: int = 100,
    ):
        self.ledger = ledger
        self.network_passphrase = network_passphrase
        self.base_fee = base_fee
        self._accepted_sequences: dict[str, int] = {}

    def last_accepted_sequence(self, account_id: str) -> Optional[int]:
        return self._accepted_sequences.get(account_id)

    def check_ordering(self, state: AccountState) -> None:
        """Raise StaleAccountState unless state advances past the last acceptance."""
        last = self._accepted_sequences.get(state.account_id)
        if last is not None and state.next_sequence <= last:
            raise StaleAccountState(
                f"State for {state.account_id} is stale: next sequence "
                f"{state.next_sequence} <= last accepted {last}; reload the account",
                {
                    "account_id": state.account_id,
                    "state_sequence": state.sequence,
                    "last_accepted_sequence": last,
                },
            )

    def build(
        self,
        state: AccountState,
        signer: Identity,
        operations: Sequence[Operation],
        timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
    ) -> TransactionEnvelope:
        """Build and sign a transaction bound to ``state.sequence + 1``."""
        if signer.public_key != state.account_id:
            raise ValueError(
                f"Signer {signer.label} does not own source account {state.account_id}"
            )
        if not operations:
            raise ValueError("A transaction needs at least one operation")
        self.check_ordering(state)

        # Fresh sdk Account: the builder bumps its sequence, the snapshot stays untouched
        source = Account(state.account_id, state.sequence)
        builder = TransactionBuilder(
            source_account=source,
            network_passphrase=self.network_passphrase,
            base_fee=self.base_fee,
        )
        for op in operations:
            builder.append_operation(op)
        envelope = builder.set_timeout(timeout_seconds).build()
        return signer.sign(envelope)

    async def build_and_submit(
        self,
        state: AccountState,
        signer: Identity,
        operations: Sequence[Operation],
        timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
    ) -> SubmissionReceipt:
        """Build, sign and submit. Propagates SubmissionRejected unchanged."""
        envelope = self.build(state, signer, operations, timeout_seconds)
        op_names = ", ".join(type(op).__name__ for op in operations)
        logger.info(
            f"Submitting tx from {signer.label} seq={envelope.transaction.sequence} ops=[{op_names}]"
        )
        receipt = await self.ledger.submit_transaction(envelope.to_xdr())
        self._accepted_sequences[state.account_id] = envelope.transaction.sequence
        logger.info(f"Accepted tx {receipt.tx_hash} (ledger {receipt.ledger})")
        return receipt
