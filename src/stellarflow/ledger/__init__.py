"""Ledger access: account loading, transaction steps and gateways."""

from stellarflow.ledger.base import (
    AccountNotFound,
    AccountState,
    Balance,
    Faucet,
    GatewayUnavailable,
    LedgerGateway,
    RetryExhausted,
    StaleAccountState,
    SubmissionReceipt,
    SubmissionRejected,
    WorkflowError,
)
from stellarflow.ledger.loader import AccountLoader
from stellarflow.ledger.step import TransactionStep

__all__ = [
    # State
    "AccountState",
    "Balance",
    "SubmissionReceipt",
    # Errors
    "WorkflowError",
    "AccountNotFound",
    "GatewayUnavailable",
    "SubmissionRejected",
    "RetryExhausted",
    "StaleAccountState",
    # Gateways
    "LedgerGateway",
    "Faucet",
    "AccountLoader",
    "TransactionStep",
]
