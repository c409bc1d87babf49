"""Pytest configuration and fixtures."""

import os
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DRY_RUN"] = "true"
os.environ["DEBUG"] = "true"

from stellarflow.config import TESTNET_PASSPHRASE
from stellarflow.identity import Identity
from stellarflow.ledger.loader import AccountLoader
from stellarflow.ledger.simulated import SimulatedLedger
from stellarflow.ledger.step import TransactionStep
from stellarflow.vault.simulated import SimulatedVaultGateway


@pytest.fixture
def passphrase() -> str:
    return TESTNET_PASSPHRASE


@pytest.fixture
def sleep() -> AsyncMock:
    """Recording stand-in for asyncio.sleep."""
    return AsyncMock(return_value=None)


@pytest.fixture
def ledger(passphrase) -> SimulatedLedger:
    """Empty in-memory ledger."""
    return SimulatedLedger(passphrase)


@pytest.fixture
def loader(ledger, sleep) -> AccountLoader:
    return AccountLoader(ledger, max_retries=5, base_delay_ms=2000, sleep=sleep)


@pytest.fixture
def step(ledger, passphrase) -> TransactionStep:
    return TransactionStep(ledger, passphrase)


@pytest.fixture
def vault_gateway(ledger, passphrase) -> SimulatedVaultGateway:
    return SimulatedVaultGateway(ledger, passphrase)


@pytest_asyncio.fixture
async def issuer(ledger) -> Identity:
    identity = Identity.generate("issuer")
    await ledger.fund(identity.public_key)
    return identity


@pytest_asyncio.fixture
async def holder(ledger) -> Identity:
    identity = Identity.generate("holder")
    await ledger.fund(identity.public_key)
    return identity
