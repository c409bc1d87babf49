"""Account state loading with bounded retry.

Horizon needs time to ingest freshly closed ledgers, so a just-funded or
just-updated account may not be visible yet. The loader never treats the
first failure as authoritative and never caches: sequence numbers must be
current at transaction build time.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from stellarflow.ledger.base import (
    AccountNotFound,
    AccountState,
    GatewayUnavailable,
    LedgerGateway,
    RetryExhausted,
)

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (AccountNotFound, GatewayUnavailable)


class AccountLoader:
    """Loads account state, retrying with linearly increasing delays.

    Attempt ``i`` (0-indexed) that fails waits ``(i + 1) * base_delay_ms``
    before the next attempt: 2s, 4s, 6s, ... with the default delay.
    """

    def __init__(
        self,
        ledger: LedgerGateway,
        max_retries: int = 5,
        base_delay_ms: int = 2000,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.ledger = ledger
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self._sleep = sleep

    def delay_ms(self, attempt: int) -> int:
        """Delay after failed attempt ``attempt`` (0-indexed)."""
        return (attempt + 1) * self.base_delay_ms

    async def load_account(
        self, public_key: str, max_retries: Optional[int] = None
    ) -> AccountState:
        """Fetch account state, retrying up to ``max_retries`` times.

        Raises:
            RetryExhausted: All ``max_retries + 1`` attempts failed
        """
        retries = self.max_retries if max_retries is None else max_retries
        attempts = retries + 1
        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            try:
                state = await self.ledger.get_account(public_key)
                if attempt:
                    logger.info(f"Loaded {public_key} on attempt {attempt + 1}")
                return state
            except RETRYABLE_ERRORS as e:
                last_error = e
                if attempt == attempts - 1:
                    break
                delay = self.delay_ms(attempt)
                logger.warning(
                    f"Retry {attempt + 1}/{retries} loading {public_key} in {delay}ms: {e}"
                )
                await self._sleep(delay / 1000)

        logger.error(f"Giving up on {public_key} after {attempts} attempts: {last_error}")
        raise RetryExhausted(public_key, attempts, last_error) from last_error
