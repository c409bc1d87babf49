"""Wallet-style view of an account's balances."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from stellarflow.ledger.base import AccountState


@dataclass
class TokenBalance:
    code: str
    issuer: Optional[str]
    amount: Decimal

    def to_dict(self) -> dict:
        return {"code": self.code, "issuer": self.issuer, "amount": str(self.amount)}


@dataclass
class BalanceSummary:
    """Native token, stablecoin, other tokens and pool shares of one account."""

    account_id: str
    native: Decimal = Decimal("0")
    stablecoin: Optional[TokenBalance] = None
    tokens: list[TokenBalance] = field(default_factory=list)
    pool_shares: dict[str, Decimal] = field(default_factory=dict)

    def token(self, code: str) -> Optional[TokenBalance]:
        for token in self.tokens:
            if token.code == code:
                return token
        if self.stablecoin and self.stablecoin.code == code:
            return self.stablecoin
        return None

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "native": str(self.native),
            "stablecoin": self.stablecoin.to_dict() if self.stablecoin else None,
            "tokens": [t.to_dict() for t in self.tokens],
            "pool_shares": {pool_id: str(v) for pool_id, v in self.pool_shares.items()},
        }


def summarize_balances(state: AccountState, stablecoin_code: str = "USDC") -> BalanceSummary:
    """Split an account's balance lines the way the wallet displays them.

    The stablecoin is only reported when held with a non-zero balance;
    a zero stablecoin line is listed with the other tokens.
    """
    summary = BalanceSummary(account_id=state.account_id)

    for line in state.balances:
        if line.is_native:
            summary.native = line.balance
        elif line.is_pool_shares:
            summary.pool_shares[line.liquidity_pool_id] = line.balance
        else:
            token = TokenBalance(line.asset_code, line.asset_issuer, line.balance)
            if line.asset_code == stablecoin_code and line.balance > 0 and summary.stablecoin is None:
                summary.stablecoin = token
            else:
                summary.tokens.append(token)

    return summary
