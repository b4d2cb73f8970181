"""In-memory fungible-balance ledger with allowance semantics."""
from __future__ import annotations

import logging
from collections import defaultdict

logger = logging.getLogger(__name__)


class TokenLedger:
    """Balances and allowances for one asset.

    ``transfer`` and ``transfer_from`` return ``False`` instead of raising
    when a balance or allowance is insufficient.
    """

    def __init__(self, symbol: str) -> None:
        self._symbol = symbol
        self._balances: dict[str, int] = defaultdict(int)
        self._allowances: dict[tuple[str, str], int] = defaultdict(int)
        self._total_supply = 0

    @property
    def symbol(self) -> str:
        return self._symbol

    async def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    async def total_supply(self) -> int:
        return self._total_supply

    async def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    async def approve(self, owner: str, spender: str, amount: int) -> bool:
        if amount < 0:
            return False
        self._allowances[(owner, spender)] = amount
        return True

    async def mint_to(self, recipient: str, amount: int) -> None:
        """Credit ``amount`` out of thin air (faucet for tests and simulation)."""
        if amount < 0:
            raise ValueError("Cannot mint a negative amount")
        self._balances[recipient] += amount
        self._total_supply += amount

    async def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        return self._move(sender, recipient, amount)

    async def transfer_from(
        self, spender: str, source: str, recipient: str, amount: int
    ) -> bool:
        allowed = self._allowances.get((source, spender), 0)
        if amount > allowed:
            logger.debug(
                "%s: allowance %d of %s for %s is below %d",
                self._symbol, allowed, source, spender, amount,
            )
            return False
        if not self._move(source, recipient, amount):
            return False
        self._allowances[(source, spender)] = allowed - amount
        return True

    def _move(self, source: str, recipient: str, amount: int) -> bool:
        if amount < 0 or self._balances.get(source, 0) < amount:
            return False
        self._balances[source] -= amount
        self._balances[recipient] += amount
        return True

    def _burn_from(self, account: str, amount: int) -> bool:
        if amount <= 0 or self._balances.get(account, 0) < amount:
            return False
        self._balances[account] -= amount
        self._total_supply -= amount
        return True
