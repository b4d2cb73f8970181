"""Account ledger — per-account collateral balances and minted debt."""
from __future__ import annotations

import logging

from .exceptions import DebtUnderflow, TokenNotAllowed

logger = logging.getLogger(__name__)


class AccountLedger:
    """In-memory table of account balances keyed by account identifier.

    Accounts appear on first write and are never removed. Only assets in
    the supported list may hold a balance.
    """

    def __init__(self, supported_assets: tuple[str, ...]) -> None:
        self._supported = frozenset(supported_assets)
        self._collateral: dict[str, dict[str, int]] = {}
        self._debt: dict[str, int] = {}
        self._touched: set[str] = set()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def collateral(self, account: str, asset: str) -> int:
        return self._collateral.get(account, {}).get(asset, 0)

    def debt(self, account: str) -> int:
        return self._debt.get(account, 0)

    def total_debt(self) -> int:
        return sum(self._debt.values())

    def total_collateral(self, asset: str) -> int:
        return sum(balances.get(asset, 0) for balances in self._collateral.values())

    def accounts(self) -> list[str]:
        return sorted(set(self._collateral) | set(self._debt))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def credit_collateral(self, account: str, asset: str, amount: int) -> None:
        if asset not in self._supported:
            raise TokenNotAllowed(asset)
        self._touched.add(account)
        balances = self._collateral.setdefault(account, {})
        balances[asset] = balances.get(asset, 0) + amount

    def debit_collateral(self, account: str, asset: str, amount: int) -> bool:
        """Remove ``amount`` of ``asset``; returns False and changes nothing
        when the recorded balance is insufficient."""
        current = self.collateral(account, asset)
        if current < amount:
            logger.warning(
                "Collateral debit skipped: %s holds %d %s, requested %d",
                account, current, asset, amount,
            )
            return False
        self._touched.add(account)
        self._collateral[account][asset] = current - amount
        return True

    def add_debt(self, account: str, amount: int) -> None:
        self._touched.add(account)
        self._debt[account] = self.debt(account) + amount

    def remove_debt(self, account: str, amount: int) -> None:
        recorded = self.debt(account)
        if amount > recorded:
            raise DebtUnderflow(account, recorded, amount)
        self._touched.add(account)
        self._debt[account] = recorded - amount

    # ------------------------------------------------------------------
    # Commit and rollback support
    # ------------------------------------------------------------------

    def take_touched(self) -> set[str]:
        """Accounts written since the last call, clearing the record."""
        touched, self._touched = self._touched, set()
        return touched

    def copy_accounts(self, source: AccountLedger, accounts: set[str]) -> None:
        """Overwrite ``accounts`` with their entries in ``source``."""
        for account in accounts:
            balances = source._collateral.get(account)
            if balances is None:
                self._collateral.pop(account, None)
            else:
                self._collateral[account] = dict(balances)
            if account in source._debt:
                self._debt[account] = source._debt[account]
            else:
                self._debt.pop(account, None)
