"""Ledger protocols — fungible-balance collaborators.

Mutating calls report failure by returning ``False``; callers must check
the result of every call.
"""
from typing import Protocol


class CollateralLedger(Protocol):
    """Abstract interface for a collateral asset ledger."""

    @property
    def symbol(self) -> str: ...

    async def balance_of(self, account: str) -> int: ...

    async def transfer(self, sender: str, recipient: str, amount: int) -> bool: ...

    async def transfer_from(
        self, spender: str, source: str, recipient: str, amount: int
    ) -> bool: ...


class SyntheticLedger(CollateralLedger, Protocol):
    """Synthetic asset ledger; mint and burn are restricted to its controller."""

    async def total_supply(self) -> int: ...

    async def mint(self, caller: str, recipient: str, amount: int) -> bool: ...

    async def burn(self, caller: str, amount: int) -> bool: ...
