"""Data models — all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class PriceReading:
    """Latest answer of a price feed.

    ``price`` is an integer with ``decimals`` fractional places and
    ``updated_at`` is a unix timestamp in seconds.
    """

    price: int
    decimals: int
    updated_at: int


@dataclass(frozen=True)
class AccountInformation:
    """Debt and raw collateral value of a single account."""

    total_minted: int
    collateral_value_usd: int


@dataclass(frozen=True)
class SolvencyReport:
    """Protocol-wide collateral coverage."""

    total_debt: int
    total_supply: int
    total_collateral_value: int

    @property
    def solvent(self) -> bool:
        return self.total_collateral_value >= self.total_debt


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CollateralDeposited:
    account: str
    asset: str
    amount: int


@dataclass(frozen=True)
class CollateralRedeemed:
    redeemed_from: str
    redeemed_to: str
    asset: str
    amount: int


@dataclass(frozen=True)
class SyntheticMinted:
    account: str
    amount: int


@dataclass(frozen=True)
class SyntheticBurned:
    on_behalf_of: str
    payer: str
    amount: int


@dataclass(frozen=True)
class Liquidated:
    liquidator: str
    account: str
    asset: str
    debt_covered: int
    collateral_seized: int


EngineEvent = Union[
    CollateralDeposited,
    CollateralRedeemed,
    SyntheticMinted,
    SyntheticBurned,
    Liquidated,
]
