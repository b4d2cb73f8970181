"""Fixed-point helpers — every amount in the engine is an int scaled by WAD."""
from __future__ import annotations

from decimal import Decimal, ROUND_DOWN

WAD_DECIMALS = 18
WAD = 10**WAD_DECIMALS

# Health factor reported for an account with no debt.
MAX_HEALTH_FACTOR = 2**256 - 1


def to_wad(value: int | str | Decimal, decimals: int = WAD_DECIMALS) -> int:
    """Convert a human amount (``"1.5"``) to a fixed-point int, rounding down."""
    scaled = Decimal(str(value)) * (Decimal(10) ** decimals)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def from_wad(amount: int, decimals: int = WAD_DECIMALS) -> Decimal:
    """Convert a fixed-point int back to a Decimal for display only."""
    return Decimal(amount) / (Decimal(10) ** decimals)


def normalize_price(price: int, decimals: int) -> int:
    """Rescale a feed price with ``decimals`` places to WAD precision.

    Feeds with more places than the ledger are divided down (rounding
    toward zero), never assumed to match the ledger scale.
    """
    if decimals <= WAD_DECIMALS:
        return price * 10 ** (WAD_DECIMALS - decimals)
    return price // 10 ** (decimals - WAD_DECIMALS)
