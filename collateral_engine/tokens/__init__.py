"""In-memory reference ledgers."""
from .synthetic import SyntheticAsset
from .token import TokenLedger

__all__ = ["SyntheticAsset", "TokenLedger"]
