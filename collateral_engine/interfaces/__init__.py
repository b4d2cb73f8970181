"""Protocol interfaces for the engine's external collaborators."""
from .ledger import CollateralLedger, SyntheticLedger
from .price_oracle import PriceOracle

__all__ = ["CollateralLedger", "PriceOracle", "SyntheticLedger"]
