"""Over-collateralized synthetic asset issuance engine."""
from .engine import CollateralEngine
from .exceptions import EngineError

__all__ = ["CollateralEngine", "EngineError"]
