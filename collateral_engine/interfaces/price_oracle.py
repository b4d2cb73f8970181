"""Price oracle protocol — price feed abstraction."""
from typing import Protocol

from ..models import PriceReading


class PriceOracle(Protocol):
    """Abstract interface for reading the latest price of a feed."""

    async def latest_price(self, feed_id: str) -> PriceReading: ...
