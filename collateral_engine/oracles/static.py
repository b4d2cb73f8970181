"""In-memory price oracle with settable prices."""
from __future__ import annotations

import logging
import time
from decimal import Decimal
from typing import Callable

from ..exceptions import OracleUnavailable
from ..models import PriceReading
from ..units import to_wad

logger = logging.getLogger(__name__)

FEED_DECIMALS = 8


class StaticPriceOracle:
    """Serve whatever prices were last set; used by tests and ``simulate``."""

    def __init__(
        self,
        decimals: int = FEED_DECIMALS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.decimals = decimals
        self._clock = clock
        self._readings: dict[str, PriceReading] = {}

    async def latest_price(self, feed_id: str) -> PriceReading:
        reading = self._readings.get(feed_id)
        if reading is None:
            raise OracleUnavailable(feed_id, "no price has been set")
        return reading

    def set_price(
        self,
        feed_id: str,
        usd: int | str | Decimal,
        updated_at: int | None = None,
    ) -> PriceReading:
        """Set the price of ``feed_id`` in whole USD (``"2000"``, ``"10.5"``)."""
        return self.set_raw_price(
            feed_id, to_wad(usd, self.decimals), updated_at=updated_at
        )

    def set_raw_price(
        self, feed_id: str, price: int, updated_at: int | None = None
    ) -> PriceReading:
        """Set the price of ``feed_id`` already scaled to the feed's decimals."""
        if updated_at is None:
            updated_at = int(self._clock())
        reading = PriceReading(
            price=price, decimals=self.decimals, updated_at=updated_at
        )
        self._readings[feed_id] = reading
        logger.debug("Static price %s = %d (decimals=%d)", feed_id, price, self.decimals)
        return reading

    def apply_shock(self, feed_id: str, percent: int | str | Decimal) -> PriceReading:
        """Move the price of ``feed_id`` by ``percent`` (``-30`` for a 30% drop)."""
        current = self._readings.get(feed_id)
        if current is None:
            raise OracleUnavailable(feed_id, "no price has been set")
        factor = Decimal(100) + Decimal(str(percent))
        new_price = int(Decimal(current.price) * factor / Decimal(100))
        logger.info(
            "Price shock on %s: %s%% (%d -> %d)", feed_id, percent, current.price, new_price
        )
        return self.set_raw_price(feed_id, new_price)
