"""Price resolver — converts between asset quantities and USD value."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Mapping

from .exceptions import CollaboratorTimeout, OracleUnavailable, StalePrice, TokenNotAllowed
from .interfaces.price_oracle import PriceOracle
from .units import WAD, normalize_price

logger = logging.getLogger(__name__)


class PriceResolver:
    """Validated USD conversions for the supported collateral assets.

    A reading is rejected when it is older than ``max_age_seconds``, was
    never updated, or carries a non-positive price. Every result is an
    integer scaled by ``precision`` and rounded down.
    """

    def __init__(
        self,
        oracle: PriceOracle,
        price_feeds: Mapping[str, str],
        max_age_seconds: int,
        precision: int = WAD,
        call_timeout: float = 10.0,
        retries: int = 2,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._oracle = oracle
        self._feeds = dict(price_feeds)
        self.max_age_seconds = max_age_seconds
        self.precision = precision
        self._call_timeout = call_timeout
        self._retries = retries
        self._clock = clock

    def price_feed(self, asset: str) -> str:
        try:
            return self._feeds[asset]
        except KeyError:
            raise TokenNotAllowed(asset) from None

    async def price(self, asset: str) -> int:
        """Latest validated price of one whole unit of ``asset``, in WAD."""
        feed_id = self.price_feed(asset)
        reading = await self._read(feed_id)

        if reading.price <= 0:
            raise OracleUnavailable(feed_id, f"non-positive price {reading.price}")
        age = self._clock() - reading.updated_at
        if age < 0:
            raise OracleUnavailable(
                feed_id, f"publish time {reading.updated_at} is in the future"
            )
        if reading.updated_at <= 0 or age > self.max_age_seconds:
            raise StalePrice(feed_id, reading.updated_at, age)

        return normalize_price(reading.price, reading.decimals)

    async def usd_value(self, asset: str, amount: int) -> int:
        price = await self.price(asset)
        return price * amount // self.precision

    async def token_amount_from_usd(self, asset: str, usd_amount: int) -> int:
        price = await self.price(asset)
        return usd_amount * self.precision // price

    async def _read(self, feed_id: str):
        attempts = self._retries + 1
        last_error: Exception | None = None
        for attempt in range(attempts):
            try:
                return await asyncio.wait_for(
                    self._oracle.latest_price(feed_id), timeout=self._call_timeout
                )
            except asyncio.TimeoutError:
                last_error = CollaboratorTimeout(
                    f"latest_price({feed_id})", self._call_timeout
                )
            except OracleUnavailable as e:
                last_error = e
            if attempt < attempts - 1:
                logger.warning(
                    "Price read for %s failed (%s), retrying", feed_id, last_error
                )

        if last_error is None:
            raise OracleUnavailable(feed_id, "no read attempted")
        raise last_error
