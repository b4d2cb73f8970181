"""Pyth Network price oracle service."""
import asyncio
import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ..config import PythConfig
from ..exceptions import OracleUnavailable
from ..models import PriceReading

logger = logging.getLogger(__name__)


class PythOracle:
    """Read the latest price of a feed from the Pyth Hermes API."""

    def __init__(self, config: PythConfig) -> None:
        self.hermes_url = config.hermes_url
        self.timeout = config.timeout

    async def latest_price(self, feed_id: str) -> PriceReading:
        """Fetch the latest reading of ``feed_id``.

        Raises:
            OracleUnavailable: on HTTP/network failure or a malformed payload.
        """
        url = f"{self.hermes_url}?ids[]={feed_id}"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    url, timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as response:
                    if response.status != 200:
                        logger.error(
                            "Error fetching price from Pyth: HTTP %s", response.status
                        )
                        raise OracleUnavailable(feed_id, f"HTTP {response.status}")

                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.error("Error fetching price from Pyth: %s", e)
            raise OracleUnavailable(feed_id, str(e)) from e

        reading = _parse_reading(feed_id, data)
        logger.debug(
            "Pyth %s: price=%d decimals=%d updated_at=%d",
            feed_id, reading.price, reading.decimals, reading.updated_at,
        )
        return reading


def _parse_reading(feed_id: str, data: dict[str, Any]) -> PriceReading:
    """Turn a Hermes ``parsed`` entry into a PriceReading."""
    wanted = feed_id.lower().removeprefix("0x")
    for item in data.get("parsed", []):
        if str(item.get("id", "")).lower().removeprefix("0x") != wanted:
            continue
        price_data = item.get("price", {})
        try:
            price_raw = int(price_data["price"])
            expo = int(price_data["expo"])
            publish_time = int(price_data["publish_time"])
        except (KeyError, TypeError, ValueError) as e:
            raise OracleUnavailable(feed_id, f"malformed price payload: {e}") from e

        # Pyth prices are price_raw * 10**expo; a positive expo means no
        # fractional digits, folded into the integer.
        if expo > 0:
            return PriceReading(
                price=price_raw * 10**expo, decimals=0, updated_at=publish_time
            )
        return PriceReading(price=price_raw, decimals=-expo, updated_at=publish_time)

    raise OracleUnavailable(feed_id, "feed missing from response")
