"""Off-chain ETH/USD market quote with a short-lived cache."""

import logging
import time
from decimal import Decimal, InvalidOperation

import httpx

logger = logging.getLogger(__name__)

COINGECKO_URL = "https://api.coingecko.com/api/v3/simple/price"
COINBASE_URL = "https://api.coinbase.com/v2/prices/ETH-USD/spot"
CACHE_TTL = 30.0


class MarketPricing:
    """
    Fetches the ETH/USD market price from CoinGecko, falling back to Coinbase.

    Quotes are cached for ``cache_ttl`` seconds, including failed lookups, to
    stay under the public rate limits.

    Parameters
    ----------
    client : httpx.AsyncClient | None
        HTTP client. A private one is created if None.
    cache_ttl : float
        Cache lifetime in seconds

    """

    def __init__(self, client: httpx.AsyncClient | None = None, cache_ttl: float = CACHE_TTL) -> None:
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=10.0, headers={"Accept": "application/json"})
        self.cache_ttl = cache_ttl
        self._cached: tuple[float, Decimal | None] | None = None

    async def get_eth_usd(self, force_refresh: bool = False) -> Decimal | None:
        """
        Current ETH price in USD.

        Parameters
        ----------
        force_refresh : bool
            Ignore the cached value

        Returns
        -------
        Decimal | None
            USD price, or None if both sources failed

        """
        now = time.monotonic()
        if not force_refresh and self._cached and now - self._cached[0] < self.cache_ttl:
            return self._cached[1]

        price = await self._fetch_coingecko()
        if price is None:
            price = await self._fetch_coinbase()

        self._cached = (now, price)
        return price

    async def _get_json(self, url: str, params: dict | None = None) -> dict | None:
        try:
            response = await self.client.get(url, params=params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug("Market price request to %s failed: %s", url, e)
            return None
        return data if isinstance(data, dict) else None

    async def _fetch_coingecko(self) -> Decimal | None:
        data = await self._get_json(COINGECKO_URL, {"ids": "ethereum", "vs_currencies": "usd"})
        price = (data or {}).get("ethereum", {}).get("usd")
        if not isinstance(price, int | float) or isinstance(price, bool):
            return None
        return Decimal(str(price))

    async def _fetch_coinbase(self) -> Decimal | None:
        data = await self._get_json(COINBASE_URL)
        amount = (data or {}).get("data", {}).get("amount")
        if amount is None:
            return None
        try:
            price = Decimal(str(amount))
        except InvalidOperation:
            return None
        return price if price.is_finite() else None

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "MarketPricing":
        return self

    async def __aexit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        await self.aclose()
