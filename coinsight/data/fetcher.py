"""
CoinGecko price fetcher.
"""

import logging
import time
from typing import Iterable

import requests

logger = logging.getLogger(__name__)


class PriceFetchError(Exception):
    """Raised when current prices cannot be retrieved."""

    pass


class CoinPriceFetcher:
    """Fetches current coin prices from the CoinGecko API."""

    def __init__(
        self,
        base_url: str = "https://api.coingecko.com/api/v3",
        timeout: float = 10,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def get_prices(
        self, coin_ids: Iterable[str], currency: str = "usd"
    ) -> dict[str, float]:
        """
        Fetch current prices for several coins in one request.

        Args:
            coin_ids: CoinGecko coin identifiers (e.g., "bitcoin")
            currency: Quote currency

        Returns:
            Mapping of coin id to price. Coins the API did not return are
            absent from the mapping.

        Raises:
            PriceFetchError: If the API cannot be reached after retries
        """
        ids = sorted(set(coin_ids))
        if not ids:
            return {}

        payload = self._get(
            "/simple/price",
            {"ids": ",".join(ids), "vs_currencies": currency.lower()},
        )

        prices = {}
        for coin_id, quote in payload.items():
            value = quote.get(currency.lower()) if isinstance(quote, dict) else None
            if value is None:
                logger.warning(f"No {currency} price for {coin_id}")
                continue
            prices[coin_id] = float(value)
        return prices

    def get_price(self, coin_id: str, currency: str = "usd") -> float:
        """
        Fetch the current price of a single coin.

        Raises:
            PriceFetchError: If the coin is unknown or the API fails
        """
        prices = self.get_prices([coin_id], currency)
        if coin_id not in prices:
            raise PriceFetchError(f"No price data available: {coin_id}")
        return prices[coin_id]

    def _get(self, path: str, params: dict[str, str]) -> dict:
        """GET with retries on connection errors and rate limits."""
        last_error = ""
        for attempt in range(1, self.max_retries + 1):
            try:
                response = requests.get(
                    f"{self.base_url}{path}", params=params, timeout=self.timeout
                )
            except requests.exceptions.RequestException as e:
                last_error = str(e)
                logger.warning(f"Price request failed (attempt {attempt}): {e}")
            else:
                if response.ok:
                    return response.json()
                last_error = f"HTTP {response.status_code}: {response.text}"
                logger.warning(f"Price request rejected (attempt {attempt}): {last_error}")
                if response.status_code != 429 and response.status_code < 500:
                    break

            if attempt < self.max_retries:
                time.sleep(self.retry_delay)

        raise PriceFetchError(f"Could not fetch prices: {last_error}")
