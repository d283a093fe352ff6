"""
signalwatch Core: Market Data Providers

Price series for the scan loop, oldest first:
- Stocks: Alpha Vantage intraday closes
- Crypto: CoinGecko market chart (hourly points over ~48h)

Soft provider failures (rate-limit notes delivered with HTTP 200) raise
ProviderNotice; transport and payload failures raise PriceFetchError. The
scan loop treats both as the same "fetch failed" outcome.
"""

import logging
import math
import os
import random
import time
from typing import Any, Dict, List, Optional

import requests

from core.exceptions import PriceFetchError, ProviderNotice
from core.models import Instrument

logger = logging.getLogger(__name__)

ALPHA_VANTAGE_URL = "https://www.alphavantage.co/query"
COINGECKO_BASE = "https://api.coingecko.com/api/v3"


def _clean_series(values: List[Any]) -> List[float]:
    prices = []
    for value in values:
        try:
            price = float(value)
        except (TypeError, ValueError):
            continue
        if math.isfinite(price) and price > 0:
            prices.append(price)
    return prices


class _HttpProvider:
    """Shared GET-with-backoff for the public price APIs."""

    name = "provider"

    def __init__(self, timeout: float = 15.0, max_retries: int = 2):
        self.timeout = float(timeout)
        self.max_retries = max(1, int(max_retries))

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None, label: str = "") -> Dict[str, Any]:
        """
        GET JSON with exponential backoff.

        Retries on 429, 5xx and network errors; other 4xx fail immediately.
        """
        last_exception: Optional[Exception] = None
        for attempt in range(self.max_retries):
            try:
                response = requests.get(url, params=params, timeout=self.timeout)
                response.raise_for_status()
                payload = response.json()
                if not isinstance(payload, dict):
                    raise PriceFetchError(f"{self.name} returned unexpected payload for {label}")
                return payload

            except requests.exceptions.HTTPError as e:
                status_code = e.response.status_code if e.response is not None else 0
                if 400 <= status_code < 500 and status_code != 429:
                    raise PriceFetchError(f"{self.name} HTTP {status_code} for {label}", e) from e
                logger.warning(f"{self.name} HTTP {status_code} for {label}, attempt {attempt + 1}/{self.max_retries}")
                last_exception = e

            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                logger.warning(f"{self.name} network error for {label}: {e}, attempt {attempt + 1}/{self.max_retries}")
                last_exception = e

            except ValueError as e:
                raise PriceFetchError(f"{self.name} returned invalid JSON for {label}", e) from e

            except requests.exceptions.RequestException as e:
                raise PriceFetchError(f"{self.name} request failed for {label}", e) from e

            if attempt < self.max_retries - 1:
                backoff = (2 ** attempt) + random.uniform(0, 1)
                logger.info(f"Retrying {self.name} in {backoff:.1f}s...")
                time.sleep(backoff)

        raise PriceFetchError(f"{self.name} request failed for {label}", last_exception)


class AlphaVantageClient(_HttpProvider):
    """Intraday closing prices for stock symbols."""

    name = "AlphaVantage"

    def __init__(self, api_key: Optional[str] = None, interval: str = "5min",
                 outputsize: str = "compact", timeout: float = 15.0, max_retries: int = 2):
        super().__init__(timeout=timeout, max_retries=max_retries)
        self.api_key = api_key if api_key is not None else os.getenv("ALPHA_VANTAGE_API_KEY", "")
        self.interval = interval
        self.outputsize = outputsize

    @classmethod
    def from_config(cls, raw_config: Optional[Dict[str, Any]]) -> "AlphaVantageClient":
        raw_config = raw_config or {}
        return cls(
            api_key=os.getenv(raw_config.get("api_key_env", "ALPHA_VANTAGE_API_KEY"), ""),
            interval=raw_config.get("interval", "5min"),
            outputsize=raw_config.get("outputsize", "compact"),
            timeout=float(raw_config.get("timeout_seconds", 15.0)),
            max_retries=int(raw_config.get("max_retries", 2)),
        )

    def fetch_prices(self, instrument: Instrument) -> List[float]:
        if not self.api_key:
            raise PriceFetchError("Missing ALPHA_VANTAGE_API_KEY")

        symbol = instrument.symbol
        payload = self._get(ALPHA_VANTAGE_URL, params={
            "function": "TIME_SERIES_INTRADAY",
            "symbol": symbol,
            "interval": self.interval,
            "outputsize": self.outputsize,
            "apikey": self.api_key,
        }, label=symbol)

        if payload.get("Note"):
            raise ProviderNotice(f"AlphaVantage Note: {payload['Note']}")
        if payload.get("Information"):
            raise ProviderNotice(f"AlphaVantage Info: {payload['Information']}")
        if payload.get("Error Message"):
            raise PriceFetchError(f"AlphaVantage error for {symbol}: {payload['Error Message']}")

        series_key = f"Time Series ({self.interval})"
        timeseries = payload.get(series_key)
        if not isinstance(timeseries, dict) or not timeseries:
            raise PriceFetchError(f"AlphaVantage missing timeseries for {symbol}")

        # Keys are timestamps; sort ascending so the newest bar is last
        closes = [
            bar.get("4. close")
            for _, bar in sorted(timeseries.items())
            if isinstance(bar, dict)
        ]
        return _clean_series(closes)


class CoinGeckoClient(_HttpProvider):
    """Market chart prices for CoinGecko coin ids (days=2 yields hourly points)."""

    name = "CoinGecko"

    def __init__(self, vs_currency: str = "usd", days: int = 2,
                 timeout: float = 15.0, max_retries: int = 2, api_key: Optional[str] = None):
        super().__init__(timeout=timeout, max_retries=max_retries)
        self.vs_currency = vs_currency
        self.days = days
        self.api_key = api_key

    @classmethod
    def from_config(cls, raw_config: Optional[Dict[str, Any]]) -> "CoinGeckoClient":
        raw_config = raw_config or {}
        key_env = raw_config.get("api_key_env")
        return cls(
            vs_currency=raw_config.get("vs_currency", "usd"),
            days=int(raw_config.get("days", 2)),
            timeout=float(raw_config.get("timeout_seconds", 15.0)),
            max_retries=int(raw_config.get("max_retries", 2)),
            api_key=os.getenv(key_env) if key_env else None,
        )

    def fetch_prices(self, instrument: Instrument) -> List[float]:
        coin_id = instrument.id
        params: Dict[str, Any] = {"vs_currency": self.vs_currency, "days": self.days}
        if self.api_key:
            params["x_cg_demo_api_key"] = self.api_key
        payload = self._get(f"{COINGECKO_BASE}/coins/{coin_id}/market_chart", params=params, label=coin_id)

        points = payload.get("prices")
        if not isinstance(points, list):
            raise PriceFetchError(f"CoinGecko missing prices for {coin_id}")

        # Each point is [timestamp_ms, price]
        return _clean_series([p[1] for p in points if isinstance(p, (list, tuple)) and len(p) >= 2])


__all__ = ["AlphaVantageClient", "CoinGeckoClient"]
