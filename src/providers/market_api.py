import logging
import os
import sqlite3
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from src.db import get_all_settings, get_cached_rates, is_price_fresh, save_rate
from src.providers.base import MarketRateProvider

logger = logging.getLogger(__name__)

GOLD_SYMBOL = "XAU"
USD_INR_SYMBOL = "USDINR"
MARKET_SYMBOLS = [GOLD_SYMBOL, USD_INR_SYMBOL]

# Anything outside this band is a scraping/provider error, not a market move.
USD_INR_PLAUSIBLE_RANGE = (50.0, 150.0)


def _check_usd_inr(value: float) -> float:
    low, high = USD_INR_PLAUSIBLE_RANGE
    if not low <= value <= high:
        raise RuntimeError(f"Implausible USD to INR rate {value:.4f}; expected {low:.0f}-{high:.0f}")
    return value


def _retrying_session() -> requests.Session:
    session = requests.Session()
    retry = Retry(
        total=2,
        connect=2,
        read=2,
        backoff_factor=0.5,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"],
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


class MetalPriceAPIProvider(MarketRateProvider):
    """
    Provider implementation for metalpriceapi.com.

    With base=INR the endpoint returns 'units per INR' for each currency, so
    XAU and USD are inverted to get INR per troy ounce and INR per dollar.
    """

    provider_name = "metalpriceapi"
    endpoint = "https://api.metalpriceapi.com/v1/latest"

    def __init__(self, api_key: str | None = None, timeout_seconds: int = 10):
        self.api_key = api_key or os.getenv("METALPRICEAPI_KEY", "")
        self.timeout_seconds = timeout_seconds
        self.session = _retrying_session()

    def fetch_latest_inr(self, symbols: list[str]) -> dict[str, float]:
        if not self.api_key:
            raise RuntimeError("Missing METALPRICEAPI_KEY in .env")

        currencies = {GOLD_SYMBOL: "XAU", USD_INR_SYMBOL: "USD"}
        requested = [currencies[symbol] for symbol in symbols if symbol in currencies]
        response = self.session.get(
            self.endpoint,
            params={
                "api_key": self.api_key,
                "base": "INR",
                "currencies": ",".join(requested),
            },
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()

        payload: dict[str, Any] = response.json()
        if payload.get("success") is False:
            raise RuntimeError(payload.get("error", "Provider returned unsuccessful response"))

        rates = payload.get("rates", {})
        result: dict[str, float] = {}
        for symbol in symbols:
            rate = rates.get(currencies.get(symbol, ""))
            if rate is None:
                continue
            if float(rate) <= 0:
                raise RuntimeError(f"Invalid {symbol} rate from provider")
            result[symbol] = 1 / float(rate)

        if USD_INR_SYMBOL in result:
            _check_usd_inr(result[USD_INR_SYMBOL])
        return result


class GoldAPIProvider(MarketRateProvider):
    """
    Provider implementation for gold-api.com plus an exchange-rate endpoint.

    gold-api.com quotes XAU in USD per troy ounce, so the USD to INR rate is
    fetched first and the gold price converted with it. A response in any
    other currency is rejected to avoid silent mispricing.
    """

    provider_name = "goldapi"
    endpoint_base = "https://api.gold-api.com/price"
    exchange_rate_url = "https://open.er-api.com/v6/latest/USD"

    def __init__(self, api_key: str | None = None, timeout_seconds: int = 10):
        self.api_key = api_key or os.getenv("GOLDAPI_KEY", "")
        self.timeout_seconds = timeout_seconds
        self.exchange_rate_url = os.getenv("EXCHANGE_RATE_URL", "").strip() or self.exchange_rate_url
        override_base = os.getenv("GOLDAPI_BASE_URL", "").strip()
        self.base_urls = [override_base] if override_base else [self.endpoint_base]

        fallback_raw = os.getenv("GOLDAPI_FALLBACK_BASE_URLS", "").strip()
        if fallback_raw:
            self.base_urls.extend(
                [url.strip().rstrip("/") for url in fallback_raw.split(",") if url.strip()]
            )

        unique_urls: list[str] = []
        for base_url in self.base_urls:
            cleaned = base_url.rstrip("/")
            if cleaned and cleaned not in unique_urls:
                unique_urls.append(cleaned)
        self.base_urls = unique_urls

        self.session = _retrying_session()

    def fetch_usd_to_inr(self) -> float:
        response = self.session.get(self.exchange_rate_url, timeout=self.timeout_seconds)
        response.raise_for_status()
        payload: dict[str, Any] = response.json()
        rate = payload.get("rates", {}).get("INR")
        if rate is None:
            raise RuntimeError("Exchange rate response has no INR rate")
        return _check_usd_inr(float(rate))

    def fetch_gold_usd_per_oz(self) -> float:
        headers: dict[str, str] = {}
        if self.api_key:
            headers["x-access-token"] = self.api_key

        payload: dict[str, Any] | None = None
        last_error: Exception | None = None
        for base_url in self.base_urls:
            try:
                response = self.session.get(
                    f"{base_url}/{GOLD_SYMBOL}",
                    headers=headers,
                    timeout=self.timeout_seconds,
                )
                response.raise_for_status()
                payload = response.json()
                break
            except requests.RequestException as exc:
                last_error = exc

        if payload is None:
            raise RuntimeError(
                f"Gold API request failed across configured URLs. Last error: {last_error}"
            )

        if "price" not in payload:
            raise RuntimeError("Missing price field from Gold API")

        currency = str(payload.get("currency", "USD")).upper()
        if currency != "USD":
            raise RuntimeError(f"Gold API returned {currency}. Expected USD pricing.")

        price_value = float(payload["price"])
        if price_value <= 0:
            raise RuntimeError("Invalid gold price from Gold API")
        return price_value

    def fetch_latest_inr(self, symbols: list[str]) -> dict[str, float]:
        usd_to_inr = self.fetch_usd_to_inr()
        result: dict[str, float] = {}
        if USD_INR_SYMBOL in symbols:
            result[USD_INR_SYMBOL] = usd_to_inr
        if GOLD_SYMBOL in symbols:
            result[GOLD_SYMBOL] = self.fetch_gold_usd_per_oz() * usd_to_inr
        return result


def _build_provider_from_env() -> MarketRateProvider:
    provider_name = os.getenv("PRICE_PROVIDER", "goldapi").strip().lower()
    if provider_name == "metalpriceapi":
        return MetalPriceAPIProvider()
    if provider_name == "goldapi":
        return GoldAPIProvider()
    raise RuntimeError(
        "Unsupported PRICE_PROVIDER. Use 'goldapi' or 'metalpriceapi'."
    )


def get_market_rates_with_cache(
    conn: sqlite3.Connection,
    symbols: list[str] | None = None,
    force_refresh: bool = False,
) -> tuple[dict[str, sqlite3.Row], str | None]:
    """
    Returns latest market rates from cache and refreshes stale data when needed.

    If the provider fails, existing cached values are returned with a warning message.
    """
    symbols = symbols or MARKET_SYMBOLS
    settings = get_all_settings(conn)
    ttl = settings["price_cache_ttl_minutes"]
    cached = get_cached_rates(conn, symbols)

    need_refresh = force_refresh
    for symbol in symbols:
        row = cached.get(symbol)
        if row is None or not is_price_fresh(row["fetched_at"], ttl):
            need_refresh = True
            break

    warning = None
    if need_refresh:
        try:
            provider = _build_provider_from_env()
            fresh = provider.fetch_latest_inr(symbols)
            for symbol, value in fresh.items():
                save_rate(conn, symbol, value, provider.provider_name)
            cached = get_cached_rates(conn, symbols)
        except (requests.RequestException, RuntimeError, ValueError) as exc:
            logger.warning("Market rate refresh failed: %s", exc)
            if cached:
                warning = f"Market rate API unavailable. Using cached rates. Details: {exc}"
            else:
                warning = f"Market rate API unavailable and no cached rates yet. Details: {exc}"

    return cached, warning
