import pytest
import requests

from src.db import get_all_settings, get_cached_rates, save_rate, save_settings
from src.providers import market_api
from src.providers.market_api import (
    GoldAPIProvider,
    MetalPriceAPIProvider,
    get_market_rates_with_cache,
)


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class FakeSession:
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        response = self.responses[url]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in [
        "PRICE_PROVIDER",
        "GOLDAPI_KEY",
        "GOLDAPI_BASE_URL",
        "GOLDAPI_FALLBACK_BASE_URLS",
        "EXCHANGE_RATE_URL",
        "METALPRICEAPI_KEY",
    ]:
        monkeypatch.delenv(name, raising=False)


def test_metalpriceapi_inverts_inr_based_rates():
    provider = MetalPriceAPIProvider(api_key="key")
    provider.session = FakeSession(
        {
            provider.endpoint: FakeResponse(
                {"success": True, "rates": {"XAU": 1 / 250000, "USD": 1 / 83.5}}
            )
        }
    )

    result = provider.fetch_latest_inr(["XAU", "USDINR"])

    assert result["XAU"] == pytest.approx(250000)
    assert result["USDINR"] == pytest.approx(83.5)
    _, kwargs = provider.session.calls[0]
    assert kwargs["params"]["base"] == "INR"
    assert kwargs["params"]["currencies"] == "XAU,USD"


def test_metalpriceapi_requires_key():
    with pytest.raises(RuntimeError, match="METALPRICEAPI_KEY"):
        MetalPriceAPIProvider().fetch_latest_inr(["XAU"])


def test_metalpriceapi_unsuccessful_payload():
    provider = MetalPriceAPIProvider(api_key="key")
    provider.session = FakeSession({provider.endpoint: FakeResponse({"success": False, "error": "quota"})})
    with pytest.raises(RuntimeError, match="quota"):
        provider.fetch_latest_inr(["XAU"])


def test_goldapi_converts_usd_gold_price_to_inr():
    provider = GoldAPIProvider()
    provider.session = FakeSession(
        {
            provider.exchange_rate_url: FakeResponse({"rates": {"INR": 84.0}}),
            f"{provider.endpoint_base}/XAU": FakeResponse({"price": 2500.0, "currency": "USD"}),
        }
    )

    result = provider.fetch_latest_inr(["XAU", "USDINR"])

    assert result == {"USDINR": 84.0, "XAU": 210000.0}


def test_goldapi_falls_through_to_backup_url(monkeypatch):
    monkeypatch.setenv("GOLDAPI_FALLBACK_BASE_URLS", "https://backup.example.com/price/")
    provider = GoldAPIProvider()
    assert provider.base_urls == [provider.endpoint_base, "https://backup.example.com/price"]
    provider.session = FakeSession(
        {
            f"{provider.endpoint_base}/XAU": requests.ConnectionError("down"),
            "https://backup.example.com/price/XAU": FakeResponse({"price": 2000.0}),
        }
    )
    assert provider.fetch_gold_usd_per_oz() == 2000.0


def test_goldapi_rejects_other_currency():
    provider = GoldAPIProvider()
    provider.session = FakeSession(
        {f"{provider.endpoint_base}/XAU": FakeResponse({"price": 1900.0, "currency": "EUR"})}
    )
    with pytest.raises(RuntimeError, match="EUR"):
        provider.fetch_gold_usd_per_oz()


def test_implausible_exchange_rate_is_rejected():
    provider = GoldAPIProvider()
    provider.session = FakeSession({provider.exchange_rate_url: FakeResponse({"rates": {"INR": 8.3}})})
    with pytest.raises(RuntimeError, match="Implausible"):
        provider.fetch_usd_to_inr()


def test_unsupported_provider_name(monkeypatch):
    monkeypatch.setenv("PRICE_PROVIDER", "crystal-ball")
    with pytest.raises(RuntimeError, match="Unsupported PRICE_PROVIDER"):
        market_api._build_provider_from_env()


class StubProvider:
    provider_name = "stub"

    def __init__(self, result=None, error=None):
        self.result = result or {}
        self.error = error
        self.calls = 0

    def fetch_latest_inr(self, symbols):
        self.calls += 1
        if self.error:
            raise self.error
        return self.result


def test_cache_refreshes_when_empty(conn, monkeypatch):
    stub = StubProvider({"XAU": 250000.0, "USDINR": 83.0})
    monkeypatch.setattr(market_api, "_build_provider_from_env", lambda: stub)

    rates, warning = get_market_rates_with_cache(conn)

    assert warning is None
    assert stub.calls == 1
    assert rates["XAU"]["value_inr"] == 250000.0
    assert rates["USDINR"]["provider"] == "stub"


def test_cache_falls_back_to_stale_values_on_failure(conn, monkeypatch):
    save_rate(conn, "XAU", 240000.0, "earlier")
    save_rate(conn, "USDINR", 82.0, "earlier")
    stub = StubProvider(error=RuntimeError("timeout"))
    monkeypatch.setattr(market_api, "_build_provider_from_env", lambda: stub)

    rates, warning = get_market_rates_with_cache(conn, force_refresh=True)

    assert stub.calls == 1
    assert "Using cached rates" in warning
    assert rates["XAU"]["value_inr"] == 240000.0


def test_cache_warns_when_nothing_cached(conn, monkeypatch):
    monkeypatch.setattr(
        market_api,
        "_build_provider_from_env",
        lambda: StubProvider(error=requests.ConnectionError("offline")),
    )
    rates, warning = get_market_rates_with_cache(conn)
    assert rates == {}
    assert "no cached rates yet" in warning


def test_fresh_cache_skips_provider(conn, monkeypatch):
    settings = get_all_settings(conn)
    settings["price_cache_ttl_minutes"] = 30
    save_settings(conn, settings)
    save_rate(conn, "XAU", 250000.0, "earlier")
    save_rate(conn, "USDINR", 83.0, "earlier")
    stub = StubProvider({"XAU": 1.0, "USDINR": 83.0})
    monkeypatch.setattr(market_api, "_build_provider_from_env", lambda: stub)

    rates, warning = get_market_rates_with_cache(conn)

    assert stub.calls == 0
    assert warning is None
    assert get_cached_rates(conn, ["XAU"])["XAU"]["provider"] == "earlier"
