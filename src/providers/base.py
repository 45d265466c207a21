from abc import ABC, abstractmethod


class MarketRateProvider(ABC):
    provider_name: str

    @abstractmethod
    def fetch_latest_inr(self, symbols: list[str]) -> dict[str, float]:
        """Returns {symbol: INR value}: XAU in INR per troy oz, USDINR in INR per USD."""
        raise NotImplementedError
