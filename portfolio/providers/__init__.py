from .base import PriceProvider, ProviderPrice
from .coingecko import CoinGeckoProvider

__all__ = ["CoinGeckoProvider", "PriceProvider", "ProviderPrice"]
