from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class ProviderPrice:
    coin_id: str
    price: Decimal


class PriceProvider:
    provider_name: str

    def fetch_price_by_id(self, coin_id: str) -> Decimal | None:
        """
        Fetch the latest USD price for a provider coin id.

        Returns None when the provider has no price for it.
        """
        raise NotImplementedError

    def fetch_price_by_symbol(self, symbol: str) -> ProviderPrice | None:
        """
        Resolve a ticker symbol to the provider's best-matching coin and fetch its price.
        """
        raise NotImplementedError
