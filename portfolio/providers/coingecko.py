from __future__ import annotations

from decimal import Decimal, InvalidOperation

import requests
from django.conf import settings

from .base import PriceProvider, ProviderPrice


class CoinGeckoProvider(PriceProvider):
    provider_name = "COINGECKO"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        session: requests.Session | None = None,
    ):
        self.api_key = api_key if api_key is not None else getattr(settings, "COINGECKO_API_KEY", "")
        self.base_url = (base_url or getattr(settings, "COINGECKO_BASE_URL", "https://api.coingecko.com/api/v3")).rstrip("/")
        self.session = session or requests.Session()

    def _get(self, path: str, params: dict) -> dict:
        headers = {"accept": "application/json"}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key
        resp = self.session.get(f"{self.base_url}{path}", params=params, headers=headers, timeout=15)
        resp.raise_for_status()
        data = resp.json()
        return data if isinstance(data, dict) else {}

    def fetch_price_by_id(self, coin_id: str) -> Decimal | None:
        """
        Docs: https://docs.coingecko.com/reference/simple-price
        """
        coin_id = (coin_id or "").strip()
        if not coin_id:
            return None
        data = self._get("/simple/price", {"ids": coin_id, "vs_currencies": "usd"})
        raw = (data.get(coin_id) or {}).get("usd")
        if raw in (None, ""):
            return None
        try:
            return Decimal(str(raw))
        except (InvalidOperation, TypeError):
            return None

    def fetch_price_by_symbol(self, symbol: str) -> ProviderPrice | None:
        """
        Docs: https://docs.coingecko.com/reference/search-data
        """
        symbol = (symbol or "").strip()
        if not symbol:
            return None
        data = self._get("/search", {"query": symbol})
        coins = data.get("coins") or []
        # Search results are ranked; take the most relevant match.
        coin_id = coins[0].get("id") if coins and isinstance(coins[0], dict) else None
        if not coin_id:
            return None
        price = self.fetch_price_by_id(coin_id)
        if price is None:
            return None
        return ProviderPrice(coin_id=coin_id, price=price)
