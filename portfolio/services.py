from __future__ import annotations

import logging
from decimal import Decimal

import requests
from django.utils import timezone

from portfolio.models import Asset
from portfolio.providers import CoinGeckoProvider, PriceProvider

logger = logging.getLogger(__name__)


def refresh_asset_price(*, asset: Asset, provider: PriceProvider | None = None) -> Decimal | None:
    """
    Fetch the latest USD price for an asset and store it on the asset.

    Looks the asset up by its CoinGecko id first, then falls back to a symbol
    search. Returns the stored price, or None when no price was found or the
    provider request failed.
    """
    provider = provider or CoinGeckoProvider()
    try:
        price = None
        if asset.coingecko_id:
            price = provider.fetch_price_by_id(asset.coingecko_id)
        if price is None:
            found = provider.fetch_price_by_symbol(asset.symbol)
            price = found.price if found else None
    except requests.RequestException:
        logger.warning("Price lookup failed for asset %s (%s)", asset.id, asset.symbol, exc_info=True)
        return None

    if price is None:
        logger.warning("No price found for asset %s (%s)", asset.id, asset.symbol)
        return None

    asset.last_price_usd = price
    asset.price_updated_at = timezone.now()
    asset.save(update_fields=["last_price_usd", "price_updated_at", "updated_at"])
    return price


def refresh_asset_prices(*, assets, provider: PriceProvider | None = None) -> tuple[int, list[str]]:
    """Refresh many assets with one provider; returns (updated count, missing symbols)."""
    provider = provider or CoinGeckoProvider()
    updated = 0
    missing: list[str] = []
    for asset in assets:
        if refresh_asset_price(asset=asset, provider=provider) is None:
            missing.append(asset.symbol)
        else:
            updated += 1
    return updated, missing
