from __future__ import annotations

from django.core.management.base import BaseCommand

from portfolio.models import Asset
from portfolio.providers import CoinGeckoProvider
from portfolio.services import refresh_asset_prices


class Command(BaseCommand):
    help = "Refresh USD prices of updatable assets from CoinGecko (cron-friendly)."

    def add_arguments(self, parser):
        parser.add_argument(
            "--asset-id",
            type=int,
            default=None,
            help="Optionally restrict the refresh to a single asset id.",
        )

    def handle(self, *args, **options):
        assets_qs = Asset.objects.filter(is_updatable=True).order_by("id")
        asset_id = options.get("asset_id")
        if asset_id:
            assets_qs = assets_qs.filter(id=asset_id)

        assets = list(assets_qs)
        if not assets:
            self.stdout.write("No updatable assets found.")
            return

        updated, missing = refresh_asset_prices(assets=assets, provider=CoinGeckoProvider())

        self.stdout.write(f"Updated {updated}/{len(assets)} asset price(s).")
        if missing:
            self.stdout.write(f"Missing: {', '.join(missing[:50])}{'...' if len(missing) > 50 else ''}")
