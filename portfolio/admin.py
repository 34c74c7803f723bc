from django.contrib import admin
from django.contrib import messages
from django.utils import timezone

from metrics.admin import StrategyMetricInline
from metrics.services import StrategyMetricsService, default_registry

from .admin_mixins import OwnedByUserAdmin, OwnedInline
from .models import (
    Asset,
    AssetSnapshot,
    AssetTransaction,
    Chain,
    Resource,
    Snapshot,
    Strategy,
    StrategyAsset,
    StrategyParameter,
    StrategyParameterValue,
    Transaction,
    Wallet,
)
from .services import refresh_asset_prices


@admin.action(description="Recalculate metrics now")
def recalculate_metrics(modeladmin, request, queryset):
    service = StrategyMetricsService(default_registry())
    at = timezone.now()
    stored = 0
    for strategy in queryset:
        stored += len(service.snapshot(strategy, at))
    modeladmin.message_user(
        request,
        f"Stored {stored} metric result(s) for {queryset.count()} strategy(ies).",
        level=messages.SUCCESS,
    )


@admin.action(description="Refresh prices from CoinGecko")
def refresh_prices(modeladmin, request, queryset):
    updated, missing = refresh_asset_prices(assets=queryset)
    msg = f"Updated {updated} asset price(s)."
    if missing:
        msg += f" Missing: {', '.join(missing[:20])}"
    modeladmin.message_user(request, msg, level=messages.WARNING if missing else messages.SUCCESS)


@admin.register(Chain)
class ChainAdmin(OwnedByUserAdmin):
    list_display = ("id", "name", "user", "updated_at")
    search_fields = ("name",)
    exclude = ("user",)


@admin.register(Wallet)
class WalletAdmin(OwnedByUserAdmin):
    list_display = ("id", "name", "address", "user", "updated_at")
    search_fields = ("name", "address")
    exclude = ("user",)


@admin.register(Resource)
class ResourceAdmin(OwnedByUserAdmin):
    list_display = ("id", "name", "url", "user", "updated_at")
    search_fields = ("name",)
    exclude = ("user",)


@admin.register(Asset)
class AssetAdmin(OwnedByUserAdmin):
    list_display = (
        "id",
        "symbol",
        "name",
        "asset_type",
        "chain",
        "is_updatable",
        "last_price_usd",
        "price_updated_at",
    )
    list_filter = ("asset_type", "is_updatable", "chain")
    search_fields = ("symbol", "name", "coingecko_id", "contract_address")
    readonly_fields = ("last_price_usd", "price_updated_at")
    exclude = ("user",)
    actions = (refresh_prices,)


class StrategyAssetInline(OwnedInline):
    model = StrategyAsset


class StrategyParameterValueInline(OwnedInline):
    model = StrategyParameterValue


@admin.register(Strategy)
class StrategyAdmin(OwnedByUserAdmin):
    list_display = ("id", "name", "type", "status", "resource", "chain", "wallet", "start_at", "finish_at")
    list_filter = ("type", "status", "chain", "resource")
    search_fields = ("name", "wallet_address")
    exclude = ("user", "parameters")
    inlines = (StrategyAssetInline, StrategyParameterValueInline, StrategyMetricInline)
    actions = (recalculate_metrics,)


class AssetTransactionInline(OwnedInline):
    model = AssetTransaction


class AssetSnapshotInline(OwnedInline):
    model = AssetSnapshot


@admin.register(Transaction)
class TransactionAdmin(OwnedByUserAdmin):
    owner_field = "strategy__user"
    list_display = ("id", "strategy", "transaction_type", "transaction_date", "total_value")
    list_filter = ("transaction_type", "transaction_date")
    search_fields = ("strategy__name", "memo")
    inlines = (AssetTransactionInline,)


@admin.register(Snapshot)
class SnapshotAdmin(OwnedByUserAdmin):
    owner_field = "strategy__user"
    list_display = (
        "id",
        "strategy",
        "snapshot_at",
        "total_liquidity",
        "fees_uncollected",
        "current_loan_balance",
        "overall_health_factor",
    )
    list_filter = ("snapshot_at",)
    search_fields = ("strategy__name",)
    inlines = (AssetSnapshotInline,)


@admin.register(StrategyParameter)
class StrategyParameterAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "key", "type", "updated_at")
    list_filter = ("type",)
    search_fields = ("name", "key", "description")
    prepopulated_fields = {"key": ("name",)}
