from django.contrib import admin

from portfolio.admin_mixins import OwnedByUserAdmin, OwnedInline

from .forms import StrategyMetricForm
from .models import StrategyMetric, StrategyMetricResult


class StrategyMetricInline(OwnedInline):
    model = StrategyMetric
    form = StrategyMetricForm
    ordering = ("order", "id")


@admin.register(StrategyMetric)
class StrategyMetricAdmin(OwnedByUserAdmin):
    owner_field = "strategy__user"
    form = StrategyMetricForm
    fields = ("strategy", "metric_key", "is_enabled", "order", "custom_config")
    list_display = ("id", "strategy", "metric_key", "is_enabled", "order", "updated_at")
    list_filter = ("is_enabled", "metric_key")
    search_fields = ("strategy__name", "metric_key")


@admin.register(StrategyMetricResult)
class StrategyMetricResultAdmin(OwnedByUserAdmin):
    owner_field = "strategy__user"
    list_display = ("id", "strategy", "metric_key", "snapshot_at", "value", "unit", "created_at")
    list_filter = ("metric_key", "snapshot_at")
    search_fields = ("strategy__name", "metric_key")
    readonly_fields = ("strategy", "metric_key", "snapshot_at", "value", "unit", "meta", "created_at")

    def has_add_permission(self, request):
        return False
