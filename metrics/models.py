from django.core.serializers.json import DjangoJSONEncoder
from django.db import models


class StrategyMetric(models.Model):
    """Which metrics a strategy shows, in what order, with what calculator options."""

    strategy = models.ForeignKey(
        "portfolio.Strategy", on_delete=models.CASCADE, related_name="strategy_metrics"
    )
    metric_key = models.CharField(max_length=64)
    is_enabled = models.BooleanField(default=True)
    custom_config = models.JSONField(default=dict, blank=True)
    order = models.IntegerField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["strategy", "metric_key"], name="uniq_strategy_metric_key"
            ),
        ]

    def __str__(self) -> str:
        return f"{self.strategy_id}:{self.metric_key}"


class StrategyMetricResult(models.Model):
    strategy = models.ForeignKey(
        "portfolio.Strategy", on_delete=models.CASCADE, related_name="metric_results"
    )
    metric_key = models.CharField(max_length=64)
    snapshot_at = models.DateTimeField()

    value = models.DecimalField(max_digits=30, decimal_places=12, blank=True, null=True)
    unit = models.CharField(max_length=16, blank=True)
    meta = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["strategy", "metric_key", "snapshot_at"],
                name="uniq_metric_result_strategy_key_at",
            ),
        ]
        indexes = [
            models.Index(fields=["strategy", "-snapshot_at"], name="metrics_res_strategy_at"),
        ]

    def __str__(self) -> str:
        return f"{self.strategy_id}:{self.metric_key}@{self.snapshot_at.isoformat()}"
