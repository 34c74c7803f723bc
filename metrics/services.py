from __future__ import annotations

import copy
import logging

from django.apps import apps
from django.db import transaction
from django.db.models import F

from metrics.models import StrategyMetric, StrategyMetricResult
from metrics.registry import MetricsRegistry
from metrics.results import MetricResult
from portfolio.models import Strategy

logger = logging.getLogger(__name__)


class StrategyMetricsService:
    """
    Computes a strategy's enabled metrics at a point in time and stores them.

    Each call works on its own copy of the registered calculators, so custom
    configuration from one strategy never reaches another.
    """

    def __init__(self, registry: MetricsRegistry):
        self.registry = registry

    def enabled_metrics(self, strategy: Strategy):
        return StrategyMetric.objects.filter(strategy=strategy, is_enabled=True).order_by(
            F("order").asc(nulls_last=True), "id"
        )

    def calculate_metrics(self, strategy: Strategy, at) -> dict[str, MetricResult]:
        """
        Results keyed by metric key, in configuration order.

        Unknown keys and failing calculators are logged and left out; the rest of
        the batch still runs.
        """
        results: dict[str, MetricResult] = {}
        for cfg in self.enabled_metrics(strategy):
            registered = self.registry.get(cfg.metric_key)
            if registered is None:
                logger.warning(
                    "No calculator found for metric key %s",
                    cfg.metric_key,
                    extra={"strategy_id": strategy.id, "metric_key": cfg.metric_key},
                )
                continue

            calculator = copy.copy(registered)
            if cfg.custom_config:
                calculator.set_config(cfg.custom_config)

            try:
                results[cfg.metric_key] = calculator.calculate(strategy, at)
            except Exception:
                logger.exception(
                    "Failed to calculate metric %s for strategy %s",
                    cfg.metric_key,
                    strategy.id,
                    extra={"strategy_id": strategy.id, "metric_key": cfg.metric_key},
                )
        return results

    def snapshot(self, strategy: Strategy, at) -> dict[str, MetricResult]:
        """
        Replace the stored results for (strategy, at) with a fresh calculation.

        Running it again for the same pair leaves one row per computed key.
        """
        results = self.calculate_metrics(strategy, at)

        with transaction.atomic():
            StrategyMetricResult.objects.filter(strategy=strategy, snapshot_at=at).delete()
            StrategyMetricResult.objects.bulk_create(
                [
                    StrategyMetricResult(
                        strategy=strategy,
                        metric_key=result.key,
                        snapshot_at=at,
                        value=result.value,
                        unit=result.unit or "",
                        meta=result.meta,
                    )
                    for result in results.values()
                ]
            )

        logger.info(
            "Stored %d metric result(s) for strategy %s at %s", len(results), strategy.id, at.isoformat()
        )
        return results


def default_registry() -> MetricsRegistry:
    return apps.get_app_config("metrics").registry


def request_snapshot(*, strategy_id: int, at, registry: MetricsRegistry | None = None):
    """
    Recalculate and store metrics for one strategy at ``at``.

    A strategy that no longer exists is skipped; safe to call more than once.
    """
    strategy = Strategy.objects.filter(id=strategy_id).first()
    if strategy is None:
        logger.warning("Strategy %s not found; skipping metrics snapshot", strategy_id)
        return None
    service = StrategyMetricsService(registry or default_registry())
    return service.snapshot(strategy, at)
