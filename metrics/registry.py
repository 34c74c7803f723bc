"""Metrics registry: maps metric keys to calculator instances.

Built once at process start (see ``metrics.apps.MetricsConfig.ready``) and
handed to ``StrategyMetricsService`` explicitly::

    registry = build_default_registry()
    registry.calculate_for(strategy, at, ["tvl", "roi"])
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from metrics.calculators import DEFAULT_CALCULATORS, MetricCalculator
from metrics.results import MetricResult

logger = logging.getLogger(__name__)

_KEY_SEPARATORS = re.compile(r"[_\-]+")


def humanize_key(key: str) -> str:
    words = _KEY_SEPARATORS.sub(" ", key).split()
    return " ".join(w[:1].upper() + w[1:] for w in words)


class MetricsRegistry:
    def __init__(self, calculators: Iterable[MetricCalculator] = ()):
        self._calculators: dict[str, MetricCalculator] = {}
        for calculator in calculators:
            self.register(calculator)

    def register(self, calculator: MetricCalculator) -> None:
        """Add a calculator, replacing any registered under the same key."""
        if calculator.key in self._calculators:
            logger.warning("Metric %r already registered; overwriting", calculator.key)
        self._calculators[calculator.key] = calculator
        logger.debug("Registered metric: %s -> %s", calculator.key, type(calculator).__name__)

    def has(self, key: str) -> bool:
        return key in self._calculators

    def keys(self) -> list[str]:
        return list(self._calculators)

    def get(self, key: str) -> MetricCalculator | None:
        return self._calculators.get(key)

    def calculate_all(self, strategy, at) -> dict[str, MetricResult]:
        return self.calculate_for(strategy, at, list(self._calculators))

    def calculate_for(self, strategy, at, keys: Iterable[str]) -> dict[str, MetricResult]:
        """Calculate the requested keys; keys with no calculator are skipped."""
        results: dict[str, MetricResult] = {}
        for key in keys:
            calculator = self._calculators.get(key)
            if calculator is None:
                continue
            results[key] = calculator.calculate(strategy, at)
        return results

    def options(self) -> dict[str, str]:
        """Metric key -> description, for form choices."""
        return {key: calc.get_description() for key, calc in sorted(self._calculators.items())}

    def list_all(self) -> dict[str, dict[str, str]]:
        return {
            key: {
                "label": humanize_key(key),
                "unit": calc.get_unit(),
                "description": calc.get_description(),
            }
            for key, calc in sorted(self._calculators.items())
        }

    def __len__(self) -> int:
        return len(self._calculators)

    def __contains__(self, key: str) -> bool:
        return self.has(key)


def build_default_registry() -> MetricsRegistry:
    return MetricsRegistry(cls() for cls in DEFAULT_CALCULATORS)
