from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields, replace
from datetime import timedelta
from decimal import Context, Decimal, ROUND_HALF_UP

from metrics.results import MetricResult


NO_SNAPSHOT_REASON = "no_snapshot_before_or_at_to"
DAYS_PER_YEAR = Decimal("365")

# Matches the decimal places of stored metric values.
MAX_ROUND_PLACES = 12
_ROUND_CONTEXT = Context(prec=60)


@dataclass(frozen=True)
class CalculatorConfig:
    """No tunable options."""


@dataclass(frozen=True)
class DisplayConfig:
    unit: str = "USD"
    round: int | None = None
    mode: str = "ltd"


def round_value(value: Decimal | None, places) -> Decimal | None:
    """
    Round half away from zero to ``places`` decimals, clamped to 0..MAX_ROUND_PLACES.

    Anything but an int leaves the value alone.
    """
    if value is None or isinstance(places, bool) or not isinstance(places, int):
        return value
    places = max(0, min(places, MAX_ROUND_PLACES))
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP, context=_ROUND_CONTEXT)


def iso(at) -> str:
    return at.isoformat()


def ltd_window(strategy, at):
    """
    Start of the life-to-date window ending at ``at`` and its length in whole days.

    Inception after ``at`` only happens with inconsistent data; it is pulled back to
    one day before ``at``. The day count never drops below 1.
    """
    start = strategy.inception(at)
    if start > at:
        start = at - timedelta(days=1)
    days = max(1, (at - start).days)
    return start, days


class MetricCalculator:
    """
    One point-in-time metric over a strategy's transactions and snapshots.

    Subclasses set ``key``, ``display_name``, ``description`` and ``config_class``
    and implement ``calculate``. ``calculate`` must only read strategy history and
    must not raise for missing data: it returns a result with ``value=None`` and a
    ``meta["reason"]`` instead.
    """

    key: str
    display_name: str = ""
    description: str = ""
    default_unit: str = "USD"
    config_class: type = CalculatorConfig

    def __init__(self):
        self.config = self.config_class()

    def calculate(self, strategy, at) -> MetricResult:
        raise NotImplementedError

    def set_config(self, config: Mapping | None) -> None:
        """Merge the known option keys of ``config``; unknown keys are dropped."""
        if not isinstance(config, Mapping):
            return
        allowed = {f.name for f in fields(self.config_class)}
        safe = {k: v for k, v in config.items() if k in allowed}
        if safe:
            self.config = replace(self.config, **safe)

    def get_description(self) -> str:
        return self.description

    def get_unit(self) -> str:
        return str(getattr(self.config, "unit", None) or self.default_unit)

    def applied_config(self) -> dict:
        return asdict(self.config)

    def _result(self, value: Decimal | None, meta: dict) -> MetricResult:
        return MetricResult(
            key=self.key,
            value=round_value(value, getattr(self.config, "round", None)),
            unit=self.get_unit(),
            display_name=self.display_name,
            meta=meta,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} key={self.key!r}>"
