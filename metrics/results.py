from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class MetricResult:
    """
    Output of one calculator run.

    ``value`` is None when the metric is undefined for the current inputs
    (no snapshot yet, non-positive denominator); ``meta["reason"]`` says why.
    """

    key: str
    value: Decimal | None
    unit: str | None = None
    display_name: str | None = None
    meta: dict = field(default_factory=dict)
