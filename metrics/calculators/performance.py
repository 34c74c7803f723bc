from __future__ import annotations

from dataclasses import dataclass

from portfolio.models import TransactionType

from .base import NO_SNAPSHOT_REASON, DisplayConfig, MetricCalculator, iso


@dataclass(frozen=True)
class PercentConfig:
    unit: str = "%"
    round: int | None = None
    mode: str = "ltd"


def pnl_components(strategy, at, snapshot) -> dict:
    tvl = snapshot.tvl
    fees_collected = strategy.transactions_total(TransactionType.COLLECT_FEES, at)
    deposits = strategy.transactions_total(TransactionType.DEPOSIT, at)
    withdrawals = strategy.transactions_total(TransactionType.WITHDRAW, at)
    net_invested = deposits - withdrawals
    return {
        "tvl": tvl,
        "fees_collected": fees_collected,
        "deposits_total": deposits,
        "withdrawals_total": withdrawals,
        "net_invested": net_invested,
        "pnl_usd": tvl + fees_collected - net_invested,
    }


class TvlCalculator(MetricCalculator):
    key = "tvl"
    display_name = "TVL"
    description = "Total Value Locked (TVL) in USD"
    config_class = DisplayConfig

    def calculate(self, strategy, at):
        meta = {
            "window": "point",
            "to": iso(at),
            "inclusive": True,
            "source": "snapshots.total_liquidity + snapshots.fees_uncollected",
            "formula": "tvl = total_liquidity + fees_uncollected",
        }
        snapshot = strategy.latest_snapshot(at)
        if snapshot is None:
            meta["reason"] = NO_SNAPSHOT_REASON
            return self._result(None, meta)

        meta.update(
            {
                "snapshot_id": snapshot.id,
                "snapshot_at": iso(snapshot.snapshot_at),
                "components": {
                    "total_liquidity": snapshot.total_liquidity,
                    "fees_uncollected": snapshot.fees_uncollected,
                },
            }
        )
        return self._result(snapshot.tvl, meta)


class PnlCalculator(MetricCalculator):
    key = "pnl"
    display_name = "PNL"
    description = "Profit and Loss (PNL) calculation"
    config_class = DisplayConfig

    def calculate(self, strategy, at):
        meta = {
            "window": "ltd",
            "to": iso(at),
            "inclusive": True,
            "formula": "pnl = tvl + fees_collected - (deposits - withdrawals)",
        }
        snapshot = strategy.latest_snapshot(at)
        if snapshot is None:
            meta["reason"] = NO_SNAPSHOT_REASON
            return self._result(None, meta)

        components = pnl_components(strategy, at, snapshot)
        pnl = components.pop("pnl_usd")
        meta["components"] = components
        return self._result(pnl, meta)


class RoiCalculator(MetricCalculator):
    """PNL relative to net invested capital, in percent."""

    key = "roi"
    display_name = "ROI"
    description = "Return on Investment (ROI) percentage"
    default_unit = "%"
    config_class = PercentConfig

    def calculate(self, strategy, at):
        meta = {
            "window": "ltd",
            "to": iso(at),
            "inclusive": True,
            "formula": "roi% = pnl / (deposits - withdrawals) * 100",
            "guard": "returns null when net_invested <= 0",
        }
        snapshot = strategy.latest_snapshot(at)
        if snapshot is None:
            meta["reason"] = NO_SNAPSHOT_REASON
            return self._result(None, meta)

        components = pnl_components(strategy, at, snapshot)
        meta["components"] = components

        net_invested = components["net_invested"]
        if net_invested <= 0:
            meta["reason"] = "non_positive_net_invested"
            return self._result(None, meta)
        return self._result(components["pnl_usd"] / net_invested * 100, meta)
