from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from portfolio.models import TransactionType

from .base import DAYS_PER_YEAR, MetricCalculator, iso, ltd_window


@dataclass(frozen=True)
class AprFarmingConfig:
    include_il: bool = True
    unit: str = "%"
    round: int | None = None
    mode: str = "ltd"


@dataclass(frozen=True)
class AprLendingConfig:
    unit: str = "%"
    round: int | None = None
    # Accepted and reported, but collected fees are not filtered by it yet.
    include_pending: bool = False
    mode: str = "ltd"


class AprFarmingCalculator(MetricCalculator):
    """Life-to-date APR of a farming position: collected rewards against deposits."""

    key = "apr-farming"
    display_name = "APR (Farming, LTD)"
    description = (
        "Annual Percentage Rate (LTD) for farming strategies based on rewards "
        "and optional impermanent loss since inception"
    )
    default_unit = "%"
    config_class = AprFarmingConfig

    def calculate(self, strategy, at):
        start, days = ltd_window(strategy, at)

        rewards = strategy.transactions_total(TransactionType.COLLECT_FEES, at, since=start)
        impermanent_loss = self.impermanent_loss(strategy, start, at) if self.config.include_il else Decimal("0")
        initial_investment = strategy.transactions_total(TransactionType.DEPOSIT, at)

        apr = None
        total_return = None
        if initial_investment > 0:
            total_return = rewards + impermanent_loss
            apr = total_return / initial_investment * DAYS_PER_YEAR / days * 100

        return self._result(
            apr,
            {
                "calculator_type": "farming",
                "window": "ltd",
                "from": iso(start),
                "to": iso(at),
                "inclusive": True,
                "days": days,
                "rewards": rewards,
                "impermanent_loss": impermanent_loss,
                "initial_investment": initial_investment,
                "total_return": total_return,
                "applied_config": self.applied_config(),
                "formula": "apr_ltd = (rewards + il) / initial_investment * (365 / days) * 100",
            },
        )

    def impermanent_loss(self, strategy, start, at) -> Decimal:
        # Not modelled; the component is reported as zero.
        return Decimal("0")


class AprLendingCalculator(MetricCalculator):
    """Life-to-date APR of a lending position: collected fees against average TVL."""

    key = "apr-lending"
    display_name = "APR (Lending, LTD)"
    description = (
        "Annual Percentage Rate (LTD) for lending strategies based on collected fees "
        "and average liquidity since inception"
    )
    default_unit = "%"
    config_class = AprLendingConfig

    def calculate(self, strategy, at):
        start, days = ltd_window(strategy, at)

        fees = strategy.transactions_total(TransactionType.COLLECT_FEES, at, since=start)
        start_liquidity = strategy.total_value(start)
        end_liquidity = strategy.total_value(at)
        avg_liquidity = (start_liquidity + end_liquidity) / 2

        apr = None
        if avg_liquidity > 0:
            apr = fees / avg_liquidity * DAYS_PER_YEAR / days * 100

        return self._result(
            apr,
            {
                "calculator_type": "lending",
                "window": "ltd",
                "from": iso(start),
                "to": iso(at),
                "inclusive": True,
                "days": days,
                "fees": fees,
                "start_liquidity": start_liquidity,
                "end_liquidity": end_liquidity,
                "avg_liquidity": avg_liquidity,
                "applied_config": self.applied_config(),
                "formula": "apr_ltd = (fees / avg_liquidity) * (365 / days) * 100",
            },
        )
