from .apr import AprFarmingCalculator, AprLendingCalculator
from .base import MetricCalculator
from .performance import PnlCalculator, RoiCalculator, TvlCalculator
from .totals import (
    BorrowPrincipalTotalCalculator,
    FeesCollectedCalculator,
    LoanInterestAccruedTotalCalculator,
    RepayPrincipalTotalCalculator,
    WithdrawalsTotalCalculator,
)

DEFAULT_CALCULATORS = (
    AprFarmingCalculator,
    AprLendingCalculator,
    BorrowPrincipalTotalCalculator,
    RepayPrincipalTotalCalculator,
    FeesCollectedCalculator,
    WithdrawalsTotalCalculator,
    LoanInterestAccruedTotalCalculator,
    TvlCalculator,
    PnlCalculator,
    RoiCalculator,
)

__all__ = [
    "DEFAULT_CALCULATORS",
    "MetricCalculator",
    "AprFarmingCalculator",
    "AprLendingCalculator",
    "BorrowPrincipalTotalCalculator",
    "RepayPrincipalTotalCalculator",
    "FeesCollectedCalculator",
    "WithdrawalsTotalCalculator",
    "LoanInterestAccruedTotalCalculator",
    "TvlCalculator",
    "PnlCalculator",
    "RoiCalculator",
]
