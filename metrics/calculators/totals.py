from __future__ import annotations

from portfolio.models import TransactionType

from .base import CalculatorConfig, DisplayConfig, MetricCalculator, iso


class TransactionTotalCalculator(MetricCalculator):
    """Life-to-date sum of one transaction type, inclusive of ``at``."""

    transaction_type: str
    config_class = DisplayConfig

    def calculate(self, strategy, at):
        tx_type = str(self.transaction_type)
        total = strategy.transactions_total(tx_type, at)
        return self._result(
            total,
            {
                "window": "ltd",
                "to": iso(at),
                "inclusive": True,
                "source": "transactions.total_value",
                "transaction_type": tx_type,
                "applied_config": self.applied_config(),
                "formula": f"{self.key} = sum(total_value where type = '{tx_type}' and date <= to)",
            },
        )


class BorrowPrincipalTotalCalculator(TransactionTotalCalculator):
    key = "borrow_principal_total"
    display_name = "Borrow Principal Total (LTD)"
    description = "Total borrowed principal amount in USD"
    transaction_type = TransactionType.BORROW_PRINCIPAL


class RepayPrincipalTotalCalculator(TransactionTotalCalculator):
    key = "repay_principal_total"
    display_name = "Repay Principal Total (LTD)"
    description = "Total repaid principal amount in USD"
    transaction_type = TransactionType.REPAY_PRINCIPAL


class FeesCollectedCalculator(TransactionTotalCalculator):
    key = "fees_collected"
    display_name = "Fees Collected (LTD)"
    description = "Total fees collected by the strategy"
    transaction_type = TransactionType.COLLECT_FEES


class WithdrawalsTotalCalculator(TransactionTotalCalculator):
    key = "withdrawals_total"
    display_name = "Total Withdrawals (LTD)"
    description = "Total withdrawals amount in USD"
    transaction_type = TransactionType.WITHDRAW


class LoanInterestAccruedTotalCalculator(TransactionTotalCalculator):
    key = "loan_interest_accrued_total"
    display_name = "Loan Interest Accrued Total"
    description = "Total loan interest accrued amount in USD"
    transaction_type = TransactionType.LOAN_INTEREST_ACCRUED
    # Always reported in USD, unrounded.
    config_class = CalculatorConfig
