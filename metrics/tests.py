from __future__ import annotations

from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import DatabaseError
from django.test import TestCase, override_settings

from portfolio.models import Snapshot, Strategy, StrategyStatus, StrategyType, Transaction, TransactionType

from .calculators import (
    AprFarmingCalculator,
    AprLendingCalculator,
    BorrowPrincipalTotalCalculator,
    FeesCollectedCalculator,
    LoanInterestAccruedTotalCalculator,
    MetricCalculator,
    PnlCalculator,
    RepayPrincipalTotalCalculator,
    RoiCalculator,
    TvlCalculator,
    WithdrawalsTotalCalculator,
)
from .forms import StrategyMetricForm
from .models import StrategyMetric, StrategyMetricResult
from .registry import MetricsRegistry, build_default_registry, humanize_key
from .services import StrategyMetricsService, request_snapshot


DAY0 = datetime(2025, 1, 1, 12, 0, tzinfo=dt_timezone.utc)
DAY30 = DAY0 + timedelta(days=30)


class ExplodingCalculator(MetricCalculator):
    key = "exploding"
    description = "Always fails"

    def calculate(self, strategy, at):
        raise ValueError("boom")


class StrategyDataMixin:
    def setUp(self):
        User = get_user_model()
        self.user = User.objects.create_user(username="u1", password="pw")
        self.strategy = Strategy.objects.create(
            user=self.user,
            name="ETH/USDC LP",
            type=StrategyType.FARMING,
            status=StrategyStatus.ACTIVE,
            created_at=DAY0 - timedelta(days=5),
        )

    def add_tx(self, tx_type, value, at, strategy=None):
        return Transaction.objects.create(
            strategy=strategy or self.strategy,
            transaction_type=tx_type,
            transaction_date=at,
            total_value=Decimal(value),
        )

    def add_snapshot(self, at, liquidity, fees="0", strategy=None):
        return Snapshot.objects.create(
            strategy=strategy or self.strategy,
            snapshot_at=at,
            total_liquidity=Decimal(liquidity),
            fees_uncollected=Decimal(fees),
        )

    def seed_scenario(self):
        self.add_snapshot(DAY0, "1000")
        self.add_tx(TransactionType.DEPOSIT, "1000", DAY0)
        self.add_tx(TransactionType.COLLECT_FEES, "50", DAY30)
        self.add_snapshot(DAY30, "1000")


class CalculatorFormulaTests(StrategyDataMixin, TestCase):
    def test_reference_scenario(self):
        self.seed_scenario()

        self.assertEqual(TvlCalculator().calculate(self.strategy, DAY30).value, Decimal("1000"))
        self.assertEqual(FeesCollectedCalculator().calculate(self.strategy, DAY30).value, Decimal("50"))
        self.assertEqual(PnlCalculator().calculate(self.strategy, DAY30).value, Decimal("50"))
        self.assertEqual(RoiCalculator().calculate(self.strategy, DAY30).value, Decimal("5.0"))

    def test_pnl_meta_exposes_components(self):
        self.seed_scenario()
        self.add_tx(TransactionType.WITHDRAW, "200", DAY30)

        result = PnlCalculator().calculate(self.strategy, DAY30)

        components = result.meta["components"]
        self.assertEqual(components["tvl"], Decimal("1000"))
        self.assertEqual(components["fees_collected"], Decimal("50"))
        self.assertEqual(components["deposits_total"], Decimal("1000"))
        self.assertEqual(components["withdrawals_total"], Decimal("200"))
        self.assertEqual(components["net_invested"], Decimal("800"))
        self.assertEqual(result.value, Decimal("250"))
        self.assertEqual(result.unit, "USD")

    def test_tvl_uses_latest_snapshot_at_or_before(self):
        self.add_snapshot(DAY0, "1000", "5")
        self.add_snapshot(DAY0 + timedelta(days=10), "1100", "10")
        self.add_snapshot(DAY30 + timedelta(seconds=1), "9999")

        result = TvlCalculator().calculate(self.strategy, DAY30)

        self.assertEqual(result.value, Decimal("1110"))
        self.assertEqual(result.meta["window"], "point")
        self.assertEqual(result.meta["snapshot_at"], (DAY0 + timedelta(days=10)).isoformat())

    def test_transaction_totals_are_inclusive_of_at(self):
        self.add_tx(TransactionType.COLLECT_FEES, "10", DAY0)
        self.add_tx(TransactionType.COLLECT_FEES, "15", DAY30)
        self.add_tx(TransactionType.COLLECT_FEES, "99", DAY30 + timedelta(seconds=1))

        result = FeesCollectedCalculator().calculate(self.strategy, DAY30)

        self.assertEqual(result.value, Decimal("25"))
        self.assertTrue(result.meta["inclusive"])
        self.assertEqual(result.meta["transaction_type"], "collect fees")

    def test_each_total_sums_only_its_own_type(self):
        self.add_tx(TransactionType.BORROW_PRINCIPAL, "500", DAY0)
        self.add_tx(TransactionType.REPAY_PRINCIPAL, "120", DAY0)
        self.add_tx(TransactionType.WITHDRAW, "70", DAY0)
        self.add_tx(TransactionType.LOAN_INTEREST_ACCRUED, "3.5", DAY0)
        self.add_tx(TransactionType.DEPOSIT, "1000", DAY0)

        self.assertEqual(BorrowPrincipalTotalCalculator().calculate(self.strategy, DAY30).value, Decimal("500"))
        self.assertEqual(RepayPrincipalTotalCalculator().calculate(self.strategy, DAY30).value, Decimal("120"))
        self.assertEqual(WithdrawalsTotalCalculator().calculate(self.strategy, DAY30).value, Decimal("70"))
        self.assertEqual(LoanInterestAccruedTotalCalculator().calculate(self.strategy, DAY30).value, Decimal("3.5"))

    def test_totals_are_zero_without_transactions(self):
        result = BorrowPrincipalTotalCalculator().calculate(self.strategy, DAY30)
        self.assertEqual(result.value, Decimal("0"))

    def test_apr_farming(self):
        self.seed_scenario()
        calc = AprFarmingCalculator()
        calc.set_config({"round": 2})

        result = calc.calculate(self.strategy, DAY30)

        # 50 / 1000 * 365 / 30 * 100
        self.assertEqual(result.value, Decimal("60.83"))
        self.assertEqual(result.unit, "%")
        self.assertEqual(result.meta["days"], 30)
        self.assertEqual(result.meta["from"], DAY0.isoformat())
        self.assertEqual(result.meta["impermanent_loss"], Decimal("0"))
        self.assertEqual(result.meta["initial_investment"], Decimal("1000"))

    def test_apr_farming_without_deposits_is_undefined(self):
        self.add_snapshot(DAY0, "1000")
        self.add_tx(TransactionType.COLLECT_FEES, "50", DAY30)

        result = AprFarmingCalculator().calculate(self.strategy, DAY30)

        self.assertIsNone(result.value)
        self.assertIsNone(result.meta["total_return"])

    def test_apr_lending_uses_average_of_start_and_end_tvl(self):
        self.add_snapshot(DAY0, "1000")
        self.add_snapshot(DAY30, "1200")
        self.add_tx(TransactionType.COLLECT_FEES, "50", DAY0 + timedelta(days=15))
        calc = AprLendingCalculator()
        calc.set_config({"round": 2})

        result = calc.calculate(self.strategy, DAY30)

        # 50 / 1100 * 365 / 30 * 100
        self.assertEqual(result.value, Decimal("55.30"))
        self.assertEqual(result.meta["avg_liquidity"], Decimal("1100"))
        self.assertFalse(result.meta["applied_config"]["include_pending"])

    def test_apr_lending_without_liquidity_is_undefined(self):
        self.add_tx(TransactionType.COLLECT_FEES, "50", DAY0)

        result = AprLendingCalculator().calculate(self.strategy, DAY30)

        self.assertIsNone(result.value)

    def test_apr_days_never_below_one(self):
        self.add_snapshot(DAY30 - timedelta(hours=3), "1000")
        self.add_tx(TransactionType.DEPOSIT, "1000", DAY30 - timedelta(hours=3))

        result = AprFarmingCalculator().calculate(self.strategy, DAY30)

        self.assertEqual(result.meta["days"], 1)
        self.assertEqual(result.value, Decimal("0"))


class NullSafetyTests(StrategyDataMixin, TestCase):
    def test_snapshot_based_metrics_are_undefined_without_snapshot(self):
        self.add_tx(TransactionType.DEPOSIT, "1000", DAY0)
        # Only a later snapshot exists.
        self.add_snapshot(DAY30 + timedelta(days=1), "1000")

        for calc in (TvlCalculator(), PnlCalculator(), RoiCalculator()):
            result = calc.calculate(self.strategy, DAY30)
            self.assertIsNone(result.value, calc.key)
            self.assertEqual(result.meta["reason"], "no_snapshot_before_or_at_to", calc.key)

    def test_roi_undefined_when_net_invested_not_positive(self):
        self.add_snapshot(DAY0, "10")
        self.add_tx(TransactionType.DEPOSIT, "100", DAY0)
        self.add_tx(TransactionType.WITHDRAW, "100", DAY0 + timedelta(days=1))

        result = RoiCalculator().calculate(self.strategy, DAY30)

        self.assertIsNone(result.value)
        self.assertEqual(result.meta["components"]["net_invested"], Decimal("0"))

    def test_inception_after_at_is_clamped(self):
        self.strategy.created_at = DAY30 + timedelta(days=10)
        self.strategy.save(update_fields=["created_at"])

        for calc in (AprFarmingCalculator(), AprLendingCalculator()):
            result = calc.calculate(self.strategy, DAY30)
            self.assertEqual(result.meta["from"], (DAY30 - timedelta(days=1)).isoformat(), calc.key)
            self.assertEqual(result.meta["days"], 1, calc.key)
            self.assertIsNone(result.value, calc.key)

    def test_inception_falls_back_to_first_transaction(self):
        self.add_tx(TransactionType.DEPOSIT, "1000", DAY0 + timedelta(days=10))
        self.add_tx(TransactionType.COLLECT_FEES, "10", DAY0 + timedelta(days=20))

        result = AprFarmingCalculator().calculate(self.strategy, DAY30)

        self.assertEqual(result.meta["from"], (DAY0 + timedelta(days=10)).isoformat())
        self.assertEqual(result.meta["days"], 20)


class CalculatorConfigTests(StrategyDataMixin, TestCase):
    def test_round_half_away_from_zero(self):
        self.add_snapshot(DAY0, "5.1267")
        calc = TvlCalculator()
        calc.set_config({"round": 2})

        self.assertEqual(calc.calculate(self.strategy, DAY30).value, Decimal("5.13"))

    def test_round_must_be_an_integer(self):
        self.add_snapshot(DAY0, "5.1267")
        calc = TvlCalculator()
        calc.set_config({"round": "2"})

        self.assertEqual(calc.calculate(self.strategy, DAY30).value, Decimal("5.1267"))

    def test_round_is_capped_at_stored_precision(self):
        self.add_snapshot(DAY0, "1000.125")
        calc = TvlCalculator()
        calc.set_config({"round": 26})

        value = calc.calculate(self.strategy, DAY30).value

        self.assertEqual(value, Decimal("1000.125"))
        self.assertEqual(value.as_tuple().exponent, -12)

    def test_null_values_are_not_rounded(self):
        calc = RoiCalculator()
        calc.set_config({"round": 2})

        self.assertIsNone(calc.calculate(self.strategy, DAY30).value)

    def test_unknown_keys_are_ignored(self):
        calc = FeesCollectedCalculator()
        calc.set_config({"unit": "EUR", "transaction_type": "deposit", "__class__": "x"})

        self.assertEqual(calc.get_unit(), "EUR")
        self.assertEqual(calc.transaction_type, TransactionType.COLLECT_FEES)
        self.assertEqual(calc.applied_config(), {"unit": "EUR", "round": None, "mode": "ltd"})

    def test_non_mapping_config_is_ignored(self):
        calc = AprFarmingCalculator()
        calc.set_config(["round", 2])

        self.assertIsNone(calc.config.round)

    def test_loan_interest_total_has_no_options(self):
        self.add_tx(TransactionType.LOAN_INTEREST_ACCRUED, "1.234", DAY0)
        calc = LoanInterestAccruedTotalCalculator()
        calc.set_config({"unit": "EUR", "round": 1})

        result = calc.calculate(self.strategy, DAY30)

        self.assertEqual(result.unit, "USD")
        self.assertEqual(result.value, Decimal("1.234"))

    def test_include_il_can_be_disabled(self):
        self.seed_scenario()
        calc = AprFarmingCalculator()
        calc.set_config({"include_il": False})

        result = calc.calculate(self.strategy, DAY30)

        self.assertFalse(result.meta["applied_config"]["include_il"])
        self.assertEqual(result.meta["impermanent_loss"], Decimal("0"))


class CalculatorContractTests(StrategyDataMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.seed_scenario()
        self.registry = build_default_registry()

    def test_results_are_deterministic(self):
        for key in self.registry.keys():
            calc = self.registry.get(key)
            self.assertEqual(calc.calculate(self.strategy, DAY30), calc.calculate(self.strategy, DAY30), key)

    def test_meta_contract(self):
        for key, result in self.registry.calculate_all(self.strategy, DAY30).items():
            self.assertIn(result.meta["window"], {"ltd", "point"}, key)
            self.assertEqual(result.meta["to"], DAY30.isoformat(), key)
            self.assertTrue(result.meta["inclusive"], key)
            self.assertTrue(result.meta["formula"], key)
            self.assertEqual(result.key, key)
            self.assertTrue(result.display_name, key)

    def test_calculation_does_not_modify_history(self):
        before = (self.strategy.transactions.count(), self.strategy.snapshots.count())
        self.registry.calculate_all(self.strategy, DAY30)
        self.assertEqual((self.strategy.transactions.count(), self.strategy.snapshots.count()), before)


class RegistryTests(StrategyDataMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.registry = build_default_registry()

    def test_default_registry_has_all_metrics(self):
        self.assertEqual(
            sorted(self.registry.keys()),
            sorted(
                [
                    "apr-farming",
                    "apr-lending",
                    "borrow_principal_total",
                    "repay_principal_total",
                    "fees_collected",
                    "withdrawals_total",
                    "loan_interest_accrued_total",
                    "tvl",
                    "pnl",
                    "roi",
                ]
            ),
        )

    def test_get_unknown_key_returns_none(self):
        self.assertIsNone(self.registry.get("nonexistent"))
        self.assertFalse(self.registry.has("nonexistent"))

    def test_calculate_for_skips_unknown_keys(self):
        self.seed_scenario()

        self.assertEqual(self.registry.calculate_for(self.strategy, DAY30, ["nonexistent"]), {})
        results = self.registry.calculate_for(self.strategy, DAY30, ["tvl", "nonexistent", "roi"])
        self.assertEqual(list(results), ["tvl", "roi"])

    def test_register_overwrites_by_key(self):
        registry = MetricsRegistry([TvlCalculator()])
        replacement = TvlCalculator()
        registry.register(replacement)

        self.assertEqual(len(registry), 1)
        self.assertIs(registry.get("tvl"), replacement)

    def test_list_all_sorted_with_labels(self):
        listing = self.registry.list_all()

        self.assertEqual(list(listing), sorted(listing))
        self.assertEqual(listing["apr-farming"]["label"], "Apr Farming")
        self.assertEqual(listing["fees_collected"]["label"], "Fees Collected")
        self.assertEqual(listing["roi"]["unit"], "%")
        self.assertEqual(listing["tvl"]["description"], "Total Value Locked (TVL) in USD")

    def test_humanize_key(self):
        self.assertEqual(humanize_key("loan_interest_accrued_total"), "Loan Interest Accrued Total")


class StrategyMetricsServiceTests(StrategyDataMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.seed_scenario()
        self.registry = build_default_registry()
        self.service = StrategyMetricsService(self.registry)

    def enable(self, key, order=None, strategy=None, **kwargs):
        return StrategyMetric.objects.create(
            strategy=strategy or self.strategy, metric_key=key, order=order, **kwargs
        )

    def test_results_follow_configured_order(self):
        self.enable("pnl")
        self.enable("tvl", order=2)
        self.enable("roi", order=1)
        self.enable("fees_collected")

        results = self.service.calculate_metrics(self.strategy, DAY30)

        self.assertEqual(list(results), ["roi", "tvl", "pnl", "fees_collected"])

    def test_disabled_metrics_are_skipped(self):
        self.enable("tvl")
        self.enable("pnl", is_enabled=False)

        self.assertEqual(list(self.service.calculate_metrics(self.strategy, DAY30)), ["tvl"])

    def test_unknown_key_is_logged_and_omitted(self):
        self.enable("tvl")
        self.enable("renamed_metric")

        with self.assertLogs("metrics.services", level="WARNING") as logs:
            results = self.service.calculate_metrics(self.strategy, DAY30)

        self.assertEqual(list(results), ["tvl"])
        self.assertIn("renamed_metric", logs.output[0])

    def test_failing_calculator_does_not_stop_the_batch(self):
        registry = MetricsRegistry([ExplodingCalculator(), TvlCalculator(), RoiCalculator()])
        self.enable("tvl", order=1)
        self.enable("exploding", order=2)
        self.enable("roi", order=3)

        with self.assertLogs("metrics.services", level="ERROR") as logs:
            results = StrategyMetricsService(registry).calculate_metrics(self.strategy, DAY30)

        self.assertEqual(list(results), ["tvl", "roi"])
        self.assertIn("exploding", logs.output[0])

    def test_custom_config_applies_per_strategy_only(self):
        other = Strategy.objects.create(user=self.user, name="Other", type=StrategyType.LENDING)
        self.add_tx(TransactionType.COLLECT_FEES, "7.555", DAY0, strategy=other)
        self.enable("fees_collected", custom_config={"unit": "EUR", "round": 2, "bogus": 1})
        self.enable("fees_collected", strategy=other)

        mine = self.service.calculate_metrics(self.strategy, DAY30)["fees_collected"]
        theirs = self.service.calculate_metrics(other, DAY30)["fees_collected"]

        self.assertEqual(mine.unit, "EUR")
        self.assertEqual(theirs.unit, "USD")
        self.assertEqual(theirs.value, Decimal("7.555"))
        self.assertEqual(self.registry.get("fees_collected").get_unit(), "USD")

    def test_large_round_keeps_the_metric_in_the_batch(self):
        self.enable("tvl", custom_config={"round": 26})
        self.enable("roi")

        results = self.service.calculate_metrics(self.strategy, DAY30)

        self.assertEqual(list(results), ["tvl", "roi"])
        self.assertEqual(results["tvl"].value, Decimal("1000"))

    def test_snapshot_is_idempotent(self):
        self.enable("tvl")
        self.enable("fees_collected")
        self.enable("roi")

        self.service.snapshot(self.strategy, DAY30)
        self.add_tx(TransactionType.COLLECT_FEES, "25", DAY30)
        self.service.snapshot(self.strategy, DAY30)

        rows = StrategyMetricResult.objects.filter(strategy=self.strategy, snapshot_at=DAY30)
        self.assertEqual(sorted(rows.values_list("metric_key", flat=True)), ["fees_collected", "roi", "tvl"])
        self.assertEqual(rows.get(metric_key="fees_collected").value, Decimal("75"))
        self.assertEqual(rows.get(metric_key="roi").value, Decimal("7.5"))

    def test_snapshot_replaces_only_its_own_timestamp(self):
        self.enable("tvl")
        self.enable("pnl")
        self.service.snapshot(self.strategy, DAY0)
        self.service.snapshot(self.strategy, DAY30)

        StrategyMetric.objects.filter(metric_key="pnl").update(is_enabled=False)
        self.service.snapshot(self.strategy, DAY30)

        self.assertEqual(
            list(
                StrategyMetricResult.objects.filter(snapshot_at=DAY30).values_list("metric_key", flat=True)
            ),
            ["tvl"],
        )
        self.assertEqual(StrategyMetricResult.objects.filter(snapshot_at=DAY0).count(), 2)

    def test_snapshot_stores_null_values_and_meta(self):
        self.enable("tvl")
        at = DAY0 - timedelta(days=1)

        self.service.snapshot(self.strategy, at)

        row = StrategyMetricResult.objects.get(strategy=self.strategy, metric_key="tvl", snapshot_at=at)
        self.assertIsNone(row.value)
        self.assertEqual(row.unit, "USD")
        self.assertEqual(row.meta["reason"], "no_snapshot_before_or_at_to")
        self.assertEqual(row.meta["window"], "point")

    def test_persistence_failure_propagates_and_keeps_previous_rows(self):
        self.enable("tvl")
        self.service.snapshot(self.strategy, DAY30)

        with patch.object(StrategyMetricResult.objects, "bulk_create", side_effect=DatabaseError("down")):
            with self.assertRaises(DatabaseError):
                self.service.snapshot(self.strategy, DAY30)

        self.assertEqual(StrategyMetricResult.objects.filter(snapshot_at=DAY30).count(), 1)

    def test_request_snapshot_for_missing_strategy_is_a_noop(self):
        with self.assertLogs("metrics.services", level="WARNING"):
            self.assertIsNone(request_snapshot(strategy_id=999999, at=DAY30, registry=self.registry))

    def test_request_snapshot_uses_app_registry(self):
        self.enable("tvl")

        results = request_snapshot(strategy_id=self.strategy.id, at=DAY30)

        self.assertEqual(list(results), ["tvl"])
        self.assertTrue(StrategyMetricResult.objects.filter(metric_key="tvl", snapshot_at=DAY30).exists())

    def test_latest_metrics_reads_most_recent_timestamp(self):
        self.enable("tvl")
        self.enable("pnl")
        self.service.snapshot(self.strategy, DAY0)
        self.service.snapshot(self.strategy, DAY30)

        latest = self.strategy.latest_metrics()

        self.assertEqual(sorted(latest), ["pnl", "tvl"])
        self.assertEqual(latest["pnl"].snapshot_at, DAY30)
        self.assertEqual(self.strategy.latest_metric_value("pnl"), Decimal("50"))
        self.assertEqual(list(self.strategy.latest_metrics(at=DAY0, keys=["tvl"])), ["tvl"])


class RecalculationTriggerTests(StrategyDataMixin, TestCase):
    def setUp(self):
        super().setUp()
        StrategyMetric.objects.create(strategy=self.strategy, metric_key="fees_collected")

    def test_triggers_are_off_by_default(self):
        self.add_tx(TransactionType.COLLECT_FEES, "5", DAY0)
        self.add_snapshot(DAY0, "100")

        self.assertFalse(StrategyMetricResult.objects.exists())

    @override_settings(METRICS={"TRIGGER_ON_TRANSACTION": True, "SYNC_ON_TRANSACTION": True})
    def test_transaction_triggers_sync_recalculation(self):
        self.add_tx(TransactionType.COLLECT_FEES, "5", DAY0)

        row = StrategyMetricResult.objects.get(metric_key="fees_collected")
        self.assertEqual(row.snapshot_at, DAY0)
        self.assertEqual(row.value, Decimal("5"))

    @override_settings(METRICS={"TRIGGER_ON_TRANSACTION": True, "SYNC_ON_TRANSACTION": False})
    def test_transaction_trigger_waits_for_commit(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            self.add_tx(TransactionType.COLLECT_FEES, "5", DAY0)
            self.assertFalse(StrategyMetricResult.objects.exists())

        self.assertEqual(len(callbacks), 1)
        self.assertTrue(StrategyMetricResult.objects.filter(snapshot_at=DAY0).exists())

    @override_settings(METRICS={"TRIGGER_ON_SNAPSHOT": True, "SYNC_ON_SNAPSHOT": True})
    def test_snapshot_edit_triggers_recalculation(self):
        StrategyMetric.objects.create(strategy=self.strategy, metric_key="tvl")
        snapshot = self.add_snapshot(DAY30, "100")
        self.assertEqual(StrategyMetricResult.objects.get(metric_key="tvl").value, Decimal("100"))

        snapshot.total_liquidity = Decimal("150")
        snapshot.save()

        rows = StrategyMetricResult.objects.filter(metric_key="tvl", snapshot_at=DAY30)
        self.assertEqual(rows.count(), 1)
        self.assertEqual(rows.get().value, Decimal("150"))


class CommandTests(StrategyDataMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.seed_scenario()
        StrategyMetric.objects.create(strategy=self.strategy, metric_key="tvl")
        StrategyMetric.objects.create(strategy=self.strategy, metric_key="roi")

    def test_compute_for_one_strategy(self):
        out = StringIO()
        call_command(
            "compute_strategy_metrics",
            "--strategy-id",
            str(self.strategy.id),
            "--at",
            DAY30.isoformat(),
            stdout=out,
        )

        self.assertIn("Stored 2 metric result(s)", out.getvalue())
        self.assertEqual(
            StrategyMetricResult.objects.get(metric_key="roi", snapshot_at=DAY30).value, Decimal("5")
        )

    def test_compute_for_all_active(self):
        Strategy.objects.create(user=self.user, name="Draft", type=StrategyType.STAKING)
        out = StringIO()

        call_command("compute_strategy_metrics", "--all-active", "--at", DAY30.isoformat(), stdout=out)

        self.assertIn("for 1 strategy(ies)", out.getvalue())

    def test_compute_all_active_continues_past_a_failing_strategy(self):
        other = Strategy.objects.create(
            user=self.user, name="Second", type=StrategyType.LENDING, status=StrategyStatus.ACTIVE
        )
        StrategyMetric.objects.create(strategy=other, metric_key="tvl")
        real_bulk_create = StrategyMetricResult.objects.bulk_create
        calls = []

        def fail_first(objs, *args, **kwargs):
            calls.append(objs)
            if len(calls) == 1:
                raise DatabaseError("disk full")
            return real_bulk_create(objs, *args, **kwargs)

        out, err = StringIO(), StringIO()
        with patch.object(StrategyMetricResult.objects, "bulk_create", side_effect=fail_first):
            call_command(
                "compute_strategy_metrics", "--all-active", "--at", DAY30.isoformat(), stdout=out, stderr=err
            )

        self.assertIn("Stored 1 metric result(s) for 1 strategy(ies)", out.getvalue())
        self.assertIn(f"Failed: {self.strategy.id}", out.getvalue())
        self.assertIn("disk full", err.getvalue())
        self.assertFalse(StrategyMetricResult.objects.filter(strategy=self.strategy).exists())
        self.assertEqual(StrategyMetricResult.objects.filter(strategy=other).count(), 1)

    def test_compute_rejects_unknown_strategy(self):
        with self.assertRaises(CommandError):
            call_command("compute_strategy_metrics", "--strategy-id", "999999")

    def test_compute_rejects_bad_timestamp(self):
        with self.assertRaises(CommandError):
            call_command("compute_strategy_metrics", "--strategy-id", str(self.strategy.id), "--at", "yesterday")

    def test_compute_requires_a_target(self):
        with self.assertRaises(CommandError):
            call_command("compute_strategy_metrics")

    def test_list_metrics(self):
        out = StringIO()
        call_command("list_metrics", stdout=out)

        self.assertIn("apr-farming", out.getvalue())
        self.assertIn("10 metric(s) registered.", out.getvalue())


class StrategyMetricFormTests(StrategyDataMixin, TestCase):
    def test_rejects_non_integer_round(self):
        form = StrategyMetricForm(
            data={"metric_key": "tvl", "is_enabled": True, "custom_config": '{"round": "2"}'}
        )

        self.assertFalse(form.is_valid())
        self.assertIn("custom_config", form.errors)

    def test_rejects_round_out_of_range(self):
        for places in ("26", "-1"):
            form = StrategyMetricForm(
                data={"metric_key": "tvl", "is_enabled": True, "custom_config": f'{{"round": {places}}}'}
            )

            self.assertFalse(form.is_valid())
            self.assertIn("custom_config", form.errors)

    def test_accepts_registered_key(self):
        form = StrategyMetricForm(
            data={"metric_key": "tvl", "is_enabled": True, "order": 1, "custom_config": '{"round": 2}'}
        )

        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.cleaned_data["custom_config"], {"round": 2})

    def test_keeps_unregistered_key_of_existing_row_selectable(self):
        row = StrategyMetric.objects.create(strategy=self.strategy, metric_key="legacy_metric")

        form = StrategyMetricForm(instance=row)

        self.assertIn("legacy_metric", dict(form.fields["metric_key"].choices))
