from __future__ import annotations

from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from io import StringIO
from unittest.mock import MagicMock, patch

import requests
from django.contrib import admin
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.db import IntegrityError
from django.test import Client, RequestFactory, TestCase
from django.urls import reverse

from metrics.models import StrategyMetric, StrategyMetricResult

from .models import (
    Asset,
    AssetSnapshot,
    AssetTransaction,
    Snapshot,
    Strategy,
    StrategyParameter,
    StrategyParameterType,
    StrategyParameterValue,
    StrategyStatus,
    StrategyType,
    Transaction,
    TransactionType,
)
from .providers import CoinGeckoProvider, ProviderPrice
from .services import refresh_asset_price


T0 = datetime(2025, 3, 1, tzinfo=dt_timezone.utc)


def _response(payload, status=200):
    resp = MagicMock()
    resp.json.return_value = payload
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    else:
        resp.raise_for_status.return_value = None
    return resp


class StrategyReadTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.user = User.objects.create_user(username="u1", password="pw")
        self.strategy = Strategy.objects.create(
            user=self.user,
            name="Aave USDC",
            type=StrategyType.LENDING,
            status=StrategyStatus.ACTIVE,
            created_at=T0 - timedelta(days=3),
        )

    def test_transactions_total_filters_type_and_window(self):
        Transaction.objects.create(
            strategy=self.strategy, transaction_type=TransactionType.DEPOSIT, transaction_date=T0, total_value=Decimal("100")
        )
        Transaction.objects.create(
            strategy=self.strategy,
            transaction_type=TransactionType.DEPOSIT,
            transaction_date=T0 + timedelta(days=2),
            total_value=Decimal("50"),
        )
        Transaction.objects.create(
            strategy=self.strategy, transaction_type=TransactionType.WITHDRAW, transaction_date=T0, total_value=Decimal("30")
        )

        at = T0 + timedelta(days=2)
        self.assertEqual(self.strategy.transactions_total(TransactionType.DEPOSIT, at), Decimal("150"))
        self.assertEqual(
            self.strategy.transactions_total(TransactionType.DEPOSIT, at, since=T0 + timedelta(days=1)),
            Decimal("50"),
        )
        self.assertEqual(self.strategy.transactions_total(TransactionType.DEPOSIT, T0 - timedelta(days=1)), Decimal("0"))

    def test_latest_snapshot_and_total_value(self):
        Snapshot.objects.create(strategy=self.strategy, snapshot_at=T0, total_liquidity=Decimal("100"))
        later = Snapshot.objects.create(
            strategy=self.strategy,
            snapshot_at=T0 + timedelta(days=1),
            total_liquidity=Decimal("120"),
            fees_uncollected=Decimal("3"),
        )

        self.assertEqual(self.strategy.latest_snapshot(T0 + timedelta(days=5)), later)
        self.assertEqual(self.strategy.total_value(T0 + timedelta(days=5)), Decimal("123"))
        self.assertIsNone(self.strategy.latest_snapshot(T0 - timedelta(seconds=1)))
        self.assertEqual(self.strategy.total_value(T0 - timedelta(seconds=1)), Decimal("0"))

    def test_inception_prefers_snapshot_then_transaction_then_creation(self):
        at = T0 + timedelta(days=10)
        self.assertEqual(self.strategy.inception(at), T0 - timedelta(days=3))

        Transaction.objects.create(
            strategy=self.strategy,
            transaction_type=TransactionType.DEPOSIT,
            transaction_date=T0 + timedelta(days=1),
            total_value=Decimal("1"),
        )
        self.assertEqual(self.strategy.inception(at), T0 + timedelta(days=1))

        Snapshot.objects.create(strategy=self.strategy, snapshot_at=T0 + timedelta(days=2))
        self.assertEqual(self.strategy.inception(at), T0 + timedelta(days=2))

    def test_duration_days(self):
        self.strategy.start_at = T0
        self.assertEqual(self.strategy.duration_days(now=T0 + timedelta(days=4, hours=5)), 4)
        self.strategy.finish_at = T0 + timedelta(days=2)
        self.assertEqual(self.strategy.duration_days(now=T0 + timedelta(days=9)), 2)
        self.assertTrue(self.strategy.is_active)

    def test_asset_lines_report_values(self):
        eth = Asset.objects.create(user=self.user, name="Ether", symbol="ETH")
        tx = Transaction.objects.create(
            strategy=self.strategy, transaction_type=TransactionType.DEPOSIT, transaction_date=T0, total_value=Decimal("300")
        )
        AssetTransaction.objects.create(transaction=tx, asset=eth, asset_amount=Decimal("0.1"), asset_price=Decimal("3000"))
        snap = Snapshot.objects.create(strategy=self.strategy, snapshot_at=T0)
        AssetSnapshot.objects.create(snapshot=snap, asset=eth, asset_amount=Decimal("0.2"), asset_price=Decimal("2500"))

        [tx_line] = tx.assets_with_values()
        [snap_line] = snap.assets_with_values()
        self.assertEqual(tx_line["asset"], eth)
        self.assertEqual(tx_line["value"], Decimal("300"))
        self.assertEqual(snap_line["value"], Decimal("500"))


class CoinGeckoProviderTests(TestCase):
    def test_fetch_price_by_id(self):
        session = MagicMock()
        session.get.return_value = _response({"ethereum": {"usd": 3150.42}})
        provider = CoinGeckoProvider(api_key="k", base_url="https://cg.test/api/v3", session=session)

        self.assertEqual(provider.fetch_price_by_id("ethereum"), Decimal("3150.42"))
        args, kwargs = session.get.call_args
        self.assertEqual(args[0], "https://cg.test/api/v3/simple/price")
        self.assertEqual(kwargs["params"], {"ids": "ethereum", "vs_currencies": "usd"})
        self.assertEqual(kwargs["headers"]["x-cg-demo-api-key"], "k")

    def test_fetch_price_by_id_missing(self):
        session = MagicMock()
        session.get.return_value = _response({})
        provider = CoinGeckoProvider(api_key="", session=session)

        self.assertIsNone(provider.fetch_price_by_id("nope"))
        self.assertIsNone(provider.fetch_price_by_id(""))

    def test_fetch_price_by_symbol_uses_first_search_hit(self):
        session = MagicMock()
        session.get.side_effect = [
            _response({"coins": [{"id": "usd-coin"}, {"id": "bridged-usdc"}]}),
            _response({"usd-coin": {"usd": "0.9998"}}),
        ]
        provider = CoinGeckoProvider(api_key="", session=session)

        self.assertEqual(provider.fetch_price_by_symbol("USDC"), ProviderPrice(coin_id="usd-coin", price=Decimal("0.9998")))

    def test_http_errors_propagate(self):
        session = MagicMock()
        session.get.return_value = _response({}, status=429)
        provider = CoinGeckoProvider(api_key="", session=session)

        with self.assertRaises(requests.HTTPError):
            provider.fetch_price_by_id("ethereum")


class RefreshAssetPriceTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.user = User.objects.create_user(username="u1", password="pw")
        self.asset = Asset.objects.create(
            user=self.user, name="Ether", symbol="ETH", coingecko_id="ethereum", is_updatable=True
        )

    def test_prefers_coingecko_id(self):
        provider = MagicMock()
        provider.fetch_price_by_id.return_value = Decimal("3000")

        self.assertEqual(refresh_asset_price(asset=self.asset, provider=provider), Decimal("3000"))
        provider.fetch_price_by_symbol.assert_not_called()
        self.asset.refresh_from_db()
        self.assertEqual(self.asset.last_price_usd, Decimal("3000"))
        self.assertIsNotNone(self.asset.price_updated_at)

    def test_falls_back_to_symbol(self):
        provider = MagicMock()
        provider.fetch_price_by_id.return_value = None
        provider.fetch_price_by_symbol.return_value = ProviderPrice(coin_id="ethereum", price=Decimal("2999"))

        self.assertEqual(refresh_asset_price(asset=self.asset, provider=provider), Decimal("2999"))

    def test_request_failure_is_logged_and_skipped(self):
        provider = MagicMock()
        provider.fetch_price_by_id.side_effect = requests.ConnectionError("offline")

        with self.assertLogs("portfolio.services", level="WARNING"):
            self.assertIsNone(refresh_asset_price(asset=self.asset, provider=provider))
        self.asset.refresh_from_db()
        self.assertIsNone(self.asset.last_price_usd)

    @patch("portfolio.management.commands.refresh_asset_prices.CoinGeckoProvider")
    def test_command_refreshes_updatable_assets(self, mock_provider_cls):
        Asset.objects.create(user=self.user, name="Static", symbol="STC", is_updatable=False)
        mock_provider_cls.return_value.fetch_price_by_id.return_value = Decimal("3100")

        out = StringIO()
        call_command("refresh_asset_prices", stdout=out)

        self.assertIn("Updated 1/1 asset price(s).", out.getvalue())
        self.asset.refresh_from_db()
        self.assertEqual(self.asset.last_price_usd, Decimal("3100"))


class StrategyAdminTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.admin = User.objects.create_superuser(username="admin", password="pw", email="a@example.com")
        self.staff = User.objects.create_user(username="staff", password="pw", is_staff=True)
        self.strategy = Strategy.objects.create(
            user=self.admin, name="Superuser strategy", type=StrategyType.STAKING, status=StrategyStatus.ACTIVE
        )
        self.client = Client()

    def test_recalculate_action_stores_results(self):
        Snapshot.objects.create(strategy=self.strategy, snapshot_at=T0, total_liquidity=Decimal("10"))
        StrategyMetric.objects.create(strategy=self.strategy, metric_key="tvl")
        self.client.login(username="admin", password="pw")

        resp = self.client.post(
            reverse("admin:portfolio_strategy_changelist"),
            data={"action": "recalculate_metrics", "_selected_action": [str(self.strategy.id)]},
        )

        self.assertEqual(resp.status_code, 302)
        self.assertEqual(StrategyMetricResult.objects.get(strategy=self.strategy).value, Decimal("10"))

    def test_staff_only_sees_own_strategies(self):
        from django.contrib.auth.models import Permission

        self.staff.user_permissions.add(Permission.objects.get(codename="view_strategy"))
        Strategy.objects.create(user=self.staff, name="Staff strategy", type=StrategyType.FARMING)
        self.client.login(username="staff", password="pw")

        resp = self.client.get(reverse("admin:portfolio_strategy_changelist"))

        self.assertEqual(resp.status_code, 200)
        self.assertContains(resp, "Staff strategy")
        self.assertNotContains(resp, "Superuser strategy")

    def test_staff_only_sees_metric_rows_of_own_strategies(self):
        from django.contrib.auth.models import Permission

        self.staff.user_permissions.add(
            *Permission.objects.filter(codename__in=["view_strategymetric", "view_strategymetricresult"])
        )
        mine = Strategy.objects.create(user=self.staff, name="Staff strategy", type=StrategyType.FARMING)
        for strategy in (self.strategy, mine):
            StrategyMetric.objects.create(strategy=strategy, metric_key="tvl")
            StrategyMetricResult.objects.create(strategy=strategy, metric_key="tvl", snapshot_at=T0, value=Decimal("1"))
        self.client.login(username="staff", password="pw")

        for url_name in ("admin:metrics_strategymetric_changelist", "admin:metrics_strategymetricresult_changelist"):
            resp = self.client.get(reverse(url_name))

            self.assertEqual(resp.status_code, 200)
            self.assertContains(resp, "Staff strategy")
            self.assertNotContains(resp, "Superuser strategy")

    def test_strategy_choices_are_limited_to_own_strategies(self):
        mine = Strategy.objects.create(user=self.staff, name="Staff strategy", type=StrategyType.FARMING)
        request = RequestFactory().get("/")
        request.user = self.staff
        transaction_admin = admin.site._registry[Transaction]

        field = transaction_admin.formfield_for_foreignkey(Transaction._meta.get_field("strategy"), request)
        self.assertEqual(list(field.queryset), [mine])

        request.user = self.admin
        field = transaction_admin.formfield_for_foreignkey(Transaction._meta.get_field("strategy"), request)
        self.assertEqual(set(field.queryset), {mine, self.strategy})


class StrategyParameterTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.user = User.objects.create_user(username="u1", password="pw")
        self.strategy = Strategy.objects.create(user=self.user, name="ETH/USDC LP", type=StrategyType.FARMING)
        self.lower = StrategyParameter.objects.create(name="Lower bound", key="lower-bound")
        self.rebalance = StrategyParameter.objects.create(
            name="Auto rebalance", key="auto-rebalance", type=StrategyParameterType.BOOLEAN
        )
        self.note = StrategyParameter.objects.create(name="Note", key="note", type=StrategyParameterType.TEXT)

    def test_values_are_parsed_by_type(self):
        StrategyParameterValue.objects.create(strategy=self.strategy, parameter=self.lower, value="2450.5")
        StrategyParameterValue.objects.create(strategy=self.strategy, parameter=self.rebalance, value="Yes")
        StrategyParameterValue.objects.create(strategy=self.strategy, parameter=self.note, value=" tight range ")

        self.assertEqual(
            self.strategy.parameter_map(),
            {"lower-bound": Decimal("2450.5"), "auto-rebalance": True, "note": "tight range"},
        )
        self.assertEqual(set(self.strategy.parameters.all()), {self.lower, self.rebalance, self.note})
        self.assertEqual(list(self.lower.strategies.all()), [self.strategy])

    def test_invalid_values_fail_validation(self):
        for parameter, raw in ((self.lower, "abc"), (self.lower, "NaN"), (self.rebalance, "maybe")):
            row = StrategyParameterValue(strategy=self.strategy, parameter=parameter, value=raw)

            with self.assertRaises(ValidationError) as ctx:
                row.full_clean()
            self.assertIn("value", ctx.exception.message_dict)

    def test_one_value_per_strategy_and_parameter(self):
        StrategyParameterValue.objects.create(strategy=self.strategy, parameter=self.lower, value="1")

        with self.assertRaises(IntegrityError):
            StrategyParameterValue.objects.create(strategy=self.strategy, parameter=self.lower, value="2")
