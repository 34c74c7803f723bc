from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Chain",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=100)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="chains",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("user", "name"), name="uniq_chain_user_name"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Wallet",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=100)),
                ("address", models.CharField(blank=True, max_length=128)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="wallets",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("user", "name"), name="uniq_wallet_user_name"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Resource",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=100)),
                ("url", models.URLField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="resources",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("user", "name"), name="uniq_resource_user_name"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Asset",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "asset_type",
                    models.CharField(
                        choices=[
                            ("coin", "Coin"),
                            ("stablecoin", "Stablecoin"),
                            ("bridged token", "Bridged token"),
                            ("wrapped token", "Wrapped token"),
                        ],
                        default="coin",
                        max_length=16,
                    ),
                ),
                ("name", models.CharField(max_length=100)),
                ("symbol", models.CharField(max_length=32)),
                ("contract_address", models.CharField(blank=True, max_length=128)),
                ("coingecko_id", models.CharField(blank=True, max_length=100)),
                ("is_updatable", models.BooleanField(default=False)),
                ("last_price_usd", models.DecimalField(blank=True, decimal_places=12, max_digits=30, null=True)),
                ("price_updated_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "chain",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="assets",
                        to="portfolio.chain",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="assets",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["user", "symbol"], name="portfolio_asset_user_symbol"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Strategy",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("description", models.TextField(blank=True)),
                ("strategy_url", models.URLField(blank=True)),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("staking", "Staking"),
                            ("lending", "Lending"),
                            ("borrowing", "Borrowing"),
                            ("farming", "Farming"),
                        ],
                        max_length=16,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("closed", "Closed"), ("draft", "Draft")],
                        default="draft",
                        max_length=16,
                    ),
                ),
                ("wallet_address", models.CharField(blank=True, max_length=128)),
                ("start_at", models.DateTimeField(blank=True, null=True)),
                ("finish_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "chain",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="strategies",
                        to="portfolio.chain",
                    ),
                ),
                (
                    "resource",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="strategies",
                        to="portfolio.resource",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="strategies",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "wallet",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="strategies",
                        to="portfolio.wallet",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "strategies",
                "indexes": [
                    models.Index(fields=["user", "status"], name="portfolio_strategy_user_status"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StrategyAsset",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("order", models.PositiveIntegerField(default=0)),
                (
                    "asset",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="strategy_links",
                        to="portfolio.asset",
                    ),
                ),
                (
                    "strategy",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="strategy_assets",
                        to="portfolio.strategy",
                    ),
                ),
            ],
            options={
                "ordering": ["order", "id"],
                "constraints": [
                    models.UniqueConstraint(fields=("strategy", "asset"), name="uniq_strategy_asset"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Transaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "transaction_type",
                    models.CharField(
                        choices=[
                            ("deposit", "Deposit"),
                            ("withdraw", "Withdraw"),
                            ("lending interest accrued", "Lending interest accrued"),
                            ("collect fees", "Collect fees"),
                            ("borrow_principal", "Borrow principal"),
                            ("loan_interest_accrued", "Loan interest accrued"),
                            ("repay_principal", "Repay principal"),
                        ],
                        max_length=32,
                    ),
                ),
                ("transaction_date", models.DateTimeField(default=django.utils.timezone.now)),
                ("total_value", models.DecimalField(decimal_places=12, default=Decimal("0"), max_digits=30)),
                ("memo", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "strategy",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="transactions",
                        to="portfolio.strategy",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(
                        fields=["strategy", "transaction_type", "transaction_date"],
                        name="portfolio_tx_strat_type_date",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Snapshot",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("snapshot_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("total_liquidity", models.DecimalField(decimal_places=12, default=Decimal("0"), max_digits=30)),
                ("fees_uncollected", models.DecimalField(decimal_places=12, default=Decimal("0"), max_digits=30)),
                ("current_loan_balance", models.DecimalField(blank=True, decimal_places=12, max_digits=30, null=True)),
                ("accrued_loan_interest", models.DecimalField(blank=True, decimal_places=12, max_digits=30, null=True)),
                ("overall_health_factor", models.DecimalField(blank=True, decimal_places=6, max_digits=20, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "strategy",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="snapshots",
                        to="portfolio.strategy",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["strategy", "-snapshot_at"], name="portfolio_snap_strat_at"),
                ],
            },
        ),
        migrations.CreateModel(
            name="AssetTransaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("asset_amount", models.DecimalField(decimal_places=18, max_digits=38)),
                ("asset_price", models.DecimalField(decimal_places=12, max_digits=30)),
                (
                    "asset",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="+",
                        to="portfolio.asset",
                    ),
                ),
                (
                    "transaction",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="asset_lines",
                        to="portfolio.transaction",
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="AssetSnapshot",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("asset_amount", models.DecimalField(decimal_places=18, max_digits=38)),
                ("asset_price", models.DecimalField(decimal_places=12, max_digits=30)),
                (
                    "asset",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="+",
                        to="portfolio.asset",
                    ),
                ),
                (
                    "snapshot",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="asset_lines",
                        to="portfolio.snapshot",
                    ),
                ),
            ],
        ),
    ]
