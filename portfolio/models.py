from __future__ import annotations

from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Max, Min, Sum
from django.utils import timezone


class AssetType(models.TextChoices):
    COIN = "coin", "Coin"
    STABLECOIN = "stablecoin", "Stablecoin"
    BRIDGED_TOKEN = "bridged token", "Bridged token"
    WRAPPED_TOKEN = "wrapped token", "Wrapped token"


class StrategyType(models.TextChoices):
    STAKING = "staking", "Staking"
    LENDING = "lending", "Lending"
    BORROWING = "borrowing", "Borrowing"
    FARMING = "farming", "Farming"


class StrategyStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    CLOSED = "closed", "Closed"
    DRAFT = "draft", "Draft"


class TransactionType(models.TextChoices):
    DEPOSIT = "deposit", "Deposit"
    WITHDRAW = "withdraw", "Withdraw"
    LENDING_INTEREST_ACCRUED = "lending interest accrued", "Lending interest accrued"
    COLLECT_FEES = "collect fees", "Collect fees"
    BORROW_PRINCIPAL = "borrow_principal", "Borrow principal"
    LOAN_INTEREST_ACCRUED = "loan_interest_accrued", "Loan interest accrued"
    REPAY_PRINCIPAL = "repay_principal", "Repay principal"


class StrategyParameterType(models.TextChoices):
    NUMERIC = "numeric", "Numeric"
    TEXT = "text", "Text"
    BOOLEAN = "boolean", "Boolean"


class Chain(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="chains"
    )
    name = models.CharField(max_length=100)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user", "name"], name="uniq_chain_user_name"),
        ]

    def __str__(self) -> str:
        return self.name


class Wallet(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="wallets"
    )
    name = models.CharField(max_length=100)
    address = models.CharField(max_length=128, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user", "name"], name="uniq_wallet_user_name"),
        ]

    def __str__(self) -> str:
        return self.name


class Resource(models.Model):
    """A protocol or venue a strategy runs on (Aave, Uniswap, ...)."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="resources"
    )
    name = models.CharField(max_length=100)
    url = models.URLField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user", "name"], name="uniq_resource_user_name"),
        ]

    def __str__(self) -> str:
        return self.name


class Asset(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="assets"
    )
    asset_type = models.CharField(
        max_length=16, choices=AssetType.choices, default=AssetType.COIN
    )
    name = models.CharField(max_length=100)
    symbol = models.CharField(max_length=32)
    chain = models.ForeignKey(
        Chain, on_delete=models.SET_NULL, related_name="assets", blank=True, null=True
    )
    contract_address = models.CharField(max_length=128, blank=True)
    coingecko_id = models.CharField(max_length=100, blank=True)
    is_updatable = models.BooleanField(default=False)

    # last price pulled from the market-data provider
    last_price_usd = models.DecimalField(max_digits=30, decimal_places=12, blank=True, null=True)
    price_updated_at = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["user", "symbol"], name="portfolio_asset_user_symbol"),
        ]

    def __str__(self) -> str:
        return self.symbol


class Strategy(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="strategies"
    )
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    strategy_url = models.URLField(blank=True)

    type = models.CharField(max_length=16, choices=StrategyType.choices)
    status = models.CharField(
        max_length=16, choices=StrategyStatus.choices, default=StrategyStatus.DRAFT
    )

    resource = models.ForeignKey(
        Resource, on_delete=models.SET_NULL, related_name="strategies", blank=True, null=True
    )
    chain = models.ForeignKey(
        Chain, on_delete=models.SET_NULL, related_name="strategies", blank=True, null=True
    )
    wallet = models.ForeignKey(
        Wallet, on_delete=models.SET_NULL, related_name="strategies", blank=True, null=True
    )
    wallet_address = models.CharField(max_length=128, blank=True)

    parameters = models.ManyToManyField(
        "StrategyParameter", through="StrategyParameterValue", related_name="strategies", blank=True
    )

    start_at = models.DateTimeField(blank=True, null=True)
    finish_at = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "strategies"
        indexes = [
            models.Index(fields=["user", "status"], name="portfolio_strategy_user_status"),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.type})"

    @property
    def is_active(self) -> bool:
        return self.status == StrategyStatus.ACTIVE

    def duration_days(self, now=None) -> int:
        start = self.start_at or self.created_at
        end = self.finish_at or now or timezone.now()
        return max(0, (end - start).days)

    def parameter_map(self) -> dict:
        """Typed parameter values keyed by parameter key."""
        return {
            row.parameter.key: row.typed_value
            for row in self.parameter_values.select_related("parameter")
        }

    # Read side used by the metrics engine.

    def transactions_total(self, transaction_type: str, at, since=None) -> Decimal:
        """Sum of ``total_value`` for one transaction type dated at or before ``at``."""
        qs = self.transactions.filter(transaction_type=transaction_type, transaction_date__lte=at)
        if since is not None:
            qs = qs.filter(transaction_date__gte=since)
        return qs.aggregate(total=Sum("total_value"))["total"] or Decimal("0")

    def latest_snapshot(self, at) -> Snapshot | None:
        return self.snapshots.filter(snapshot_at__lte=at).order_by("-snapshot_at", "-id").first()

    def total_value(self, at) -> Decimal:
        """TVL of the latest snapshot at or before ``at``; zero when there is none."""
        snapshot = self.latest_snapshot(at)
        if snapshot is None:
            return Decimal("0")
        return snapshot.tvl

    def inception(self, at):
        """
        Earliest known data point at or before ``at``: first snapshot, else first
        transaction, else the strategy creation time.
        """
        snap_at = self.snapshots.filter(snapshot_at__lte=at).aggregate(first=Min("snapshot_at"))["first"]
        if snap_at is not None:
            return snap_at
        tx_at = self.transactions.filter(transaction_date__lte=at).aggregate(
            first=Min("transaction_date")
        )["first"]
        if tx_at is not None:
            return tx_at
        return self.created_at or at

    # Stored metric results.

    def latest_metrics(self, at=None, keys: list[str] | None = None) -> dict:
        """
        Stored metric rows keyed by metric key at ``at``, or at the most recent
        stored ``snapshot_at`` when ``at`` is omitted.
        """
        if at is None:
            at = self.metric_results.aggregate(latest=Max("snapshot_at"))["latest"]
            if at is None:
                return {}
        qs = self.metric_results.filter(snapshot_at=at)
        if keys is not None:
            qs = qs.filter(metric_key__in=keys)
        return {row.metric_key: row for row in qs}

    def latest_metric_value(self, key: str) -> Decimal | None:
        row = self.latest_metrics(keys=[key]).get(key)
        return row.value if row is not None else None


class StrategyAsset(models.Model):
    strategy = models.ForeignKey(Strategy, on_delete=models.CASCADE, related_name="strategy_assets")
    asset = models.ForeignKey(Asset, on_delete=models.CASCADE, related_name="strategy_links")
    order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["order", "id"]
        constraints = [
            models.UniqueConstraint(fields=["strategy", "asset"], name="uniq_strategy_asset"),
        ]

    def __str__(self) -> str:
        return f"{self.strategy_id}:{self.asset_id}"


class StrategyParameter(models.Model):
    """A named, typed setting a strategy can carry (price range, target LTV, ...)."""

    TRUE_VALUES = {"1", "true", "yes", "on"}
    FALSE_VALUES = {"0", "false", "no", "off", ""}

    name = models.CharField(max_length=100)
    key = models.SlugField(max_length=64, unique=True)
    type = models.CharField(
        max_length=16, choices=StrategyParameterType.choices, default=StrategyParameterType.NUMERIC
    )
    description = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name", "id"]

    def __str__(self) -> str:
        return self.name

    def parse(self, raw: str):
        """Convert a stored text value to this parameter's type; raises ValidationError."""
        raw = (raw or "").strip()
        if self.type == StrategyParameterType.NUMERIC:
            try:
                value = Decimal(raw)
            except InvalidOperation:
                raise ValidationError(f"{self.name} expects a number, got {raw!r}.") from None
            if not value.is_finite():
                raise ValidationError(f"{self.name} expects a finite number.")
            return value
        if self.type == StrategyParameterType.BOOLEAN:
            lowered = raw.lower()
            if lowered in self.TRUE_VALUES:
                return True
            if lowered in self.FALSE_VALUES:
                return False
            raise ValidationError(f"{self.name} expects yes/no, got {raw!r}.")
        return raw


class StrategyParameterValue(models.Model):
    strategy = models.ForeignKey(Strategy, on_delete=models.CASCADE, related_name="parameter_values")
    parameter = models.ForeignKey(
        StrategyParameter, on_delete=models.CASCADE, related_name="strategy_values"
    )
    value = models.CharField(max_length=255, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["strategy", "parameter"], name="uniq_strategy_parameter"),
        ]

    def __str__(self) -> str:
        return f"{self.strategy_id}:{self.parameter_id}={self.value}"

    def clean(self):
        if self.parameter_id is None:
            return
        try:
            self.parameter.parse(self.value)
        except ValidationError as exc:
            raise ValidationError({"value": exc.messages})

    @property
    def typed_value(self):
        return self.parameter.parse(self.value)


class Transaction(models.Model):
    strategy = models.ForeignKey(Strategy, on_delete=models.CASCADE, related_name="transactions")
    transaction_type = models.CharField(max_length=32, choices=TransactionType.choices)
    transaction_date = models.DateTimeField(default=timezone.now)
    total_value = models.DecimalField(max_digits=30, decimal_places=12, default=Decimal("0"))
    memo = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(
                fields=["strategy", "transaction_type", "transaction_date"],
                name="portfolio_tx_strat_type_date",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.strategy_id}:{self.transaction_type}:{self.total_value}"

    def assets_with_values(self) -> list[dict]:
        return [
            {"asset": line.asset, "amount": line.asset_amount, "price": line.asset_price, "value": line.value}
            for line in self.asset_lines.select_related("asset")
        ]


class Snapshot(models.Model):
    strategy = models.ForeignKey(Strategy, on_delete=models.CASCADE, related_name="snapshots")
    snapshot_at = models.DateTimeField(default=timezone.now)

    total_liquidity = models.DecimalField(max_digits=30, decimal_places=12, default=Decimal("0"))
    fees_uncollected = models.DecimalField(max_digits=30, decimal_places=12, default=Decimal("0"))

    # Borrowing positions only.
    current_loan_balance = models.DecimalField(max_digits=30, decimal_places=12, blank=True, null=True)
    accrued_loan_interest = models.DecimalField(max_digits=30, decimal_places=12, blank=True, null=True)
    overall_health_factor = models.DecimalField(max_digits=20, decimal_places=6, blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["strategy", "-snapshot_at"], name="portfolio_snap_strat_at"),
        ]

    def __str__(self) -> str:
        return f"{self.strategy_id}@{self.snapshot_at.isoformat()}"

    @property
    def tvl(self) -> Decimal:
        return (self.total_liquidity or Decimal("0")) + (self.fees_uncollected or Decimal("0"))

    def assets_with_values(self) -> list[dict]:
        return [
            {"asset": line.asset, "amount": line.asset_amount, "price": line.asset_price, "value": line.value}
            for line in self.asset_lines.select_related("asset")
        ]


class AssetTransaction(models.Model):
    transaction = models.ForeignKey(Transaction, on_delete=models.CASCADE, related_name="asset_lines")
    asset = models.ForeignKey(Asset, on_delete=models.PROTECT, related_name="+")
    asset_amount = models.DecimalField(max_digits=38, decimal_places=18)
    asset_price = models.DecimalField(max_digits=30, decimal_places=12)

    def __str__(self) -> str:
        return f"{self.transaction_id}:{self.asset_id}:{self.asset_amount}"

    @property
    def value(self) -> Decimal:
        return self.asset_amount * self.asset_price


class AssetSnapshot(models.Model):
    snapshot = models.ForeignKey(Snapshot, on_delete=models.CASCADE, related_name="asset_lines")
    asset = models.ForeignKey(Asset, on_delete=models.PROTECT, related_name="+")
    asset_amount = models.DecimalField(max_digits=38, decimal_places=18)
    asset_price = models.DecimalField(max_digits=30, decimal_places=12)

    def __str__(self) -> str:
        return f"{self.snapshot_id}:{self.asset_id}:{self.asset_amount}"

    @property
    def value(self) -> Decimal:
        return self.asset_amount * self.asset_price
