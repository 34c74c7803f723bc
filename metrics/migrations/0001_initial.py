from __future__ import annotations

import django.core.serializers.json
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("portfolio", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="StrategyMetric",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("metric_key", models.CharField(max_length=64)),
                ("is_enabled", models.BooleanField(default=True)),
                ("custom_config", models.JSONField(blank=True, default=dict)),
                ("order", models.IntegerField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "strategy",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="strategy_metrics",
                        to="portfolio.strategy",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("strategy", "metric_key"), name="uniq_strategy_metric_key"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StrategyMetricResult",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("metric_key", models.CharField(max_length=64)),
                ("snapshot_at", models.DateTimeField()),
                ("value", models.DecimalField(blank=True, decimal_places=12, max_digits=30, null=True)),
                ("unit", models.CharField(blank=True, max_length=16)),
                (
                    "meta",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        encoder=django.core.serializers.json.DjangoJSONEncoder,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "strategy",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="metric_results",
                        to="portfolio.strategy",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(
                        fields=("strategy", "metric_key", "snapshot_at"),
                        name="uniq_metric_result_strategy_key_at",
                    ),
                ],
                "indexes": [
                    models.Index(fields=["strategy", "-snapshot_at"], name="metrics_res_strategy_at"),
                ],
            },
        ),
    ]
