from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError
from django.db import DatabaseError
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from metrics.services import StrategyMetricsService, default_registry
from portfolio.models import Strategy, StrategyStatus


class Command(BaseCommand):
    help = "Calculate and store metrics for one strategy or all active strategies at a point in time (cron-friendly)."

    def add_arguments(self, parser):
        parser.add_argument(
            "--strategy-id",
            type=int,
            default=None,
            help="Restrict the calculation to a single strategy id.",
        )
        parser.add_argument(
            "--at",
            default=None,
            help="ISO-8601 timestamp to calculate at (default: now). Naive values are read in the current timezone.",
        )
        parser.add_argument(
            "--all-active",
            action="store_true",
            help="Calculate for every active strategy.",
        )

    def handle(self, *args, **options):
        at = self._parse_at(options.get("at"))
        strategy_id = options.get("strategy_id")

        if strategy_id:
            strategies = list(Strategy.objects.filter(id=strategy_id))
            if not strategies:
                raise CommandError(f"Strategy {strategy_id} does not exist.")
        elif options.get("all_active"):
            strategies = list(Strategy.objects.filter(status=StrategyStatus.ACTIVE).order_by("id"))
        else:
            raise CommandError("Pass --strategy-id or --all-active.")

        if not strategies:
            self.stdout.write("No active strategies found.")
            return

        service = StrategyMetricsService(default_registry())
        total_results = 0
        failed: list[int] = []
        for strategy in strategies:
            try:
                results = service.snapshot(strategy, at)
            except DatabaseError as exc:
                failed.append(strategy.id)
                self.stderr.write(f"Strategy {strategy.id}: could not store metrics ({exc}).")
                continue
            total_results += len(results)

        stored_for = len(strategies) - len(failed)
        self.stdout.write(
            f"Stored {total_results} metric result(s) for {stored_for} strategy(ies) at {at.isoformat()}."
        )
        if failed:
            self.stdout.write(f"Failed: {', '.join(str(i) for i in failed)}")

    def _parse_at(self, raw):
        if not raw:
            return timezone.now()
        try:
            parsed = parse_datetime(raw)
        except ValueError:
            parsed = None
        if parsed is None:
            raise CommandError(f"Invalid --at timestamp: {raw!r}")
        if timezone.is_naive(parsed):
            parsed = timezone.make_aware(parsed)
        return parsed
