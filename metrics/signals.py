from __future__ import annotations

import logging
from functools import partial

from django.conf import settings
from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

from metrics.services import request_snapshot
from portfolio.models import Snapshot, Transaction

logger = logging.getLogger(__name__)


def _flag(name: str) -> bool:
    return bool(getattr(settings, "METRICS", {}).get(name, False))


def dispatch_snapshot(*, strategy_id: int, at, sync: bool) -> None:
    """Recalculate now, or once the surrounding database transaction commits."""
    if sync:
        request_snapshot(strategy_id=strategy_id, at=at)
        return
    logger.debug("Queued metrics snapshot for strategy %s at %s", strategy_id, at.isoformat())
    transaction.on_commit(partial(request_snapshot, strategy_id=strategy_id, at=at))


@receiver(post_save, sender=Transaction, dispatch_uid="metrics_on_transaction_created")
def recalculate_on_transaction(sender, instance: Transaction, created: bool, raw: bool = False, **kwargs):
    if raw or not created or not _flag("TRIGGER_ON_TRANSACTION"):
        return
    at = instance.transaction_date or instance.created_at
    dispatch_snapshot(strategy_id=instance.strategy_id, at=at, sync=_flag("SYNC_ON_TRANSACTION"))


@receiver(post_save, sender=Snapshot, dispatch_uid="metrics_on_snapshot_saved")
def recalculate_on_snapshot(sender, instance: Snapshot, created: bool, raw: bool = False, **kwargs):
    if raw or not _flag("TRIGGER_ON_SNAPSHOT"):
        return
    at = instance.snapshot_at or instance.updated_at
    dispatch_snapshot(strategy_id=instance.strategy_id, at=at, sync=_flag("SYNC_ON_SNAPSHOT"))
