"""
Scheduled Background Tasks
Repair sweep, reconciliation queue pass and one-time migrations
"""

import logging
from typing import Any, Dict

from celery.schedules import crontab

from engagement_core.app.config import get_config
from engagement_core.infrastructure.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="tasks.scheduled.repair_sweep")
def repair_sweep(self) -> Dict[str, Any]:
    """
    Recompute every user's total_likes from source of truth (daily)

    Returns:
        Summary with per-status counts
    """

    async def _sweep(services):
        return await services.reconciliation.force_reconcile_all()

    logger.info("🔁 Running repair sweep...")
    results = self.run_with_services(_sweep)
    corrected = sum(1 for r in results.values() if r.get("success") and not r.get("unchanged"))
    failed = sum(1 for r in results.values() if not r.get("success"))
    logger.info(f"✅ Repair sweep: {len(results)} users, {corrected} corrected, {failed} failed")
    return {"users": len(results), "corrected": corrected, "failed": failed}


@celery_app.task(bind=True, name="tasks.scheduled.process_reconciliation_queue")
def process_reconciliation_queue(self) -> Dict[str, Any]:
    """Recompute counters named by recent reconciliation queue entries"""

    async def _process(services):
        return await services.reconciliation.process_pending()

    summary = self.run_with_services(_process)
    return {k: summary[k] for k in ("examined", "changed", "failed")}


@celery_app.task(bind=True, name="tasks.migrations.backfill_tags")
def backfill_tags(self) -> Dict[str, int]:
    """Regenerate derived tags on every video"""

    async def _backfill(services):
        return await services.videos.backfill_tags()

    return self.run_with_services(_backfill)


@celery_app.task(bind=True, name="tasks.migrations.migrate_owner_field")
def migrate_owner_field(self) -> Dict[str, int]:
    """Copy legacy uploader ids into the canonical owner field"""

    async def _migrate(services):
        return await services.videos.migrate_owner_field()

    return self.run_with_services(_migrate)


@celery_app.task(bind=True, name="tasks.migrations.lowercase_display_names")
def lowercase_display_names(self) -> Dict[str, int]:
    """Fill display_name_lower on users created before it existed"""

    async def _migrate(services):
        return {"updated": await services.users.migrate_display_names()}

    return self.run_with_services(_migrate)


# ============================================================================
# Celery Beat Schedule Configuration
# ============================================================================

_reconcile = get_config().reconciliation

celery_app.conf.beat_schedule = {
    # Daily: full repair sweep
    "repair-sweep": {
        "task": "tasks.scheduled.repair_sweep",
        "schedule": crontab(hour=_reconcile.sweep_hour_utc, minute=0),
    },
    # Every N minutes: reconciliation queue pass
    "process-reconciliation-queue": {
        "task": "tasks.scheduled.process_reconciliation_queue",
        "schedule": crontab(minute=f"*/{_reconcile.queue_interval_minutes}"),
    },
}
