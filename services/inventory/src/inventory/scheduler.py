"""
Periodic reconciliation sweep.

Events that arrived before their asset existed stay unprocessed; this job
re-applies them on an interval so they resolve without a re-delivery.
"""

from __future__ import annotations

import asyncio
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .jobs import schedule_sweep_follow_ups
from .reconciler import AssetReconciler
from .tasks import TaskRunner

logger = logging.getLogger(__name__)


class ReconcileScheduler:
    def __init__(self, reconciler: AssetReconciler, runner: TaskRunner, interval_minutes: int = 5) -> None:
        self.reconciler = reconciler
        self.runner = runner
        self.interval_minutes = interval_minutes
        self.scheduler = AsyncIOScheduler()
        self._running = False

    async def start(self) -> None:
        if self._running:
            logger.warning("Reconcile scheduler already running")
            return

        logger.info(f"Starting reconciliation sweeps (interval={self.interval_minutes}min)")
        self.scheduler.add_job(
            self.run_sweep,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id="reconcile_pending_events",
            name="Reconcile Pending Webhook Events",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.start()
        self._running = True

    async def stop(self) -> None:
        if not self._running:
            return
        logger.info("Stopping reconciliation sweeps")
        self.scheduler.shutdown()
        self._running = False

    async def run_sweep(self) -> None:
        sweep = await asyncio.to_thread(self.reconciler.reconcile_pending)
        schedule_sweep_follow_ups(self.runner, sweep)


__all__ = ["ReconcileScheduler"]
