"""Periodic sweep of expired media and orphaned workspaces."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from ..config import get_cleanup_config
from .cleanup import cleanup_expired_files

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "cleanup_expired_files"


class CleanupScheduler:
    """
    Runs cleanup_expired_files on the configured cron schedule.

    Started and stopped by the application lifespan. A process that died
    mid-export leaves its workspace behind, so ``sweep_on_start`` also
    queues one immediate sweep.
    """

    def __init__(self, sweep_on_start: bool = False):
        self.scheduler = AsyncIOScheduler()
        self.sweep_on_start = sweep_on_start

    @property
    def next_run_time(self) -> datetime | None:
        job = self.scheduler.get_job(SWEEP_JOB_ID)
        return job.next_run_time if job else None

    async def start(self) -> bool:
        """Schedule the sweep; returns False when disabled or misconfigured."""
        config = get_cleanup_config()
        if not config["enabled"]:
            logger.info("Cleanup disabled, not scheduling sweeps")
            return False

        try:
            trigger = CronTrigger.from_crontab(config["schedule"])
        except ValueError as e:
            logger.error(f"Cleanup not scheduled, bad cron expression {config['schedule']!r}: {e}")
            return False

        self.scheduler.add_job(
            self.run_once,
            trigger=trigger,
            id=SWEEP_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        if self.sweep_on_start:
            self.scheduler.add_job(self.run_once, id=f"{SWEEP_JOB_ID}_startup")

        self.scheduler.start()
        logger.info(f"Cleanup scheduled ({config['schedule']}), next sweep at {self.next_run_time}")
        return True

    async def run_once(self) -> dict[str, Any] | None:
        """Sweep now with the current retention settings; never raises."""
        config = get_cleanup_config()
        retention_days = config["retention_days"]
        workspace_retention_days = config["workspace_retention_days"]

        try:
            result = await asyncio.to_thread(cleanup_expired_files, retention_days, workspace_retention_days)
        except Exception as e:
            logger.error(f"Cleanup sweep crashed: {e}", exc_info=True)
            return None

        logger.info(
            f"Cleanup sweep removed {result['deleted_count']} entries "
            f"({result['freed_bytes'] / 1024 / 1024:.2f} MB; retention {retention_days}d, "
            f"workspaces {workspace_retention_days}d)"
        )
        for error in result["errors"]:
            logger.warning(f"Cleanup could not remove {error['path']}: {error['error']}")
        return result

    async def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Cleanup scheduler stopped")
