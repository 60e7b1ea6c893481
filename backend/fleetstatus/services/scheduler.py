"""Scheduler service - runs the backup freshness check on a cron schedule."""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from ..config import settings
from ..database import async_session
from ..exceptions import BackupCheckError
from .backup_check import backup_check_service

logger = logging.getLogger(__name__)


class SchedulerService:
    """Service for scheduling periodic backup checks."""

    def __init__(self, cron_expression: Optional[str] = None):
        self.cron_expression = cron_expression or settings.backup_check_cron
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    def start(self):
        """Start the scheduler."""
        if self._running:
            return

        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.scheduler.add_job(
            self._run_backup_check,
            trigger=CronTrigger.from_crontab(self.cron_expression, timezone="UTC"),
            id="backup_check",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        self._running = True
        logger.info(f"Scheduler started (backup check cron='{self.cron_expression}')")

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    async def _run_backup_check(self):
        """Run one backup check in its own session."""
        try:
            async with async_session() as session:
                outcome = await backup_check_service.perform_backup_check(session)
            logger.info(f"Scheduled backup check: {outcome.message}")
        except BackupCheckError as e:
            logger.error(f"Scheduled backup check failed: {e}")
        except Exception as e:
            logger.error(f"Unexpected error in scheduled backup check: {type(e).__name__}: {e}")


# Global instance
scheduler_service = SchedulerService()
