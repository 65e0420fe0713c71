"""
Scheduler for periodic payout jobs.
"""

import asyncio
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from payout_ledger.core.database import close_db
from payout_ledger.core.settings import settings
from payout_ledger.utils.timezone import LOCAL_TZ
from payout_ledger.workers.monthly_payout_job import MonthlyPayoutJob

logger = logging.getLogger(__name__)

MONTHLY_PAYOUT_JOB_ID = "monthly_teacher_payouts"


class PayoutScheduler:
    """Runs the monthly payout batch on a cron schedule."""

    def __init__(self, job: Optional[MonthlyPayoutJob] = None):
        self.scheduler = AsyncIOScheduler(timezone=LOCAL_TZ)
        self.job = job or MonthlyPayoutJob()
        self.is_running = False

    def register_jobs(self):
        # Day 1 at midnight local time by default; the previous month is billed
        self.scheduler.add_job(
            self._run_monthly_payouts,
            CronTrigger(
                day=settings.monthly_payout_cron_day,
                hour=settings.monthly_payout_cron_hour,
                minute=0,
                timezone=LOCAL_TZ,
            ),
            id=MONTHLY_PAYOUT_JOB_ID,
            name="Monthly teacher payouts",
            misfire_grace_time=3600,
            max_instances=1,
            replace_existing=True,
        )

    async def start(self):
        """Start the scheduler."""

        if self.is_running:
            logger.warning("Payout scheduler is already running")
            return

        logger.info("Starting payout scheduler...")

        self.register_jobs()
        self.scheduler.start()
        self.is_running = True

        logger.info(
            f"Payout scheduler started: monthly payouts on day "
            f"{settings.monthly_payout_cron_day} at {settings.monthly_payout_cron_hour:02d}:00 "
            f"({settings.timezone})"
        )

    async def stop(self):
        """Stop the scheduler."""

        if not self.is_running:
            return

        logger.info("Stopping payout scheduler...")

        self.scheduler.shutdown()
        self.is_running = False

        logger.info("Payout scheduler stopped")

    async def _run_monthly_payouts(self):
        try:
            created = await self.job.run()
            logger.info(f"Monthly payout run finished, {created} payouts created")
        except Exception as e:
            logger.exception(f"Monthly payout run failed: {e}")


# Global scheduler instance
scheduler = PayoutScheduler()


async def start_payout_scheduler():
    """Start the payout scheduler."""
    await scheduler.start()


async def stop_payout_scheduler():
    """Stop the payout scheduler."""
    await scheduler.stop()


async def main():
    """Run the payout scheduler until interrupted."""
    await start_payout_scheduler()

    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Received stop signal")
    finally:
        await stop_payout_scheduler()
        await close_db()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    asyncio.run(main())
