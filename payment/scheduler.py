"""
Cron-driven auto payouts.

One APScheduler job per payout cadence (daily, weekly, monthly). Each job
runs PayoutEngine.process_all_auto_payouts for the wallets on that cadence;
the scheduler holds no state of its own beyond the job table.
"""

import logging
from typing import Callable, Dict, List, Optional

from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.db import close_old_connections

from account.models import Wallet
from payment.services.payouts import PayoutEngine

logger = logging.getLogger(__name__)

JOB_DEFAULTS = {
    "coalesce": True,
    "max_instances": 1,
    "misfire_grace_time": 3600,
}


class PayoutScheduler:
    def __init__(
        self,
        schedules: Optional[Dict[str, str]] = None,
        engine_factory: Callable[[], PayoutEngine] = PayoutEngine,
        scheduler: Optional[BaseScheduler] = None,
    ) -> None:
        self.schedules = dict(schedules if schedules is not None else settings.PAYOUT_SCHEDULES)
        self.engine_factory = engine_factory
        self.scheduler = scheduler or BlockingScheduler(
            jobstores={"default": MemoryJobStore()},
            job_defaults=JOB_DEFAULTS,
            timezone=settings.TIME_ZONE,
        )

    def register_jobs(self) -> List[str]:
        job_ids = []
        for cadence, expression in self.schedules.items():
            if cadence not in Wallet.PayoutSchedule.values or cadence == Wallet.PayoutSchedule.MANUAL:
                raise ImproperlyConfigured(f"PAYOUT_SCHEDULES has an unknown cadence: {cadence}")
            try:
                trigger = CronTrigger.from_crontab(expression, timezone=settings.TIME_ZONE)
            except ValueError as exc:
                raise ImproperlyConfigured(f"Invalid cron expression for {cadence} payouts: {expression}") from exc

            job = self.scheduler.add_job(
                self._run_scheduled,
                trigger=trigger,
                args=[cadence],
                id=f"auto_payouts_{cadence}",
                name=f"Auto payouts ({cadence})",
                replace_existing=True,
            )
            job_ids.append(job.id)
            logger.info("Registered %s payouts with cron '%s'", cadence, expression)
        return job_ids

    def run_batch(self, schedule: Optional[str] = None) -> List[dict]:
        results = self.engine_factory().process_all_auto_payouts(schedule=schedule)

        failed = [r for r in results if not r["success"]]
        logger.info(
            "Auto payouts (%s) finished: %d users, %d failed",
            schedule or "all",
            len(results),
            len(failed),
        )
        return results

    def _run_scheduled(self, schedule: str) -> None:
        # Runs on a scheduler worker thread, outside any request cycle.
        close_old_connections()
        try:
            self.run_batch(schedule)
        finally:
            close_old_connections()

    def start(self) -> None:
        self.register_jobs()
        logger.info("Payout scheduler starting")
        try:
            self.scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Payout scheduler stopped")
