"""
Fixed-cadence scheduling of reminder ticks.

One APScheduler interval job per policy, first run immediately on start.
Jobs live in the in-memory job store: they are rebuilt from configuration on
every start and hold a reference to the running engine.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from services.reminder_engine import ReminderEngine
from services.reminder_policies import ReminderPolicy

logger = logging.getLogger(__name__)


def job_id_for(policy: ReminderPolicy) -> str:
    return f"{policy.name}_reminders"


class ReminderScheduler:
    def __init__(
        self,
        engine: ReminderEngine,
        policies: Sequence[ReminderPolicy],
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.engine = engine
        self.policies: List[ReminderPolicy] = list(policies)
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)

    def start(self):
        """Register one job per policy and start ticking. Must be called inside a running event loop."""
        now = datetime.now(timezone.utc)
        for policy in self.policies:
            self.scheduler.add_job(
                self.engine.run_tick,
                IntervalTrigger(seconds=policy.cadence_seconds),
                args=[policy],
                id=job_id_for(policy),
                name=f"{policy.name.capitalize()} Reminders",
                next_run_time=now,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
            logger.info(f"Scheduled {policy.name} reminders every {policy.cadence_seconds}s")
        self.scheduler.start()
        logger.info("Reminder scheduler started")

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Reminder scheduler stopped")

    def get_jobs(self) -> List[dict]:
        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in self.scheduler.get_jobs()
        ]
