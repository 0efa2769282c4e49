"""
Named on-demand runners for the reminder jobs.
Used by the scheduler job ids and by scripts/run_reminder_job.py (manual run).
Each runner returns a dict with "message" and "count" (messages sent).
"""
import logging
from typing import Awaitable, Callable, Dict, Sequence

from services.reminder_engine import ReminderEngine
from services.reminder_policies import ReminderPolicy
from services.reminder_scheduler import job_id_for

logger = logging.getLogger(__name__)

JobRunner = Callable[[], Awaitable[dict]]


def make_reminder_runner(engine: ReminderEngine, policy: ReminderPolicy) -> JobRunner:
    async def run_reminders():
        outcome = await engine.run_tick(policy)
        logger.info(f"{policy.name.capitalize()} reminders job completed: {outcome.sent} reminders sent")
        return {
            "message": f"{policy.name.capitalize()} reminders sent: {outcome.sent} (failed: {outcome.failed}, skipped: {outcome.skipped})",
            "count": outcome.sent,
            "failed": outcome.failed,
            "skipped": outcome.skipped,
            "status": outcome.status.value,
            "period_tag": outcome.period_tag,
        }

    run_reminders.__name__ = f"run_{policy.name}_reminders"
    return run_reminders


def build_job_runners(engine: ReminderEngine, policies: Sequence[ReminderPolicy]) -> Dict[str, JobRunner]:
    """Map scheduler job id -> run function (for manual runs)."""
    return {job_id_for(policy): make_reminder_runner(engine, policy) for policy in policies}
