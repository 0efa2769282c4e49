"""
Run reminder policies once, outside the scheduler.

Usage (from backend/):
  python -m scripts.run_reminder_job --job debt
  python -m scripts.run_reminder_job --job all --dry-run              # log messages, send nothing
  python -m scripts.run_reminder_job --job birthday --dry-run --at 2026-03-15T06:02
"""
import asyncio
import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from database import database

JOB_CHOICES = ["birthday", "debt", "subscription", "all"]


def parse_at(value: str) -> datetime:
    """ISO datetime; naive values are taken in the reminder timezone."""
    from services.reminder_windows import get_reminder_timezone

    try:
        moment = datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid --at value (expected ISO datetime): {value}")
    tz = get_reminder_timezone()
    if moment.tzinfo is None:
        return moment.replace(tzinfo=tz)
    return moment.astimezone(tz)


async def run(job: str, dry_run: bool = False, at: datetime = None) -> bool:
    from job_runner import build_job_runners
    from services.reminder_engine import build_reminder_engine
    from services.reminder_gateways import DryRunNotificationGateway
    from services.reminder_policies import load_policies
    from services.reminder_windows import local_now
    from services.telegram_service import telegram_service

    names = ["birthday", "debt", "subscription"] if job == "all" else [job]
    policies = load_policies(names)
    notifier = DryRunNotificationGateway() if dry_run else telegram_service
    clock = (lambda: at) if at is not None else local_now
    engine = build_reminder_engine(database.get_db(), notifier, clock=clock)

    ok = True
    try:
        for job_id, runner in build_job_runners(engine, policies).items():
            result = await runner()
            print(f"{job_id}: {result['message']} [status={result['status']}, period={result['period_tag']}]")
            if result["status"] in ("store_unavailable", "error"):
                ok = False
    finally:
        if not dry_run:
            await telegram_service.close()
    return ok


def main():
    parser = argparse.ArgumentParser(description="Run reminder jobs once")
    parser.add_argument("--job", choices=JOB_CHOICES, default="all", help="Reminder policy to run")
    parser.add_argument("--dry-run", action="store_true", help="Log rendered messages instead of sending them")
    parser.add_argument("--at", type=parse_at, help="Evaluate windows as if the local time were this ISO datetime")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    async def _():
        await database.connect()
        try:
            return await run(job=args.job, dry_run=args.dry_run, at=args.at)
        finally:
            await database.close()

    ok = asyncio.run(_())
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
