"""
Scheduler wiring and on-demand job runners.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from job_runner import build_job_runners
from models import TickStatus
from services.reminder_engine import DeliveryOutcome
from services.reminder_policies import birthday_policy, debt_policy, subscription_policy
from services.reminder_scheduler import ReminderScheduler, job_id_for


def test_start_registers_one_interval_job_per_policy():
    engine = MagicMock()
    scheduler = MagicMock()
    policies = [birthday_policy(cadence_seconds=60), debt_policy(cadence_seconds=30), subscription_policy()]

    ReminderScheduler(engine, policies, scheduler=scheduler).start()

    assert scheduler.add_job.call_count == 3
    ids = [c.kwargs["id"] for c in scheduler.add_job.call_args_list]
    assert ids == ["birthday_reminders", "debt_reminders", "subscription_reminders"]

    first = scheduler.add_job.call_args_list[1]
    assert first.args[0] is engine.run_tick
    assert isinstance(first.args[1], IntervalTrigger)
    assert first.args[1].interval.total_seconds() == 30
    assert first.kwargs["args"] == [policies[1]]
    assert first.kwargs["max_instances"] == 1
    assert first.kwargs["coalesce"] is True
    assert first.kwargs["replace_existing"] is True
    assert first.kwargs["next_run_time"] is not None
    scheduler.start.assert_called_once()


def test_shutdown_only_when_running():
    scheduler = MagicMock()
    scheduler.running = False
    ReminderScheduler(MagicMock(), [], scheduler=scheduler).shutdown()
    scheduler.shutdown.assert_not_called()

    scheduler.running = True
    ReminderScheduler(MagicMock(), [], scheduler=scheduler).shutdown()
    scheduler.shutdown.assert_called_once_with(wait=False)


def test_job_id_for():
    assert job_id_for(debt_policy()) == "debt_reminders"


@pytest.mark.asyncio
async def test_job_runner_reports_outcome():
    policy = debt_policy()
    engine = MagicMock()
    engine.run_tick = AsyncMock(return_value=DeliveryOutcome(
        policy="debt", period_tag="2026-03-15", status=TickStatus.COMPLETED, sent=2, failed=1,
    ))

    runners = build_job_runners(engine, [policy])
    result = await runners["debt_reminders"]()

    engine.run_tick.assert_awaited_once_with(policy)
    assert result["count"] == 2
    assert result["failed"] == 1
    assert result["status"] == "completed"
    assert result["period_tag"] == "2026-03-15"
    assert "Debt reminders sent: 2" in result["message"]
