"""
Trigger windows for reminder policies.

A window turns the current local time into a WindowDecision: whether the
policy should query on this tick, the period tag used for deduplication, and
(for date-range policies) the half-open range of trigger dates that are due.
"""
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import FrozenSet, Iterable, Optional
from zoneinfo import ZoneInfo


def get_reminder_timezone() -> tzinfo:
    """REMINDER_TIMEZONE if set, otherwise the host's local timezone."""
    name = (os.getenv("REMINDER_TIMEZONE") or "").strip()
    if name:
        return ZoneInfo(name)
    return datetime.now().astimezone().tzinfo


def local_now() -> datetime:
    return datetime.now(get_reminder_timezone())


@dataclass(frozen=True)
class WindowDecision:
    should_query: bool
    period_tag: str
    now: datetime
    range_start: Optional[datetime] = None
    range_end: Optional[datetime] = None
    hour: Optional[int] = None

    def in_range(self, value: Optional[datetime]) -> bool:
        """Half-open check: range_start <= value < range_end."""
        if self.range_start is None or self.range_end is None:
            return True
        if value is None:
            return False
        if value.tzinfo is None:
            value = value.replace(tzinfo=self.range_start.tzinfo)
        return self.range_start <= value < self.range_end


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def add_days(day_start: datetime, days: int) -> datetime:
    """Midnight `days` calendar days later, in the same timezone.

    Computed on the wall-clock date so DST transitions do not shift midnight.
    """
    target = (day_start.date() + timedelta(days=days))
    return day_start.replace(year=target.year, month=target.month, day=target.day)


class HourBucketWindow:
    """Open for the first `window_minutes` of each configured hour."""

    def __init__(self, hours: Iterable[int], window_minutes: int = 5):
        self.hours: FrozenSet[int] = frozenset(int(h) for h in hours)
        self.window_minutes = int(window_minutes)
        if any(h < 0 or h > 23 for h in self.hours):
            raise ValueError(f"Trigger hours must be within 0-23: {sorted(self.hours)}")
        if not 0 < self.window_minutes <= 60:
            raise ValueError(f"Window minutes must be within 1-60: {self.window_minutes}")

    def evaluate(self, now: datetime) -> WindowDecision:
        period_tag = f"{now.date().isoformat()}T{now.hour:02d}"
        is_open = now.hour in self.hours and now.minute < self.window_minutes
        return WindowDecision(should_query=is_open, period_tag=period_tag, now=now, hour=now.hour)


class DailyWindow:
    """Always open; due range is the whole local day `lead_days` ahead."""

    def __init__(self, lead_days: int = 1):
        if lead_days < 0:
            raise ValueError("lead_days must be >= 0")
        self.lead_days = lead_days

    def evaluate(self, now: datetime) -> WindowDecision:
        today = start_of_day(now)
        range_start = add_days(today, self.lead_days)
        range_end = add_days(range_start, 1)
        return WindowDecision(
            should_query=True,
            period_tag=now.date().isoformat(),
            now=now,
            range_start=range_start,
            range_end=range_end,
        )
