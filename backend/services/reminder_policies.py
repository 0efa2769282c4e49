"""
Reminder policies: birthday, debt and subscription expiry.

Each policy is a ReminderPolicy value consumed by the one ReminderEngine;
none of them carries its own loop. Settings come from the environment and
are read once at import.
"""
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from models import DebtStatus, Recipient, RecipientRole
from services.reminder_cache import IdempotencyKey
from services.reminder_gateways import RecipientUnresolvable
from services.reminder_messages import birthday_message, debt_message, subscription_message
from services.reminder_windows import DailyWindow, HourBucketWindow, WindowDecision

logger = logging.getLogger(__name__)


def _csv_env(name: str, default: str) -> List[str]:
    return [v.strip() for v in os.getenv(name, default).split(",") if v.strip()]


REMINDER_POLICIES = _csv_env("REMINDER_POLICIES", "birthday,debt,subscription")
REMINDER_POLL_INTERVAL_SECONDS = int(os.getenv("REMINDER_POLL_INTERVAL_SECONDS", "60"))
BIRTHDAY_REMINDER_HOURS = [int(h) for h in _csv_env("BIRTHDAY_REMINDER_HOURS", "6,12,18")]
BIRTHDAY_REMINDER_WINDOW_MINUTES = int(os.getenv("BIRTHDAY_REMINDER_WINDOW_MINUTES", "5"))
DEBT_REMINDER_STATUSES = _csv_env(
    "DEBT_REMINDER_STATUSES", f"{DebtStatus.PENDING.value},{DebtStatus.OVERDUE.value}"
)
SUBSCRIPTION_REMINDER_PLAN = os.getenv("SUBSCRIPTION_REMINDER_PLAN", "oddiy")

Entity = Dict[str, Any]


@dataclass(frozen=True)
class ReminderPolicy:
    name: str
    window: Any  # HourBucketWindow | DailyWindow
    collection: str
    trigger_field: str
    recipient_roles: Tuple[RecipientRole, ...]
    format_message: Callable[[Entity, Recipient, WindowDecision], str]
    extra_filter: Dict[str, Any] = field(default_factory=dict)
    cadence_seconds: int = REMINDER_POLL_INTERVAL_SECONDS
    # Match month/day of the trigger date instead of the decision's date range
    match_anniversary: bool = False

    def accepts(self, entity: Entity, decision: WindowDecision) -> bool:
        value = entity.get(self.trigger_field)
        if not isinstance(value, datetime):
            return False
        if self.match_anniversary:
            return is_anniversary(value, decision)
        return decision.in_range(value)

    def idempotency_key(self, entity: Entity, role: RecipientRole) -> IdempotencyKey:
        return (str(entity["_id"]), role.value)

    async def resolve_recipient(self, registry, entity: Entity, role: RecipientRole) -> Recipient:
        return await resolve_recipient(registry, entity, role)


async def resolve_recipient(registry, entity: Entity, role: RecipientRole) -> Recipient:
    """Map (entity, role) to a deliverable recipient or raise RecipientUnresolvable."""
    if role == RecipientRole.OWNER:
        return await registry.resolve_owner(entity)
    if role == RecipientRole.ADMIN:
        return await registry.resolve_admin()
    if role == RecipientRole.SUBSCRIBER:
        recipient = Recipient.from_user_document(entity, RecipientRole.SUBSCRIBER)
        if not recipient.has_channel:
            raise RecipientUnresolvable(f"subscriber {recipient.user_id} has no Telegram chat")
        return recipient
    raise ValueError(f"Unknown recipient role: {role}")


def _as_local(value: datetime, now: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=now.tzinfo)
    return value.astimezone(now.tzinfo)


def is_anniversary(value: datetime, decision: WindowDecision) -> bool:
    # Month/day only: a Feb 29 birthday has no match in non-leap years.
    local = _as_local(value, decision.now)
    return (local.month, local.day) == (decision.now.month, decision.now.day)


def birthday_policy(
    hours: Sequence[int] = BIRTHDAY_REMINDER_HOURS,
    window_minutes: int = BIRTHDAY_REMINDER_WINDOW_MINUTES,
    cadence_seconds: int = REMINDER_POLL_INTERVAL_SECONDS,
) -> ReminderPolicy:
    return ReminderPolicy(
        name="birthday",
        window=HourBucketWindow(hours, window_minutes),
        collection="customers",
        trigger_field="birthDate",
        recipient_roles=(RecipientRole.OWNER,),
        format_message=birthday_message,
        match_anniversary=True,
        cadence_seconds=cadence_seconds,
    )


def debt_policy(
    statuses: Sequence[str] = DEBT_REMINDER_STATUSES,
    cadence_seconds: int = REMINDER_POLL_INTERVAL_SECONDS,
) -> ReminderPolicy:
    return ReminderPolicy(
        name="debt",
        window=DailyWindow(lead_days=1),
        collection="debts",
        trigger_field="dueDate",
        extra_filter={"status": {"$in": list(statuses)}},
        recipient_roles=(RecipientRole.OWNER,),
        format_message=debt_message,
        cadence_seconds=cadence_seconds,
    )


def subscription_policy(
    plan: str = SUBSCRIPTION_REMINDER_PLAN,
    cadence_seconds: int = REMINDER_POLL_INTERVAL_SECONDS,
) -> ReminderPolicy:
    return ReminderPolicy(
        name="subscription",
        window=DailyWindow(lead_days=1),
        collection="users",
        trigger_field="subscriptionEndDate",
        extra_filter={"subscriptionType": plan, "isBlocked": {"$ne": True}},
        recipient_roles=(RecipientRole.SUBSCRIBER, RecipientRole.ADMIN),
        format_message=subscription_message,
        cadence_seconds=cadence_seconds,
    )


POLICY_BUILDERS: Dict[str, Callable[[], ReminderPolicy]] = {
    "birthday": birthday_policy,
    "debt": debt_policy,
    "subscription": subscription_policy,
}


def load_policies(names: Optional[Sequence[str]] = None) -> List[ReminderPolicy]:
    """Build the enabled policies, in the order given."""
    names = list(names) if names is not None else REMINDER_POLICIES
    unknown = [n for n in names if n not in POLICY_BUILDERS]
    if unknown:
        raise ValueError(f"Unknown reminder policies: {', '.join(unknown)}. Use: {', '.join(POLICY_BUILDERS)}")
    return [POLICY_BUILDERS[n]() for n in names]
