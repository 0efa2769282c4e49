"""
Policy definitions, recipient role mapping and policy loading.
"""
from datetime import datetime, timezone

import pytest

from conftest import FakeRegistry, local
from models import RecipientRole
from services.reminder_gateways import RecipientUnresolvable
from services.reminder_policies import (
    birthday_policy,
    debt_policy,
    load_policies,
    resolve_recipient,
    subscription_policy,
)
from services.reminder_windows import DailyWindow, HourBucketWindow


def test_policy_definitions():
    birthday = birthday_policy(hours=[6, 12, 18])
    debt = debt_policy()
    subscription = subscription_policy(plan="oddiy")

    assert (birthday.collection, birthday.trigger_field) == ("customers", "birthDate")
    assert isinstance(birthday.window, HourBucketWindow)
    assert birthday.recipient_roles == (RecipientRole.OWNER,)

    assert (debt.collection, debt.trigger_field) == ("debts", "dueDate")
    assert isinstance(debt.window, DailyWindow)
    assert debt.extra_filter == {"status": {"$in": ["pending", "overdue"]}}

    assert (subscription.collection, subscription.trigger_field) == ("users", "subscriptionEndDate")
    assert subscription.recipient_roles == (RecipientRole.SUBSCRIBER, RecipientRole.ADMIN)
    assert subscription.extra_filter == {"subscriptionType": "oddiy", "isBlocked": {"$ne": True}}


def test_idempotency_key_uses_entity_id_and_role():
    policy = debt_policy()
    assert policy.idempotency_key({"_id": "debt-1"}, RecipientRole.OWNER) == ("debt-1", "OWNER")
    assert policy.idempotency_key({"_id": 42}, RecipientRole.OWNER) == ("42", "OWNER")


def test_load_policies_in_order():
    names = [p.name for p in load_policies(["subscription", "birthday"])]
    assert names == ["subscription", "birthday"]


def test_load_policies_rejects_unknown():
    with pytest.raises(ValueError, match="anniversary"):
        load_policies(["debt", "anniversary"])


def test_birthday_accepts_local_month_and_day():
    policy = birthday_policy(hours=[6])
    decision = policy.window.evaluate(local(2026, 3, 15, 6, 0))
    assert policy.accepts({"birthDate": local(1990, 3, 15)}, decision)
    # 19:00 UTC on the 14th is already the 15th in Tashkent
    assert policy.accepts({"birthDate": datetime(2000, 3, 14, 19, 0, tzinfo=timezone.utc)}, decision)
    assert not policy.accepts({"birthDate": local(1990, 3, 16)}, decision)
    assert not policy.accepts({"birthDate": "1990-03-15"}, decision)


def test_range_policies_accept_only_due_dates():
    policy = debt_policy()
    decision = policy.window.evaluate(local(2026, 3, 15, 9))
    assert policy.accepts({"dueDate": local(2026, 3, 16, 23, 0)}, decision)
    assert not policy.accepts({"dueDate": local(2026, 3, 17)}, decision)
    assert not policy.accepts({}, decision)
    # Same day a year earlier: outside the range
    assert not policy.accepts({"dueDate": local(2025, 3, 15, 9)}, decision)


@pytest.mark.asyncio
async def test_resolve_recipient_per_role(owner, admin_user):
    registry = FakeRegistry(users=[owner], admin=admin_user)

    as_owner = await resolve_recipient(registry, {"userId": "user-1"}, RecipientRole.OWNER)
    as_admin = await resolve_recipient(registry, {}, RecipientRole.ADMIN)
    as_subscriber = await resolve_recipient(
        registry, {"_id": "user-2", "telegramChatId": "222222"}, RecipientRole.SUBSCRIBER
    )

    assert as_owner.chat_id == "111111"
    assert as_admin.chat_id == "999999"
    assert (as_subscriber.chat_id, as_subscriber.role) == ("222222", RecipientRole.SUBSCRIBER)


@pytest.mark.asyncio
async def test_subscriber_without_chat_is_unresolvable():
    with pytest.raises(RecipientUnresolvable):
        await resolve_recipient(FakeRegistry(), {"_id": "user-2", "telegramChatId": None}, RecipientRole.SUBSCRIBER)
