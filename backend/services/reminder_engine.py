"""
Reminder dispatch engine.

One tick handler shared by every ReminderPolicy:
window check -> stale-cache eviction -> due-entity query -> per entity and
recipient role: dedupe, resolve, render, send, account.

Failures are contained per recipient (failed send), per tick
(StoreUnavailable, unexpected errors) and never reach the scheduler.
A policy's tick never overlaps a still-running tick of the same policy.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

from models import RecipientRole, TickStatus
from services.reminder_cache import IdempotencyCache
from services.reminder_gateways import (
    MongoEntityGateway,
    MongoRecipientRegistry,
    RecipientUnresolvable,
    StoreUnavailable,
    mask_chat_id,
)
from services.reminder_policies import ReminderPolicy
from services.reminder_windows import WindowDecision, local_now

logger = logging.getLogger(__name__)


@dataclass
class DeliveryOutcome:
    """Per-tick counters for one policy. Logged once, then discarded."""
    policy: str
    period_tag: str = ""
    status: TickStatus = TickStatus.COMPLETED
    sent: int = 0
    failed: int = 0
    skipped: int = 0

    def summary(self) -> str:
        return (
            f"[{self.policy}] {self.period_tag or '-'} {self.status.value}: "
            f"sent={self.sent} failed={self.failed} skipped={self.skipped}"
        )

    def log(self):
        if self.status in (TickStatus.STORE_UNAVAILABLE, TickStatus.ERROR):
            logger.error(self.summary())
        elif self.status == TickStatus.BUSY:
            logger.warning(f"{self.summary()} (previous tick still running)")
        elif self.status == TickStatus.OUTSIDE_WINDOW:
            logger.debug(self.summary())
        else:
            logger.info(self.summary())


class ReminderEngine:
    def __init__(
        self,
        entity_gateway,
        registry,
        notifier,
        clock: Callable[[], datetime] = local_now,
        caches: Optional[Dict[str, IdempotencyCache]] = None,
    ):
        self.entity_gateway = entity_gateway
        self.registry = registry
        self.notifier = notifier
        self.clock = clock
        self._caches: Dict[str, IdempotencyCache] = dict(caches or {})
        self._locks: Dict[str, asyncio.Lock] = {}

    def cache_for(self, policy: ReminderPolicy) -> IdempotencyCache:
        if policy.name not in self._caches:
            self._caches[policy.name] = IdempotencyCache()
        return self._caches[policy.name]

    def _lock_for(self, policy: ReminderPolicy) -> asyncio.Lock:
        if policy.name not in self._locks:
            self._locks[policy.name] = asyncio.Lock()
        return self._locks[policy.name]

    def is_running(self, policy: ReminderPolicy) -> bool:
        return self._lock_for(policy).locked()

    async def run_tick(self, policy: ReminderPolicy) -> DeliveryOutcome:
        """Run one tick for a policy. Never raises."""
        lock = self._lock_for(policy)
        if lock.locked():
            outcome = DeliveryOutcome(policy=policy.name, status=TickStatus.BUSY)
            outcome.log()
            return outcome

        async with lock:
            outcome = await self._tick(policy)
        outcome.log()
        return outcome

    async def _tick(self, policy: ReminderPolicy) -> DeliveryOutcome:
        outcome = DeliveryOutcome(policy=policy.name)
        try:
            decision = policy.window.evaluate(self.clock())
            outcome.period_tag = decision.period_tag
            if not decision.should_query:
                outcome.status = TickStatus.OUTSIDE_WINDOW
                return outcome

            cache = self.cache_for(policy)
            cache.evict_stale(decision.period_tag)

            entities = await self.entity_gateway.find_due(
                policy.collection,
                policy.trigger_field,
                decision.range_start,
                decision.range_end,
                policy.extra_filter,
            )
            logger.debug(f"[{policy.name}] {len(entities)} candidate records for {decision.period_tag}")

            for entity in entities:
                if entity.get("_id") is None:
                    logger.debug(f"[{policy.name}] record without _id ignored")
                    continue
                if not policy.accepts(entity, decision):
                    continue
                for role in policy.recipient_roles:
                    await self._deliver(policy, cache, entity, role, decision, outcome)
        except StoreUnavailable as e:
            outcome.status = TickStatus.STORE_UNAVAILABLE
            logger.error(f"[{policy.name}] store unavailable, tick aborted: {e}")
        except Exception as e:
            outcome.status = TickStatus.ERROR
            logger.exception(f"[{policy.name}] unexpected error during tick: {e}")
        return outcome

    async def _deliver(
        self,
        policy: ReminderPolicy,
        cache: IdempotencyCache,
        entity: dict,
        role: RecipientRole,
        decision: WindowDecision,
        outcome: DeliveryOutcome,
    ):
        key = policy.idempotency_key(entity, role)
        if cache.is_sent(key, decision.period_tag):
            return

        try:
            recipient = await policy.resolve_recipient(self.registry, entity, role)
        except RecipientUnresolvable as e:
            outcome.skipped += 1
            logger.debug(f"[{policy.name}] {key[0]}/{role.value} skipped: {e}")
            return
        except Exception as e:
            outcome.failed += 1
            logger.warning(f"[{policy.name}] {key[0]}/{role.value} recipient lookup failed: {e}")
            return

        try:
            text = policy.format_message(entity, recipient, decision)
            ok = await self.notifier.send(recipient.chat_id, text)
        except Exception as e:
            logger.warning(f"[{policy.name}] {key[0]}/{role.value} send raised: {e}")
            ok = False

        if ok:
            cache.mark_sent(key, decision.period_tag)
            outcome.sent += 1
            logger.debug(f"[{policy.name}] {key[0]}/{role.value} sent to chat {mask_chat_id(recipient.chat_id)}")
        else:
            outcome.failed += 1
            logger.warning(
                f"[{policy.name}] {key[0]}/{role.value} delivery to chat {mask_chat_id(recipient.chat_id)} failed; "
                f"will retry next tick"
            )


def build_reminder_engine(db, notifier, clock: Callable[[], datetime] = local_now) -> ReminderEngine:
    """Wire the engine to the application database and a notification gateway."""
    return ReminderEngine(
        entity_gateway=MongoEntityGateway(db),
        registry=MongoRecipientRegistry(db),
        notifier=notifier,
        clock=clock,
    )
