"""
In-process idempotency cache for reminder deliveries.

One instance per reminder policy. A record means "the send for this
(entity, recipient role) succeeded during this period tag". Records are
memory-only and are lost on restart.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, Tuple

logger = logging.getLogger(__name__)

IdempotencyKey = Tuple[str, str]


def period_date(period_tag: str) -> str:
    """Date component of a period tag ("2026-10-19" or "2026-10-19T06")."""
    return period_tag.split("T", 1)[0]


class IdempotencyCache:
    """Sent-marks keyed by (entity_id, recipient_role, period_tag)."""

    def __init__(self):
        self._records: Dict[Tuple[str, str, str], datetime] = {}

    def __len__(self) -> int:
        return len(self._records)

    def is_sent(self, key: IdempotencyKey, period_tag: str) -> bool:
        return (key[0], key[1], period_tag) in self._records

    def mark_sent(self, key: IdempotencyKey, period_tag: str) -> None:
        self._records.setdefault((key[0], key[1], period_tag), datetime.now(timezone.utc))

    def evict_stale(self, current_period_tag: str) -> int:
        """Drop every record whose period date differs from the current one.

        Hour-bucketed tags from earlier in the same day are kept; their keys
        already carry the hour, so they never block a later bucket.
        """
        today = period_date(current_period_tag)
        stale = [k for k in self._records if period_date(k[2]) != today]
        for k in stale:
            del self._records[k]
        if stale:
            logger.debug(f"Evicted {len(stale)} stale idempotency records (current period {current_period_tag})")
        return len(stale)
