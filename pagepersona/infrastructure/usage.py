"""Monthly usage quotas keyed by caller and membership tier."""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from pagepersona.core.errors import QuotaExceeded
from pagepersona.domain import utcnow

logger = logging.getLogger(__name__)

USAGE_LIMITS: dict[str, int] = {
    "free": 50,
    "premium": 500,
    "admin": 10000,
}


class UsageGate(Protocol):
    """Admission contract consulted before a new job is created."""

    def check_and_reserve(self, user_id: str | None, membership: str | None = None) -> bool: ...

    def usage_for(self, user_id: str) -> dict[str, object]: ...

    def reset(self) -> None: ...


@dataclass(slots=True)
class UsageRecord:
    user_id: str
    membership: str
    count: int
    period: str


def _period(moment: datetime) -> str:
    return f"{moment.year:04d}-{moment.month:02d}"


class InMemoryUsageGate:
    """Counts reservations per user and calendar month.

    Anonymous callers bypass the quota. Unknown tiers fall back to ``free``.
    """

    def __init__(
        self,
        limits: dict[str, int] | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._limits = dict(limits or USAGE_LIMITS)
        self._clock = clock
        self._records: dict[str, UsageRecord] = {}
        self._lock = threading.Lock()

    def _tier(self, membership: str | None) -> str:
        tier = (membership or "free").strip().lower()
        return tier if tier in self._limits else "free"

    def _record(self, user_id: str, tier: str, period: str) -> UsageRecord:
        record = self._records.get(user_id)
        if record is None:
            record = UsageRecord(user_id=user_id, membership=tier, count=0, period=period)
            self._records[user_id] = record
        elif record.period != period:
            logger.info("Monthly usage reset for %s (%s -> %s)", user_id, record.period, period)
            record.count = 0
            record.period = period
        record.membership = tier
        return record

    def check_and_reserve(self, user_id: str | None, membership: str | None = None) -> bool:
        if not user_id:
            logger.info("Anonymous transformation request, usage not tracked")
            return True

        tier = self._tier(membership)
        limit = self._limits[tier]
        period = _period(self._clock())
        with self._lock:
            record = self._record(user_id, tier, period)
            if record.count >= limit:
                logger.warning("Usage limit reached for %s: %d/%d (%s)", user_id, record.count, limit, tier)
                raise QuotaExceeded(usage=record.count, limit=limit, membership=tier)
            record.count += 1
            count = record.count
        logger.info("Usage reserved for %s: %d/%d (%s)", user_id, count, limit, tier)
        return True

    def usage_for(self, user_id: str) -> dict[str, object]:
        period = _period(self._clock())
        with self._lock:
            record = self._records.get(user_id)
            count = record.count if record and record.period == period else 0
            tier = record.membership if record else "free"
        limit = self._limits[tier]
        return {
            "currentUsage": count,
            "usageLimit": limit,
            "remaining": max(0, limit - count),
            "membership": tier,
            "period": period,
        }

    def reset(self) -> None:
        with self._lock:
            self._records.clear()


__all__ = ["InMemoryUsageGate", "USAGE_LIMITS", "UsageGate", "UsageRecord"]
